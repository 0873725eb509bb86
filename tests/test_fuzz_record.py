from __future__ import annotations

import pytest

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st
except Exception:  # pragma: no cover
    pytest.skip("hypothesis not installed", allow_module_level=True)

from tshtraces.classify import classify_tcp, diffserv_class, ip_categories
from tshtraces.errors import MalformedRecordError
from tshtraces.record import RECORD_LENGTH, decode_record, encode_record


@given(st.binary(min_size=RECORD_LENGTH, max_size=RECORD_LENGTH))
@settings(max_examples=300)
def test_decode_record_fuzz(data: bytes):
    try:
        record = decode_record(data)
    except MalformedRecordError:
        assert int.from_bytes(data[5:8], "big") >= 1_000_000
        return
    assert encode_record(record) == data
    categories = ip_categories(record)
    assert categories[0] == "Total"
    classify_tcp(record)


@given(st.binary(max_size=2 * RECORD_LENGTH).filter(lambda b: len(b) != RECORD_LENGTH))
@settings(max_examples=100)
def test_decode_rejects_wrong_lengths(data: bytes):
    with pytest.raises(MalformedRecordError):
        decode_record(data)


@given(st.integers(min_value=0, max_value=63))
def test_diffserv_classes_are_exclusive(dscp: int):
    result = diffserv_class(dscp)
    if dscp == 0:
        assert result == "Normal"
    elif dscp % 8 == 0:
        assert result == "Class Selector"
    elif dscp % 2:
        assert result is None
    else:
        assert result in ("AF PHB", "EF PHB", None)
