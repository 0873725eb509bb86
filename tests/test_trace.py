from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tshtraces.errors import (
    CorruptTraceError,
    MalformedRecordError,
    NonMonotonicTimestampError,
    TooManyCollisionsError,
    TraceFileError,
)
from tshtraces.record import encode_record
from tshtraces.trace import (
    SenderKey,
    get_trace_summary,
    iter_records,
    process_trace,
    records_in,
    timestamp_key,
)

from conftest import build_record


def _segment(**overrides):
    fields = dict(total_length=50, tcp_flags=0x18)
    fields.update(overrides)
    return build_record(**fields)


def test_records_in_counts_whole_records(sample_trace: Path) -> None:
    assert records_in(sample_trace) == 3


def test_records_in_empty_trace(tmp_path: Path) -> None:
    empty = tmp_path / "empty.tsh"
    empty.write_bytes(b"")
    assert records_in(empty) == 0


def test_records_in_missing_file(tmp_path: Path) -> None:
    with pytest.raises(TraceFileError):
        records_in(tmp_path / "nope.tsh")


def test_truncated_trace_is_rejected_before_outputs_open(tmp_path: Path, sample_bytes: bytes) -> None:
    trace = tmp_path / "broken.tsh"
    trace.write_bytes(sample_bytes + b"\x00" * 13)
    dump = tmp_path / "broken.txt"

    with pytest.raises(CorruptTraceError):
        records_in(trace)
    with pytest.raises(CorruptTraceError):
        process_trace(trace, dump_path=dump)
    assert not dump.exists()


def test_sample_trace_statistics(sample_trace: Path) -> None:
    summary = process_trace(sample_trace).summary

    assert summary.records == 3
    assert summary.starts == 1073132115.0
    assert summary.ends == pytest.approx(6.7e-05)
    assert summary.interface_numbers == [1, 2]
    assert summary.unidirectional is None
    assert summary.link_capacity == 155_520_000

    ip = summary["IP"]
    assert ip["Total Packets"] == 3
    assert ip["Total Bytes"] == 784
    assert ip["DF Packets"] == 2
    assert ip["DF Bytes"] == 708
    assert ip["ECT Packets"] == 1
    assert ip["CE Bytes"] == 660
    assert ip["Normal Packets"] == 2
    assert ip["AF PHB Bytes"] == 76
    assert ip["No IP Options Packets"] == 3
    assert ip["Packet Size"] == {48: 1, 76: 1, 660: 1}

    tcp = summary["Transport"]["TCP"]
    assert tcp["Total Packets"] == 2
    assert tcp["Total Bytes"] == 708
    assert tcp["SYN"] == {28: 1}
    assert tcp["rwnd"] == {16384: 1}
    assert tcp["awnd"] == {}
    assert tcp["Total ACKs"] == 1
    assert tcp["Cumulative ACKs"] == 1
    assert tcp["Pure ACKs"] == 0
    assert summary["Transport"]["UDP"]["Total Bytes"] == 76
    assert summary.warnings == []


def test_per_interface_totals_add_up(sample_trace: Path) -> None:
    summary = process_trace(sample_trace).summary
    assert sum(i.ip.packets["Total"] for i in summary.interfaces.values()) == summary.records
    assert summary.interfaces[1].ends == pytest.approx(6.7e-05)
    assert summary.interfaces[2].ends == pytest.approx(1.4e-05)
    for bucket in summary.transport.values():
        assert bucket.packets["DF"] <= bucket.packets["Total"]
        assert bucket.bytes["Normal"] <= bucket.bytes["Total"]


def test_processing_is_repeatable(sample_trace: Path) -> None:
    first = process_trace(sample_trace).summary.to_dict()
    second = process_trace(sample_trace).summary
    assert second.to_dict() == first
    assert get_trace_summary() is second


def test_failed_run_keeps_previous_summary(sample_trace: Path, tmp_path: Path) -> None:
    summary = process_trace(sample_trace).summary
    with pytest.raises(TraceFileError):
        process_trace(tmp_path / "missing.tsh")
    assert get_trace_summary() is summary


def test_empty_trace_produces_empty_summary(write_trace) -> None:
    summary = process_trace(write_trace([])).summary
    assert summary.records == 0
    assert summary.ip.packets["Total"] == 0
    assert summary.starts is None


def test_flow_extraction_on_sample(sample_trace: Path) -> None:
    result = process_trace(sample_trace, with_flow_extraction=True)
    senders, segments = result.indices()

    key = timestamp_key(6.7e-05)
    assert key == "6.7e-05"
    sender = SenderKey(0x0A000001, 6699, 0x0A000002, 55309)
    assert senders == {1: {sender: [key]}}
    segment = segments[1][key]
    assert segment.bytes == 660
    assert segment.seq_num == 3069531324
    assert segment.retransmitted is False
    assert result.summary.unidirectional is True


def test_indices_require_flow_extraction(sample_trace: Path) -> None:
    result = process_trace(sample_trace)
    assert not result.has_flows
    with pytest.raises(ValueError):
        result.indices()


def test_three_segments_share_a_timestamp(write_trace) -> None:
    trace = write_trace([_segment(sequence_number=n) for n in (1, 11, 21)])
    result = process_trace(trace, with_flow_extraction=True)

    assert result.summary.tcp.concurrent_segments == 2
    assert list(result.flows.segments[1]) == ["0", "01", "011"]
    assert [s.seq_num for s in result.flows.segments[1].values()] == [1, 11, 21]
    assert any("same timestamp" in message for message in result.summary.warnings)


def test_fourth_segment_at_one_timestamp_is_fatal(write_trace) -> None:
    trace = write_trace([_segment(sequence_number=n) for n in range(4)])
    with pytest.raises(TooManyCollisionsError):
        process_trace(trace, with_flow_extraction=True)


def test_collisions_are_tracked_per_interface(write_trace) -> None:
    trace = write_trace([_segment(interface=n % 2 + 1) for n in range(4)])
    result = process_trace(trace, with_flow_extraction=True)
    assert result.summary.tcp.concurrent_segments == 2


def test_collisions_ignored_without_flow_extraction(write_trace) -> None:
    trace = write_trace([_segment() for _ in range(5)])
    summary = process_trace(trace).summary
    assert summary.tcp.concurrent_segments == 0
    assert summary.records == 5


def test_reverse_sender_marks_two_way_traffic(write_trace) -> None:
    forward = _segment()
    reverse = _segment(
        usec=10,
        source_address=forward.destination_address,
        source_port=forward.destination_port,
        destination_address=forward.source_address,
        destination_port=forward.source_port,
    )
    result = process_trace(write_trace([forward, reverse]), with_flow_extraction=True)
    assert result.summary.unidirectional is False


def test_reverse_sender_on_other_interface_is_one_way(write_trace) -> None:
    forward = _segment()
    reverse = _segment(
        interface=2,
        usec=10,
        source_address=forward.destination_address,
        source_port=forward.destination_port,
        destination_address=forward.source_address,
        destination_port=forward.source_port,
    )
    result = process_trace(write_trace([forward, reverse]), with_flow_extraction=True)
    assert result.summary.unidirectional is True


def test_out_of_order_timestamps_warn_without_flows(write_trace) -> None:
    trace = write_trace([build_record(usec=100), build_record(usec=50)])
    summary = process_trace(trace).summary
    assert summary.records == 2
    assert any("monotonically" in message for message in summary.warnings)


def test_out_of_order_timestamps_abort_flow_extraction(write_trace) -> None:
    trace = write_trace([build_record(usec=100), build_record(usec=50)])
    with pytest.raises(NonMonotonicTimestampError):
        process_trace(trace, with_flow_extraction=True)


def test_microsecond_overflow_aborts(tmp_path: Path) -> None:
    raw = bytearray(encode_record(build_record()))
    raw[5:8] = (1_000_000).to_bytes(3, "big")
    trace = tmp_path / "bad.tsh"
    trace.write_bytes(bytes(raw))
    with pytest.raises(MalformedRecordError):
        process_trace(trace)


def test_header_anomalies_are_logged(write_trace, caplog: pytest.LogCaptureFixture) -> None:
    records = [
        build_record(version_ihl=0x65),
        build_record(usec=1, version_ihl=0x44),
        build_record(usec=2, data_offset_reserved=0x40),
    ]
    with caplog.at_level(logging.WARNING, logger="tshtraces"):
        summary = process_trace(write_trace(records)).summary

    assert summary.records == 3
    assert any("IPv6" in message for message in caplog.messages)
    assert any("IP header with only 16 bytes" in message for message in caplog.messages)
    assert any("TCP header with only 16 bytes" in message for message in caplog.messages)
    assert summary.ip.packets["IP Options"] == 0
    assert summary.ip.packets["No IP Options"] == 2


def test_dump_matches_reference(sample_trace: Path, sample_dump: str, tmp_path: Path) -> None:
    dump = tmp_path / "dump.txt"
    process_trace(sample_trace, dump_path=dump)
    assert dump.read_text(encoding="ascii") == sample_dump


def test_unwritable_dump_path(sample_trace: Path, tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    with pytest.raises(TraceFileError):
        process_trace(sample_trace, dump_path=blocker / "dump.txt")


def test_iter_records_yields_decoded_records(sample_trace: Path) -> None:
    records = list(iter_records(sample_trace))
    assert [r.protocol for r in records] == [6, 17, 6]
    assert records[1].type_of_service == 0x28
