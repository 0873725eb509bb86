from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable

import pytest

from tshtraces.record import TshRecord, encode_record


FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures"
SAMPLE_NAME = "sample_1073132115"


def _read_hex_fixture(name: str) -> bytes:
    path = FIXTURE_DIR / name
    lines = [line for line in path.read_text(encoding="utf-8").splitlines() if not line.startswith("#")]
    return bytes.fromhex("".join(lines).replace(" ", ""))


def build_record(**overrides: int) -> TshRecord:
    fields = dict(
        seconds=1073132115,
        interface=1,
        usec=0,
        version_ihl=0x45,
        type_of_service=0,
        total_length=40,
        identification=0,
        flags_fragment_offset=0x4000,
        ttl=64,
        protocol=6,
        header_checksum=0,
        source_address=0x0A000001,
        destination_address=0x0A000002,
        source_port=1025,
        destination_port=80,
        sequence_number=1000,
        acknowledgment_number=0,
        data_offset_reserved=0x50,
        tcp_flags=0x10,
        window=65535,
    )
    fields.update(overrides)
    return TshRecord(**fields)


@pytest.fixture()
def sample_bytes() -> bytes:
    return _read_hex_fixture(f"{SAMPLE_NAME}.tsh.hex")


@pytest.fixture()
def sample_trace(tmp_path: Path, sample_bytes: bytes) -> Path:
    out = tmp_path / f"{SAMPLE_NAME}.tsh"
    out.write_bytes(sample_bytes)
    return out


@pytest.fixture()
def sample_dump() -> str:
    return (FIXTURE_DIR / f"{SAMPLE_NAME}.dump.txt").read_text(encoding="ascii")


@pytest.fixture()
def make_record() -> Callable[..., TshRecord]:
    return build_record


@pytest.fixture()
def write_trace(tmp_path: Path) -> Callable[..., Path]:
    def _write(records: Iterable[TshRecord], name: str = "trace.tsh") -> Path:
        out = tmp_path / name
        out.write_bytes(b"".join(encode_record(record) for record in records))
        return out

    return _write
