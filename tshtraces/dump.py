"""tcpdump-like text rendering of TCP records.

The layout follows ``tcpdump -n -S`` as presented in *TCP/IP Illustrated
Volume 1*, minus TCP options, which TSH records do not carry::

    0.000014000 10.0.0.3.80 > 10.0.0.4.14401: S 457330477:457330477(0) ack 810547499 win 34932
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, TextIO
import logging

from .errors import TraceFileError
from .record import TshRecord
from .utils import get_ip_address


logger = logging.getLogger(__name__)


def format_flags(record: TshRecord) -> str:
    flags = record.flags
    text = "".join(
        letter
        for letter, is_set in (
            ("S", flags.syn),
            ("F", flags.fin),
            ("P", flags.psh),
            ("R", flags.rst),
            ("C", flags.cwr),
            ("E", flags.ece),
        )
        if is_set
    )
    return text or "."


def format_dump_line(timestamp: float, record: TshRecord) -> str:
    flags = record.flags
    payload = record.tcp_payload_length
    seq = record.sequence_number

    parts = [
        f"{timestamp:1.9f}",
        f"{get_ip_address(record.source_address)}.{record.source_port}",
        ">",
        f"{get_ip_address(record.destination_address)}.{record.destination_port}:",
        format_flags(record),
    ]
    if payload or flags.syn or flags.fin or flags.rst:
        parts.append(f"{seq}:{seq + payload}({payload})")
    if flags.ack:
        parts.append(f"ack {record.acknowledgment_number}")
    parts.append(f"win {record.window}")
    if flags.urg:
        parts.append("urg 1")
    return " ".join(parts) + "\n"


class DumpWriter:
    """Appends one dump line per TCP record to a text file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lines = 0
        self._handle: Optional[TextIO] = None

    def __enter__(self) -> "DumpWriter":
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("w", encoding="ascii", newline="\n")
        except OSError as exc:
            raise TraceFileError(f"could not open {self.path} for writing: {exc}") from exc
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write(self, timestamp: float, record: TshRecord) -> None:
        if self._handle is None:
            raise ValueError(f"dump file {self.path} is not open")
        self._handle.write(format_dump_line(timestamp, record))
        self.lines += 1

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            logger.info("TCP activity stored in text format in %s", self.path)
