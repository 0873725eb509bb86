"""Trace processing: read TSH records, classify them and build summaries.

``process_trace`` is the entry point. It always produces a
:class:`~tshtraces.summary.TraceSummary`; when ``with_flow_extraction`` is
set it also builds a :class:`FlowIndex` with the payload-carrying TCP
segments of every sender, which enables the directionality check and makes
out-of-order timestamps fatal.
"""

from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterator, NamedTuple, Optional
import logging

from .classify import MIN_HEADER_LENGTH, classify_tcp, ip_categories
from .dump import DumpWriter
from .errors import (
    CorruptTraceError,
    NonMonotonicTimestampError,
    TooManyCollisionsError,
    TraceFileError,
)
from .progress import build_statusbar
from .protocols import TCP_PROTOCOL, protocol_name
from .record import RECORD_LENGTH, USEC_PER_SECOND, TshRecord, decode_record
from .summary import DEFAULT_LINK_CAPACITY, TraceSummary


logger = logging.getLogger(__name__)

# A fourth payload-carrying segment at one timestamp on one interface aborts
# processing.
TIMESTAMP_COLLISION_THRESHOLD = 3


class SenderKey(NamedTuple):
    src: int
    src_port: int
    dst: int
    dst_port: int

    def reverse(self) -> "SenderKey":
        return SenderKey(self.dst, self.dst_port, self.src, self.src_port)


@dataclass
class Segment:
    bytes: int
    seq_num: int
    # Retransmission detection happens outside trace processing.
    retransmitted: bool = False


SenderIndex = dict[int, dict[SenderKey, list[str]]]
SegmentIndex = dict[int, dict[str, Segment]]


def timestamp_key(timestamp: float) -> str:
    return format(timestamp, ".15g")


@dataclass
class FlowIndex:
    senders: SenderIndex = field(default_factory=dict)
    segments: SegmentIndex = field(default_factory=dict)

    def claim_key(self, interface: int, timestamp: float) -> tuple[str, int]:
        """Find a free segment key for ``timestamp`` on ``interface``.

        Every occupied key adds a literal ``"1"`` to the key text. Returns
        the key and the number of collisions it took to find it.
        """
        occupied = self.segments.get(interface, {})
        key = timestamp_key(timestamp)
        collisions = 0
        while key in occupied:
            collisions += 1
            if collisions == TIMESTAMP_COLLISION_THRESHOLD:
                raise TooManyCollisionsError(
                    f"Too many duplicate timestamps: {collisions + 1} trace records "
                    f"on interface {interface} have the timestamp {timestamp_key(timestamp)}"
                )
            key += "1"
        return key, collisions

    def add(self, interface: int, key: str, record: TshRecord) -> SenderKey:
        self.segments.setdefault(interface, {})[key] = Segment(
            bytes=record.total_length,
            seq_num=record.sequence_number,
        )
        sender = SenderKey(
            record.source_address,
            record.source_port,
            record.destination_address,
            record.destination_port,
        )
        self.senders.setdefault(interface, {}).setdefault(sender, []).append(key)
        return sender

    def has_reverse(self, interface: int, sender: SenderKey) -> bool:
        return sender.reverse() in self.senders.get(interface, {})

    def as_tuple(self) -> tuple[SenderIndex, SegmentIndex]:
        return self.senders, self.segments


@dataclass
class TraceResult:
    summary: TraceSummary
    flows: Optional[FlowIndex] = None

    @property
    def has_flows(self) -> bool:
        return self.flows is not None

    def indices(self) -> tuple[SenderIndex, SegmentIndex]:
        if self.flows is None:
            raise ValueError("flow extraction was not requested for this trace")
        return self.flows.as_tuple()


_current_summary: Optional[TraceSummary] = None


def get_trace_summary() -> Optional[TraceSummary]:
    """Summary of the most recent successful :func:`process_trace` call."""
    return _current_summary


def records_in(path: str | Path) -> int:
    """Number of records in a trace, derived from its size."""
    path = Path(path)
    try:
        size = path.stat().st_size
    except OSError as exc:
        raise TraceFileError(f"Cannot open {path} for processing: {exc}") from exc
    count, remainder = divmod(size, RECORD_LENGTH)
    if remainder:
        raise CorruptTraceError(
            f"'{path}' may be corrupted: size {size} is not a multiple of "
            f"{RECORD_LENGTH} bytes. Trace processing aborted"
        )
    return count


def _read_records(handle: BinaryIO) -> Iterator[TshRecord]:
    while True:
        chunk = handle.read(RECORD_LENGTH)
        if not chunk:
            return
        yield decode_record(chunk)


def iter_records(path: str | Path) -> Iterator[TshRecord]:
    path = Path(path)
    records_in(path)
    try:
        handle = path.open("rb")
    except OSError as exc:
        raise TraceFileError(f"Cannot open {path} for processing: {exc}") from exc
    with handle:
        yield from _read_records(handle)


def _elapsed(first: TshRecord, record: TshRecord) -> float:
    # Integer microseconds keep full precision for epoch-sized seconds.
    usec = (record.seconds - first.seconds) * USEC_PER_SECOND + record.usec - first.usec
    return usec / USEC_PER_SECOND


def _warn(summary: TraceSummary, message: str) -> None:
    logger.warning(message)
    summary.warnings.append(message)


def process_trace(
    path: str | Path,
    link_capacity: int = DEFAULT_LINK_CAPACITY,
    dump_path: str | Path | None = None,
    *,
    with_flow_extraction: bool = False,
    show_status: bool = False,
) -> TraceResult:
    global _current_summary

    path = Path(path)
    summary = TraceSummary()
    summary.filename = str(path)
    summary.records = records_in(path)
    summary.link_capacity = link_capacity or DEFAULT_LINK_CAPACITY

    flows = FlowIndex() if with_flow_extraction else None
    # Directionality is only examined when flows are extracted.
    summary.unidirectional = True if flows is not None else None

    logger.info("Processing %s...", path)

    with ExitStack() as stack:
        try:
            handle = stack.enter_context(path.open("rb"))
        except OSError as exc:
            raise TraceFileError(f"Cannot open {path} for processing: {exc}") from exc
        dump = stack.enter_context(DumpWriter(Path(dump_path))) if dump_path else None
        status = stack.enter_context(build_statusbar(path, summary.records, enabled=show_status))
        first: Optional[TshRecord] = None

        for index, record in enumerate(_read_records(handle), start=1):
            status.advance(index)
            interface = record.interface

            if first is None:
                first = record
                summary.starts = record.time
            timestamp = _elapsed(first, record)

            # Same timestamps are allowed, going back in time is not.
            if timestamp < summary.ends:
                _warn(summary, f"Timestamps do not increase monotonically (record {index})")
                if flows is not None:
                    raise NonMonotonicTimestampError(f"Processing aborted for {path}")

            if record.version != 4:
                _warn(summary, f"IPv{record.version} packet detected (record {index})")
            if record.ihl < MIN_HEADER_LENGTH:
                _warn(summary, f"IP header with only {record.ihl} bytes detected (record {index})")

            protocol = protocol_name(record.protocol)
            for category in ip_categories(record):
                summary.record(interface, protocol, category, record.total_length)

            if protocol == TCP_PROTOCOL:
                obs = classify_tcp(record)
                for anomaly in obs.anomalies:
                    _warn(summary, f"{anomaly} (record {index})")
                summary.observe_tcp(interface, obs)

                if flows is not None and obs.payload_length > 0:
                    key, collisions = flows.claim_key(interface, timestamp)
                    if collisions:
                        _warn(summary, f"Duplicate timestamp {timestamp_key(timestamp)} detected & replaced with {key}")
                        summary.count_concurrent_segment(interface)
                    sender = flows.add(interface, key, record)
                    if summary.unidirectional and flows.has_reverse(interface, sender):
                        summary.unidirectional = False

                if dump is not None:
                    dump.write(timestamp, record)

            summary.interface(interface).ends = timestamp
            summary.ends = timestamp

    if flows is not None and summary.tcp.concurrent_segments:
        _warn(
            summary,
            f"{summary.tcp.concurrent_segments} TCP segments had the same timestamp with another segment",
        )

    summary.finalize()
    _current_summary = summary
    return TraceResult(summary=summary, flows=flows)
