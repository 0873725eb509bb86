from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional
import csv
import logging
import re

from .classify import CATEGORIES, TOTAL
from .coloring import danger, header, label, muted, ok, warn
from .errors import ReportError
from .protocols import TCP_PROTOCOL
from .summary import StatBucket, TraceSummary
from .utils import date_of, format_duration, format_rate_bps, format_ts


logger = logging.getLogger(__name__)

SECTION_BAR = "=" * 72
SUBSECTION_BAR = "-" * 72

_METRICS = ("Packets", "Bytes")
_ACK_ROWS = ("Total ACKs", "Cumulative ACKs", "Pure ACKs", "Options ACKs")


def _density(packets: int, size: int, duration: float) -> list[str]:
    if not packets:
        return ["0", "0", "0"]
    return [
        f"{packets / duration:.0f}",
        f"{size / packets:.0f}",
        f"{size * 8 / duration:.0f}",
    ]


def _category_row(name: str, bucket: StatBucket, metric: str) -> list[object]:
    counters = bucket.packets if metric == "Packets" else bucket.bytes
    return [name, *(counters[category] for category in CATEGORIES)]


def _check_reportable(summary: TraceSummary) -> None:
    if not (summary.ip.bytes[TOTAL] and summary.ip.packets[TOTAL] and summary.ends):
        raise ReportError(
            "Important trace information was not found. Call process_trace() before "
            "writing a trace summary. Trace summary generation aborted"
        )


def summary_rows(summary: TraceSummary) -> Iterable[list[object]]:
    """Rows of the CSV trace summary, one list per line."""
    _check_reportable(summary)
    duration = summary.ends
    tcp = summary.tcp
    transports = sorted(summary.transport)

    yield ["GENERAL TRACE INFORMATION"]
    yield ["Filename", summary.filename, date_of(summary.filename) or "Unknown"]
    yield ["Duration", f"{duration:.6f}"]
    yield ["Records", summary.records]
    if tcp.concurrent_segments:
        yield ["Duplicate timestamps", tcp.concurrent_segments]
    if summary.unidirectional:
        yield ["One-way traffic in each interface"]
    elif summary.unidirectional is not None:
        yield ["Two-way traffic detected"]

    yield []
    yield ["TRAFFIC DENSITY"]
    yield ["", "Pkts/s", "Bytes/Pkt", "b/s"]
    yield ["IP Total", *_density(summary.ip.packets[TOTAL], summary.ip.bytes[TOTAL], duration)]
    tcp_bucket = summary.transport.get(TCP_PROTOCOL)
    if tcp_bucket is not None:
        yield ["TCP Total", *_density(tcp_bucket.packets[TOTAL], tcp_bucket.bytes[TOTAL], duration)]
    else:
        yield ["TCP Total", "0", "0", "0"]

    for metric in _METRICS:
        yield []
        yield [f"IP STATISTICS ({metric.upper()})"]
        yield [
            "", "", "Fragmentation", "", "Explicit Congestion Notification", "",
            "Differentiated Services", "", "", "", "IP Options",
        ]
        yield ["", *CATEGORIES]
        yield _category_row("IP", summary.ip, metric)
        for protocol in transports:
            yield _category_row(protocol, summary.transport[protocol], metric)

    if tcp.total_acks:
        yield []
        yield ["TCP ACKNOWLEDGEMENTS"]
        for name in _ACK_ROWS:
            yield [name, tcp[name]]

    if tcp.rwnd:
        yield []
        yield ["RECEIVER ADVERTISED WINDOW"]
        yield ["Size (Bytes)", "Soft Count", "Hard Count"]
        for window in sorted(tcp.rwnd):
            yield [window, tcp.rwnd[window] - tcp.awnd[window], tcp.awnd[window]]

    if tcp.syn:
        yield []
        yield ["TCP OPTIONS NEGOTIATION"]
        yield ["TCP Header Length (Bytes)", "SYN", "SYN/ACK"]
        for length in sorted(tcp.syn):
            yield [length, tcp.syn[length] - tcp.syn_ack[length], tcp.syn_ack[length]]
        yield ["SYN/Payload", tcp.syn_payload]

    if tcp.options_acks:
        yield []
        yield ["TCP OPTIONS ACK USAGE"]
        yield ["TCP Header Length (Bytes)", "Count"]
        for length in sorted(tcp.ack_option_size):
            yield [length, tcp.ack_option_size[length]]

    yield []
    yield ["PACKET SIZE DISTRIBUTION"]
    yield ["Bytes", "IP", *transports]
    for size in sorted(summary.ip.packet_size):
        yield [
            size,
            summary.ip.packet_size[size],
            *(summary.transport[protocol].packet_size[size] for protocol in transports),
        ]


def write_trace_summary(summary: TraceSummary, path: str | Path | None = None) -> Path:
    """Write the CSV trace summary; defaults to ``<trace>.csv``."""
    rows = list(summary_rows(summary))
    out_path = Path(path) if path else Path(f"{summary.filename}.csv")
    logger.info("Generating trace summary...")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle, lineterminator="\n")
        writer.writerows(rows)
    summary.log = str(out_path)
    logger.info("see %s", out_path)
    return out_path


def _format_kv(label_text: str, value: str, width: int = 24, color: bool | None = None) -> str:
    return f"{label(label_text, color):<{width}}: {value}"


def _format_table(rows: Iterable[list[str]]) -> str:
    rows = list(rows)
    if not rows:
        return "(none)"

    def _visible_len(text: str) -> int:
        return len(re.sub(r"\x1b\[[0-9;]*m", "", text))

    widths = [max(_visible_len(row[i]) for row in rows) for i in range(len(rows[0]))]
    lines = []
    for row in rows:
        parts = []
        for idx, value in enumerate(row):
            pad = widths[idx] - _visible_len(value)
            parts.append(value + (" " * max(0, pad)))
        lines.append("  ".join(parts).rstrip())
    return "\n".join(lines)


def _pct(part: int, whole: int) -> str:
    if not whole:
        return "-"
    return f"{(part / whole) * 100:.1f}%"


def _directionality(value: Optional[bool]) -> str:
    if value is None:
        return muted("not examined")
    return ok("one-way per interface") if value else warn("two-way traffic detected")


def render_trace_summary(summary: TraceSummary, limit: int = 15, verbose: bool = False) -> str:
    lines: list[str] = []
    total_packets = summary.ip.packets[TOTAL]
    total_bytes = summary.ip.bytes[TOTAL]
    duration = summary.ends

    lines.append(SECTION_BAR)
    lines.append(header(f"TSH TRACE REPORT :: {Path(summary.filename).name}"))
    lines.append(SECTION_BAR)
    lines.append(_format_kv("Path", summary.filename))
    lines.append(_format_kv("Capture Date", date_of(summary.filename) or "Unknown"))
    lines.append(_format_kv("Start", format_ts(summary.starts)))
    lines.append(_format_kv("Duration", format_duration(duration)))
    lines.append(_format_kv("Records", str(summary.records)))
    lines.append(_format_kv("Bytes", str(total_bytes)))
    lines.append(_format_kv("Interfaces", ", ".join(str(n) for n in summary.interface_numbers) or "-"))
    lines.append(_format_kv("Directionality", _directionality(summary.unidirectional)))
    if duration > 0:
        rate = total_bytes * 8 / duration
        lines.append(_format_kv("Mean Rate", format_rate_bps(rate)))
        lines.append(_format_kv("Link Utilization", _pct(int(rate), summary.link_capacity)))

    lines.append(SUBSECTION_BAR)
    lines.append(header("Transport Protocols"))
    rows = [["Protocol", "Packets", "Bytes", "Share", "DF", "ECT", "CE", "IP Options"]]
    ranked = sorted(summary.transport.items(), key=lambda item: (-item[1].packets[TOTAL], item[0]))
    for name, bucket in ranked[:limit]:
        rows.append([
            name,
            str(bucket.packets[TOTAL]),
            str(bucket.bytes[TOTAL]),
            _pct(bucket.packets[TOTAL], total_packets),
            str(bucket.packets["DF"]),
            str(bucket.packets["ECT"]),
            str(bucket.packets["CE"]),
            str(bucket.packets["IP Options"]),
        ])
    lines.append(_format_table(rows))

    lines.append(SUBSECTION_BAR)
    lines.append(header("Differentiated Services"))
    rows = [["Class", "Packets", "Bytes", "Share"]]
    for category in ("Normal", "Class Selector", "AF PHB", "EF PHB"):
        rows.append([
            category,
            str(summary.ip.packets[category]),
            str(summary.ip.bytes[category]),
            _pct(summary.ip.packets[category], total_packets),
        ])
    lines.append(_format_table(rows))

    tcp = summary.tcp
    if TCP_PROTOCOL in summary.transport:
        lines.append(SUBSECTION_BAR)
        lines.append(header("TCP"))
        for name in _ACK_ROWS:
            lines.append(_format_kv(name, str(tcp[name])))
        lines.append(_format_kv("SYNs", str(sum(tcp.syn.values()))))
        lines.append(_format_kv("SYN/ACKs", str(sum(tcp.syn_ack.values()))))
        lines.append(_format_kv("SYNs with payload", str(tcp.syn_payload)))
        if tcp.concurrent_segments:
            lines.append(_format_kv("Concurrent Segments", warn(str(tcp.concurrent_segments))))

    if len(summary.interfaces) > 1 or verbose:
        lines.append(SUBSECTION_BAR)
        lines.append(header("Interfaces"))
        rows = [["Interface", "Packets", "Bytes", "TCP", "Last Timestamp"]]
        for number in summary.interface_numbers:
            iface = summary.interfaces[number]
            tcp_bucket = iface.transport.get(TCP_PROTOCOL)
            rows.append([
                str(number),
                str(iface.ip.packets[TOTAL]),
                str(iface.ip.bytes[TOTAL]),
                str(tcp_bucket.packets[TOTAL] if tcp_bucket else 0),
                f"{iface.ends:.6f}",
            ])
        lines.append(_format_table(rows))

    if summary.warnings:
        lines.append(SUBSECTION_BAR)
        lines.append(header("Warnings"))
        shown = summary.warnings if verbose else summary.warnings[:limit]
        for message in shown:
            lines.append(danger(message))
        hidden = len(summary.warnings) - len(shown)
        if hidden > 0:
            lines.append(muted(f"... {hidden} more (use -v to show all)"))

    lines.append(SECTION_BAR)
    return "\n".join(lines)
