from __future__ import annotations

import argparse
import sys
from pathlib import Path

from . import __version__
from .coloring import danger, header, set_color_override
from .config import Settings, find_config, load_config, settings_from
from .diagnostics import verbose
from .discovery import find_traces, is_supported_trace
from .errors import TshError
from .exporting import export_json, export_pcap
from .reporting import render_trace_summary, write_trace_summary
from .trace import process_trace


def _build_banner() -> str:
    banner = [
        "======================================================================",
        f"  TSHTRACES v{__version__}  ::  TSH packet trace statistics",
        "======================================================================",
    ]
    return "\n".join(banner)


def _output_path(base: str, trace_path: Path, suffix: str, multiple: bool) -> Path:
    """Resolve an output option for one trace.

    A directory, or any path when several traces are processed, receives
    ``<trace name><suffix>`` files.
    """
    base_path = Path(base).expanduser()
    if base_path.is_dir() or base.endswith(("/", "\\")):
        return base_path / f"{trace_path.name}{suffix}"
    if multiple:
        return base_path.parent / f"{base_path.stem}-{trace_path.stem}{base_path.suffix or suffix}"
    return base_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tshtraces",
        description=f"{_build_banner()}\n\nProtocol statistics for TSH (Time Sequenced Headers) traces.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "target",
        type=Path,
        help="Path to a .tsh trace or a directory of traces.",
    )

    general = parser.add_argument_group(header("General Options"))
    outputs = parser.add_argument_group(header("Trace Outputs"))
    output = parser.add_argument_group(header("Output Controls"))

    general.add_argument(
        "-c",
        "--link-capacity",
        type=int,
        metavar="BPS",
        help="Capacity of the monitored link in bits per second (default: 155520000).",
    )
    general.add_argument(
        "--config",
        metavar="PATH",
        help="Read settings from this TOML file.",
    )
    general.add_argument(
        "--flows",
        action="store_true",
        default=None,
        help="Extract per-sender TCP segment lists; enables directionality checks\n"
        "and makes out-of-order timestamps fatal.",
    )
    general.add_argument(
        "-r",
        "--recursive",
        action="store_true",
        help="Recursively search for traces when target is a directory.",
    )

    outputs.add_argument(
        "--csv",
        metavar="PATH",
        help="Write the CSV trace summary (use '-' for <trace>.csv).",
    )
    outputs.add_argument(
        "--dump",
        metavar="PATH",
        help="Write a tcpdump-like text line for every TCP record.",
    )
    outputs.add_argument(
        "--json",
        metavar="PATH",
        help="Write the trace summary as JSON.",
    )
    outputs.add_argument(
        "--pcap",
        metavar="PATH",
        help="Convert the trace to a raw-IP pcap file.",
    )

    output.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI color output.",
    )
    output.add_argument(
        "--no-status",
        action="store_true",
        help="Disable the processing status bar.",
    )
    output.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress messages and every warning.",
    )
    output.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def _merge_settings(args: argparse.Namespace, settings: Settings) -> Settings:
    return Settings(
        link_capacity=args.link_capacity or settings.link_capacity,
        flows=settings.flows if args.flows is None else args.flows,
        status=settings.status and not args.no_status,
        color=False if args.no_color else settings.color,
        verbose=args.verbose or settings.verbose,
    )


def _analyze_trace(path: Path, args: argparse.Namespace, settings: Settings, multiple: bool) -> None:
    dump_path = _output_path(args.dump, path, ".txt", multiple) if args.dump else None
    result = process_trace(
        path,
        settings.link_capacity,
        dump_path,
        with_flow_extraction=settings.flows,
        show_status=settings.status,
    )
    summary = result.summary
    print(render_trace_summary(summary, verbose=settings.verbose))

    if args.csv:
        csv_path = None if args.csv == "-" else _output_path(args.csv, path, ".csv", multiple)
        written = write_trace_summary(summary, csv_path)
        print(f"CSV summary written to {written}")
    if args.json:
        json_path = export_json(summary, _output_path(args.json, path, ".json", multiple))
        print(f"JSON summary written to {json_path}")
    if args.pcap:
        pcap_path = _output_path(args.pcap, path, ".pcap", multiple)
        count = export_pcap(path, pcap_path)
        print(f"{count} packets written to {pcap_path}")
    if dump_path is not None:
        print(f"TCP dump written to {dump_path}")
    if result.flows is not None:
        senders = sum(len(per_if) for per_if in result.flows.senders.values())
        print(f"{senders} TCP senders with payload-carrying segments")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        loaded = load_config(find_config(args.config))
        settings = _merge_settings(args, settings_from(loaded.data))
    except ValueError as exc:
        print(danger(str(exc)), file=sys.stderr)
        return 2

    if settings.color is not None:
        set_color_override(settings.color)
    verbose(settings.verbose)
    print(_build_banner())

    target: Path = args.target
    if not target.exists():
        print(f"Target not found: {target}")
        return 2

    if target.is_file():
        if not is_supported_trace(target):
            print("Target is not a .tsh trace file.")
            return 2
        paths = [target]
    else:
        paths = find_traces(target, recursive=args.recursive)
        if not paths:
            print("No .tsh traces found.")
            return 2

    status = 0
    for path in paths:
        try:
            _analyze_trace(path, args, settings, multiple=len(paths) > 1)
        except TshError as exc:
            print(danger(f"{path}: {exc}"), file=sys.stderr)
            status = 1
    return status


if __name__ == "__main__":
    sys.exit(main())
