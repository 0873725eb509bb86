from __future__ import annotations

from pathlib import Path


TRACE_SUFFIX = ".tsh"


def is_supported_trace(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() == TRACE_SUFFIX


def find_traces(target: Path, recursive: bool = False) -> list[Path]:
    """Trace files under ``target``, sorted; a file target is returned as is."""
    if target.is_file():
        return [target]
    candidates = target.rglob("*") if recursive else target.iterdir()
    return sorted(entry for entry in candidates if is_supported_trace(entry))
