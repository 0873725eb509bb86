from __future__ import annotations

from collections import Counter
from dataclasses import is_dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
import re


_EPOCH_RE = re.compile(r"(\d{10})")


def get_ip_address(value: int) -> str:
    """Render a 32-bit integer as a dotted-quad, most significant byte first."""
    value &= 0xFFFFFFFF
    return f"{value >> 24}.{(value >> 16) & 0xFF}.{(value >> 8) & 0xFF}.{value & 0xFF}"


def date_of(filename: str | Path | None) -> str:
    """GMT date of the epoch embedded in a trace filename, or ``""``.

    ``date_of("ODU-1073132115.tsh")`` gives ``"Sat Jan  3 12:15:15 2004 GMT"``.
    """
    if not filename:
        return ""
    match = _EPOCH_RE.search(Path(filename).name)
    if not match:
        return ""
    dt = datetime.fromtimestamp(int(match.group(1)), tz=timezone.utc)
    return f"{dt.strftime('%a %b')} {dt.day:2d} {dt.strftime('%H:%M:%S %Y')} GMT"


def format_ts(ts: Optional[float]) -> str:
    if ts is None:
        return "-"
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    if seconds < 1:
        return f"{seconds * 1000:.1f} ms"
    if seconds < 60:
        return f"{seconds:.2f} s"
    minutes, sec = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m {sec:.1f}s"
    hours, minutes = divmod(minutes, 60)
    return f"{int(hours)}h {int(minutes)}m {sec:.1f}s"


def format_rate_bps(bps: Optional[float]) -> str:
    if bps is None or bps <= 0:
        return "-"
    if bps >= 1_000_000_000:
        return f"{bps / 1_000_000_000:.2f} Gbps"
    if bps >= 1_000_000:
        return f"{bps / 1_000_000:.2f} Mbps"
    if bps >= 1_000:
        return f"{bps / 1_000:.2f} Kbps"
    return f"{bps:.0f} bps"


def to_serializable(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Counter):
        return {str(k): value[k] for k in sorted(value)}
    if isinstance(value, dict):
        return {str(k): to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_serializable(item) for item in value]
    if hasattr(value, "to_dict") and callable(getattr(value, "to_dict")):
        return to_serializable(value.to_dict())
    if is_dataclass(value) and not isinstance(value, type):
        return to_serializable(asdict(value))
    return str(value)
