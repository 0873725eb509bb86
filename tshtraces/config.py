from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for 3.9/3.10
    import tomli as tomllib  # type: ignore[import-not-found]

from .summary import DEFAULT_LINK_CAPACITY


@dataclass(frozen=True)
class ConfigLoadResult:
    path: Path | None
    data: dict[str, Any]


@dataclass(frozen=True)
class Settings:
    link_capacity: int = DEFAULT_LINK_CAPACITY
    flows: bool = False
    status: bool = True
    color: bool | None = None
    verbose: bool = False


DEFAULT_CONFIG_PATHS = [
    Path("tshtraces.toml"),
    Path.home() / ".tshtraces.toml",
    Path.home() / ".config" / "tshtraces" / "config.toml",
]


def find_config(explicit: str | Path | None) -> Path | None:
    if explicit:
        return Path(explicit).expanduser()
    for candidate in DEFAULT_CONFIG_PATHS:
        if candidate.exists():
            return candidate
    return None


def load_config(path: Path | None) -> ConfigLoadResult:
    if not path or not path.exists():
        return ConfigLoadResult(path=None, data={})
    try:
        data = tomllib.loads(path.read_bytes().decode("utf-8", errors="ignore"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        return ConfigLoadResult(path=path, data={})
    return ConfigLoadResult(path=path, data=data)


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def settings_from(data: dict[str, Any]) -> Settings:
    trace = _section(data, "trace")
    output = _section(data, "output")
    defaults = Settings()
    capacity = trace.get("link_capacity", defaults.link_capacity)
    try:
        capacity = int(capacity)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"trace.link_capacity must be an integer, got {capacity!r}") from exc
    if capacity <= 0:
        raise ValueError(f"trace.link_capacity must be positive, got {capacity}")
    color = output.get("color", defaults.color)
    return Settings(
        link_capacity=capacity,
        flows=bool(trace.get("flows", defaults.flows)),
        status=bool(trace.get("status", defaults.status)),
        color=None if color is None else bool(color),
        verbose=bool(output.get("verbose", defaults.verbose)),
    )
