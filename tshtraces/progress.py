from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path


@dataclass
class StatusBar:
    label: str
    total: int = 0
    enabled: bool = True
    _last_percent: int = -1

    def __enter__(self) -> "StatusBar":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # Leave the bar where it stopped when processing failed.
        self.finish(complete=exc_type is None)

    def advance(self, done: int) -> None:
        if not self.enabled or self.total <= 0:
            return
        self.update(int(done * 100 / self.total))

    def update(self, percent: int) -> None:
        if not self.enabled:
            return
        percent = max(0, min(100, percent))
        if percent == self._last_percent:
            return
        self._last_percent = percent
        sys.stderr.write(f"\r{self.label} {percent:3d}%")
        sys.stderr.flush()

    def finish(self, complete: bool = True) -> None:
        if not self.enabled or self._last_percent < 0:
            return
        if complete and self._last_percent < 100:
            self.update(100)
        sys.stderr.write("\n")
        sys.stderr.flush()
        self.enabled = False


def should_show_statusbar() -> bool:
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


def build_statusbar(path: Path, total: int, enabled: bool = True) -> StatusBar:
    label = f"Processing {path.name}"
    return StatusBar(label=label, total=total, enabled=enabled and should_show_statusbar())
