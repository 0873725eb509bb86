from __future__ import annotations

import os
import sys


ANSI_RESET = "\x1b[0m"

_STYLES = {
    "header": ("\x1b[36m", True, False),
    "label": ("\x1b[34m", True, False),
    "ok": ("\x1b[32m", False, False),
    "warn": ("\x1b[33m", False, False),
    "danger": ("\x1b[31m", True, False),
    "muted": ("\x1b[37m", False, True),
}

_COLOR_OVERRIDE: bool | None = None


def use_color(enabled: bool | None = None) -> bool:
    if enabled is not None:
        return enabled
    if _COLOR_OVERRIDE is not None:
        return _COLOR_OVERRIDE
    if os.environ.get("NO_COLOR") is not None:
        return False
    try:
        return sys.stdout.isatty()
    except Exception:
        return False


def set_color_override(enabled: bool | None) -> None:
    global _COLOR_OVERRIDE
    _COLOR_OVERRIDE = enabled


def style(name: str, text: str, enabled: bool | None = None) -> str:
    if not use_color(enabled):
        return text
    color, bold, dim = _STYLES[name]
    prefix = ("\x1b[1m" if bold else "") + ("\x1b[2m" if dim else "") + color
    return f"{prefix}{text}{ANSI_RESET}"


def header(text: str, enabled: bool | None = None) -> str:
    return style("header", text, enabled)


def label(text: str, enabled: bool | None = None) -> str:
    return style("label", text, enabled)


def ok(text: str, enabled: bool | None = None) -> str:
    return style("ok", text, enabled)


def warn(text: str, enabled: bool | None = None) -> str:
    return style("warn", text, enabled)


def danger(text: str, enabled: bool | None = None) -> str:
    return style("danger", text, enabled)


def muted(text: str, enabled: bool | None = None) -> str:
    return style("muted", text, enabled)
