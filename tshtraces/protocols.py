from __future__ import annotations

from functools import lru_cache
from importlib import resources
from typing import Iterable

from .errors import ProtocolTableError


UNKNOWN_PROTOCOL = "Unknown"
TCP_PROTOCOL = "TCP"

_TABLE_RESOURCE = "protocol-numbers.txt"


def parse_protocol_table(lines: Iterable[str]) -> dict[int, str]:
    """Build a number -> name mapping from ``"<number> <name>"`` lines.

    Blank lines and ``#`` comments are skipped. Names may contain spaces.
    A repeated number means the table is corrupted and is rejected.
    """
    table: dict[int, str] = {}
    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        if len(parts) != 2:
            raise ProtocolTableError(f"line {lineno}: expected '<number> <name>', got {line!r}")
        number_text, name = parts
        try:
            number = int(number_text)
        except ValueError as exc:
            raise ProtocolTableError(f"line {lineno}: invalid protocol number {number_text!r}") from exc
        if not 0 <= number <= 255:
            raise ProtocolTableError(f"line {lineno}: protocol number {number} out of range")
        if number in table:
            raise ProtocolTableError(f"Duplicate IANA protocol number {number} detected (line {lineno})")
        table[number] = name.strip()
    return table


@lru_cache(maxsize=1)
def protocol_table() -> dict[int, str]:
    text = resources.files("tshtraces.data").joinpath(_TABLE_RESOURCE).read_text(encoding="utf-8")
    return parse_protocol_table(text.splitlines())


def protocol_name(number: int, table: dict[int, str] | None = None) -> str:
    mapping = protocol_table() if table is None else table
    return mapping.get(number, UNKNOWN_PROTOCOL)
