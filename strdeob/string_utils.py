"""Utility helpers for reasoning about decoded string artefacts."""

from __future__ import annotations

import unicodedata
from typing import Optional

_PRINTABLE_LOW = 32
_PRINTABLE_HIGH = 126

ALLOWED_CONTROL = frozenset("\n\r\t")


def is_printable_byte(value: int) -> bool:
    return _PRINTABLE_LOW <= value <= _PRINTABLE_HIGH or value in (0x09, 0x0A, 0x0D)


def printable_ratio(data: bytes, *, count_nul: bool = False) -> float:
    """Return the fraction of bytes in ``data`` that look like ASCII text.

    ``count_nul`` treats zero bytes as text as well, which suits concatenated
    string tables where every record is separated or padded by NULs.
    """

    if not data:
        return 0.0
    hits = sum(
        1 for value in data if is_printable_byte(value) or (count_nul and value == 0)
    )
    return hits / len(data)


def decode_utf8(data: bytes) -> Optional[str]:
    """Strict UTF-8 decode; ``None`` when ``data`` is not valid UTF-8."""

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def has_forbidden_control(text: str) -> bool:
    for char in text:
        if char in ALLOWED_CONTROL:
            continue
        if unicodedata.category(char) == "Cc":
            return True
    return False


def is_printable_ascii_char(text: str) -> bool:
    return len(text) == 1 and _PRINTABLE_LOW <= ord(text) <= _PRINTABLE_HIGH


def hex_preview(data: bytes, limit: int = 32) -> str:
    return "-".join(f"{value:02X}" for value in data[:limit])


def shorten(text: str, limit: int = 60) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


__all__ = [
    "ALLOWED_CONTROL",
    "decode_utf8",
    "has_forbidden_control",
    "hex_preview",
    "is_printable_ascii_char",
    "is_printable_byte",
    "printable_ratio",
    "shorten",
]
