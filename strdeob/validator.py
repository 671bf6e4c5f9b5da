"""Acceptance rules for decoded string candidates."""

from __future__ import annotations

import unicodedata
from typing import Optional

from .config import DEFAULT_OPTIONS, EngineOptions
from .string_utils import has_forbidden_control, is_printable_ascii_char


def strip_length_prefix(text: str) -> str:
    """Drop a leading single-character length prefix.

    Some builds store a 7-bit length byte in front of NUL-terminated records.
    When such a record is read without its structure the prefix shows up as a
    control character whose code equals the length of the remaining text.
    """

    if len(text) > 1 and ord(text[0]) == len(text) - 1:
        if unicodedata.category(text[0]) == "Cc":
            return text[1:]
    return text


class CandidateValidator:
    """Decide whether decoded text looks like a genuine string literal."""

    def __init__(self, options: EngineOptions = DEFAULT_OPTIONS) -> None:
        self.options = options

    def accept(self, text: str, *, short: bool = False) -> Optional[str]:
        """Return the cleaned text when acceptable, ``None`` otherwise.

        ``short`` selects the rules of the short-constant population: exactly
        one printable ASCII character.
        """

        if short:
            return text if is_printable_ascii_char(text) else None
        text = strip_length_prefix(text)
        if not text.strip():
            return None
        if len(text) > self.options.max_string_length:
            return None
        if has_forbidden_control(text):
            return None
        return text


__all__ = ["CandidateValidator", "strip_length_prefix"]
