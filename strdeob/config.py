"""Tunable options shared by every component of the engine."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from .errors import OptionsError

logger = logging.getLogger(__name__)


DEFAULT_XOR_KEYS: Tuple[int, ...] = (0x2A, 0x7F, 0xFF, 0x2D, 0x5A, 0xA5, 0x100, 0x55555555)
DEFAULT_CHAR_XOR_KEYS: Tuple[int, ...] = (0x2A, 0x5A, 0x7F, 0xA5, 0xFF)


@dataclass(frozen=True)
class EngineOptions:
    """Heuristic thresholds and key sets used during a run.

    The defaults reproduce the behaviour observed against the known obfuscator
    builds.  Option profiles stored as JSON can override any field; unknown
    keys are reported and ignored so profiles written for newer versions keep
    loading.
    """

    min_blob_size: int = 1024
    sample_size: int = 100
    printable_threshold: float = 0.30
    lookback_window: int = 5
    small_constant_threshold: int = 1000
    max_string_length: int = 10000
    scale_factor: int = 4
    xor_keys: Tuple[int, ...] = DEFAULT_XOR_KEYS
    char_xor_keys: Tuple[int, ...] = DEFAULT_CHAR_XOR_KEYS
    workers: int = 1
    patch: bool = True

    def __post_init__(self) -> None:
        for name in ("min_blob_size", "sample_size", "lookback_window", "max_string_length"):
            if getattr(self, name) < 1:
                raise OptionsError(f"{name} must be positive")
        if self.small_constant_threshold < 0:
            raise OptionsError("small_constant_threshold must not be negative")
        if not 0.0 <= self.printable_threshold <= 1.0:
            raise OptionsError("printable_threshold must lie within [0, 1]")
        if self.scale_factor == 0:
            raise OptionsError("scale_factor must not be zero")
        if self.workers < 1:
            raise OptionsError("workers must be at least 1")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "EngineOptions":
        """Create options from a decoded JSON profile."""

        known = {item.name: item for item in fields(cls)}
        values: Dict[str, Any] = {}
        for key, raw in payload.items():
            if key not in known:
                logger.warning("ignoring unknown engine option %r", key)
                continue
            values[key] = _coerce(key, raw, known[key].default)
        return cls(**values)

    @classmethod
    def load(cls, path: Path) -> "EngineOptions":
        try:
            payload = json.loads(path.read_text("utf-8"))
        except ValueError as exc:
            raise OptionsError(f"option profile {path} is not valid JSON: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise OptionsError(f"option profile {path} must contain a JSON object")
        return cls.from_mapping(payload)

    def to_dict(self) -> Dict[str, Any]:
        payload = {item.name: getattr(self, item.name) for item in fields(self)}
        payload["xor_keys"] = list(self.xor_keys)
        payload["char_xor_keys"] = list(self.char_xor_keys)
        return payload


def _coerce(key: str, raw: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if not isinstance(raw, bool):
            raise OptionsError(f"option {key!r} expects a boolean, got {raw!r}")
        return raw
    if isinstance(default, tuple):
        if not isinstance(raw, list):
            raise OptionsError(f"option {key!r} expects a list of integers")
        return tuple(_parse_int(key, item) for item in raw)
    if isinstance(default, float):
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise OptionsError(f"option {key!r} expects a number, got {raw!r}")
        return float(raw)
    return _parse_int(key, raw)


def _parse_int(key: str, raw: Any) -> int:
    # Keys are usually written in hex inside profiles.
    if isinstance(raw, str):
        try:
            return int(raw, 0)
        except ValueError as exc:
            raise OptionsError(f"option {key!r} contains a malformed integer {raw!r}") from exc
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise OptionsError(f"option {key!r} expects an integer, got {raw!r}")
    return raw


DEFAULT_OPTIONS = EngineOptions()


__all__ = ["DEFAULT_CHAR_XOR_KEYS", "DEFAULT_OPTIONS", "DEFAULT_XOR_KEYS", "EngineOptions"]
