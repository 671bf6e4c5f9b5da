"""Exception hierarchy shared by the string deobfuscation engine."""

from __future__ import annotations


class DeobfuscationError(Exception):
    """Base class for all deobfuscation related errors."""


class BlobNotFoundError(DeobfuscationError):
    """Raised when no static data slot qualifies as the encoded string blob."""


class PatchConflictError(DeobfuscationError):
    """Raised when a call site no longer matches the instruction stream."""


class ModuleFormatError(DeobfuscationError, ValueError):
    """Raised when a module dump cannot be interpreted."""


class OptionsError(DeobfuscationError, ValueError):
    """Raised when an engine option profile contains invalid values."""


__all__ = [
    "DeobfuscationError",
    "BlobNotFoundError",
    "PatchConflictError",
    "ModuleFormatError",
    "OptionsError",
]
