"""Representation utilities for routine instructions.

Only a handful of opcodes matter to the string engine so the model collapses
the instruction set into a small tagged variant.  Everything that is not a
constant load, a direct call, a ``nop`` or a string load is kept as ``OTHER``
together with its textual mnemonic; the decoder signature matcher still needs
those mnemonics to recognise arithmetic and field loads inside decoder bodies.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, Mapping, Optional

from .errors import ModuleFormatError

INT32_MIN = -0x80000000
INT32_MAX = 0x7FFFFFFF


def to_int32(value: int) -> int:
    """Wrap ``value`` into the signed 32-bit range."""

    value &= 0xFFFFFFFF
    if value & 0x80000000:
        return value - 0x100000000
    return value


class Opcode(Enum):
    """Instruction classes the engine distinguishes."""

    LOAD_CONST_INT = auto()
    CALL = auto()
    NOP = auto()
    LOAD_STRING = auto()
    OTHER = auto()


_CANONICAL_MNEMONICS: Dict[Opcode, str] = {
    Opcode.LOAD_CONST_INT: "ldc.i4",
    Opcode.CALL: "call",
    Opcode.NOP: "nop",
    Opcode.LOAD_STRING: "ldstr",
}

# Short forms encode their constant in the mnemonic itself.
_SHORT_INT_LOADS: Dict[str, int] = {f"ldc.i4.{value}": value for value in range(9)}
_SHORT_INT_LOADS["ldc.i4.m1"] = -1


@dataclass
class Instruction:
    """Single mutable instruction slot inside a routine body."""

    opcode: Opcode
    operand: Any = None
    mnemonic: str = ""

    def __post_init__(self) -> None:
        if not self.mnemonic:
            if self.opcode is Opcode.OTHER:
                raise ValueError("OTHER instructions require a mnemonic")
            self.mnemonic = _CANONICAL_MNEMONICS[self.opcode]

    @property
    def is_load_int(self) -> bool:
        return self.opcode is Opcode.LOAD_CONST_INT

    @property
    def is_call(self) -> bool:
        return self.opcode is Opcode.CALL

    def rewrite(self, opcode: Opcode, operand: Any = None) -> None:
        """Overwrite the instruction in place with ``opcode``/``operand``."""

        if opcode is Opcode.OTHER:
            raise ValueError("instructions can only be rewritten to a known opcode")
        self.opcode = opcode
        self.operand = operand
        self.mnemonic = _CANONICAL_MNEMONICS[opcode]

    def label(self) -> str:
        return self.mnemonic

    def format(self, index: Optional[int] = None) -> str:
        prefix = f"{index:04d}: " if index is not None else ""
        if self.operand is None:
            return f"{prefix}{self.mnemonic}"
        if isinstance(self.operand, str) and self.opcode is Opcode.LOAD_STRING:
            return f"{prefix}{self.mnemonic} {self.operand!r}"
        return f"{prefix}{self.mnemonic} {self.operand}"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"op": self.mnemonic}
        if self.operand is not None:
            payload["operand"] = self.operand
        return payload

    @classmethod
    def from_dict(cls, entry: Mapping[str, Any]) -> "Instruction":
        """Create an :class:`Instruction` from a module dump entry."""

        mnemonic = entry.get("op")
        if not isinstance(mnemonic, str) or not mnemonic:
            raise ModuleFormatError(f"instruction entry without mnemonic: {entry!r}")
        mnemonic = mnemonic.lower()
        operand = entry.get("operand")

        if mnemonic in _SHORT_INT_LOADS:
            return cls(Opcode.LOAD_CONST_INT, _SHORT_INT_LOADS[mnemonic])
        if mnemonic in ("ldc.i4", "ldc.i4.s"):
            if isinstance(operand, bool) or not isinstance(operand, int):
                raise ModuleFormatError(f"{mnemonic} requires an integer operand, got {operand!r}")
            if not INT32_MIN <= operand <= INT32_MAX:
                raise ModuleFormatError(f"{mnemonic} operand {operand} exceeds the int32 range")
            if mnemonic == "ldc.i4.s" and not -0x80 <= operand <= 0x7F:
                raise ModuleFormatError(f"ldc.i4.s operand {operand} exceeds the int8 range")
            return cls(Opcode.LOAD_CONST_INT, operand)
        if mnemonic == "call":
            if operand is not None and not isinstance(operand, str):
                raise ModuleFormatError(f"call operand must be a routine name, got {operand!r}")
            return cls(Opcode.CALL, operand)
        if mnemonic == "ldstr":
            if not isinstance(operand, str):
                raise ModuleFormatError(f"ldstr requires a string operand, got {operand!r}")
            return cls(Opcode.LOAD_STRING, operand)
        if mnemonic == "nop":
            return cls(Opcode.NOP)
        return cls(Opcode.OTHER, operand, mnemonic)


__all__ = ["INT32_MIN", "INT32_MAX", "Instruction", "Opcode", "to_int32"]
