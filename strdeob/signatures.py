"""Decoder routine discovery and body shape classification.

The obfuscator emits one or more decoder routines taking a single ``int32``
key.  Their bodies follow a couple of recurring shapes:

``TABLE``
    The routine reads a static byte buffer and hands it to a
    ``GetString``/``Decode`` style helper.  No scalar parameter can be
    extracted; decoding relies on the blob offset strategies.

``LINEAR``
    The routine rewrites its argument with a single arithmetic operator and
    constant before forwarding it (``ldarg.0; ldc.i4 k; xor``).  The operator
    and constant are extracted so the strategy engine can replay them.

``UNKNOWN``
    Anything else, including routines that are themselves obfuscated or have
    no body.  Those stay in the pool and are handled by the generic
    strategies only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Optional, Sequence

from .instruction import Instruction, Opcode, to_int32
from .module import Module, Routine, is_string_type

logger = logging.getLogger(__name__)


class TransformShape(Enum):
    """Body shape of a candidate decoder routine."""

    LINEAR = auto()
    TABLE = auto()
    UNKNOWN = auto()


class LinearOp(Enum):
    """Arithmetic operators recognised inside linear decoder bodies."""

    XOR = "xor"
    ADD = "add"
    SUB = "sub"
    MUL = "mul"

    def apply(self, value: int, constant: int) -> int:
        if self is LinearOp.XOR:
            result = value ^ constant
        elif self is LinearOp.ADD:
            result = value + constant
        elif self is LinearOp.SUB:
            result = value - constant
        else:
            result = value * constant
        return to_int32(result)

    @classmethod
    def from_mnemonic(cls, mnemonic: str) -> Optional["LinearOp"]:
        base = mnemonic.split(".", 1)[0]
        for op in cls:
            if op.value == base:
                return op
        return None


_FIELD_LOADS = ("ldsfld", "ldsflda")
_DECODE_HINTS = ("getstring", "get_string", "decode", "frombase64", "decrypt")


@dataclass(frozen=True)
class DecoderSignature:
    """Static description of a candidate decoder routine."""

    routine: str
    shape: TransformShape = TransformShape.UNKNOWN
    exact: bool = False
    operator: Optional[LinearOp] = None
    constant: Optional[int] = None
    table_slot: Optional[str] = None

    @property
    def is_linear(self) -> bool:
        return self.shape is TransformShape.LINEAR and self.operator is not None

    @property
    def is_confirmed(self) -> bool:
        """``True`` when there is positive evidence this routine decodes strings."""

        return self.exact or self.shape in (TransformShape.LINEAR, TransformShape.TABLE)

    def transform(self, constant: int) -> Optional[int]:
        if not self.is_linear or self.constant is None:
            return None
        return self.operator.apply(constant, self.constant)

    def describe(self) -> str:
        if self.is_linear:
            return f"{self.routine}: linear {self.operator.value} 0x{self.constant & 0xFFFFFFFF:X}"
        if self.shape is TransformShape.TABLE:
            return f"{self.routine}: table {self.table_slot}"
        return f"{self.routine}: unknown"


def _meaningful(instructions: Sequence[Instruction]) -> List[Instruction]:
    return [instruction for instruction in instructions if instruction.opcode is not Opcode.NOP]


def _table_slot(module: Module, body: Sequence[Instruction]) -> Optional[str]:
    slot_name: Optional[str] = None
    calls_decoder = False
    for instruction in body:
        if instruction.opcode is Opcode.OTHER and instruction.mnemonic in _FIELD_LOADS:
            slot = module.slot(instruction.operand) if isinstance(instruction.operand, str) else None
            if slot is not None and slot.has_data:
                slot_name = slot.name
        elif instruction.is_call and isinstance(instruction.operand, str):
            lowered = instruction.operand.lower()
            if any(hint in lowered for hint in _DECODE_HINTS):
                calls_decoder = True
    if slot_name is not None and calls_decoder:
        return slot_name
    return None


def classify_body(module: Module, routine: Routine) -> DecoderSignature:
    """Classify ``routine``'s body into a :class:`DecoderSignature`."""

    exact = routine.takes_single_int() and is_string_type(routine.return_type)
    if not routine.has_body:
        return DecoderSignature(routine.name, exact=exact)

    body = _meaningful(routine.instructions)
    table_slot = _table_slot(module, body)
    if table_slot is not None:
        return DecoderSignature(
            routine.name, TransformShape.TABLE, exact=exact, table_slot=table_slot
        )

    loads = [index for index, instruction in enumerate(body) if instruction.is_load_int]
    operators = [
        (index, LinearOp.from_mnemonic(instruction.mnemonic))
        for index, instruction in enumerate(body)
        if instruction.opcode is Opcode.OTHER and LinearOp.from_mnemonic(instruction.mnemonic)
    ]
    if len(loads) == 1 and len(operators) == 1:
        op_index, operator = operators[0]
        argument_loaded = any(
            instruction.mnemonic.startswith("ldarg") for instruction in body[:op_index]
        )
        if argument_loaded and loads[0] < op_index:
            return DecoderSignature(
                routine.name,
                TransformShape.LINEAR,
                exact=exact,
                operator=operator,
                constant=to_int32(body[loads[0]].operand),
            )
    return DecoderSignature(routine.name, exact=exact)


class DecoderSignatureMatcher:
    """Build the decoder pool of a module."""

    def match(self, module: Module) -> Dict[str, DecoderSignature]:
        pool: Dict[str, DecoderSignature] = {}
        for routine in module.iter_routines():
            # Superset pool: obfuscated decoders do not always expose a string
            # return type, so every single-int routine is a candidate.
            if not routine.takes_single_int():
                continue
            signature = classify_body(module, routine)
            pool[routine.name] = signature
            logger.debug("decoder candidate %s", signature.describe())
        logger.info("found %d potential decoders", len(pool))
        return pool


__all__ = [
    "DecoderSignature",
    "DecoderSignatureMatcher",
    "LinearOp",
    "TransformShape",
    "classify_body",
]
