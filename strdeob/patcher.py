"""In-place rewriting of recovered call sites."""

from __future__ import annotations

from .errors import PatchConflictError
from .instruction import Opcode, to_int32
from .module import Routine
from .scanner import CallSite


class InstructionPatcher:
    """Turn ``ldc.i4 <key>; call <decoder>`` into ``nop; ldstr <text>``.

    Both instructions keep their positions, so branch targets and exception
    handler ranges stay valid.  The constant push and the call result are
    replaced by a single string push, leaving the net stack depth unchanged.
    """

    def __init__(self) -> None:
        self.patched = 0

    def apply(self, routine: Routine, site: CallSite, text: str) -> None:
        instructions = routine.instructions
        if instructions is None or routine.name != site.routine:
            raise PatchConflictError(f"{site.describe()} does not belong to {routine.name}")
        if not (0 <= site.load_index < site.call_index < len(instructions)):
            raise PatchConflictError(f"{site.describe()} lies outside the routine body")

        load = instructions[site.load_index]
        call = instructions[site.call_index]
        if not load.is_load_int or to_int32(load.operand) != site.constant:
            raise PatchConflictError(f"{site.describe()}: constant load changed")
        if not call.is_call or call.operand != site.target:
            raise PatchConflictError(f"{site.describe()}: call instruction changed")

        load.rewrite(Opcode.NOP)
        call.rewrite(Opcode.LOAD_STRING, text)
        self.patched += 1

    def finish(self, routine: Routine) -> None:
        """Mark ``routine`` dirty once at least one call site was rewritten."""

        if self.patched:
            routine.dirty = True
        self.patched = 0


__all__ = ["InstructionPatcher"]
