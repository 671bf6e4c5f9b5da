"""Locate load-constant/call pairs inside routine bodies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Set

from .config import DEFAULT_OPTIONS, EngineOptions
from .instruction import Instruction, to_int32
from .module import Module, Routine
from .signatures import DecoderSignature


@dataclass(frozen=True)
class CallSite:
    """A suspected obfuscated string reference inside ``routine``."""

    routine: str
    load_index: int
    call_index: int
    constant: int
    target: Optional[str]
    signature: Optional[DecoderSignature] = None

    @property
    def is_ambiguous(self) -> bool:
        return self.target is None

    def is_short(self, threshold: int) -> bool:
        """Whether the site belongs to the short-constant population.

        Small constants are usually ordinary integer arguments.  They are only
        considered string keys when the target shows decoder evidence; the
        rest is restricted to single character decoding.
        """

        if abs(self.constant) >= threshold:
            return False
        return self.signature is None or not self.signature.is_confirmed

    def describe(self) -> str:
        target = self.target or "<indirect>"
        return (
            f"{self.routine}@{self.load_index}/{self.call_index}:"
            f" ldc.i4 {self.constant} -> call {target}"
        )


class CallSiteScanner:
    """Walk routine bodies and yield :class:`CallSite` objects.

    When the decoder pool is empty the scanner switches to fallback mode and
    accepts calls to any routine of the module that takes exactly one argument
    and produces a value; rewriting anything else would unbalance the stack.
    """

    def __init__(
        self,
        module: Module,
        decoders: Mapping[str, DecoderSignature],
        options: EngineOptions = DEFAULT_OPTIONS,
    ) -> None:
        self.module = module
        self.decoders: Dict[str, DecoderSignature] = dict(decoders)
        self.options = options

    @property
    def fallback(self) -> bool:
        return not self.decoders

    def _accepts_target(self, name: str) -> bool:
        routine = self.module.routine(name)
        if name in self.decoders:
            # A void target pushes nothing; patching it would unbalance the stack.
            return routine is None or routine.returns_value
        if not self.fallback:
            return False
        return routine is not None and len(routine.params) == 1 and routine.returns_value

    def _find_constant(
        self, instructions: List[Instruction], call_index: int, consumed: Set[int]
    ) -> Optional[int]:
        lower = max(0, call_index - self.options.lookback_window)
        for index in range(call_index - 1, lower - 1, -1):
            instruction = instructions[index]
            if instruction.is_load_int and index not in consumed:
                return index
        return None

    def scan(self, routine: Routine) -> Iterator[CallSite]:
        """Yield call sites of ``routine`` from left to right.

        The instruction list is read lazily, so callers may patch a yielded
        site before asking for the next one.
        """

        if not routine.has_body:
            return
        instructions = routine.instructions
        consumed: Set[int] = set()
        for index in range(1, len(instructions)):
            instruction = instructions[index]
            if not instruction.is_call:
                continue
            target = instruction.operand
            if target is not None and not self._accepts_target(target):
                continue
            load_index = self._find_constant(instructions, index, consumed)
            if load_index is None:
                continue
            consumed.add(load_index)
            yield CallSite(
                routine=routine.name,
                load_index=load_index,
                call_index=index,
                constant=to_int32(instructions[load_index].operand),
                target=target,
                signature=self.decoders.get(target) if target is not None else None,
            )

    def survey(self, routine: Routine, *, minimum: int) -> Iterator[CallSite]:
        """Yield every direct-neighbour ``ldc.i4``/``call`` pair above ``minimum``.

        Used to inspect modules whose decoders could not be identified; no
        target filtering is applied.
        """

        if not routine.has_body:
            return
        instructions = routine.instructions
        for index in range(1, len(instructions)):
            previous, current = instructions[index - 1], instructions[index]
            if not (current.is_call and previous.is_load_int):
                continue
            constant = to_int32(previous.operand)
            if abs(constant) > minimum:
                yield CallSite(routine.name, index - 1, index, constant, current.operand)


__all__ = ["CallSite", "CallSiteScanner"]
