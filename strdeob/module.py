"""Module container helpers and the JSON dump interchange format."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import ModuleFormatError
from .instruction import Instruction

GLOBAL_TYPE = "<Module>"

INT32_TYPES = frozenset({"int32", "int", "system.int32"})
STRING_TYPES = frozenset({"string", "system.string"})
VOID_TYPES = frozenset({"void", "system.void"})


def is_int32_type(name: str) -> bool:
    return name.lower() in INT32_TYPES


def is_string_type(name: str) -> bool:
    return name.lower() in STRING_TYPES


@dataclass(frozen=True)
class StaticSlot:
    """A named static field carrying an optional initial byte buffer."""

    name: str
    declaring_type: str
    data: Optional[bytes] = None

    @property
    def size(self) -> int:
        return len(self.data) if self.data is not None else 0

    @property
    def has_data(self) -> bool:
        return bool(self.data)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name, "type": self.declaring_type}
        if self.data is not None:
            payload["data"] = self.data.hex()
        return payload


@dataclass
class Routine:
    """A routine with its signature and (optionally) its instruction body."""

    name: str
    declaring_type: str
    params: Tuple[str, ...] = ()
    return_type: str = "void"
    instructions: Optional[List[Instruction]] = None
    dirty: bool = False

    @property
    def has_body(self) -> bool:
        return self.instructions is not None

    @property
    def returns_value(self) -> bool:
        return self.return_type.lower() not in VOID_TYPES

    def takes_single_int(self) -> bool:
        return len(self.params) == 1 and is_int32_type(self.params[0])

    def listing(self) -> str:
        lines = [f"{self.return_type} {self.name}({', '.join(self.params)})"]
        for index, instruction in enumerate(self.instructions or ()):
            lines.append("  " + instruction.format(index))
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "type": self.declaring_type,
            "params": list(self.params),
            "returns": self.return_type,
        }
        if self.instructions is not None:
            payload["body"] = [instruction.to_dict() for instruction in self.instructions]
        return payload


class Module:
    """In-memory view of a bytecode module: routines plus static data slots."""

    def __init__(
        self,
        name: str,
        routines: Sequence[Routine] = (),
        slots: Sequence[StaticSlot] = (),
        *,
        global_type: str = GLOBAL_TYPE,
    ) -> None:
        self.name = name
        self.global_type = global_type
        self._routines: List[Routine] = list(routines)
        self._slots: List[StaticSlot] = list(slots)
        self._routine_index: Dict[str, Routine] = {}
        for routine in self._routines:
            if routine.name in self._routine_index:
                raise ModuleFormatError(f"duplicate routine name {routine.name!r}")
            self._routine_index[routine.name] = routine
        self._slot_index: Dict[str, StaticSlot] = {}
        for slot in self._slots:
            if slot.name in self._slot_index:
                raise ModuleFormatError(f"duplicate slot name {slot.name!r}")
            self._slot_index[slot.name] = slot

    def iter_routines(self) -> Iterator[Routine]:
        return iter(self._routines)

    def iter_slots(self) -> Iterator[StaticSlot]:
        return iter(self._slots)

    def routine(self, name: str) -> Optional[Routine]:
        return self._routine_index.get(name)

    def slot(self, name: str) -> Optional[StaticSlot]:
        return self._slot_index.get(name)

    def global_slots(self) -> Iterable[StaticSlot]:
        return [slot for slot in self._slots if slot.declaring_type == self.global_type]

    def type_slots(self) -> Iterable[StaticSlot]:
        return [slot for slot in self._slots if slot.declaring_type != self.global_type]

    def dirty_routines(self) -> List[Routine]:
        return [routine for routine in self._routines if routine.dirty]

    # ------------------------------------------------------------------
    # JSON interchange
    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Module":
        if not isinstance(payload, Mapping):
            raise ModuleFormatError("module dump must be a JSON object")
        name = payload.get("name", "module")
        global_type = payload.get("global_type", GLOBAL_TYPE)
        slots = [_parse_slot(entry) for entry in payload.get("slots", [])]
        routines = [_parse_routine(entry) for entry in payload.get("routines", [])]
        return cls(str(name), routines, slots, global_type=str(global_type))

    @classmethod
    def load(cls, path: Path) -> "Module":
        """Load a module dump written by :meth:`write` or an external exporter."""

        try:
            payload = json.loads(path.read_text("utf-8"))
        except ValueError as exc:
            raise ModuleFormatError(f"{path} is not valid JSON: {exc}") from exc
        return cls.from_dict(payload)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "global_type": self.global_type,
            "slots": [slot.to_dict() for slot in self._slots],
            "routines": [routine.to_dict() for routine in self._routines],
        }

    def write(self, path: Path) -> None:
        path.write_text(json.dumps(self.to_dict(), indent=2), "utf-8")


def _parse_slot(entry: Any) -> StaticSlot:
    if not isinstance(entry, Mapping) or not isinstance(entry.get("name"), str):
        raise ModuleFormatError(f"invalid slot entry: {entry!r}")
    raw = entry.get("data")
    data: Optional[bytes] = None
    if raw is not None:
        try:
            data = bytes.fromhex(raw)
        except (TypeError, ValueError) as exc:
            raise ModuleFormatError(f"slot {entry['name']!r} carries invalid hex data") from exc
    return StaticSlot(entry["name"], str(entry.get("type", GLOBAL_TYPE)), data)


def _parse_routine(entry: Any) -> Routine:
    if not isinstance(entry, Mapping) or not isinstance(entry.get("name"), str):
        raise ModuleFormatError(f"invalid routine entry: {entry!r}")
    params = entry.get("params", [])
    if not isinstance(params, list) or not all(isinstance(p, str) for p in params):
        raise ModuleFormatError(f"routine {entry['name']!r} has malformed params")
    body = entry.get("body")
    instructions: Optional[List[Instruction]] = None
    if body is not None:
        if not isinstance(body, list):
            raise ModuleFormatError(f"routine {entry['name']!r} body must be a list")
        instructions = []
        for item in body:
            if not isinstance(item, Mapping):
                raise ModuleFormatError(f"routine {entry['name']!r} has a malformed instruction")
            instructions.append(Instruction.from_dict(item))
    return Routine(
        name=entry["name"],
        declaring_type=str(entry.get("type", GLOBAL_TYPE)),
        params=tuple(params),
        return_type=str(entry.get("returns", "void")),
        instructions=instructions,
    )


__all__ = [
    "GLOBAL_TYPE",
    "Module",
    "Routine",
    "StaticSlot",
    "is_int32_type",
    "is_string_type",
]
