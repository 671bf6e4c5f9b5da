"""Locate the static data slot holding the encoded string records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .config import DEFAULT_OPTIONS, EngineOptions
from .errors import BlobNotFoundError
from .module import Module, StaticSlot
from .string_utils import hex_preview, printable_ratio

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncodedBlob:
    """Read-only byte buffer shared by every lookup during a run."""

    slot_name: str
    data: bytes

    def __len__(self) -> int:
        return len(self.data)

    def preview(self, limit: int = 32) -> str:
        return hex_preview(self.data, limit)


def _largest(slots: Iterable[StaticSlot]) -> Optional[StaticSlot]:
    best: Optional[StaticSlot] = None
    for slot in slots:
        # Strict comparison keeps the first slot on ties.
        if best is None or slot.size > best.size:
            best = slot
    return best


def _select(slots: List[StaticSlot], options: EngineOptions) -> Optional[StaticSlot]:
    sized = [slot for slot in slots if slot.size > options.min_blob_size]
    if sized:
        return _largest(sized)
    textual = [
        slot
        for slot in slots
        if printable_ratio(slot.data[: options.sample_size], count_nul=True)
        > options.printable_threshold
    ]
    return _largest(textual)


def locate_blob(module: Module, options: EngineOptions = DEFAULT_OPTIONS) -> Optional[EncodedBlob]:
    """Return the encoded string blob of ``module`` or ``None``.

    Slots of the global ``<Module>`` type are preferred; per-type slots are
    only consulted when the global container yields no candidate.  Within a
    tier, buffers larger than ``min_blob_size`` win by size, otherwise the
    printable/NUL ratio of the leading sample decides.
    """

    tiers = (module.global_slots(), module.type_slots())
    for tier in tiers:
        initialised = [slot for slot in tier if slot.has_data]
        selected = _select(initialised, options)
        if selected is not None:
            blob = EncodedBlob(selected.name, bytes(selected.data))
            logger.info("string data: %s (%d bytes)", blob.slot_name, len(blob))
            logger.info("first %d bytes: %s", min(32, len(blob)), blob.preview())
            return blob
    return None


def require_blob(module: Module, options: EngineOptions = DEFAULT_OPTIONS) -> EncodedBlob:
    blob = locate_blob(module, options)
    if blob is None:
        raise BlobNotFoundError(f"no static data slot in {module.name} qualifies as string data")
    return blob


__all__ = ["EncodedBlob", "locate_blob", "require_blob"]
