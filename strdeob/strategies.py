"""Decode strategies turning a call-site constant into a blob record.

Different obfuscator builds disagree on what the constant passed to the
decoder means: a byte offset, an offset from the end of the blob, a word
index, or a value that the decoder scrambles before use.  There is no way to
tell statically which convention a module follows, so every strategy below is
a guess and the engine simply tries them in a fixed priority order.

A strategy is a plain function ``(constant, blob, signature, options)`` that
yields *probes*: ``(strategy_id, offset)`` pairs pointing into the blob.  The
:class:`StrategyEngine` reads a length-prefixed record at each probe and
returns the first one accepted by the :class:`CandidateValidator`.  Offsets
whose structured read failed are revisited afterwards as NUL-terminated runs.
The strategy tuple is deliberately open: callers can pass their own list to
experiment with additional conventions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .blob_locator import EncodedBlob
from .config import DEFAULT_OPTIONS, EngineOptions
from .instruction import to_int32
from .signatures import DecoderSignature
from .string_utils import decode_utf8
from .validator import CandidateValidator

LENGTH_PREFIX_SIZE = 4

Probe = Tuple[str, int]
Strategy = Callable[[int, EncodedBlob, Optional[DecoderSignature], EngineOptions], Iterable[Probe]]


@dataclass(frozen=True)
class DecodeCandidate:
    """Accepted string together with the strategy that produced it."""

    text: str
    strategy: str
    offset: Optional[int] = None
    raw: bytes = b""


# ---------------------------------------------------------------------------
# Record readers
# ---------------------------------------------------------------------------


def read_length_prefixed(data: bytes, offset: int, max_length: int) -> Optional[bytes]:
    """Read a ``<int32 length><bytes>`` record at ``offset``."""

    if not 0 <= offset < len(data) or offset + LENGTH_PREFIX_SIZE > len(data):
        return None
    length = int.from_bytes(data[offset : offset + LENGTH_PREFIX_SIZE], "little", signed=True)
    if length <= 0 or length > max_length:
        return None
    start = offset + LENGTH_PREFIX_SIZE
    end = start + length
    if end > len(data):
        return None
    return data[start:end]


def read_null_terminated(data: bytes, offset: int, max_length: int) -> Optional[bytes]:
    """Read the bytes between ``offset`` and the next NUL."""

    if not 0 <= offset < len(data):
        return None
    end = data.find(b"\x00", offset, offset + max_length + 1)
    if end <= offset:
        return None
    return data[offset:end]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def direct_offset(
    constant: int, blob: EncodedBlob, signature: Optional[DecoderSignature], options: EngineOptions
) -> Iterator[Probe]:
    if 0 <= constant < len(blob):
        yield "direct", constant


def end_relative_offset(
    constant: int, blob: EncodedBlob, signature: Optional[DecoderSignature], options: EngineOptions
) -> Iterator[Probe]:
    if constant < 0:
        offset = len(blob) + constant
        if 0 <= offset < len(blob):
            yield "end_relative", offset


def scaled_offset(
    constant: int, blob: EncodedBlob, signature: Optional[DecoderSignature], options: EngineOptions
) -> Iterator[Probe]:
    # Word index instead of a byte offset.
    offset = to_int32(constant * options.scale_factor)
    if offset < 0:
        offset += len(blob)
    if 0 <= offset < len(blob):
        yield "scaled", offset


_OFFSET_STRATEGIES: Tuple[Strategy, ...] = (direct_offset, end_relative_offset, scaled_offset)


def _retry_offsets(
    prefix: str,
    constant: int,
    blob: EncodedBlob,
    signature: Optional[DecoderSignature],
    options: EngineOptions,
) -> Iterator[Probe]:
    for strategy in _OFFSET_STRATEGIES:
        for strategy_id, offset in strategy(constant, blob, signature, options):
            yield f"{prefix}:{strategy_id}", offset


def linear_transform_offset(
    constant: int, blob: EncodedBlob, signature: Optional[DecoderSignature], options: EngineOptions
) -> Iterator[Probe]:
    if signature is None or not signature.is_linear:
        return
    transformed = signature.transform(constant)
    if transformed is None:
        return
    yield from _retry_offsets("linear", transformed, blob, signature, options)


def keyed_xor_offset(
    constant: int, blob: EncodedBlob, signature: Optional[DecoderSignature], options: EngineOptions
) -> Iterator[Probe]:
    for key in options.xor_keys:
        transformed = to_int32(constant ^ key)
        yield from _retry_offsets(f"xor[0x{key:X}]", transformed, blob, signature, options)


DEFAULT_STRATEGIES: Tuple[Strategy, ...] = (
    direct_offset,
    end_relative_offset,
    scaled_offset,
    linear_transform_offset,
    keyed_xor_offset,
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class StrategyEngine:
    """Try the registered strategies against a single blob."""

    def __init__(
        self,
        blob: EncodedBlob,
        *,
        options: EngineOptions = DEFAULT_OPTIONS,
        validator: Optional[CandidateValidator] = None,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self.blob = blob
        self.options = options
        self.validator = validator or CandidateValidator(options)
        self.strategies: Tuple[Strategy, ...] = tuple(strategies)

    def probes(self, constant: int, signature: Optional[DecoderSignature] = None) -> Iterator[Probe]:
        constant = to_int32(constant)
        for strategy in self.strategies:
            yield from strategy(constant, self.blob, signature, self.options)

    def decode(
        self,
        constant: int,
        signature: Optional[DecoderSignature] = None,
        *,
        short: bool = False,
    ) -> Optional[DecodeCandidate]:
        """Return the first validated candidate for ``constant`` or ``None``."""

        if short:
            return self._decode_char(constant)

        data = self.blob.data
        limit = self.options.max_string_length
        seen: Set[int] = set()
        missed: List[Probe] = []
        for strategy_id, offset in self.probes(constant, signature):
            if offset in seen:
                continue
            seen.add(offset)
            raw = read_length_prefixed(data, offset, limit)
            if raw is not None:
                candidate = self._accept(raw, strategy_id, offset)
                if candidate is not None:
                    return candidate
            missed.append((strategy_id, offset))

        for strategy_id, offset in missed:
            raw = read_null_terminated(data, offset, limit)
            if raw is None:
                continue
            candidate = self._accept(raw, f"null_terminated:{strategy_id}", offset)
            if candidate is not None:
                return candidate
        return None

    def _accept(self, raw: bytes, strategy_id: str, offset: int) -> Optional[DecodeCandidate]:
        text = decode_utf8(raw)
        if text is None:
            return None
        accepted = self.validator.accept(text)
        if accepted is None:
            return None
        return DecodeCandidate(accepted, strategy_id, offset, raw)

    def _decode_char(self, constant: int) -> Optional[DecodeCandidate]:
        for key in self.options.char_xor_keys:
            code = to_int32(constant ^ key)
            if not 0 <= code < 0x80:
                continue
            accepted = self.validator.accept(chr(code), short=True)
            if accepted is not None:
                return DecodeCandidate(accepted, f"char_xor[0x{key:X}]")
        return None


__all__ = [
    "DEFAULT_STRATEGIES",
    "DecodeCandidate",
    "Probe",
    "Strategy",
    "StrategyEngine",
    "direct_offset",
    "end_relative_offset",
    "keyed_xor_offset",
    "linear_transform_offset",
    "read_length_prefixed",
    "read_null_terminated",
    "scaled_offset",
]
