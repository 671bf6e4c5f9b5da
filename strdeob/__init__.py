"""Public package exports for the static string deobfuscator."""

from .blob_locator import EncodedBlob, locate_blob, require_blob
from .config import EngineOptions
from .engine import StringDecryptionEngine, deobfuscate
from .errors import BlobNotFoundError, DeobfuscationError, PatchConflictError
from .instruction import Instruction, Opcode
from .module import Module, Routine, StaticSlot
from .report import FailureCategory, RunReport
from .scanner import CallSite, CallSiteScanner
from .signatures import DecoderSignature, DecoderSignatureMatcher, LinearOp, TransformShape
from .strategies import DecodeCandidate, StrategyEngine

__all__ = [
    "BlobNotFoundError",
    "CallSite",
    "CallSiteScanner",
    "DecodeCandidate",
    "DecoderSignature",
    "DecoderSignatureMatcher",
    "DeobfuscationError",
    "EncodedBlob",
    "EngineOptions",
    "FailureCategory",
    "Instruction",
    "LinearOp",
    "Module",
    "Opcode",
    "PatchConflictError",
    "Routine",
    "RunReport",
    "StaticSlot",
    "StrategyEngine",
    "StringDecryptionEngine",
    "TransformShape",
    "deobfuscate",
    "locate_blob",
    "require_blob",
]
