"""Counters and summaries produced by a deobfuscation run."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .scanner import CallSite
from .strategies import DecodeCandidate
from .string_utils import shorten


class FailureCategory(Enum):
    """Why a call site was left untouched."""

    DECODE_MISS = "decode_miss"
    AMBIGUOUS_TARGET = "ambiguous_target"
    PATCH_CONFLICT = "patch_conflict"


@dataclass(frozen=True)
class RecoveryEntry:
    """A call site whose string was recovered."""

    routine: str
    call_index: int
    constant: int
    text: str
    strategy: str

    def render_line(self) -> str:
        return f"[{self.constant}] {self.text!r} ({self.routine}@{self.call_index}, {self.strategy})"

    def to_dict(self) -> Dict[str, object]:
        return {
            "routine": self.routine,
            "call_index": self.call_index,
            "constant": self.constant,
            "text": self.text,
            "strategy": self.strategy,
        }


@dataclass(frozen=True)
class FailureEntry:
    """A call site no strategy could resolve."""

    routine: str
    load_index: int
    call_index: int
    constant: int
    target: Optional[str]
    category: FailureCategory
    detail: str = ""

    def render_line(self) -> str:
        target = self.target or "<indirect>"
        line = f"{self.category.value}: {self.routine}@{self.call_index} ldc.i4 {self.constant} -> {target}"
        if self.detail:
            line += f" ({self.detail})"
        return line

    def to_dict(self) -> Dict[str, object]:
        return {
            "routine": self.routine,
            "load_index": self.load_index,
            "call_index": self.call_index,
            "constant": self.constant,
            "target": self.target,
            "category": self.category.value,
            "detail": self.detail,
        }


@dataclass
class RunReport:
    """Passive accumulator filled while routines are processed.

    Workers fill private reports which the engine folds together with
    :meth:`merge`; nothing reads the counters before the scan completes.
    """

    examined: int = 0
    recovered: int = 0
    recoveries: List[RecoveryEntry] = field(default_factory=list)
    failures: List[FailureEntry] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def record_examined(self) -> None:
        self.examined += 1

    def record_recovered(self, site: CallSite, candidate: DecodeCandidate) -> None:
        self.recovered += 1
        self.recoveries.append(
            RecoveryEntry(
                routine=site.routine,
                call_index=site.call_index,
                constant=site.constant,
                text=candidate.text,
                strategy=candidate.strategy,
            )
        )

    def record_failure(self, site: CallSite, category: FailureCategory, detail: str = "") -> None:
        self.failures.append(
            FailureEntry(
                routine=site.routine,
                load_index=site.load_index,
                call_index=site.call_index,
                constant=site.constant,
                target=site.target,
                category=category,
                detail=detail,
            )
        )

    def merge(self, other: "RunReport") -> None:
        self.examined += other.examined
        self.recovered += other.recovered
        self.recoveries.extend(other.recoveries)
        self.failures.extend(other.failures)

    def failures_by_category(self) -> Dict[str, int]:
        counts = Counter(entry.category.value for entry in self.failures)
        return dict(sorted(counts.items()))

    def strategy_usage(self) -> Dict[str, int]:
        counts = Counter(entry.strategy for entry in self.recoveries)
        return dict(counts.most_common())

    def summary_lines(self, *, limit: int = 6) -> List[str]:
        lines = [
            f"call sites examined: {self.examined}",
            f"strings recovered: {self.recovered}",
            f"failed: {self.failed}",
        ]
        for category, count in self.failures_by_category().items():
            lines.append(f"  - {category}: {count}")
        if self.recoveries:
            lines.append("strategies:")
            lines.extend(_render_counts(self.strategy_usage(), limit))
        return lines

    def string_lines(self) -> List[str]:
        return [shorten(entry.render_line(), 120) for entry in self.recoveries]

    def to_dict(self) -> Dict[str, object]:
        return {
            "examined": self.examined,
            "recovered": self.recovered,
            "failed": self.failed,
            "failures_by_category": self.failures_by_category(),
            "recoveries": [entry.to_dict() for entry in self.recoveries],
            "failures": [entry.to_dict() for entry in self.failures],
        }


def _render_counts(counts: Dict[str, int], limit: int) -> List[str]:
    items = list(counts.items())
    lines = [f"  - {name}: {count}" for name, count in items[:limit]]
    remaining = len(items) - limit
    if remaining > 0:
        lines.append(f"  - ... ({remaining} additional strategies)")
    return lines


__all__ = ["FailureCategory", "FailureEntry", "RecoveryEntry", "RunReport"]
