"""Orchestration of a complete string recovery run.

One run works in two phases.  The blob locator and the decoder signature
matcher inspect the module once and produce shared, read-only state.  The
routines are then processed independently: each body is scanned for call
sites, every site is decoded through the strategy engine and accepted strings
are patched back into the instruction list.  Because a routine only touches
its own instructions the second phase can be spread across a thread pool;
every routine fills a private :class:`RunReport` that is merged in module
order afterwards so the result does not depend on scheduling.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from .blob_locator import require_blob
from .config import DEFAULT_OPTIONS, EngineOptions
from .errors import PatchConflictError
from .module import Module, Routine
from .patcher import InstructionPatcher
from .report import FailureCategory, RunReport
from .scanner import CallSite, CallSiteScanner
from .signatures import DecoderSignatureMatcher
from .strategies import DEFAULT_STRATEGIES, Strategy, StrategyEngine
from .string_utils import shorten

logger = logging.getLogger(__name__)


class StringDecryptionEngine:
    """Recover obfuscated string literals of a :class:`Module` in place."""

    def __init__(
        self,
        options: EngineOptions = DEFAULT_OPTIONS,
        *,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self.options = options
        self.strategies = tuple(strategies)
        self.matcher = DecoderSignatureMatcher()
        self._abort = threading.Event()

    def abort(self) -> None:
        """Stop handing out routines; routines already in progress finish."""

        self._abort.set()

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    def run(self, module: Module) -> RunReport:
        """Decode and patch every recognised call site of ``module``.

        Raises :class:`~strdeob.errors.BlobNotFoundError` when the module has
        no usable string data; every other problem is recorded per call site.
        """

        self._abort.clear()
        blob = require_blob(module, self.options)
        decoders = self.matcher.match(module)
        if not decoders:
            logger.warning("no decoders found, considering calls to any single-argument routine")
        scanner = CallSiteScanner(module, decoders, self.options)
        strategies = StrategyEngine(blob, options=self.options, strategies=self.strategies)

        routines = [routine for routine in module.iter_routines() if routine.has_body]
        report = RunReport()
        if self.options.workers <= 1 or len(routines) <= 1:
            for routine in routines:
                local = self._guarded(routine, scanner, strategies)
                if local is None:
                    break
                report.merge(local)
        else:
            with ThreadPoolExecutor(max_workers=self.options.workers) as pool:
                futures = [
                    pool.submit(self._guarded, routine, scanner, strategies)
                    for routine in routines
                ]
                for future in futures:
                    local = future.result()
                    if local is not None:
                        report.merge(local)

        if self.aborted:
            logger.warning("run aborted before all routines were processed")
        logger.info(
            "decrypted %d strings (%d call sites examined, %d failed)",
            report.recovered,
            report.examined,
            report.failed,
        )
        return report

    def _guarded(
        self, routine: Routine, scanner: CallSiteScanner, strategies: StrategyEngine
    ) -> Optional[RunReport]:
        if self.aborted:
            return None
        return self.process_routine(routine, scanner, strategies)

    def process_routine(
        self, routine: Routine, scanner: CallSiteScanner, strategies: StrategyEngine
    ) -> RunReport:
        """Handle all call sites of a single routine."""

        report = RunReport()
        patcher = InstructionPatcher()
        for site in scanner.scan(routine):
            report.record_examined()
            if site.is_ambiguous:
                report.record_failure(
                    site, FailureCategory.AMBIGUOUS_TARGET, "call operand cannot be resolved"
                )
                logger.debug("skipping indirect call %s", site.describe())
                continue

            short = site.is_short(self.options.small_constant_threshold)
            candidate = strategies.decode(site.constant, site.signature, short=short)
            if candidate is None:
                report.record_failure(site, FailureCategory.DECODE_MISS)
                logger.debug("no strategy matched %s", site.describe())
                continue

            if self.options.patch:
                try:
                    patcher.apply(routine, site, candidate.text)
                except PatchConflictError as exc:
                    report.record_failure(site, FailureCategory.PATCH_CONFLICT, str(exc))
                    logger.warning("%s", exc)
                    continue
            report.record_recovered(site, candidate)
            logger.debug("[%d] %r via %s", site.constant, shorten(candidate.text), candidate.strategy)
        patcher.finish(routine)
        return report

    def survey(self, module: Module) -> List[CallSite]:
        """List large-constant call pairs without decoding anything.

        Helps with modules whose decoders could not be identified: every
        ``ldc.i4``/``call`` pair whose constant exceeds the small-constant
        threshold is reported, whatever the call target.
        """

        scanner = CallSiteScanner(module, {}, self.options)
        sites: List[CallSite] = []
        for routine in module.iter_routines():
            for site in scanner.survey(routine, minimum=self.options.small_constant_threshold):
                logger.info("string-like call %s", site.describe())
                sites.append(site)
        logger.info("total string-like calls found: %d", len(sites))
        return sites


def deobfuscate(module: Module, options: EngineOptions = DEFAULT_OPTIONS) -> RunReport:
    """Convenience wrapper running a fresh :class:`StringDecryptionEngine`."""

    return StringDecryptionEngine(options).run(module)


__all__ = ["StringDecryptionEngine", "deobfuscate"]
