# overlay/coordinator.py

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .cache import FragmentCache
from .config import OverlayConfig
from .fetcher import (
    AnalysisFailed,
    Analyzer,
    AnalyzerTimeout,
    AnalyzerUnavailable,
    AnnotationFetcher,
    FetchError,
    MalformedOutput,
    SubprocessAnalyzer,
)
from .mapper import prepare, remap
from .merge import merge, plain_stream
from .models import (
    AnnotatedStream,
    CodeFragment,
    Diagnostic,
    MappedAnnotation,
    RawAnnotation,
    Token,
    Unmappable,
    utf8_len,
)
from .reconcile import reconcile_with_report
from .tokenizer import PygmentsTokenizer, Tokenizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchOutcome:
    """What the cache remembers per submitted unit."""

    annotations: Tuple[RawAnnotation, ...] = ()
    failure: Optional[str] = None
    detail: str = ""


class OverlayCoordinator:
    """
    Runs the overlay for one documentation build: prepare, fetch, remap,
    reconcile, merge. `process_fragment` never raises; on any failure the
    fragment renders exactly as it would with the overlay switched off.
    """

    def __init__(
        self,
        config: OverlayConfig,
        analyzer: Optional[Analyzer] = None,
        tokenizer: Optional[Tokenizer] = None,
        cache: Optional[FragmentCache] = None,
    ):
        self.config = config
        if analyzer is None:
            analyzer = SubprocessAnalyzer(
                config.analyzer.command,
                manifest_path=config.analyzer.manifest_path,
            )
        self.fetcher = AnnotationFetcher(
            analyzer,
            timeout=config.analyzer.timeout_seconds,
            min_length=config.min_annotation_length,
        )
        self.tokenizer = tokenizer if tokenizer is not None else PygmentsTokenizer()
        self.cache = cache if cache is not None else FragmentCache()
        self._state_lock = threading.Lock()
        self._available = config.enabled

    @property
    def active(self) -> bool:
        with self._state_lock:
            return self._available

    def _disable(self, err: AnalyzerUnavailable) -> bool:
        with self._state_lock:
            was_available = self._available
            self._available = False
        if was_available:
            logger.warning("type overlay disabled for this run: %s", err)
        return was_available

    def _tokenize(self, fragment: CodeFragment) -> Tuple[List[Token], List[Diagnostic]]:
        try:
            return self.tokenizer.tokenize(fragment.original_text, fragment.language_tag), []
        except Exception as e:
            logger.info("tokenizer failed on %s: %s", fragment.origin, e)
            text = fragment.original_text
            fallback = [Token(0, utf8_len(text), "text", text)] if text else []
            return fallback, [Diagnostic("tokenize", "tokenizer_failed", str(e))]

    def _fetch_outcome(self, unit) -> FetchOutcome:
        try:
            annotations = self.fetcher.fetch(unit)
        except AnalysisFailed as e:
            return FetchOutcome(failure="analysis_failed", detail=str(e))
        except MalformedOutput as e:
            return FetchOutcome(failure="malformed_output", detail=str(e))
        return FetchOutcome(annotations=tuple(annotations))

    def _overlay(self, fragment: CodeFragment, tokens: List[Token]) -> AnnotatedStream:
        unit = prepare(fragment)
        outcome = self.cache.get_or_compute(unit.cache_key, lambda: self._fetch_outcome(unit))

        if outcome.failure is not None:
            logger.info("no annotations for %s: %s", fragment.origin, outcome.failure)
            return plain_stream(
                tokens,
                fragment.origin,
                fragment.language_tag,
                [Diagnostic("fetch", outcome.failure, outcome.detail)],
                degraded=True,
            )

        mapped: List[MappedAnnotation] = []
        diagnostics: List[Diagnostic] = []
        for raw in outcome.annotations:
            result = remap(unit, raw)
            if isinstance(result, Unmappable):
                logger.debug(
                    "dropping annotation [%d, %d) in %s: %s",
                    raw.start_offset,
                    raw.end_offset,
                    fragment.origin,
                    result.reason,
                )
                diagnostics.append(
                    Diagnostic(
                        "remap",
                        result.reason,
                        f"[{raw.start_offset}, {raw.end_offset}) {raw.type_string}",
                    )
                )
                continue
            mapped.append(result)

        decorated, unmatched = reconcile_with_report(
            tokens,
            mapped,
            fuzzy=self.config.fuzzy,
            max_slack=self.config.max_slack,
        )
        diagnostics.extend(unmatched)
        return merge(decorated, fragment.origin, fragment.language_tag, diagnostics)

    def process_fragment(self, fragment: CodeFragment) -> AnnotatedStream:
        tokens, diagnostics = self._tokenize(fragment)
        if not self.active:
            return plain_stream(tokens, fragment.origin, fragment.language_tag, diagnostics)

        try:
            stream = self._overlay(fragment, tokens)
        except AnalyzerUnavailable as e:
            first = self._disable(e)
            extra = [Diagnostic("fetch", "unavailable", str(e))] if first else []
            return plain_stream(
                tokens, fragment.origin, fragment.language_tag, diagnostics + extra, degraded=True
            )
        except AnalyzerTimeout as e:
            logger.info("analyzer timed out on %s", fragment.origin)
            return plain_stream(
                tokens,
                fragment.origin,
                fragment.language_tag,
                diagnostics + [Diagnostic("fetch", "timeout", str(e))],
                degraded=True,
            )
        except Exception as e:
            # Includes FetchError subclasses a custom analyzer raises directly.
            reason = "analysis_failed"
            if not isinstance(e, FetchError):
                logger.warning("overlay failed on %s", fragment.origin, exc_info=True)
            else:
                logger.info("no annotations for %s: %s", fragment.origin, e)
            return plain_stream(
                tokens,
                fragment.origin,
                fragment.language_tag,
                diagnostics + [Diagnostic("coordinator", reason, str(e))],
                degraded=True,
            )

        stream.diagnostics[:0] = diagnostics
        return stream

    def process_fragments(self, fragments: Sequence[CodeFragment]) -> List[AnnotatedStream]:
        """Process many fragments concurrently; results follow input order."""
        if len(fragments) <= 1 or self.config.max_concurrency == 1:
            return [self.process_fragment(f) for f in fragments]
        workers = min(len(fragments), self.config.max_concurrency)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="overlay") as executor:
            return list(executor.map(self.process_fragment, fragments))
