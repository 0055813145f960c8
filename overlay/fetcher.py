# overlay/fetcher.py

from __future__ import annotations

import logging
import os
import subprocess
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Callable, List, Mapping, Optional, Protocol, Sequence

from pydantic import BaseModel, Field, ValidationError, model_validator

from .models import RawAnnotation, SubmittedUnit

logger = logging.getLogger(__name__)

LANGUAGE_ENV = "DOC_OVERLAY_LANGUAGE"
MANIFEST_ENV = "DOC_OVERLAY_MANIFEST"


class FetchError(Exception):
    """Base class for everything that can go wrong asking the analyzer."""


class AnalyzerUnavailable(FetchError):
    """Analyzer not configured or not reachable; disables the whole run."""


class AnalyzerTimeout(FetchError):
    pass


class MalformedOutput(FetchError):
    pass


class AnalysisFailed(FetchError):
    """The submitted text did not compile/type-check. Expected for fragments."""


class Analyzer(Protocol):
    def analyze(self, text: str, language_tag: str, timeout: float) -> str:
        ...


# --------------------------------------------------------------------
# Wire schema
# --------------------------------------------------------------------


class WireAnnotation(BaseModel):
    start: int
    end: Optional[int] = None
    length: Optional[int] = None
    type: str
    identifier: Optional[str] = None
    docs: Optional[str] = None

    @model_validator(mode="after")
    def _needs_extent(self) -> "WireAnnotation":
        if self.end is None and self.length is None:
            raise ValueError("annotation needs either 'end' or 'length'")
        return self

    def end_offset(self) -> int:
        if self.end is not None:
            return self.end
        return self.start + self.length


class WireOutput(BaseModel):
    annotations: List[WireAnnotation] = Field(default_factory=list)
    static_quick_infos: List[WireAnnotation] = Field(default_factory=list)

    def items(self) -> List[WireAnnotation]:
        return self.annotations + self.static_quick_infos


def parse_output(raw: str) -> List[RawAnnotation]:
    """Parse analyzer stdout into RawAnnotations (no range checks yet)."""
    try:
        out = WireOutput.model_validate_json(raw)
    except ValidationError as e:
        raise MalformedOutput(f"analyzer output does not match schema: {e.error_count()} error(s)") from e

    return [
        RawAnnotation(
            start_offset=item.start,
            end_offset=item.end_offset(),
            type_string=item.type,
            identifier_text=item.identifier,
            docs=item.docs,
        )
        for item in out.items()
    ]


# --------------------------------------------------------------------
# Analyzer adapters
# --------------------------------------------------------------------


class SubprocessAnalyzer:
    """
    Runs an external analyzer command per request.

    The submitted text goes to stdin, JSON comes back on stdout. The language
    tag and manifest path are passed through the environment.
    """

    def __init__(
        self,
        command: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        manifest_path: Optional[str] = None,
    ):
        self.command = list(command)
        self.env = dict(env) if env is not None else None
        self.manifest_path = manifest_path

    def _child_env(self, language_tag: str) -> dict:
        env = dict(os.environ if self.env is None else self.env)
        env[LANGUAGE_ENV] = language_tag
        if self.manifest_path:
            env[MANIFEST_ENV] = self.manifest_path
        return env

    def analyze(self, text: str, language_tag: str, timeout: float) -> str:
        if not self.command:
            raise AnalyzerUnavailable("no analyzer command configured")

        try:
            proc = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=self._child_env(language_tag),
            )
        except OSError as e:
            raise AnalyzerUnavailable(f"cannot start analyzer {self.command[0]!r}: {e}") from e

        with proc:
            try:
                stdout, stderr = proc.communicate(text.encode("utf-8"), timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.communicate()
                raise AnalyzerTimeout(f"analyzer did not finish within {timeout}s")

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise AnalysisFailed(f"analyzer exited {proc.returncode}: {detail[:200]}")

        try:
            return stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedOutput("analyzer output is not valid UTF-8") from e


class CallableAnalyzer:
    """
    Adapter for analyzers available as a plain Python callable.

    The call runs on a worker thread so the fetch timeout holds. A call that
    overruns is abandoned, not interrupted; its thread finishes on its own.
    """

    def __init__(self, func: Callable[[str, str], str]):
        self.func = func

    def analyze(self, text: str, language_tag: str, timeout: float) -> str:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="analyzer")
        try:
            future = executor.submit(self.func, text, language_tag)
            try:
                return future.result(timeout=timeout)
            except FuturesTimeoutError:
                future.cancel()
                raise AnalyzerTimeout(f"analyzer did not finish within {timeout}s") from None
        finally:
            executor.shutdown(wait=False)


# --------------------------------------------------------------------
# Fetcher
# --------------------------------------------------------------------


class AnnotationFetcher:
    def __init__(self, analyzer: Analyzer, timeout: float = 30.0, min_length: int = 1):
        self.analyzer = analyzer
        self.timeout = timeout
        self.min_length = min_length

    def fetch(self, unit: SubmittedUnit) -> List[RawAnnotation]:
        """
        Ask the analyzer about `unit` and return well-formed annotations in
        submitted-text coordinates.

        Raises a FetchError subclass on failure. Safe to call repeatedly with
        the same unit.
        """
        raw = self.analyzer.analyze(unit.submitted_text, unit.language_tag, self.timeout)
        annotations = parse_output(raw)

        limit = unit.byte_length()
        kept: List[RawAnnotation] = []
        for ann in annotations:
            if not ann.is_well_formed(limit):
                logger.debug(
                    "discarding malformed annotation [%d, %d) (limit %d)",
                    ann.start_offset,
                    ann.end_offset,
                    limit,
                )
                continue
            if ann.length() < self.min_length:
                continue
            kept.append(ann)
        return kept
