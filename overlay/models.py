# overlay/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


def utf8_len(text: str) -> int:
    return len(text.encode("utf-8"))


@dataclass(frozen=True)
class CodeFragment:
    original_text: str
    language_tag: str
    origin: str = ""
    # Earlier fragments glued in front of this one for analysis only.
    context: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Segment:
    """
    One piece of the submitted -> original offset map.

    Copied segments map [submitted_start, submitted_end) linearly onto
    [original_start, original_start + length). Synthetic segments hold text
    that only exists in the submitted unit and map nowhere.
    """

    submitted_start: int
    submitted_end: int
    original_start: Optional[int] = None

    @property
    def synthetic(self) -> bool:
        return self.original_start is None

    def contains(self, offset: int) -> bool:
        return self.submitted_start <= offset < self.submitted_end


@dataclass
class SubmittedUnit:
    submitted_text: str
    language_tag: str
    wrapped: bool
    segments: List[Segment]
    # Set only when the wrap is a pure prefix insertion.
    offset_delta: Optional[int] = None

    @property
    def cache_key(self) -> Tuple[str, str]:
        return (self.submitted_text, self.language_tag)

    def byte_length(self) -> int:
        return utf8_len(self.submitted_text)


@dataclass(frozen=True)
class RawAnnotation:
    start_offset: int
    end_offset: int
    type_string: str
    identifier_text: Optional[str] = None
    docs: Optional[str] = None

    def is_well_formed(self, limit: int) -> bool:
        return 0 <= self.start_offset < self.end_offset <= limit

    def length(self) -> int:
        return self.end_offset - self.start_offset


@dataclass(frozen=True, eq=False)
class MappedAnnotation:
    # eq=False: identity is what the reconciler consumes, two annotations with
    # equal fields are still two annotations.
    start_offset: int
    end_offset: int
    type_string: str
    identifier_text: Optional[str] = None
    docs: Optional[str] = None
    source: Optional[RawAnnotation] = None

    def length(self) -> int:
        return self.end_offset - self.start_offset

    def contains(self, start: int, end: int) -> bool:
        return self.start_offset <= start and end <= self.end_offset


@dataclass(frozen=True)
class Unmappable:
    annotation: RawAnnotation
    reason: str


@dataclass(frozen=True)
class Token:
    start: int
    end: int
    kind: str
    text: str
    css_class: str = ""

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Invalid token range [{self.start}, {self.end})")

    @property
    def byte_range(self) -> Tuple[int, int]:
        return (self.start, self.end)

    def overlaps(self, other: "Token") -> bool:
        return not (self.end <= other.start or other.end <= self.start)


class MatchConfidence(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class TypeAnnotation:
    type_string: str
    match_confidence: MatchConfidence
    docs: Optional[str] = None


@dataclass(frozen=True)
class DecoratedToken:
    token: Token
    type_annotation: Optional[TypeAnnotation] = None

    @property
    def text(self) -> str:
        return self.token.text


@dataclass(frozen=True)
class Diagnostic:
    stage: str
    reason: str
    detail: str = ""


@dataclass
class AnnotatedStream:
    origin: str
    language_tag: str
    tokens: List[DecoratedToken] = field(default_factory=list)
    degraded: bool = False
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def annotated(self) -> List[DecoratedToken]:
        return [t for t in self.tokens if t.type_annotation is not None]

    def plain_text(self) -> str:
        return "".join(t.token.text for t in self.tokens)

    def __len__(self) -> int:
        return len(self.tokens)
