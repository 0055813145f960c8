# overlay/mapper.py

from __future__ import annotations

import bisect
import logging
from typing import List, Optional, Tuple, Union

import regex as re

from .models import (
    CodeFragment,
    MappedAnnotation,
    RawAnnotation,
    Segment,
    SubmittedUnit,
    Unmappable,
    utf8_len,
)

logger = logging.getLogger(__name__)

RUST_MAIN_PREFIX = "fn main() {\n"
RUST_MAIN_SUFFIX = "\n}"

# Trimmed code starting with one of these is already item-level Rust.
RUST_ITEM_RE = re.compile(
    r"^(?:fn|struct|enum|impl|trait|mod|pub|extern|const|static|type)\s|^#!?\["
)
RUST_USE_RE = re.compile(r"^\s*use\s")
RUST_HAS_MAIN_RE = re.compile(r"\bfn\s+main\b")

# A piece of submitted text and where it came from in the original
# (None for synthetic text).
Piece = Tuple[str, Optional[int]]


def base_language(language_tag: str) -> str:
    """
    Reduce a fence info string to the language it names.

    "rust,no_run" -> "rust", "Python title=x" -> "python".
    """
    head = re.split(r"[,\s]+", language_tag.strip(), maxsplit=1)[0]
    return head.lower()


def rust_wrap_split(code: str) -> Tuple[bool, int]:
    """
    Decide whether Rust code needs a synthetic `fn main` to be analyzable.

    Returns (needs_wrap, hoisted_chars): the first `hoisted_chars` characters
    are leading `use` lines that must stay outside the wrapper.
    """
    if RUST_HAS_MAIN_RE.search(code):
        return False, 0

    trimmed = code.lstrip()
    if RUST_ITEM_RE.match(trimmed):
        return False, 0

    if not RUST_USE_RE.match(trimmed):
        return True, 0

    hoisted = 0
    for line in code.splitlines(keepends=True):
        stripped = line.strip()
        if stripped and not RUST_USE_RE.match(line):
            break
        hoisted += len(line)

    if not code[hoisted:].strip():
        # Only use statements, nothing to wrap.
        return False, 0
    return True, hoisted


def _rust_pieces(code: str) -> Tuple[bool, List[Piece]]:
    needs_wrap, hoisted = rust_wrap_split(code)
    if not needs_wrap:
        return False, [(code, 0)]

    head, rest = code[:hoisted], code[hoisted:]
    return True, [
        (head, 0),
        (RUST_MAIN_PREFIX, None),
        (rest, utf8_len(head)),
        (RUST_MAIN_SUFFIX, None),
    ]


WRAPPERS = {
    "rust": _rust_pieces,
    "rs": _rust_pieces,
}


def _build_unit(pieces: List[Piece], language_tag: str, wrapped: bool) -> SubmittedUnit:
    segments: List[Segment] = []
    parts: List[str] = []
    cursor = 0
    for text, original_start in pieces:
        if not text:
            continue
        size = utf8_len(text)
        segments.append(Segment(cursor, cursor + size, original_start))
        parts.append(text)
        cursor += size

    copied = [s for s in segments if not s.synthetic]
    offset_delta = None
    if len(copied) == 1:
        offset_delta = copied[0].submitted_start - copied[0].original_start

    return SubmittedUnit(
        submitted_text="".join(parts),
        language_tag=language_tag,
        wrapped=wrapped,
        segments=segments,
        offset_delta=offset_delta,
    )


def prepare(fragment: CodeFragment) -> SubmittedUnit:
    """
    Turn a fragment into the text that is handed to the analyzer, recording
    every inserted span so offsets can be mapped back.
    """
    pieces: List[Piece] = []
    if fragment.context:
        pieces.append(("\n".join(fragment.context) + "\n", None))

    wrapper = WRAPPERS.get(base_language(fragment.language_tag))
    if wrapper is None:
        wrapped, body = False, [(fragment.original_text, 0)]
    else:
        wrapped, body = wrapper(fragment.original_text)
    pieces.extend(body)

    unit = _build_unit(pieces, fragment.language_tag, wrapped)
    if wrapped:
        logger.debug(
            "wrapped fragment %s for analysis (%d segments)",
            fragment.origin,
            len(unit.segments),
        )
    return unit


def _segment_at(unit: SubmittedUnit, offset: int) -> Optional[Segment]:
    starts = [s.submitted_start for s in unit.segments]
    ix = bisect.bisect_right(starts, offset) - 1
    if ix < 0:
        return None
    seg = unit.segments[ix]
    return seg if seg.contains(offset) else None


def remap(unit: SubmittedUnit, raw: RawAnnotation) -> Union[MappedAnnotation, Unmappable]:
    """
    Map an annotation from submitted-text to original-text coordinates.

    Both endpoints must fall inside the same copied segment; anything that
    touches synthetic text is unmappable.
    """
    if not raw.is_well_formed(unit.byte_length()):
        return Unmappable(raw, "malformed_range")

    seg = _segment_at(unit, raw.start_offset)
    if seg is None:
        return Unmappable(raw, "outside_submitted_text")
    if seg.synthetic:
        return Unmappable(raw, "synthetic_span")
    if raw.end_offset > seg.submitted_end:
        return Unmappable(raw, "crosses_synthetic_span")

    shift = seg.original_start - seg.submitted_start
    return MappedAnnotation(
        start_offset=raw.start_offset + shift,
        end_offset=raw.end_offset + shift,
        type_string=raw.type_string,
        identifier_text=raw.identifier_text,
        docs=raw.docs,
        source=raw,
    )
