# overlay/reconcile.py

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .models import (
    DecoratedToken,
    Diagnostic,
    MappedAnnotation,
    MatchConfidence,
    Token,
    TypeAnnotation,
)

logger = logging.getLogger(__name__)

IDENTIFIER = "identifier"


def _sort_key(ann: MappedAnnotation) -> Tuple[int, int]:
    # Earliest start first, tighter range first on ties.
    return (ann.start_offset, ann.length())


def _identifiers_within(tokens: Sequence[Token], ann: MappedAnnotation) -> List[Token]:
    return [
        t for t in tokens
        if t.kind == IDENTIFIER and ann.contains(t.start, t.end)
    ]


def _is_ambiguous(tokens: Sequence[Token], ann: MappedAnnotation) -> bool:
    """
    An annotation is ambiguous when the identifiers inside its range that it
    could describe do not all share one text.
    """
    inside = _identifiers_within(tokens, ann)
    if ann.identifier_text is not None:
        inside = [t for t in inside if t.text == ann.identifier_text]
    return len({t.text for t in inside}) > 1


def _fuzzy_fits(token: Token, ann: MappedAnnotation, max_slack: Optional[int]) -> bool:
    if token.kind != IDENTIFIER:
        return False
    if not ann.contains(token.start, token.end):
        return False
    if ann.identifier_text is not None and ann.identifier_text != token.text:
        return False
    if max_slack is not None and ann.length() - (token.end - token.start) > max_slack:
        return False
    return True


def reconcile_with_report(
    tokens: Sequence[Token],
    annotations: Sequence[MappedAnnotation],
    fuzzy: bool = True,
    max_slack: Optional[int] = None,
) -> Tuple[List[DecoratedToken], List[Diagnostic]]:
    """
    Attach annotations to tokens.

    Phase 1 pairs annotations whose range equals a token's range exactly.
    Phase 2 (optional) lets an identifier token take the narrowest remaining
    annotation that contains it, has a matching identifier hint and is not
    ambiguous. Each annotation is used at most once.

    Returns the decorated tokens in input order and a diagnostic per
    annotation that decorated nothing.
    """
    ordered = sorted(annotations, key=_sort_key)
    consumed: Set[int] = set()
    attached: Dict[int, TypeAnnotation] = {}

    by_range: Dict[Tuple[int, int], List[int]] = defaultdict(list)
    for ix, ann in enumerate(ordered):
        by_range[(ann.start_offset, ann.end_offset)].append(ix)

    # Phase 1: exact
    for pos, token in enumerate(tokens):
        for ix in by_range.get(token.byte_range, ()):
            if ix in consumed:
                continue
            ann = ordered[ix]
            consumed.add(ix)
            attached[pos] = TypeAnnotation(ann.type_string, MatchConfidence.EXACT, ann.docs)
            break

    # Phase 2: fuzzy
    ambiguous: Set[int] = set()
    if fuzzy:
        for pos, token in enumerate(tokens):
            if pos in attached:
                continue
            best = None
            for ix, ann in enumerate(ordered):
                if ann.start_offset > token.start:
                    break
                if ix in consumed or ix in ambiguous:
                    continue
                if not _fuzzy_fits(token, ann, max_slack):
                    continue
                if _is_ambiguous(tokens, ann):
                    ambiguous.add(ix)
                    continue
                if best is None or ann.length() < ordered[best].length():
                    best = ix
            if best is not None:
                ann = ordered[best]
                consumed.add(best)
                attached[pos] = TypeAnnotation(ann.type_string, MatchConfidence.FUZZY, ann.docs)

    decorated = [DecoratedToken(t, attached.get(pos)) for pos, t in enumerate(tokens)]

    diagnostics: List[Diagnostic] = []
    for ix, ann in enumerate(ordered):
        if ix in consumed:
            continue
        reason = "ambiguous" if ix in ambiguous else "no_matching_token"
        detail = f"[{ann.start_offset}, {ann.end_offset}) {ann.type_string}"
        logger.debug("unmatched annotation %s (%s)", detail, reason)
        diagnostics.append(Diagnostic(stage="reconcile", reason=reason, detail=detail))

    return decorated, diagnostics


def reconcile(
    tokens: Sequence[Token],
    annotations: Sequence[MappedAnnotation],
    fuzzy: bool = True,
    max_slack: Optional[int] = None,
) -> List[DecoratedToken]:
    decorated, _ = reconcile_with_report(tokens, annotations, fuzzy=fuzzy, max_slack=max_slack)
    return decorated
