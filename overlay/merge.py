# overlay/merge.py

from __future__ import annotations

from typing import Iterable, List, Sequence

from .models import AnnotatedStream, DecoratedToken, Diagnostic, Token


def merge(
    decorated: Sequence[DecoratedToken],
    origin: str,
    language_tag: str,
    diagnostics: Iterable[Diagnostic] = (),
    degraded: bool = False,
) -> AnnotatedStream:
    """
    Fold reconciled tokens into the stream handed to the renderer.

    Token order, kind, css class and text pass through untouched; only the
    type annotation rides along.
    """
    return AnnotatedStream(
        origin=origin,
        language_tag=language_tag,
        tokens=list(decorated),
        degraded=degraded,
        diagnostics=list(diagnostics),
    )


def plain_stream(
    tokens: Sequence[Token],
    origin: str,
    language_tag: str,
    diagnostics: Iterable[Diagnostic] = (),
    degraded: bool = False,
) -> AnnotatedStream:
    """Stream with no type annotations, as rendered with the overlay off."""
    undecorated: List[DecoratedToken] = [DecoratedToken(t) for t in tokens]
    return merge(undecorated, origin, language_tag, diagnostics, degraded)
