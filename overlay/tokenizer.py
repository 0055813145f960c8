# overlay/tokenizer.py

from __future__ import annotations

from typing import Dict, List, Protocol

from pygments import token as T
from pygments.lexer import Lexer
from pygments.lexers import get_lexer_by_name
from pygments.lexers.special import TextLexer
from pygments.util import ClassNotFound

from .mapper import base_language
from .models import Token, utf8_len


class Tokenizer(Protocol):
    def tokenize(self, text: str, language_tag: str) -> List[Token]:
        ...


# Map Pygments token types to the hl-* classes used by the docs theme.
HL_CLASS_MAP = {
    T.Comment:             "hl-comment",
    T.Keyword.Type:        "hl-keyword-type",
    T.Keyword.Declaration: "hl-keyword-declaration",
    T.Keyword.Namespace:   "hl-keyword-namespace",
    T.Keyword:             "hl-keyword",
    T.Literal.String:      "hl-string",
    T.Literal.Number:      "hl-number",
    T.Name.Function:       "hl-function-name",
    T.Name.Class:          "hl-class-name",
    T.Name.Builtin:        "hl-builtin-name",
    T.Name.Decorator:      "hl-decorator-name",
    T.Name.Namespace:      "hl-namespace-name",
    T.Name.Attribute:      "hl-property-name",
    T.Operator:            "hl-operator",
    T.Punctuation:         "hl-punctuation",
    T.Name:                "",
    T.Text:                "",
    T.Other:               "",
}

KIND_MAP = {
    T.Comment:     "comment",
    T.Keyword:     "keyword",
    T.Literal:     "literal",
    T.Name:        "identifier",
    T.Operator:    "operator",
    T.Punctuation: "punctuation",
}


def _walk(ttype, table: Dict, default: str) -> str:
    while ttype:
        if ttype in table:
            return table[ttype]
        ttype = ttype.parent
    return default


def token_kind(ttype, value: str) -> str:
    if value.isspace():
        return "whitespace"
    # Keyword.Constant covers true/false/None, treat them as literals.
    if ttype in T.Keyword.Constant:
        return "literal"
    return _walk(ttype, KIND_MAP, "text")


def hl_class(ttype) -> str:
    return _walk(ttype, HL_CLASS_MAP, "")


class PygmentsTokenizer:
    """
    Default tokenizer: Pygments lexer picked by the fence's base language.

    Runs `get_tokens_unprocessed` on the raw text so positions line up with
    the original exactly, then converts character positions to byte offsets.
    """

    def __init__(self):
        self._lexers: Dict[str, Lexer] = {}

    def _lexer_for(self, language_tag: str) -> Lexer:
        lang = base_language(language_tag)
        lexer = self._lexers.get(lang)
        if lexer is None:
            try:
                lexer = get_lexer_by_name(lang, stripnl=False, ensurenl=False)
            except ClassNotFound:
                lexer = TextLexer(stripnl=False, ensurenl=False)
            self._lexers[lang] = lexer
        return lexer

    def tokenize(self, text: str, language_tag: str) -> List[Token]:
        lexer = self._lexer_for(language_tag)
        tokens: List[Token] = []
        byte_pos = 0
        char_pos = 0
        for index, ttype, value in lexer.get_tokens_unprocessed(text):
            if not value:
                continue
            if index != char_pos:
                # Lexer skipped input; resync on its reported position.
                byte_pos = utf8_len(text[:index])
            size = utf8_len(value)
            tokens.append(
                Token(
                    start=byte_pos,
                    end=byte_pos + size,
                    kind=token_kind(ttype, value),
                    text=value,
                    css_class=hl_class(ttype),
                )
            )
            byte_pos += size
            char_pos = index + len(value)
        return tokens
