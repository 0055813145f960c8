# tests/conftest.py

import json
import threading

import pytest
import regex as re

from overlay.models import Token, utf8_len

WORD_RE = re.compile(r"[A-Za-z_]\w*|\d+|\s+|[^\w\s]")


class WordTokenizer:
    """Tiny deterministic tokenizer: identifiers, numbers, whitespace, punctuation."""

    def tokenize(self, text, language_tag):
        tokens = []
        pos = 0
        for m in WORD_RE.finditer(text):
            value = m.group(0)
            if value.isspace():
                kind = "whitespace"
            elif value[0].isdigit():
                kind = "literal"
            elif value[0].isalpha() or value[0] == "_":
                kind = "identifier"
            else:
                kind = "punctuation"
            size = utf8_len(value)
            tokens.append(Token(pos, pos + size, kind, value))
            pos += size
        return tokens


class FakeAnalyzer:
    """Analyzer stand-in: `respond(text)` returns stdout or raises."""

    def __init__(self, respond):
        self.respond = respond
        self.calls = 0
        self.seen = []
        self._lock = threading.Lock()

    def analyze(self, text, language_tag, timeout):
        with self._lock:
            self.calls += 1
            self.seen.append((text, language_tag))
        return self.respond(text)


def annotations_json(*items):
    return json.dumps(
        {"annotations": [{"start": s, "end": e, "type": t} for s, e, t in items]}
    )


@pytest.fixture
def word_tokenizer():
    return WordTokenizer()
