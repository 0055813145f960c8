# tests/test_tokenizer.py

from overlay.tokenizer import PygmentsTokenizer


def _by_text(tokens, text):
    return [t for t in tokens if t.text == text]


def test_rust_tokens_cover_input_without_overlap():
    code = "let x: i32 = 1;"
    tokens = PygmentsTokenizer().tokenize(code, "rust")

    assert "".join(t.text for t in tokens) == code
    for prev, cur in zip(tokens, tokens[1:]):
        assert prev.end == cur.start
        assert not prev.overlaps(cur)

    (x,) = _by_text(tokens, "x")
    assert x.byte_range == (4, 5)
    assert x.kind == "identifier"

    (let,) = _by_text(tokens, "let")
    assert let.kind == "keyword"
    assert let.css_class.startswith("hl-keyword")

    (one,) = _by_text(tokens, "1")
    assert one.kind == "literal"
    assert one.css_class == "hl-number"


def test_fence_attributes_pick_base_lexer():
    tokens = PygmentsTokenizer().tokenize("let x = 1;", "rust,no_run")
    assert _by_text(tokens, "let")[0].kind == "keyword"


def test_unknown_language_falls_back_to_plain_text():
    tokens = PygmentsTokenizer().tokenize("hello world", "no-such-language")
    assert "".join(t.text for t in tokens) == "hello world"
    assert all(t.kind in ("text", "whitespace") for t in tokens)


def test_offsets_are_utf8_bytes():
    code = 's = "é"\nt = s'
    tokens = PygmentsTokenizer().tokenize(code, "python")
    t = [tok for tok in tokens if tok.text == "t"][0]
    assert t.start == code.encode("utf-8").index(b"t = s")
    assert tokens[-1].end == len(code.encode("utf-8"))
