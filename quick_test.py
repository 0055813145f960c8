import json

from overlay.config import OverlayConfig
from overlay.coordinator import OverlayCoordinator
from overlay.fetcher import CallableAnalyzer
from overlay.models import CodeFragment


def demo_analyzer(text: str, language_tag: str) -> str:
    # Pretend analyzer: types every `let` binding as i32.
    out = []
    pos = text.find("let ")
    while pos != -1:
        start = len(text[: pos + 4].encode("utf-8"))
        name = text[pos + 4:].split(" ", 1)[0].rstrip(":;=")
        out.append({"start": start, "end": start + len(name.encode("utf-8")), "type": "i32"})
        pos = text.find("let ", pos + 1)
    return json.dumps({"annotations": out})


if __name__ == "__main__":
    code = "let count = 1;\nlet total: i32 = count + 2;"
    coordinator = OverlayCoordinator(
        OverlayConfig(enabled=True),
        analyzer=CallableAnalyzer(demo_analyzer),
    )
    stream = coordinator.process_fragment(CodeFragment(code, "rust", "quick_test#0"))

    print("=== CODE ===")
    print(code)
    print("\n=== TOKENS ===")
    for dt in stream.tokens:
        ann = dt.type_annotation
        label = f" : {ann.type_string} ({ann.match_confidence.value})" if ann else ""
        print(f"{dt.token.kind:<12} [{dt.token.start}:{dt.token.end}] {dt.token.text!r}{label}")
    print("\n=== DIAGNOSTICS ===")
    for d in stream.diagnostics:
        print(f"{d.stage}: {d.reason} {d.detail}")
