from __future__ import annotations

import re
import unicodedata

# Latin "word" characters for boundary checks. CJK characters, whitespace and
# punctuation are all boundaries, so "hashmap的用法" still contains "hashmap".
LATIN_WORD_CHARS = "0-9a-z_À-ɏ"

_CJK_RANGES: tuple[tuple[int, int], ...] = (
    (0x2E80, 0x2FDF),    # CJK radicals, Kangxi radicals
    (0x3040, 0x30FF),    # Hiragana, Katakana
    (0x3100, 0x318F),    # Bopomofo, Hangul compatibility jamo
    (0x31A0, 0x31FF),    # Bopomofo extended, Katakana phonetic extensions
    (0x3400, 0x4DBF),    # CJK extension A
    (0x4E00, 0x9FFF),    # CJK unified ideographs
    (0xAC00, 0xD7AF),    # Hangul syllables
    (0xF900, 0xFAFF),    # CJK compatibility ideographs
    (0x20000, 0x2FA1F),  # CJK extensions B-F, compatibility supplement
)

_WS_RE = re.compile(r"\s+")
_LATIN_WORD_RE = re.compile(rf"[{LATIN_WORD_CHARS}]")
_LATIN_TOKEN_RE = re.compile(rf"[{LATIN_WORD_CHARS}]+(?:::[{LATIN_WORD_CHARS}]+)*!?")


def is_cjk_char(ch: str) -> bool:
    cp = ord(ch)
    for lo, hi in _CJK_RANGES:
        if lo <= cp <= hi:
            return True
    return False


def contains_cjk(text: str) -> bool:
    return any(is_cjk_char(ch) for ch in text or "")


def is_pure_cjk(text: str) -> bool:
    """True when every non-space character is CJK."""
    chars = [ch for ch in text or "" if not ch.isspace()]
    return bool(chars) and all(is_cjk_char(ch) for ch in chars)


def normalize_text(value: str | None) -> str:
    """Normalize keywords and queries the same way.

    - NFKC folds full-width forms ("ＨａｓｈＭａｐ", "：：") to ASCII
    - casefold for Latin script (CJK is unaffected by case folding)
    - whitespace collapsed and trimmed
    """
    text = unicodedata.normalize("NFKC", value or "")
    text = text.casefold()
    return _WS_RE.sub(" ", text).strip()


def cjk_spans(text: str) -> list[str]:
    """Contiguous CJK runs of an already-normalized text, in order, unsegmented."""
    spans: list[str] = []
    current: list[str] = []
    for ch in text:
        if is_cjk_char(ch):
            current.append(ch)
            continue
        if current:
            spans.append("".join(current))
            current = []
    if current:
        spans.append("".join(current))
    return spans


def latin_tokens(text: str) -> list[str]:
    """Latin tokens of an already-normalized text; `std::fs` and `println!` stay whole."""
    return _LATIN_TOKEN_RE.findall(text)


def weighted_length(text: str) -> int:
    """Length where each CJK character counts double."""
    return sum(2 if is_cjk_char(ch) else 1 for ch in text if not ch.isspace())


def latin_boundary_pattern(term: str) -> re.Pattern[str]:
    # Term is already normalized (casefolded, collapsed whitespace).
    esc = re.escape(term)
    return re.compile(rf"(?<![{LATIN_WORD_CHARS}]){esc}(?![{LATIN_WORD_CHARS}])")


def latin_edge_pattern(term: str) -> re.Pattern[str]:
    """Substring pattern for a mixed-script term.

    A boundary is required only on an edge whose character is a Latin word
    character: "rust 标准库" is found in "学rust 标准库" but not in "trust 标准库".
    """
    head = f"(?<![{LATIN_WORD_CHARS}])" if term and _LATIN_WORD_RE.match(term[0]) else ""
    tail = f"(?![{LATIN_WORD_CHARS}])" if term and _LATIN_WORD_RE.match(term[-1]) else ""
    return re.compile(head + re.escape(term) + tail)
