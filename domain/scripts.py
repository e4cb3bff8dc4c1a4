"""Writing-system classification for subtitle text."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Tuple


class ScriptFamily(str, Enum):
    """Writing-system families recognized by the classifier."""

    LATIN = "latin"
    CYRILLIC = "cyrillic"
    ARABIC = "arabic"
    HEBREW = "hebrew"
    CJK = "cjk"
    THAI = "thai"
    DEVANAGARI = "devanagari"
    OTHER = "other"


SCRIPT_RANGES: Tuple[Tuple[ScriptFamily, Tuple[Tuple[int, int], ...]], ...] = (
    (
        ScriptFamily.LATIN,
        (
            (0x0020, 0x007F),
            (0x00A0, 0x00FF),
            (0x0100, 0x017F),
            (0x0180, 0x024F),
        ),
    ),
    (ScriptFamily.CYRILLIC, ((0x0400, 0x04FF), (0x0500, 0x052F))),
    (ScriptFamily.ARABIC, ((0x0600, 0x06FF), (0x0750, 0x077F))),
    (ScriptFamily.HEBREW, ((0x0590, 0x05FF),)),
    (
        ScriptFamily.CJK,
        (
            (0x4E00, 0x9FFF),
            (0x3040, 0x309F),
            (0x30A0, 0x30FF),
            (0x3400, 0x4DBF),
            (0xAC00, 0xD7AF),
        ),
    ),
    (ScriptFamily.THAI, ((0x0E00, 0x0E7F),)),
    (ScriptFamily.DEVANAGARI, ((0x0900, 0x097F),)),
)
RTL_FAMILIES = frozenset({ScriptFamily.ARABIC, ScriptFamily.HEBREW})
# ASS override sequences are not text; \N and \h count as spaces.
ASS_SPACE_ESCAPES = ("\\N", "\\h")


def classify_code_point(code_point: int) -> ScriptFamily | None:
    """Return the first family whose ranges contain the code point."""
    for family, ranges in SCRIPT_RANGES:
        for start, end in ranges:
            if start <= code_point <= end:
                return family
    return None


def count_families(text_value: str) -> dict[ScriptFamily, int]:
    """Tally recognized code points per family, skipping control characters."""
    cleaned = text_value
    for escape in ASS_SPACE_ESCAPES:
        cleaned = cleaned.replace(escape, " ")
    counts: dict[ScriptFamily, int] = {}
    for character in cleaned:
        code_point = ord(character)
        if code_point < 0x20:
            continue
        family = classify_code_point(code_point)
        if family is None:
            continue
        counts[family] = counts.get(family, 0) + 1
    return counts


def dominant_family(counts: dict[ScriptFamily, int]) -> ScriptFamily:
    """Pick the family with the highest count; ties go to table order."""
    best_family = ScriptFamily.LATIN
    best_count = 0
    for family, _ in SCRIPT_RANGES:
        count = counts.get(family, 0)
        if count > best_count:
            best_family = family
            best_count = count
    return best_family


def classify_text(text_value: str) -> ScriptFamily:
    """Return the dominant writing system of a text span."""
    if not text_value:
        return ScriptFamily.LATIN
    return dominant_family(count_families(text_value))


def classify_corpus(texts: Iterable[str]) -> ScriptFamily:
    """Return the dominant writing system across many text spans."""
    return classify_text(" ".join(texts))


def is_rtl(family: ScriptFamily) -> bool:
    """Return True for right-to-left writing systems."""
    return family in RTL_FAMILIES
