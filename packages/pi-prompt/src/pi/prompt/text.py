"""Display-width helpers for prompt badges and autocomplete options.

Widths are measured per grapheme cluster so that wide (CJK) characters and
emoji sequences line up when option labels are padded or truncated.
"""

from __future__ import annotations

import unicodedata

import grapheme
import wcwidth as _wcwidth

_WHITESPACE = frozenset({" ", "\t", "\n", "\r", "\f", "\v"})


# ---------------------------------------------------------------------------
# Width measurement
# ---------------------------------------------------------------------------

def _grapheme_width(g: str) -> int:
    """Return the terminal display width of a single grapheme cluster."""
    if not g:
        return 0

    if len(g) == 1:
        cp = ord(g)
        if cp < 0x20 or (0x7F <= cp <= 0x9F):
            return 0
        return max(_wcwidth.wcwidth(g), 0)

    for ch in g:
        cp = ord(ch)
        # VS16, ZWJ, skin tone modifiers and regional indicators force emoji width
        if cp in (0xFE0F, 0x200D) or 0x1F3FB <= cp <= 0x1F3FF or 0x1F1E6 <= cp <= 0x1F1FF:
            return 2

    first = g[0]
    if ord(first) >= 0x1F000:
        return 2
    if unicodedata.category(first) in ("Mn", "Me", "Mc", "Cf"):
        return 0
    return max(_wcwidth.wcwidth(first), 0)


def visible_width(text: str) -> int:
    """Visible terminal width of *text* (tabs count as 3 columns)."""
    if not text:
        return 0
    text = text.replace("\t", "   ")
    if text.isascii() and text.isprintable():
        return len(text)
    return sum(_grapheme_width(g) for g in grapheme.graphemes(text))


def _take_columns(text: str, max_cols: int, *, from_end: bool = False) -> str:
    """Return a prefix (or suffix) of *text* fitting in *max_cols* columns."""
    clusters = list(grapheme.graphemes(text))
    if from_end:
        clusters.reverse()
    taken: list[str] = []
    cols = 0
    for g in clusters:
        w = _grapheme_width(g)
        if cols + w > max_cols:
            break
        taken.append(g)
        cols += w
    if from_end:
        taken.reverse()
    return "".join(taken)


# ---------------------------------------------------------------------------
# Truncation / padding
# ---------------------------------------------------------------------------

def truncate_middle(text: str, max_width: int, ellipsis: str = "...") -> str:
    """Shorten *text* to *max_width* columns by cutting out its middle.

    ``truncate_middle("src/components/prompt/index.ts", 20)`` keeps both the
    leading directory and the file name, which is what matters for paths.
    """
    if visible_width(text) <= max_width:
        return text
    side = (max_width - visible_width(ellipsis)) // 2
    if side <= 0:
        return _take_columns(ellipsis, max(max_width, 0))
    head = _take_columns(text, side)
    tail = _take_columns(text, side, from_end=True)
    return f"{head}{ellipsis}{tail}"


def pad_to_width(text: str, width: int) -> str:
    """Right-pad *text* with spaces to *width* visible columns."""
    missing = width - visible_width(text)
    return text + " " * missing if missing > 0 else text


# ---------------------------------------------------------------------------
# Character classification / cluster boundaries
# ---------------------------------------------------------------------------

def is_whitespace_char(char: str) -> bool:
    """Return ``True`` if *char* is a whitespace character."""
    return char in _WHITESPACE


def previous_grapheme_length(text: str, offset: int) -> int:
    """Length in code points of the grapheme cluster ending at *offset*."""
    if offset <= 0:
        return 0
    clusters = list(grapheme.graphemes(text[:offset]))
    return len(clusters[-1]) if clusters else 0


def next_grapheme_length(text: str, offset: int) -> int:
    """Length in code points of the grapheme cluster starting at *offset*."""
    if offset >= len(text):
        return 0
    for g in grapheme.graphemes(text[offset:]):
        return len(g)
    return 0
