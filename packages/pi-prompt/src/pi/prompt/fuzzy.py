"""Fuzzy matching utilities for autocomplete ranking.

Matches if all query characters appear in order (not necessarily consecutive).
Lower score = better match. Ranking is stable: items that score the same keep
the order they were given in, so a provider can pre-sort candidates (e.g. by
frecency) and have that order survive as the tie-breaker.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")

_WORD_BOUNDARY_RE = re.compile(r"[\s\-_./:#@]")
_ALPHA_NUM_RE = re.compile(r"^(?P<letters>[a-z]+)(?P<digits>[0-9]+)$")
_NUM_ALPHA_RE = re.compile(r"^(?P<digits>[0-9]+)(?P<letters>[a-z]+)$")


@dataclass
class FuzzyMatch:
    matches: bool
    score: float


_NO_MATCH = FuzzyMatch(matches=False, score=0)


def _match_normalized(query: str, text: str) -> FuzzyMatch:
    if not query:
        return FuzzyMatch(matches=True, score=0)
    if len(query) > len(text):
        return _NO_MATCH

    query_index = 0
    score: float = 0
    last_match_index = -1
    consecutive_matches = 0

    for i, ch in enumerate(text):
        if query_index >= len(query):
            break
        if ch != query[query_index]:
            continue

        if last_match_index == i - 1:
            consecutive_matches += 1
            score -= consecutive_matches * 5
        else:
            consecutive_matches = 0
            if last_match_index >= 0:
                score += (i - last_match_index - 1) * 2

        if i == 0 or _WORD_BOUNDARY_RE.match(text[i - 1]):
            score -= 10

        score += i * 0.1
        last_match_index = i
        query_index += 1

    if query_index < len(query):
        return _NO_MATCH
    return FuzzyMatch(matches=True, score=score)


def fuzzy_match(query: str, text: str) -> FuzzyMatch:
    """Match *query* against *text*, case-insensitively."""
    query_lower = query.lower()
    text_lower = text.lower()

    primary = _match_normalized(query_lower, text_lower)
    if primary.matches:
        return primary

    # "v2" also finds "2v"-style names and vice versa, at a small penalty
    swapped = ""
    if m := _ALPHA_NUM_RE.match(query_lower):
        swapped = m.group("digits") + m.group("letters")
    elif m := _NUM_ALPHA_RE.match(query_lower):
        swapped = m.group("letters") + m.group("digits")
    if not swapped:
        return primary

    swapped_match = _match_normalized(swapped, text_lower)
    if not swapped_match.matches:
        return primary
    return FuzzyMatch(matches=True, score=swapped_match.score + 5)


def best_match(query: str, texts: Iterable[str | None]) -> FuzzyMatch:
    """Best (lowest-scoring) match of *query* over several candidate keys."""
    best = _NO_MATCH
    for text in texts:
        if not text:
            continue
        match = fuzzy_match(query, text)
        if match.matches and (not best.matches or match.score < best.score):
            best = match
    return best


def fuzzy_filter(
    items: list[T],
    query: str,
    get_keys: Callable[[T], Iterable[str | None]],
    *,
    limit: int | None = None,
) -> list[T]:
    """Filter and sort items by fuzzy match quality (best matches first).

    ``get_keys`` returns every string an item may be found by (name, aliases,
    description...); the best-scoring key counts. Space-separated query tokens
    must all match. An empty query keeps every item in its original order.
    """
    tokens = query.split()
    if not tokens:
        return items[:limit] if limit is not None else list(items)

    results: list[tuple[T, float]] = []
    for item in items:
        keys = [k for k in get_keys(item) if k]
        total_score: float = 0
        for token in tokens:
            match = best_match(token, keys)
            if not match.matches:
                break
            total_score += match.score
        else:
            results.append((item, total_score))

    results.sort(key=lambda r: r[1])
    ranked = [r[0] for r in results]
    return ranked[:limit] if limit is not None else ranked
