"""Levenshtein distance for fuzzy string matching.

Used as a fallback when an exact or substring lookup (for example a school
name search) returns nothing.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

# Words shorter than this are ignored in per-word matching (articles etc.)
_MIN_WORD_LENGTH = 3


@dataclass(frozen=True)
class FuzzyMatch(Generic[T]):
    """A candidate and its best edit distance to the query."""

    item: T
    distance: int


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings, ignoring case and outer whitespace.

    Single-row Wagner-Fischer: O(len(a) * len(b)) time and
    O(min(len(a), len(b))) extra space.
    """
    s1 = a.lower().strip()
    s2 = b.lower().strip()

    if s1 == s2:
        return 0

    shorter, longer = (s1, s2) if len(s1) <= len(s2) else (s2, s1)

    row = list(range(len(shorter) + 1))
    for i, long_char in enumerate(longer, 1):
        diagonal = row[0]
        row[0] = i
        for j, short_char in enumerate(shorter, 1):
            above = row[j]
            cost = 0 if long_char == short_char else 1
            row[j] = min(
                above + 1,  # deletion
                row[j - 1] + 1,  # insertion
                diagonal + cost,  # substitution
            )
            diagonal = above

    return row[len(shorter)]


def find_fuzzy_matches(
    query: str,
    candidates: Iterable[T],
    key: Callable[[T], str],
    max_distance: int = 3,
    limit: int = 5,
) -> list[FuzzyMatch[T]]:
    """Find candidates whose key text is within ``max_distance`` of ``query``.

    The full key text is compared first. If that is too far, each word of at
    least three characters is compared individually, so a typo such as
    "Stuyvesent" still finds "Stuyvesant High School".

    Args:
        query: Text to look for.
        candidates: Items to search.
        key: Extracts the comparable text from a candidate.
        max_distance: Largest accepted edit distance.
        limit: Maximum number of results.

    Returns:
        Matches sorted by ascending distance, at most ``limit`` long.
    """
    results: list[FuzzyMatch[T]] = []

    for candidate in candidates:
        text = key(candidate)
        distance = levenshtein_distance(query, text)

        if distance > max_distance:
            for word in text.split():
                if len(word) < _MIN_WORD_LENGTH:
                    continue
                distance = min(distance, levenshtein_distance(query, word))

        if distance <= max_distance:
            results.append(FuzzyMatch(item=candidate, distance=distance))

    # Stable sort: equal distances keep candidate order
    results.sort(key=lambda match: match.distance)
    return results[:limit]
