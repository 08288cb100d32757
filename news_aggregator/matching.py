"""Fuzzy text matching shared by source ranking, scoring and classification.

Everything that compares free text against curated vocabularies goes through
these helpers so the matching strategy can be swapped in one place.
"""

from typing import Iterable, List


def normalise(text: str) -> str:
    return (text or "").strip().lower()


def contains_either(a: str, b: str) -> bool:
    """Case-insensitive bidirectional substring containment.

    Empty strings never match.
    """
    a, b = normalise(a), normalise(b)
    if not a or not b:
        return False
    return a in b or b in a


def contains(text: str, term: str) -> bool:
    term = normalise(term)
    return bool(term) and term in normalise(text)


def match_keywords(text: str, keywords: Iterable[str]) -> List[str]:
    """Return the keywords found in ``text``, in vocabulary order, without duplicates."""
    haystack = normalise(text)
    found: List[str] = []
    for kw in keywords:
        needle = normalise(kw)
        if needle and needle in haystack and needle not in found:
            found.append(needle)
    return found
