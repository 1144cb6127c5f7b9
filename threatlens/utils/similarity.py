"""String similarity helpers shared by the lexical and mobile-app analyzers."""

from __future__ import annotations

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein


def strip_label(label: str) -> str:
    return "".join(ch for ch in (label or "").lower() if ch.isalnum())


def edit_similarity(first: str, second: str) -> float:
    """Edit-distance similarity in [0, 1] relative to the longer string."""
    a = (first or "").lower()
    b = (second or "").lower()
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    distance = Levenshtein.distance(a, b)
    return (longer - distance) / longer


def ratio(first: str, second: str) -> int:
    return int(round(fuzz.ratio(first, second)))


def partial_ratio(first: str, second: str) -> int:
    return int(round(fuzz.partial_ratio(first, second)))
