"""
Title similarity based on Levenshtein edit distance.
"""
from rapidfuzz.distance import Levenshtein


def title_similarity(a: str | None, b: str | None) -> float:
    """
    ``1 - distance / max(len)`` over the lower-cased titles, in [0, 1].

    Two empty titles are identical (1.0).
    """
    a = (a or "").lower()
    b = (b or "").lower()
    if not a and not b:
        return 1.0
    return Levenshtein.normalized_similarity(a, b)
