"""Pairwise product-name similarity.

The score is deliberately simple and explainable. First matching rule wins:

1. case-insensitive trimmed equality -> 1.0
2. one string contains the other -> 0.8
3. shared whitespace tokens -> shared / max(token counts)
4. otherwise normalized Levenshtein similarity

Two empty strings score 0. A name that is blank after trimming only scores
above 0 against an equally blank name.
"""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein

EQUAL_SCORE = 1.0
CONTAINMENT_SCORE = 0.8


def similarity(a: str, b: str) -> float:
    """Symmetric similarity score in [0, 1]."""
    s1 = (a or "").lower().strip()
    s2 = (b or "").lower().strip()

    if a and b and s1 == s2:
        return EQUAL_SCORE

    if not s1 or not s2:
        return 0.0

    if s1 in s2 or s2 in s1:
        return CONTAINMENT_SCORE

    tokens1 = s1.split()
    tokens2 = s2.split()
    shared = set(tokens1) & set(tokens2)
    if shared:
        return len(shared) / max(len(tokens1), len(tokens2))

    # 1 - distance / max(len), unit-cost Levenshtein
    return Levenshtein.normalized_similarity(s1, s2)


class SimilarityCache:
    """Memoizes ``similarity`` by unordered pair.

    Create one per generation run. Never share an instance across runs or
    accounts: it has no notion of which inputs it was built for.
    """

    def __init__(self) -> None:
        self._scores: dict[tuple[str, str], float] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(a: str, b: str) -> tuple[str, str]:
        return (a, b) if a <= b else (b, a)

    def score(self, a: str, b: str) -> float:
        key = self._key(a, b)
        cached = self._scores.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        value = similarity(a, b)
        self._scores[key] = value
        return value

    def __len__(self) -> int:
        return len(self._scores)
