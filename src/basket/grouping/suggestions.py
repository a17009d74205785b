"""Merge-suggestion generation.

Greedy single-pass clustering over the unmapped worklist: each unclaimed
product seeds a cluster and claims every later unclaimed product that scores
at or above the threshold against it. Work per run is bounded by ``item_cap``
so cost stays O(cap^2) regardless of history size.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass

from basket.grouping.similarity import SimilarityCache

logger = logging.getLogger(__name__)

DEFAULT_ITEM_CAP = 100
DEFAULT_THRESHOLD = 0.6

LARGE_CLUSTER_CONFIDENCE = 0.9
PAIR_CONFIDENCE = 0.7


def canonical_key(members: Iterable[str]) -> tuple[str, ...]:
    """Order-independent identity of a member set."""
    return tuple(sorted(set(members)))


@dataclass(frozen=True)
class Suggestion:
    """A proposed group. ``members`` keeps claim order; the seed comes first."""

    members: tuple[str, ...]
    target_name: str
    confidence: float

    @property
    def key(self) -> tuple[str, ...]:
        return canonical_key(self.members)


def _target_name(members: Sequence[str]) -> str:
    # min() keeps the first of equally short names
    return min(members, key=len)


def generate(
    unmapped_products: Sequence[str],
    ignored: Collection[tuple[str, ...]] = (),
    *,
    item_cap: int = DEFAULT_ITEM_CAP,
    threshold: float = DEFAULT_THRESHOLD,
    cache: SimilarityCache | None = None,
) -> list[Suggestion]:
    """Cluster unmapped product names into merge suggestions.

    Args:
        unmapped_products: Product names with no effective mapping, in the
            order they should be considered.
        ignored: Canonical keys (see ``canonical_key``) of rejected clusters.
        item_cap: Only the first ``item_cap`` products are considered.
        threshold: Minimum similarity for a product to join a cluster.
        cache: Per-run similarity cache; a fresh one is created when omitted.

    Returns:
        Suggestions in seed order. Never contains a cluster of fewer than two
        members or one whose member set is in ``ignored``.
    """
    if cache is None:
        cache = SimilarityCache()

    candidates = list(unmapped_products[: max(item_cap, 0)])
    ignored_keys = set(ignored)
    claimed: set[int] = set()
    suggestions: list[Suggestion] = []

    for i, seed in enumerate(candidates):
        if i in claimed:
            continue

        cluster = [seed]
        claimed.add(i)

        for j in range(i + 1, len(candidates)):
            if j in claimed:
                continue
            if cache.score(seed, candidates[j]) >= threshold:
                cluster.append(candidates[j])
                claimed.add(j)

        if len(cluster) < 2:
            continue

        if canonical_key(cluster) in ignored_keys:
            logger.debug("Skipping ignored suggestion", extra={"members": len(cluster)})
            continue

        suggestions.append(
            Suggestion(
                members=tuple(cluster),
                target_name=_target_name(cluster),
                confidence=LARGE_CLUSTER_CONFIDENCE if len(cluster) > 2 else PAIR_CONFIDENCE,
            )
        )

    return suggestions
