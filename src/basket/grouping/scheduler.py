"""Background scheduling for suggestion generation.

Generation is CPU-bound (pairwise scoring) and must never hold up interactive
edits. Each request yields to the event loop once, then runs the clustering
in a worker thread.

A run is numbered when it begins, before its inputs are read. When a newer
run for the same owner begins before an older one finishes, the older result
is dropped, so a result is never built from inputs older than the latest
request's.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from uuid import UUID

from basket.config import settings
from basket.grouping.similarity import SimilarityCache
from basket.grouping.suggestions import Suggestion, generate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuggestionRun:
    generation: int
    suggestions: list[Suggestion]
    considered: int
    duration_ms: float


class SuggestionScheduler:
    """Runs ``generate`` off the event loop and discards superseded runs."""

    def __init__(
        self,
        item_cap: int | None = None,
        threshold: float | None = None,
    ) -> None:
        self.item_cap = item_cap if item_cap is not None else settings.suggestion_item_cap
        self.threshold = threshold if threshold is not None else settings.similarity_threshold
        # Generation numbers are unique per scheduler, not per owner, so a
        # number is never reused after an owner's entry is dropped.
        self._counter = itertools.count(1)
        self._generations: dict[UUID, int] = {}

    def begin(self, owner_id: UUID) -> int:
        """Reserve the next generation for an owner. Call before loading inputs."""
        generation = next(self._counter)
        self._generations[owner_id] = generation
        return generation

    def finish(self, owner_id: UUID, generation: int) -> None:
        """Forget the owner's entry if ``generation`` is still its latest run."""
        if self._generations.get(owner_id) == generation:
            del self._generations[owner_id]

    def is_current(self, owner_id: UUID, generation: int) -> bool:
        return self._generations.get(owner_id) == generation

    def __len__(self) -> int:
        return len(self._generations)

    async def run(
        self,
        owner_id: UUID,
        unmapped_products: Sequence[str],
        ignored: Collection[tuple[str, ...]],
        generation: int | None = None,
    ) -> SuggestionRun | None:
        """Generate suggestions for one owner.

        Args:
            owner_id: Account the run is for.
            unmapped_products: Names to cluster, in order.
            ignored: Canonical keys of rejected clusters.
            generation: Number from ``begin``, taken before the inputs were
                loaded. When omitted the run begins (and finishes) here.

        Returns:
            The run result, or None if a newer run for the same owner began
            while this one was loading or computing.
        """
        if generation is None:
            generation = self.begin(owner_id)
            try:
                return await self._run(owner_id, generation, unmapped_products, ignored)
            finally:
                self.finish(owner_id, generation)
        return await self._run(owner_id, generation, unmapped_products, ignored)

    async def _run(
        self,
        owner_id: UUID,
        generation: int,
        unmapped_products: Sequence[str],
        ignored: Collection[tuple[str, ...]],
    ) -> SuggestionRun | None:
        # Let queued interactive requests go first.
        await asyncio.sleep(0)
        if not self.is_current(owner_id, generation):
            logger.info(
                "Discarded superseded suggestion run",
                extra={"owner_id": str(owner_id), "generation": generation},
            )
            return None

        start = time.perf_counter()
        cache = SimilarityCache()
        suggestions = await asyncio.to_thread(
            generate,
            list(unmapped_products),
            set(ignored),
            item_cap=self.item_cap,
            threshold=self.threshold,
            cache=cache,
        )
        duration_ms = (time.perf_counter() - start) * 1000

        if not self.is_current(owner_id, generation):
            logger.info(
                "Discarded superseded suggestion run",
                extra={"owner_id": str(owner_id), "generation": generation},
            )
            return None

        considered = min(len(unmapped_products), self.item_cap)
        logger.info(
            "Generated suggestions",
            extra={
                "owner_id": str(owner_id),
                "generation": generation,
                "considered": considered,
                "suggestions": len(suggestions),
                "comparisons": len(cache),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return SuggestionRun(
            generation=generation,
            suggestions=suggestions,
            considered=considered,
            duration_ms=duration_ms,
        )


# Process-wide scheduler. Entries exist only while an owner has a run in flight.
suggestion_scheduler = SuggestionScheduler()
