"""
Pruning of stale items and capacity-bounded eviction.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from pydantic import BaseModel, Field

from focus_pool.models.item import PoolItem, Tier


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class PruneResult(BaseModel):
    """Result of a prune or eviction selection."""

    removed_ids: list[str]
    total_checked: int
    reason: str
    selected_at: datetime = Field(default_factory=_utcnow)

    @property
    def removed_count(self) -> int:
        return len(self.removed_ids)


class Pruner:
    """
    Selects items to remove.

    Pruning removes fading, non-pinned items that are both stale and
    below the score floor. Eviction removes the lowest-weight non-pinned
    items until the non-pinned count is within bound.
    """

    def select_stale(
        self,
        items: list[PoolItem],
        now: datetime,
        staleness_window_seconds: float,
        min_score_floor: float,
    ) -> PruneResult:
        removed = [
            item.id
            for item in items
            if item.tier == Tier.FADING
            and not item.pinned
            and (now - item.last_updated).total_seconds() > staleness_window_seconds
            and item.composite_score < min_score_floor
        ]
        return PruneResult(
            removed_ids=removed,
            total_checked=len(items),
            reason="stale",
            selected_at=now,
        )

    def select_evictions(
        self,
        items: list[PoolItem],
        bound: int,
        weight: Callable[[PoolItem], float],
    ) -> PruneResult:
        unpinned = [item for item in items if not item.pinned]
        excess = len(unpinned) - max(0, bound)
        if excess <= 0:
            return PruneResult(removed_ids=[], total_checked=len(items), reason="capacity")

        # Lowest weight first; ties evict the least recently updated
        unpinned.sort(key=lambda i: (weight(i), i.last_updated.timestamp(), i.id))
        removed = [item.id for item in unpinned[:excess]]
        logger.info(f"Evicting {len(removed)} items over capacity (bound {bound})")
        return PruneResult(removed_ids=removed, total_checked=len(items), reason="capacity")
