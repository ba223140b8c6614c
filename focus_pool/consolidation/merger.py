"""
Merging candidates into pool items.

Handles:
- Creating a fresh item from an unmatched candidate
- Merging a re-mentioned candidate into its existing item
- Linking items that co-occur or reference each other
"""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from focus_pool.models.item import (
    CACHE_PRIORITY_ORDER,
    CandidateItem,
    PoolItem,
)


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class MergeResult(BaseModel):
    """Result of a merge operation."""

    item_id: str
    mention_count: int
    new_aliases: list[str] = Field(default_factory=list)
    priority_before: float
    priority_after: float
    overrides_cleared: bool = False
    merged_at: datetime = Field(default_factory=_utcnow)


class ItemMerger:
    """
    Folds candidates into pool items.

    A merge records a fresh mention, unions aliases, blends the priority
    exponentially (existing 0.7, new 0.3) and merges metadata.
    """

    def __init__(self, existing_weight: float = 0.7):
        self.existing_weight = existing_weight

    def create(self, candidate: CandidateItem, now: datetime) -> PoolItem:
        """Create an unclassified item from an unmatched candidate."""
        item = PoolItem.from_candidate(candidate, now)
        logger.debug(f"New item: {item.canonical_label} ({item.item_type})")
        return item

    def merge(self, item: PoolItem, candidate: CandidateItem, now: datetime) -> MergeResult:
        """Merge a candidate into an existing item in place."""
        priority_before = item.priority
        item.record_mention(now)

        new_aliases = []
        for alias in [candidate.label, *candidate.aliases]:
            alias = alias.strip() if alias else ""
            if alias and alias != item.canonical_label and alias not in item.aliases:
                item.aliases.add(alias)
                new_aliases.append(alias)

        if candidate.priority is not None:
            w = self.existing_weight
            item.priority = item.priority * w + candidate.priority * (1.0 - w)

        if candidate.metadata:
            item.metadata.update(candidate.metadata)

        if candidate.pinned:
            item.pinned = True
        if candidate.cache_priority is not None and (
            CACHE_PRIORITY_ORDER[candidate.cache_priority]
            > CACHE_PRIORITY_ORDER[item.cache_priority]
        ):
            item.cache_priority = candidate.cache_priority

        # A fresh mention releases manual overrides
        overrides_cleared = item.scores.override is not None or item.tier_override is not None
        if overrides_cleared:
            item.scores = item.scores.model_copy(update={"override": None, "override_reason": None})
            item.tier_override = None

        logger.debug(
            f"Merged into {item.canonical_label}: mentions={item.mention_count}, "
            f"priority={item.priority:.2f}"
        )
        return MergeResult(
            item_id=item.id,
            mention_count=item.mention_count,
            new_aliases=new_aliases,
            priority_before=priority_before,
            priority_after=item.priority,
            overrides_cleared=overrides_cleared,
            merged_at=now,
        )

    @staticmethod
    def link(a: PoolItem, b: PoolItem) -> bool:
        """Link two distinct items both ways. Returns True if anything changed."""
        if a.id == b.id:
            return False
        changed = b.id not in a.linked_item_ids or a.id not in b.linked_item_ids
        a.linked_item_ids.add(b.id)
        b.linked_item_ids.add(a.id)
        return changed
