"""
Data models for the focus pool.

This module contains Pydantic models for:
- PoolItem: The unit managed by the pool (focus point / cache entry)
- CandidateItem: Extraction output, before merge/insert
- ItemScores: Derived score breakdown
- ConversationTurn: Input to candidate extraction
"""

from focus_pool.models.item import (
    CachePriority,
    CandidateItem,
    FocusType,
    ItemScores,
    ItemSource,
    PoolItem,
    Tier,
    clamp_unit,
    make_item_id,
    normalize_label,
)
from focus_pool.models.turn import ConversationTurn

__all__ = [
    # Enums
    "CachePriority",
    "FocusType",
    "ItemSource",
    "Tier",
    # Items
    "CandidateItem",
    "ItemScores",
    "PoolItem",
    "clamp_unit",
    "make_item_id",
    "normalize_label",
    # Turns
    "ConversationTurn",
]
