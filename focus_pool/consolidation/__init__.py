"""
Consolidation module for pool maintenance.

Provides:
- Similarity matching (merge-vs-insert)
- Candidate merging and item linking
- Tier classification
- Pruning and capacity eviction
- Background decay ticker
"""

from focus_pool.consolidation.similarity import (
    MatchKind,
    SimilarityMatch,
    SimilarityMatcher,
    jaccard,
    tokenize,
)
from focus_pool.consolidation.merger import (
    ItemMerger,
    MergeResult,
)
from focus_pool.consolidation.tiering import TierClassifier, rank_key
from focus_pool.consolidation.pruner import Pruner, PruneResult
from focus_pool.consolidation.scheduler import DecayTicker, TickRunResult

__all__ = [
    # Similarity
    "MatchKind",
    "SimilarityMatch",
    "SimilarityMatcher",
    "jaccard",
    "tokenize",
    # Merger
    "ItemMerger",
    "MergeResult",
    # Tiering
    "TierClassifier",
    "rank_key",
    # Pruning
    "Pruner",
    "PruneResult",
    # Scheduler
    "DecayTicker",
    "TickRunResult",
]
