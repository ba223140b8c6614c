"""
Variant strategies for the scored pool.

The focus state machine and the conversation cache share the pool's
math; a strategy supplies what differs between them.
"""

from abc import ABC, abstractmethod

from focus_pool.config import PoolConfig
from focus_pool.decay.functions import cache_weight
from focus_pool.models.item import CandidateItem, FocusType, PoolItem


class PoolStrategy(ABC):
    """Variant-specific behavior of a ScoredPool."""

    name: str = "base"
    capacity_bounded: bool = False

    def __init__(self, config: PoolConfig):
        self.config = config

    @abstractmethod
    def accepts(self, candidate: CandidateItem) -> bool:
        """Whether a candidate's type is valid for this variant."""
        pass

    @abstractmethod
    def eviction_weight(self, item: PoolItem) -> float:
        """Weight used by evict_if_over_capacity (lowest goes first)."""
        pass


class FocusStrategy(PoolStrategy):
    """Focus state machine: typed items, ranked purely by composite score."""

    name = "focus"
    capacity_bounded = False

    _types = {t.value for t in FocusType}

    def accepts(self, candidate: CandidateItem) -> bool:
        return candidate.item_type in self._types

    def eviction_weight(self, item: PoolItem) -> float:
        return item.composite_score


class CacheStrategy(PoolStrategy):
    """Conversation cache: free-form categories, bounded capacity."""

    name = "cache"
    capacity_bounded = True

    def accepts(self, candidate: CandidateItem) -> bool:
        return bool(candidate.item_type.strip())

    def eviction_weight(self, item: PoolItem) -> float:
        cache = self.config.cache
        return cache_weight(
            item.composite_score,
            cache.priority_factors.get(item.cache_priority.value, 0.5),
            item.access_count,
            cache.access_weight,
            self.config.scoring.max_mentions,
        )


def create_strategy(config: PoolConfig) -> PoolStrategy:
    """
    Factory function to create the strategy for a configured variant.

    Raises:
        ValueError: If the variant is unknown.
    """
    strategies = {
        "focus": FocusStrategy,
        "cache": CacheStrategy,
    }

    strategy_class = strategies.get(config.variant)
    if strategy_class is None:
        raise ValueError(f"Unknown pool variant: {config.variant}")

    return strategy_class(config)
