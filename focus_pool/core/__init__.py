"""
Core module: the scored pool and its variant strategies.
"""

from focus_pool.core.pool import PassResult, PoolView, ScoredPool, TierChange
from focus_pool.core.strategy import (
    CacheStrategy,
    FocusStrategy,
    PoolStrategy,
    create_strategy,
)

__all__ = [
    "PassResult",
    "PoolView",
    "ScoredPool",
    "TierChange",
    "CacheStrategy",
    "FocusStrategy",
    "PoolStrategy",
    "create_strategy",
]
