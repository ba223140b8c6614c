"""
Focus Pool - Bounded, decay-scored attention pool for conversational assistants

Maintains a small ranked working set of what currently matters in a
conversation (topics, entities, events, cached facts):
- Heavy-tailed recency decay with repetition, priority and connectivity
- Near-duplicate merging by exact, alias and token-Jaccard matching
- Online transition model predicting emerging items
- Active / latent / fading tiers with pinning and manual overrides
- Capacity-bounded cache variant with eviction
- LLM candidate extraction with keyword fallback

Quick Start (synchronous core):
    from focus_pool import ScoredPool, CandidateItem

    pool = ScoredPool()
    pool.ingest([CandidateItem(item_type="topic", label="Flutter性能优化", priority=0.8)])
    print(pool.snapshot())

Quick Start (async system):
    from focus_pool import PoolSystem, ConversationTurn

    async with PoolSystem() as system:
        await system.ingest_turn(ConversationTurn(text="Let's plan the Berlin trip"))
        print(system.get_active())
"""

from focus_pool.config import PoolConfig
from focus_pool.models import (
    CachePriority,
    CandidateItem,
    ConversationTurn,
    FocusType,
    ItemSource,
    PoolItem,
    Tier,
)

# The api package is imported before core: core.pool imports api.hooks
from focus_pool.api import HookContext, HookEvent, HookRegistry, PoolSystem
from focus_pool.core import PassResult, ScoredPool

__version__ = "0.1.0"

__all__ = [
    "PoolConfig",
    "CachePriority",
    "CandidateItem",
    "ConversationTurn",
    "FocusType",
    "ItemSource",
    "PoolItem",
    "Tier",
    "HookContext",
    "HookEvent",
    "HookRegistry",
    "PoolSystem",
    "PassResult",
    "ScoredPool",
]
