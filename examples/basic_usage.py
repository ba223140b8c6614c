"""
Basic usage example for Focus Pool.

This example demonstrates:
1. Ingesting candidates into the synchronous core
2. Decay and tier changes over time
3. The async system with keyword extraction and hooks
4. The capacity-bounded cache variant
"""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add parent to path for development
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from focus_pool import (
    CachePriority,
    CandidateItem,
    ConversationTurn,
    HookEvent,
    PoolConfig,
    PoolSystem,
    ScoredPool,
)
from focus_pool.config import ExtractionConfig, TickerConfig


def print_items(items):
    for item in items:
        print(
            f"  [{item.tier.value:>7}] {item.item_type:<6} {item.canonical_label:<20} "
            f"score={item.composite_score:.3f} mentions={item.mention_count}"
        )


def demo_core_pool():
    """Demonstrate the synchronous pool."""
    print("\n" + "="*60)
    print("CORE POOL DEMO")
    print("="*60)

    pool = ScoredPool()
    start = datetime.now(timezone.utc)

    pool.ingest(
        [
            CandidateItem(item_type="topic", label="Flutter性能优化", priority=0.8),
            CandidateItem(item_type="entity", label="张三", aliases=["小张"]),
            CandidateItem(item_type="event", label="code review"),
        ],
        now=start,
    )
    print("\nAfter first turn:")
    print_items(pool.get_all())

    # Alias match merges into the existing entity
    pool.ingest([CandidateItem(item_type="entity", label="小张")], now=start + timedelta(minutes=1))
    print("\nAfter mentioning 小张:")
    print_items(pool.get_all())

    # --- Decay ---
    print("\n--- Decay ---")
    result = pool.tick(now=start + timedelta(hours=1))
    print(f"Tier changes after an hour: {len(result.tier_changes)}")
    print_items(pool.get_all())

    # --- Overrides ---
    print("\n--- Overrides ---")
    review = pool.find("code review")
    pool.set_item_score(review.id, 0.95, reason="user asked to focus on it")
    pool.pin(review.id)
    print_items(pool.get_top(3))


async def demo_pool_system():
    """Demonstrate the async system."""
    print("\n" + "="*60)
    print("POOL SYSTEM DEMO")
    print("="*60)

    config = PoolConfig(
        extraction=ExtractionConfig(provider="none"),
        ticker=TickerConfig(enabled=False),
    )

    async with PoolSystem(config) as system:
        system.register_hook(
            HookEvent.ITEM_ADDED,
            lambda ctx: print(f"  + added {ctx.item.canonical_label}"),
        )

        await system.ingest_turn(
            ConversationTurn(text="我在准备去Berlin的项目", emotion="excited", intent="plan_trip")
        )
        await system.ingest_turn("Need to plan my workout schedule with Alice")

        print("\nActive items:")
        print_items(system.get_active())

        stats = system.get_statistics()
        print(f"\nTotal items: {stats['total_items']}")
        print(f"By tier: {stats['by_tier']}")


def demo_cache_variant():
    """Demonstrate the capacity-bounded cache variant."""
    print("\n" + "="*60)
    print("CACHE VARIANT DEMO")
    print("="*60)

    pool = ScoredPool(PoolConfig.for_cache())
    pool.add_manual(
        "user prefers metric units",
        importance=0.9,
        item_type="fact",
        pinned=True,
        cache_priority=CachePriority.CRITICAL,
    )
    for i in range(10):
        pool.ingest([CandidateItem(item_type="fact", label=f"fact {i}", priority=0.1 * i)])

    print(f"\nCapacity: {pool.config.cache.capacity}")
    print(f"Items held: {len(pool)}")
    print_items(pool.get_top(5))


async def main():
    demo_core_pool()
    await demo_pool_system()
    demo_cache_variant()


if __name__ == "__main__":
    asyncio.run(main())
