"""
Pytest configuration and shared fixtures.
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from focus_pool.config import (
    CacheConfig,
    ExtractionConfig,
    PoolConfig,
    PruneConfig,
    TickerConfig,
)
from focus_pool.core.pool import ScoredPool
from focus_pool.models.item import CandidateItem, PoolItem


BASE_TIME = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def base_time() -> datetime:
    """A fixed, timezone-aware evaluation start time."""
    return BASE_TIME


@pytest.fixture
def temp_directory():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def pool_config() -> PoolConfig:
    """Focus-variant config with no LLM and no background ticker."""
    return PoolConfig(
        extraction=ExtractionConfig(provider="none"),
        ticker=TickerConfig(enabled=False),
    )


@pytest.fixture
def pool(pool_config) -> ScoredPool:
    """An empty focus pool."""
    return ScoredPool(pool_config)


@pytest.fixture
def cache_config() -> PoolConfig:
    """Cache-variant config whose non-pinned bound is 200."""
    return PoolConfig.for_cache(
        cache=CacheConfig(capacity=220, reserved_pinned_slots=20),
        prune=PruneConfig(auto_prune=False, min_score_floor=0.3),
        ticker=TickerConfig(enabled=False),
        extraction=ExtractionConfig(provider="none"),
        link_cooccurring=False,
    )


@pytest.fixture
def make_candidate():
    """Factory for candidate items (topic by default)."""
    def _make(label: str, item_type: str = "topic", **kwargs) -> CandidateItem:
        return CandidateItem(item_type=item_type, label=label, **kwargs)
    return _make


@pytest.fixture
def make_item(base_time):
    """Factory for standalone pool items."""
    def _make(label: str, item_type: str = "topic", now: datetime | None = None, **kwargs) -> PoolItem:
        candidate = CandidateItem(item_type=item_type, label=label, **kwargs)
        return PoolItem.from_candidate(candidate, now or base_time)
    return _make
