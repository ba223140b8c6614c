"""
Tests for the scored pool (merge, scoring, tiering, pruning, eviction).
"""

import json
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from focus_pool.api.hooks import HookEvent
from focus_pool.config import PoolConfig, PruneConfig, ScoringConfig, TickerConfig
from focus_pool.core.pool import ScoredPool
from focus_pool.core.strategy import CacheStrategy
from focus_pool.models.item import (
    CachePriority,
    CandidateItem,
    FocusType,
    ItemSource,
    Tier,
    make_item_id,
)


def _recency_only_config() -> PoolConfig:
    """Scoring driven by recency alone (w_r = 0.3, every other weight 0)."""
    return PoolConfig(
        scoring=ScoringConfig(
            recency_weight=0.3,
            repetition_weight=0.0,
            priority_weight=0.0,
            connectivity_weight=0.0,
            drift_weight=0.0,
        ),
        ticker=TickerConfig(enabled=False),
    )


class TestIngest:
    """Tests for merge-or-insert ingestion."""

    def test_insert_creates_item(self, pool, make_candidate, base_time):
        result = pool.ingest([make_candidate("Flutter性能优化", priority=0.8)], base_time)

        item_id = make_item_id("topic", "Flutter性能优化")
        assert len(pool) == 1
        assert result.added == [item_id]
        assert pool.get(item_id).canonical_label == "Flutter性能优化"

    def test_repeat_mention_merges(self, pool, make_candidate, base_time):
        """Ingesting the same label twice keeps one item with two mentions."""
        pool.ingest([make_candidate("Rust")], base_time)
        result = pool.ingest([make_candidate("rust")], base_time + timedelta(seconds=10))

        assert len(pool) == 1
        item = pool.find("Rust")
        assert item.mention_count == 2
        assert result.added == []
        assert result.updated == [item.id]
        assert item.last_updated == base_time + timedelta(seconds=10)

    def test_duplicate_within_one_call(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust"), make_candidate("Rust")], base_time)

        assert len(pool) == 1
        assert pool.find("Rust").mention_count == 2

    def test_alias_merge(self, pool, make_candidate, base_time):
        """张三 introduced with alias 小张 absorbs a later 小张 mention."""
        pool.ingest([make_candidate("张三", item_type="entity", aliases=["小张"])], base_time)
        pool.ingest([make_candidate("小张", item_type="entity")], base_time + timedelta(seconds=5))

        assert len(pool) == 1
        item = pool.find("张三", "entity")
        assert item.mention_count == 2
        assert "小张" in item.aliases

    def test_token_similarity_merge(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Flutter性能优化")], base_time)
        pool.ingest([make_candidate("Flutter性能优化方案")], base_time + timedelta(seconds=5))

        assert len(pool) == 1
        item = pool.find("Flutter性能优化")
        assert "Flutter性能优化方案" in item.aliases

    def test_types_scope_merging(self, pool, make_candidate, base_time):
        """The same label under two types yields two items."""
        pool.ingest(
            [make_candidate("Python", item_type="topic"), make_candidate("Python", item_type="entity")],
            base_time,
        )
        assert len(pool) == 2

    def test_blank_and_malformed_candidates_ignored(self, pool, make_candidate, base_time):
        result = pool.ingest(
            [
                make_candidate("   "),
                {"label": "missing type"},
                "not a candidate",
                {"item_type": "topic", "label": "Kotlin"},
            ],
            base_time,
        )

        assert len(pool) == 1
        assert result.added == [make_item_id("topic", "Kotlin")]

    def test_focus_variant_rejects_unknown_types(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("sunny", item_type="weather")], base_time)
        assert len(pool) == 0

    def test_empty_ingest_on_empty_pool(self, pool, base_time):
        result = pool.ingest([], base_time)

        assert not result.changed
        assert len(pool) == 0
        assert pool.snapshot()["total_count"] == 0

    def test_priority_blend(self, pool, make_candidate, base_time):
        """Merging blends priority 0.7 existing / 0.3 new; None keeps it."""
        pool.ingest([make_candidate("Rust", priority=0.8)], base_time)
        pool.ingest([make_candidate("Rust", priority=0.2)], base_time + timedelta(seconds=1))
        assert pool.find("Rust").priority == pytest.approx(0.62)

        pool.ingest([make_candidate("Rust")], base_time + timedelta(seconds=2))
        assert pool.find("Rust").priority == pytest.approx(0.62)

    def test_priority_clamped(self, pool, make_candidate, base_time):
        pool.ingest(
            [make_candidate("High", priority=5.0), make_candidate("Low", priority=-1.0)],
            base_time,
        )
        assert pool.find("High").priority == 1.0
        assert pool.find("Low").priority == 0.0

    def test_metadata_merged(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust", metadata={"a": 1})], base_time)
        pool.ingest([make_candidate("Rust", metadata={"b": 2})], base_time + timedelta(seconds=1))
        assert pool.find("Rust").metadata == {"a": 1, "b": 2}

    def test_mention_timestamps_bounded(self, pool, make_candidate, base_time):
        for i in range(120):
            pool.ingest([make_candidate("Rust")], base_time + timedelta(seconds=i))

        item = pool.find("Rust")
        assert item.mention_count == 120
        assert len(item.mention_timestamps) == 100
        assert item.mention_timestamps[-1] == base_time + timedelta(seconds=119)

    def test_cooccurring_items_linked(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Berlin", item_type="entity"), make_candidate("travel")], base_time)

        berlin = pool.find("Berlin", "entity")
        travel = pool.find("travel")
        assert berlin.linked_item_ids == {travel.id}
        assert travel.linked_item_ids == {berlin.id}

    def test_linked_labels_reference_existing_items(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Berlin", item_type="entity")], base_time)
        pool.ingest(
            [make_candidate("travel", linked_labels=["Berlin"])],
            base_time + timedelta(seconds=1),
        )

        travel = pool.find("travel")
        assert pool.find("Berlin", "entity").id in travel.linked_item_ids


class TestScoring:
    """Tests for scores assigned by passes."""

    def test_fresh_item_scores(self, pool, make_candidate, base_time):
        """A single item with priority 0.8 starts fully recent and active."""
        pool.ingest([make_candidate("Flutter性能优化", priority=0.8)], base_time)

        item = pool.find("Flutter性能优化")
        assert item.scores.recency == 1.0
        assert item.composite_score >= 0.15
        assert item.tier == Tier.ACTIVE

    def test_scores_decay_with_ticks(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust")], base_time)
        before = pool.find("Rust").scores.recency

        pool.tick(base_time + timedelta(minutes=30))

        assert pool.find("Rust").scores.recency < before

    def test_scores_stay_in_unit_interval(self, pool, make_candidate, base_time):
        for i in range(30):
            pool.ingest(
                [make_candidate(f"label{i % 7}", priority=i / 10), make_candidate("hub")],
                base_time + timedelta(seconds=i * 45),
            )
        for item in pool.get_all():
            for value in (item.scores.recency, item.scores.repetition, item.scores.connectivity,
                          item.scores.drift, item.composite_score):
                assert 0.0 <= value <= 1.0


class TestTrajectory:
    """Tests for transitions learned from the active leader."""

    @pytest.fixture
    def priority_pool(self):
        """Scoring split between recency and priority, no drift feedback."""
        return ScoredPool(
            PoolConfig(
                scoring=ScoringConfig(
                    recency_weight=0.5,
                    repetition_weight=0.0,
                    priority_weight=0.5,
                    connectivity_weight=0.0,
                    drift_weight=0.0,
                ),
                prune=PruneConfig(auto_prune=False),
                ticker=TickerConfig(enabled=False),
            )
        )

    def test_leader_change_records_edge(self, priority_pool, make_candidate, base_time):
        priority_pool.ingest([make_candidate("Rust", priority=1.0)], base_time)
        priority_pool.ingest([make_candidate("Go", priority=0.0)], base_time + timedelta(seconds=1))
        rust_id = make_item_id("topic", "Rust")
        go_id = make_item_id("topic", "Go")

        transitions = priority_pool.transitions
        assert transitions.strength(go_id, rust_id) == pytest.approx(
            priority_pool.get(rust_id).composite_score
        )
        assert transitions.last_item_id == rust_id

    def test_unchanged_leader_records_nothing(self, priority_pool, make_candidate, base_time):
        priority_pool.ingest([make_candidate("Rust", priority=1.0)], base_time)
        priority_pool.ingest([make_candidate("Go", priority=0.0)], base_time + timedelta(seconds=1))
        edges_before = priority_pool.transitions.get_stats()["edge_count"]

        priority_pool.tick(base_time + timedelta(seconds=30))
        priority_pool.tick(base_time + timedelta(seconds=60))

        stats = priority_pool.transitions.get_stats()
        assert stats["edge_count"] == edges_before
        assert stats["history_length"] == 2


class TestTiering:
    """Tests for active / latent / fading classification."""

    def test_fifteen_items_split_twelve_three(self, pool, make_candidate, base_time):
        for i in range(15):
            pool.ingest([make_candidate(f"subject{i}")], base_time + timedelta(seconds=i))

        assert len(pool.get_active()) == 12
        assert len(pool.get_latent()) == 3
        assert pool.get_fading() == []

    def test_min_active_promotes_low_scorers(self, make_candidate, base_time):
        """When every score has decayed, the best items are promoted to min_active."""
        config = PoolConfig(prune=PruneConfig(auto_prune=False), ticker=TickerConfig(enabled=False))
        pool = ScoredPool(config)
        for i in range(8):
            pool.ingest([make_candidate(f"subject{i}")], base_time + timedelta(seconds=i))

        pool.tick(base_time + timedelta(days=1))

        assert len(pool.get_active()) == config.tiers.min_active
        assert len(pool) == 8

    def test_fading_item_revived_by_mention(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust")], base_time)
        later = base_time + timedelta(days=1)

        pool.tick(later)
        assert pool.find("Rust").tier == Tier.FADING

        result = pool.ingest([make_candidate("Rust")], later)
        assert pool.find("Rust").tier == Tier.ACTIVE
        change = result.tier_changes[0]
        assert (change.previous, change.current) == (Tier.FADING, Tier.ACTIVE)

    def test_pinned_item_stays_active(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("anchor", priority=0.0, pinned=True)], base_time)

        pool.tick(base_time + timedelta(days=10))

        item = pool.find("anchor")
        assert item is not None
        assert item.tier == Tier.ACTIVE

    def test_tier_bounds_hold_across_random_sequences(self, pool_config, base_time):
        """Active stays within [min, max], latent within max, pinned never leaves active."""
        rng = random.Random(42)
        pool = ScoredPool(pool_config)
        tiers = pool_config.tiers
        labels = [f"label{i}" for i in range(30)]
        now = base_time

        for _ in range(150):
            now += timedelta(seconds=rng.randint(1, 900))
            if rng.random() < 0.7:
                batch = [
                    CandidateItem(
                        item_type=rng.choice(["topic", "entity", "event"]),
                        label=label,
                        priority=rng.random(),
                        pinned=(label == "label0"),
                    )
                    for label in rng.sample(labels, rng.randint(1, 3))
                ]
                pool.ingest(batch, now)
            else:
                pool.tick(now)

            if len(pool) and rng.random() < 0.3:
                target = rng.choice(pool.get_all())
                pool.set_item_tier(target.id, rng.choice([Tier.ACTIVE, Tier.LATENT, Tier.FADING]), now)

            items = pool.get_all()
            active = [i for i in items if i.tier == Tier.ACTIVE]
            latent = [i for i in items if i.tier == Tier.LATENT]
            if len(items) >= tiers.min_active:
                assert tiers.min_active <= len(active) <= tiers.max_active
            assert len(latent) <= tiers.max_latent
            assert all(i.tier == Tier.ACTIVE for i in items if i.pinned)
            assert all(i.tier != Tier.UNCLASSIFIED for i in items)


class TestPrune:
    """Tests for pruning stale fading items."""

    def test_stale_low_item_pruned(self, make_candidate, base_time):
        """At 3τ a recency-only score of 0.3·0.3167 ≈ 0.095 falls below 0.1."""
        pool = ScoredPool(_recency_only_config())
        pool.ingest([make_candidate("Rust")], base_time)
        item_id = make_item_id("topic", "Rust")
        later = base_time + timedelta(seconds=900)

        pool.rescore(later)
        pool.reclassify(later)
        assert pool.get(item_id).composite_score == pytest.approx(0.095, abs=1e-3)
        assert pool.get(item_id).tier == Tier.FADING

        result = pool.prune(later, staleness_window=600, min_score_floor=0.1)

        assert result.removed == [item_id]
        assert len(pool) == 0

    def test_not_pruned_within_staleness_window(self, make_candidate, base_time):
        pool = ScoredPool(_recency_only_config())
        pool.ingest([make_candidate("Rust")], base_time)
        later = base_time + timedelta(seconds=900)
        pool.rescore(later)
        pool.reclassify(later)

        result = pool.prune(later, staleness_window=timedelta(hours=1), min_score_floor=0.1)

        assert result.removed == []
        assert len(pool) == 1

    def test_not_pruned_above_floor(self, make_candidate, base_time):
        pool = ScoredPool(_recency_only_config())
        pool.ingest([make_candidate("Rust")], base_time)
        later = base_time + timedelta(seconds=900)
        pool.rescore(later)
        pool.reclassify(later)

        assert pool.prune(later, staleness_window=600, min_score_floor=0.05).removed == []

    def test_pinned_never_pruned(self, make_candidate, base_time):
        pool = ScoredPool(_recency_only_config())
        pool.ingest([make_candidate("Rust", pinned=True)], base_time)
        later = base_time + timedelta(days=30)
        pool.rescore(later)
        pool.reclassify(later)

        assert pool.prune(later, staleness_window=0, min_score_floor=1.0).removed == []
        assert len(pool) == 1


class TestEviction:
    """Tests for capacity-bounded eviction."""

    def test_cache_evicts_exactly_one_over_bound(self, cache_config, base_time):
        """With a non-pinned bound of 200, 185 + 16 entries evict one."""
        pool = ScoredPool(cache_config)
        pinned = [
            CandidateItem(
                item_type="preference",
                label=f"pinned{i}",
                priority=0.0,
                pinned=True,
                cache_priority=CachePriority.LOW,
            )
            for i in range(5)
        ]
        pool.ingest(pinned, base_time)

        first = [CandidateItem(item_type="fact", label=f"note-{i:03d}") for i in range(185)]
        result = pool.ingest(first, base_time + timedelta(seconds=1))
        assert result.removed == []

        second = [CandidateItem(item_type="fact", label=f"note-{i:03d}") for i in range(185, 201)]
        result = pool.ingest(second, base_time + timedelta(seconds=2))

        items = pool.get_all()
        assert len(result.removed) == 1
        assert sum(1 for i in items if not i.pinned) == 200
        assert sum(1 for i in items if i.pinned) == 5

    def test_evicts_lowest_weight_first(self, pool, make_candidate, base_time):
        pool.ingest(
            [make_candidate(f"subject{i}", priority=i / 10) for i in range(10)]
            + [make_candidate("anchor", pinned=True)],
            base_time,
        )
        unpinned = [i for i in pool.get_all() if not i.pinned]
        unpinned.sort(key=lambda i: (i.composite_score, i.last_updated.timestamp(), i.id))
        expected = {i.id for i in unpinned[:5]}

        result = pool.evict_if_over_capacity(capacity=6, reserved_pinned_slots=1, now=base_time)

        assert set(result.removed) == expected
        assert sum(1 for i in pool.get_all() if not i.pinned) == 5
        assert pool.find("anchor") is not None

    def test_pinned_never_evicted(self, pool, make_candidate, base_time):
        pool.ingest(
            [make_candidate(f"anchor{i}", pinned=True) for i in range(5)]
            + [make_candidate("loose1"), make_candidate("loose2")],
            base_time,
        )

        result = pool.evict_if_over_capacity(capacity=1, reserved_pinned_slots=0, now=base_time)

        assert len(result.removed) == 1
        assert sum(1 for i in pool.get_all() if i.pinned) == 5

    def test_cache_weight_uses_priority_enum(self, cache_config, make_item):
        strategy = CacheStrategy(cache_config)
        low = make_item("a", item_type="fact", cache_priority=CachePriority.LOW)
        critical = make_item("b", item_type="fact", cache_priority=CachePriority.CRITICAL)
        low.scores.composite = critical.scores.composite = 0.5

        assert strategy.eviction_weight(critical) > strategy.eviction_weight(low)

    def test_record_access_raises_cache_weight(self, cache_config, base_time):
        pool = ScoredPool(cache_config)
        pool.ingest([CandidateItem(item_type="fact", label="wifi password")], base_time)
        item_id = make_item_id("fact", "wifi password")
        before = pool.strategy.eviction_weight(pool.get(item_id))

        assert pool.record_access(item_id, base_time)
        assert pool.get(item_id).access_count == 1
        assert pool.strategy.eviction_weight(pool.get(item_id)) > before
        assert not pool.record_access("missing")


class TestOverrides:
    """Tests for manual overrides."""

    def test_set_item_score(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust")], base_time)
        item_id = make_item_id("topic", "Rust")

        result = pool.set_item_score(item_id, 0.95, reason="user focus", now=base_time)

        item = pool.get(item_id)
        assert result.updated == [item_id]
        assert item.composite_score == 0.95
        assert item.scores.override_reason == "user focus"
        assert pool.set_item_score("missing", 0.5) is None

    def test_score_override_survives_tick_and_clears_on_mention(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust")], base_time)
        item_id = make_item_id("topic", "Rust")
        pool.set_item_score(item_id, 0.05, now=base_time)

        pool.tick(base_time + timedelta(seconds=30))
        assert pool.get(item_id).composite_score == 0.05

        pool.ingest([make_candidate("Rust")], base_time + timedelta(seconds=60))
        assert pool.get(item_id).scores.override is None
        assert pool.get(item_id).composite_score != 0.05

    def test_score_override_promotes(self, pool, make_candidate, base_time):
        for i in range(15):
            pool.ingest([make_candidate(f"subject{i}")], base_time + timedelta(seconds=i))
        latent_id = pool.get_latent()[-1].id

        pool.set_item_score(latent_id, 1.0, now=base_time + timedelta(seconds=15))

        assert pool.get(latent_id).tier == Tier.ACTIVE
        assert len(pool.get_active()) == 12

    def test_set_item_tier(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust")], base_time)
        item_id = make_item_id("topic", "Rust")

        result = pool.set_item_tier(item_id, "latent", now=base_time)

        assert result is not None
        assert pool.get(item_id).tier == Tier.LATENT
        pool.tick(base_time + timedelta(seconds=10))
        assert pool.get(item_id).tier == Tier.LATENT

        pool.ingest([make_candidate("Rust")], base_time + timedelta(seconds=20))
        assert pool.get(item_id).tier_override is None
        assert pool.get(item_id).tier == Tier.ACTIVE

    def test_set_item_tier_rejections(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust"), make_candidate("anchor", pinned=True)], base_time)

        assert pool.set_item_tier(make_item_id("topic", "Rust"), "bogus") is None
        assert pool.set_item_tier(make_item_id("topic", "Rust"), Tier.UNCLASSIFIED) is None
        assert pool.set_item_tier("missing", Tier.ACTIVE) is None
        assert pool.set_item_tier(make_item_id("topic", "anchor"), Tier.FADING) is None

    def test_manual_latent_respects_max_latent(self, pool, make_candidate, base_time):
        for i in range(10):
            pool.ingest([make_candidate(f"subject{i}")], base_time + timedelta(seconds=i))
        later = base_time + timedelta(seconds=10)

        for item in pool.get_all():
            pool.set_item_tier(item.id, Tier.LATENT, later)

        tiers = pool.config.tiers
        assert len(pool.get_latent()) <= tiers.max_latent
        assert tiers.min_active <= len(pool.get_active()) <= tiers.max_active
        assert all(i.tier_override == Tier.LATENT for i in pool.get_all())

    def test_manual_active_respects_max_active(self, pool, make_candidate, base_time):
        for i in range(14):
            pool.ingest([make_candidate(f"subject{i}")], base_time + timedelta(seconds=i))
        later = base_time + timedelta(seconds=14)

        for item in pool.get_all():
            pool.set_item_tier(item.id, Tier.ACTIVE, later)

        assert len(pool.get_active()) == pool.config.tiers.max_active

    def test_manual_fading_promoted_to_reach_min_active(self, pool, make_candidate, base_time):
        for i in range(6):
            pool.ingest([make_candidate(f"subject{i}")], base_time + timedelta(seconds=i))
        item_id = make_item_id("topic", "subject0")

        pool.set_item_tier(item_id, Tier.FADING, base_time + timedelta(seconds=6))

        assert len(pool.get_active()) == pool.config.tiers.min_active
        assert pool.get(item_id).tier == Tier.ACTIVE
        assert pool.get(item_id).tier_override == Tier.FADING

    def test_manual_fading_kept_when_limits_allow(self, pool, make_candidate, base_time):
        for i in range(20):
            pool.ingest([make_candidate(f"subject{i}")], base_time + timedelta(seconds=i))
        item_id = pool.get_active()[0].id

        pool.set_item_tier(item_id, Tier.FADING, base_time + timedelta(seconds=20))

        assert pool.get(item_id).tier == Tier.FADING
        assert len(pool.get_active()) == pool.config.tiers.max_active

    def test_add_manual(self, pool, base_time):
        pool.add_manual("travel plans", importance=0.9, now=base_time)

        item = pool.find("travel plans")
        assert item.source == ItemSource.MANUAL
        assert item.priority == pytest.approx(0.9)

    def test_add_manual_is_idempotent(self, pool, base_time):
        pool.add_manual("travel plans", importance=0.9, now=base_time)
        result = pool.add_manual("travel plans", importance=0.9, now=base_time)

        assert len(pool) == 1
        assert pool.find("travel plans").mention_count == 1
        assert result.added == []

    def test_pin_and_unpin(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust")], base_time)
        item_id = make_item_id("topic", "Rust")

        pool.pin(item_id, base_time)
        assert pool.get(item_id).pinned

        pool.unpin(item_id, base_time)
        assert not pool.get(item_id).pinned
        assert pool.pin("missing") is None

    def test_remove(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust"), make_candidate("Go")], base_time)
        rust_id = make_item_id("topic", "Rust")

        result = pool.remove(rust_id, base_time)

        assert result.removed == [rust_id]
        assert pool.get(rust_id) is None
        assert rust_id not in pool.find("Go").linked_item_ids
        assert pool.remove(rust_id) is None

    def test_clear_all(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust"), make_candidate("Go")], base_time)

        result = pool.clear_all(base_time)

        assert len(result.removed) == 2
        assert len(pool) == 0
        assert pool.transitions.get_stats()["sequence_length"] == 0


class TestEvents:
    """Tests for change events dispatched after a pass."""

    def test_insert_emits_added_and_tier_change(self, pool, make_candidate, base_time):
        events = []
        pool.hooks.register_global(events.append)

        pool.ingest([make_candidate("Rust")], base_time)

        assert [e.event for e in events] == [HookEvent.ITEM_ADDED, HookEvent.TIER_CHANGED]
        tier_event = events[1]
        assert tier_event.previous_tier == Tier.UNCLASSIFIED
        assert tier_event.tier == Tier.ACTIVE
        assert all(e.item.id == e.item_id for e in events)
        assert len({e.event_id for e in events}) == 2

    def test_merge_emits_updated(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust")], base_time)
        events = []
        pool.hooks.register(HookEvent.ITEM_UPDATED, events.append)

        pool.ingest([make_candidate("Rust")], base_time + timedelta(seconds=5))

        assert len(events) == 1
        assert events[0].item.mention_count == 2

    def test_score_only_pass_emits_nothing(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust")], base_time)
        events = []
        pool.hooks.register_global(events.append)

        pool.tick(base_time + timedelta(seconds=5))

        assert events == []

    def test_prune_emits_removed_with_reason(self, make_candidate, base_time):
        pool = ScoredPool(_recency_only_config())
        pool.ingest([make_candidate("Rust")], base_time)
        later = base_time + timedelta(seconds=900)
        pool.rescore(later)
        pool.reclassify(later)
        events = []
        pool.hooks.register(HookEvent.ITEM_REMOVED, events.append)

        pool.prune(later, staleness_window=600, min_score_floor=0.1)

        assert len(events) == 1
        assert events[0].data == {"reason": "pruned"}
        assert events[0].item.canonical_label == "Rust"

    def test_hook_errors_do_not_break_ingest(self, pool, make_candidate, base_time):
        def broken(context):
            raise RuntimeError("boom")

        pool.hooks.register(HookEvent.ITEM_ADDED, broken)

        result = pool.ingest([make_candidate("Rust")], base_time)

        assert result.added
        assert len(pool) == 1


class TestQueries:
    """Tests for snapshot and read access."""

    def test_snapshot_contents(self, pool, make_candidate, base_time):
        pool.ingest(
            [make_candidate("Rust"), make_candidate("Berlin", item_type="entity")],
            base_time,
        )

        snapshot = pool.snapshot()

        assert snapshot["total_count"] == 2
        assert len(snapshot["active"]) == 2
        assert snapshot["type_distribution"] == {"topic": 1, "entity": 1}
        scores = [i.composite_score for i in pool.get_all()]
        assert snapshot["average_score"] == pytest.approx(sum(scores) / 2, abs=1e-4)
        json.dumps(snapshot)

    def test_get_top_is_ranked(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate(f"subject{i}", priority=i / 5) for i in range(5)], base_time)

        top = pool.get_top(3)

        assert len(top) == 3
        assert [i.composite_score for i in top] == sorted(
            (i.composite_score for i in top), reverse=True
        )

    def test_get_top_active_only(self, pool, make_candidate, base_time):
        for i in range(20):
            pool.ingest([make_candidate(f"subject{i}")], base_time + timedelta(seconds=i))

        assert len(pool.get_top(20)) == 20
        top_active = pool.get_top(20, active_only=True)
        assert len(top_active) == pool.config.tiers.max_active
        assert all(i.tier == Tier.ACTIVE for i in top_active)

    def test_get_by_type(self, pool, make_candidate, base_time):
        pool.ingest(
            [make_candidate("Rust"), make_candidate("Berlin", item_type="entity"),
             make_candidate("Alice", item_type="entity")],
            base_time,
        )

        entities = pool.get_by_type(FocusType.ENTITY)

        assert {i.canonical_label for i in entities} == {"Berlin", "Alice"}
        assert [i.canonical_label for i in pool.get_by_type("topic")] == ["Rust"]
        assert pool.get_by_type("event") == []

    def test_get_by_type_cache_category(self, cache_config, base_time):
        pool = ScoredPool(cache_config)
        pool.ingest(
            [CandidateItem(item_type="preference", label="metric units"),
             CandidateItem(item_type="schedule", label="standup at 9")],
            base_time,
        )

        assert [i.canonical_label for i in pool.get_by_type("preference")] == ["metric units"]

    def test_reads_are_copies(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust")], base_time)

        item = pool.find("Rust")
        item.priority = 0.0
        item.aliases.add("tampered")

        fresh = pool.find("Rust")
        assert fresh.priority == 0.5
        assert "tampered" not in fresh.aliases

    def test_statistics(self, pool, make_candidate, base_time):
        pool.ingest([make_candidate("Rust"), make_candidate("Go")], base_time)

        stats = pool.get_statistics()

        assert stats["variant"] == "focus"
        assert stats["total_items"] == 2
        assert stats["by_tier"]["active"] == 2
        assert stats["total_mentions"] == 2

    def test_concurrent_writers_and_readers(self, pool, base_time):
        """Readers always see a whole pass: tiers partition the published items."""
        stop = threading.Event()
        errors = []

        def writer(offset):
            for i in range(40):
                pool.ingest(
                    [CandidateItem(item_type="topic", label=f"w{offset}x{i % 15}")],
                    base_time + timedelta(seconds=i),
                )

        def reader():
            while not stop.is_set():
                view = pool.view
                tiers = [view.by_tier(t) for t in (Tier.ACTIVE, Tier.LATENT, Tier.FADING)]
                if sum(len(t) for t in tiers) != len(view.items):
                    errors.append(view.version)

        with ThreadPoolExecutor(max_workers=4) as executor:
            read_future = executor.submit(reader)
            writes = [executor.submit(writer, n) for n in range(3)]
            for future in writes:
                future.result()
            stop.set()
            read_future.result()

        assert errors == []
        assert len(pool) == 45
