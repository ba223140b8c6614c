"""
Scored pool: the core orchestrator.

Owns the set of items and runs every mutation as one atomic pass:
merge/insert, rescoring, eviction (cache variant), tier classification
and pruning. After each pass an immutable view is published, so readers
never observe a pass in progress, and change events are dispatched.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from pydantic import ValidationError
from ulid import ULID

from focus_pool.api.hooks import HookContext, HookEvent, HookRegistry
from focus_pool.config import PoolConfig
from focus_pool.consolidation.merger import ItemMerger
from focus_pool.consolidation.pruner import Pruner
from focus_pool.consolidation.similarity import SimilarityMatcher
from focus_pool.consolidation.tiering import TierClassifier, rank_key
from focus_pool.core.strategy import PoolStrategy, create_strategy
from focus_pool.decay.functions import ScoreCalculator
from focus_pool.drift.transition import TransitionModel
from focus_pool.models.item import (
    CachePriority,
    CandidateItem,
    FocusType,
    ItemSource,
    PoolItem,
    Tier,
    clamp_unit,
)


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PoolView:
    """Immutable published state of the pool, ordered by rank."""

    items: tuple[PoolItem, ...] = ()
    version: int = 0
    published_at: datetime | None = None
    drift_stats: dict = field(default_factory=dict)

    def by_tier(self, tier: Tier) -> list[PoolItem]:
        return [item for item in self.items if item.tier == tier]

    def get(self, item_id: str) -> PoolItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


@dataclass
class TierChange:
    """One item moving between tiers during a pass."""

    item_id: str
    previous: Tier
    current: Tier


@dataclass
class PassResult:
    """Outcome of one atomic pool pass."""

    operation: str
    started_at: datetime
    pass_id: str = field(default_factory=lambda: str(ULID()))
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    tier_changes: list[TierChange] = field(default_factory=list)
    events: list[HookContext] = field(default_factory=list)
    version: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed or self.tier_changes)


class _PassState:
    """Bookkeeping of a pass in progress."""

    def __init__(self, operation: str, now: datetime, tiers_before: dict[str, Tier]):
        self.now = now
        self.result = PassResult(operation=operation, started_at=now)
        self.tiers_before = tiers_before
        self.removed_items: dict[str, tuple[PoolItem, str]] = {}

    def mark_added(self, item_id: str) -> None:
        if item_id not in self.result.added:
            self.result.added.append(item_id)

    def mark_updated(self, item_id: str) -> None:
        if item_id not in self.result.added and item_id not in self.result.updated:
            self.result.updated.append(item_id)

    def mark_removed(self, item: PoolItem, reason: str) -> None:
        self.removed_items[item.id] = (item.model_copy(deep=True), reason)
        self.result.removed.append(item.id)


class ScoredPool:
    """
    Bounded, decay-scored pool of conversational focus items.

    One generic pool serves both variants; a PoolStrategy supplies what
    differs (accepted item types, eviction weight, capacity bound).

    Every mutating call holds a re-entrant lock for its whole pass and
    returns a PassResult. Reads go against the last published PoolView.

    Usage:
        pool = ScoredPool(PoolConfig())
        pool.ingest([CandidateItem(item_type="topic", label="Flutter性能优化", priority=0.8)])
        print(pool.snapshot())
    """

    def __init__(
        self,
        config: PoolConfig | None = None,
        hooks: HookRegistry | None = None,
        strategy: PoolStrategy | None = None,
        dispatch_events: bool = True,
    ):
        self.config = config or PoolConfig()
        self.config.apply_logging()

        self.hooks = hooks or HookRegistry()
        self.strategy = strategy or create_strategy(self.config)

        # Components
        self.calculator = ScoreCalculator(self.config.scoring)
        self.matcher = SimilarityMatcher(self.config.similarity.threshold)
        self.transitions = TransitionModel(self.config.drift)
        self.merger = ItemMerger()
        self.classifier = TierClassifier(self.config.tiers)
        self.pruner = Pruner()

        # State
        self._items: dict[str, PoolItem] = {}
        self._lock = threading.RLock()
        self._version = 0
        self._view = PoolView()
        self._dispatch_events = dispatch_events

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def ingest(
        self,
        candidates: Iterable[CandidateItem | dict] | None,
        now: datetime | None = None,
    ) -> PassResult:
        """
        Merge or insert candidates, then run a scoring pass.

        Blank or malformed candidates are skipped. An empty list still
        runs the pass (equivalent to a tick).
        """
        now = now or _utcnow()
        with self._lock:
            state = self._begin("ingest", now)
            touched: list[str] = []

            for candidate in candidates or []:
                item = self._absorb(candidate, now, state)
                if item is not None and item.id not in touched:
                    touched.append(item.id)

            if self.config.link_cooccurring:
                self._link_all(touched)

            self._run_pass(state, now)
            result = self._finish(state)

        if result.added or result.updated:
            logger.info(
                f"Ingest: +{len(result.added)} ~{len(result.updated)} "
                f"-{len(result.removed)} (pool={len(self._items)})"
            )
        self._dispatch(result)
        return result

    def tick(self, now: datetime | None = None) -> PassResult:
        """Run a scoring pass with no new input (pure decay)."""
        now = now or _utcnow()
        with self._lock:
            state = self._begin("tick", now)
            self._run_pass(state, now)
            result = self._finish(state)

        self._dispatch(result)
        return result

    def rescore(self, now: datetime | None = None) -> PassResult:
        """Recompute every item's derived scores without reclassifying."""
        now = now or _utcnow()
        with self._lock:
            state = self._begin("rescore", now)
            self._rescore(now)
            result = self._finish(state)

        self._dispatch(result)
        return result

    def reclassify(self, now: datetime | None = None) -> PassResult:
        """Reassign tiers from the current scores."""
        now = now or _utcnow()
        with self._lock:
            state = self._begin("reclassify", now)
            self._reclassify()
            result = self._finish(state)

        self._dispatch(result)
        return result

    def prune(
        self,
        now: datetime | None = None,
        staleness_window: float | timedelta | None = None,
        min_score_floor: float | None = None,
    ) -> PassResult:
        """
        Remove fading, non-pinned items that are stale and below the floor.

        Args:
            now: Evaluation time
            staleness_window: Seconds (or timedelta) since last update
            min_score_floor: Composite score floor
        """
        now = now or _utcnow()
        if staleness_window is None:
            staleness_window = self.config.prune.staleness_window_seconds
        if isinstance(staleness_window, timedelta):
            staleness_window = staleness_window.total_seconds()
        if min_score_floor is None:
            min_score_floor = self.config.prune.min_score_floor

        with self._lock:
            state = self._begin("prune", now)
            self._prune(now, staleness_window, min_score_floor, state)
            result = self._finish(state)

        self._dispatch(result)
        return result

    def evict_if_over_capacity(
        self,
        capacity: int | None = None,
        reserved_pinned_slots: int | None = None,
        now: datetime | None = None,
    ) -> PassResult:
        """Evict the lowest-weight non-pinned items beyond capacity - reserved."""
        now = now or _utcnow()
        if capacity is None:
            capacity = self.config.cache.capacity
        if reserved_pinned_slots is None:
            reserved_pinned_slots = self.config.cache.reserved_pinned_slots

        with self._lock:
            state = self._begin("evict", now)
            self._evict(capacity, reserved_pinned_slots, state)
            result = self._finish(state)

        self._dispatch(result)
        return result

    # ------------------------------------------------------------------
    # Manual overrides
    # ------------------------------------------------------------------

    def set_item_score(
        self,
        item_id: str,
        value: float,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> PassResult | None:
        """
        Override an item's composite score until its next fresh mention.

        Returns None if the item does not exist.
        """
        now = now or _utcnow()
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                logger.debug(f"set_item_score: unknown item {item_id}")
                return None

            state = self._begin("set_item_score", now)
            item.scores = item.scores.model_copy(
                update={"override": clamp_unit(value), "override_reason": reason}
            )
            state.mark_updated(item_id)
            self._reclassify()
            result = self._finish(state)

        self._dispatch(result)
        return result

    def set_item_tier(
        self,
        item_id: str,
        tier: Tier | str,
        now: datetime | None = None,
    ) -> PassResult | None:
        """
        Prefer a tier for an item until its next fresh mention.

        The preference holds only while the tier limits allow it: extra
        manual actives or latents compete by score, and manual latents or
        fadings are promoted when the pool is short of ``min_active``.

        Returns None for unknown items, unknown or unclassified tiers, and
        for demoting a pinned item.
        """
        try:
            tier = Tier(tier)
        except ValueError:
            logger.warning(f"set_item_tier: unknown tier {tier!r}")
            return None
        if tier == Tier.UNCLASSIFIED:
            logger.warning("set_item_tier: cannot assign the unclassified tier")
            return None

        now = now or _utcnow()
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                logger.debug(f"set_item_tier: unknown item {item_id}")
                return None
            if item.pinned and tier != Tier.ACTIVE:
                logger.warning(f"set_item_tier: {item_id} is pinned and stays active")
                return None

            state = self._begin("set_item_tier", now)
            item.tier_override = tier
            state.mark_updated(item_id)
            self._reclassify()
            result = self._finish(state)

        self._dispatch(result)
        return result

    def add_manual(
        self,
        label: str,
        importance: float = 0.8,
        item_type: FocusType | str = FocusType.TOPIC,
        pinned: bool = False,
        aliases: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
        cache_priority: CachePriority | None = None,
        now: datetime | None = None,
    ) -> PassResult:
        """
        Add an item by hand (or update the matching one) and run a pass.

        Unlike ingest, an existing match takes ``importance`` as its
        priority without recording another mention, so repeating the call
        leaves the pool unchanged.
        """
        now = now or _utcnow()
        candidate = CandidateItem(
            item_type=item_type,
            label=label,
            aliases=aliases or [],
            priority=importance,
            pinned=pinned,
            metadata=metadata or {},
            cache_priority=cache_priority,
            source=ItemSource.MANUAL,
        )

        with self._lock:
            state = self._begin("add_manual", now)
            if candidate.is_blank or not self.strategy.accepts(candidate):
                logger.debug(f"add_manual: ignored candidate {label!r} ({item_type})")
            else:
                match = self.matcher.find_best(candidate, self._items.values())
                if match is not None:
                    item = match.item
                    item.priority = candidate.priority
                    item.pinned = item.pinned or pinned
                    item.aliases.update(a for a in candidate.aliases if a != item.canonical_label)
                    item.metadata.update(candidate.metadata)
                    if cache_priority is not None:
                        item.cache_priority = cache_priority
                    state.mark_updated(item.id)
                else:
                    item = self.merger.create(candidate, now)
                    self._items[item.id] = item
                    self._record_sighting(item, now)
                    state.mark_added(item.id)

            self._run_pass(state, now)
            result = self._finish(state)

        self._dispatch(result)
        return result

    def pin(self, item_id: str, now: datetime | None = None) -> PassResult | None:
        """Protect an item from demotion, pruning and eviction."""
        return self._set_pinned(item_id, True, now)

    def unpin(self, item_id: str, now: datetime | None = None) -> PassResult | None:
        """Return a pinned item to the ranking competition."""
        return self._set_pinned(item_id, False, now)

    def remove(self, item_id: str, now: datetime | None = None) -> PassResult | None:
        """Remove a single item. Returns None if it does not exist."""
        now = now or _utcnow()
        with self._lock:
            if item_id not in self._items:
                return None
            state = self._begin("remove", now)
            self._remove(item_id, state, "manual")
            self._reclassify()
            result = self._finish(state)

        self._dispatch(result)
        return result

    def clear_all(self, now: datetime | None = None) -> PassResult:
        """Remove every item and forget all transitions."""
        now = now or _utcnow()
        with self._lock:
            state = self._begin("clear_all", now)
            for item_id in list(self._items):
                self._remove(item_id, state, "cleared")
            self.transitions.clear()
            result = self._finish(state)

        logger.info(f"Cleared {len(result.removed)} items")
        self._dispatch(result)
        return result

    def record_access(self, item_id: str, now: datetime | None = None) -> bool:
        """Count a manual access (raises the cache eviction weight)."""
        now = now or _utcnow()
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return False
            item.access_count += 1
            item.last_accessed_at = now
            self._publish(now)
        return True

    # ------------------------------------------------------------------
    # Queries (against the published view)
    # ------------------------------------------------------------------

    @property
    def view(self) -> PoolView:
        return self._view

    def __len__(self) -> int:
        return len(self._view.items)

    def get(self, item_id: str) -> PoolItem | None:
        item = self._view.get(item_id)
        return item.model_copy(deep=True) if item else None

    def find(self, label: str, item_type: FocusType | str | None = None) -> PoolItem | None:
        """Find an item by canonical label or alias."""
        if isinstance(item_type, FocusType):
            item_type = item_type.value
        for item in self._view.items:
            if item_type is not None and item.item_type != item_type:
                continue
            if item.matches_label(label):
                return item.model_copy(deep=True)
        return None

    def get_top(self, n: int = 5, active_only: bool = False) -> list[PoolItem]:
        """
        Highest-ranked items.

        Ranks across every tier by default; ``active_only`` restricts the
        result to active items, pinned ones included.
        """
        items = self._view.by_tier(Tier.ACTIVE) if active_only else self._view.items
        return [item.model_copy(deep=True) for item in items[: max(0, n)]]

    def get_by_type(self, item_type: FocusType | str) -> list[PoolItem]:
        """Items of one type (a cache category in the cache variant), in rank order."""
        if isinstance(item_type, FocusType):
            item_type = item_type.value
        return [
            item.model_copy(deep=True) for item in self._view.items if item.item_type == item_type
        ]

    def get_active(self) -> list[PoolItem]:
        return [item.model_copy(deep=True) for item in self._view.by_tier(Tier.ACTIVE)]

    def get_latent(self) -> list[PoolItem]:
        return [item.model_copy(deep=True) for item in self._view.by_tier(Tier.LATENT)]

    def get_fading(self) -> list[PoolItem]:
        return [item.model_copy(deep=True) for item in self._view.by_tier(Tier.FADING)]

    def get_all(self) -> list[PoolItem]:
        return [item.model_copy(deep=True) for item in self._view.items]

    def snapshot(self) -> dict[str, Any]:
        """
        Serializable diagnostic snapshot.

        Returns dict with:
        - active / latent: Item summaries in rank order
        - total_count: Items in the pool
        - type_distribution: Item types among active items
        - average_score: Mean composite score over all items
        """
        view = self._view
        active = view.by_tier(Tier.ACTIVE)
        latent = view.by_tier(Tier.LATENT)
        scores = [item.composite_score for item in view.items]

        return {
            "active": [item.to_summary() for item in active],
            "latent": [item.to_summary() for item in latent],
            "total_count": len(view.items),
            "type_distribution": dict(Counter(item.item_type for item in active)),
            "average_score": round(sum(scores) / len(scores), 4) if scores else 0.0,
            "fading_count": len(view.by_tier(Tier.FADING)),
            "pinned_count": sum(1 for item in view.items if item.pinned),
            "drift": view.drift_stats,
            "version": view.version,
            "generated_at": view.published_at.isoformat() if view.published_at else None,
        }

    def get_statistics(self) -> dict[str, Any]:
        """Get pool statistics."""
        view = self._view
        return {
            "variant": self.strategy.name,
            "total_items": len(view.items),
            "by_tier": {
                tier.value: sum(1 for item in view.items if item.tier == tier)
                for tier in Tier
            },
            "by_type": dict(Counter(item.item_type for item in view.items)),
            "pinned": sum(1 for item in view.items if item.pinned),
            "total_mentions": sum(item.mention_count for item in view.items),
            "average_score": (
                round(sum(i.composite_score for i in view.items) / len(view.items), 4)
                if view.items
                else 0.0
            ),
            "version": view.version,
            "drift": view.drift_stats,
        }

    # ------------------------------------------------------------------
    # Pass internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _begin(self, operation: str, now: datetime) -> _PassState:
        return _PassState(
            operation,
            now,
            {item_id: item.tier for item_id, item in self._items.items()},
        )

    def _absorb(
        self,
        candidate: CandidateItem | dict,
        now: datetime,
        state: _PassState,
    ) -> PoolItem | None:
        """Merge or insert one candidate; returns the affected item."""
        if isinstance(candidate, dict):
            try:
                candidate = CandidateItem.model_validate(candidate)
            except ValidationError as e:
                logger.debug(f"Ignoring malformed candidate: {e.error_count()} errors")
                return None
        if not isinstance(candidate, CandidateItem):
            logger.debug(f"Ignoring candidate of type {type(candidate).__name__}")
            return None
        if candidate.is_blank or not self.strategy.accepts(candidate):
            logger.debug(f"Ignoring candidate {candidate.label!r} ({candidate.item_type})")
            return None

        match = self.matcher.find_best(candidate, self._items.values())
        if match is not None:
            item = match.item
            self.merger.merge(item, candidate, now)
            state.mark_updated(item.id)
        else:
            item = self.merger.create(candidate, now)
            self._items[item.id] = item
            state.mark_added(item.id)

        self._record_sighting(item, now)

        for label in candidate.linked_labels:
            other = self._find_by_label(label)
            if other is not None:
                self.merger.link(item, other)

        return item

    def _record_sighting(self, item: PoolItem, now: datetime) -> None:
        strength = max(self.config.drift.min_transition_strength, item.priority)
        self.transitions.record_transition(self.transitions.last_item_id, item.id, strength, now)

    def _find_by_label(self, label: str) -> PoolItem | None:
        for item in self._items.values():
            if item.matches_label(label):
                return item
        return None

    def _link_all(self, item_ids: list[str]) -> None:
        for i, a_id in enumerate(item_ids):
            for b_id in item_ids[i + 1:]:
                self.merger.link(self._items[a_id], self._items[b_id])

    def _set_pinned(self, item_id: str, pinned: bool, now: datetime | None) -> PassResult | None:
        now = now or _utcnow()
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return None
            state = self._begin("pin" if pinned else "unpin", now)
            if item.pinned != pinned:
                item.pinned = pinned
                if pinned and item.tier_override not in (None, Tier.ACTIVE):
                    item.tier_override = None
                state.mark_updated(item_id)
            self._reclassify()
            result = self._finish(state)

        self._dispatch(result)
        return result

    def _run_pass(self, state: _PassState, now: datetime) -> None:
        """rescore -> evict (bounded variants) -> reclassify -> trajectory -> prune."""
        self._rescore(now)
        if self.strategy.capacity_bounded:
            self._evict(
                self.config.cache.capacity,
                self.config.cache.reserved_pinned_slots,
                state,
            )
        self._reclassify()
        self.transitions.update_trajectory(
            [item for item in self._items.values() if item.tier == Tier.ACTIVE],
            now,
        )
        if self.config.prune.auto_prune:
            self._prune(
                now,
                self.config.prune.staleness_window_seconds,
                self.config.prune.min_score_floor,
                state,
            )

    def _rescore(self, now: datetime) -> None:
        predictions = self.transitions.predict_emerging(self._items.keys())
        pool_size = len(self._items)

        for item in self._items.values():
            degree = sum(1 for other_id in item.linked_item_ids if other_id in self._items)
            drift = self.transitions.drift_score(item, now, predictions)
            breakdown = self.calculator.score(item, now, degree, pool_size, drift)
            item.scores = item.scores.model_copy(update=breakdown.model_dump())

    def _reclassify(self) -> None:
        assignment = self.classifier.classify(list(self._items.values()))
        for item_id, tier in assignment.items():
            item = self._items[item_id]
            if item.tier != tier:
                item.tier = tier

    def _evict(self, capacity: int, reserved_pinned_slots: int, state: _PassState) -> None:
        selection = self.pruner.select_evictions(
            list(self._items.values()),
            capacity - reserved_pinned_slots,
            self.strategy.eviction_weight,
        )
        for item_id in selection.removed_ids:
            self._remove(item_id, state, "evicted")

    def _prune(
        self,
        now: datetime,
        staleness_window: float,
        min_score_floor: float,
        state: _PassState,
    ) -> None:
        selection = self.pruner.select_stale(
            list(self._items.values()),
            now,
            staleness_window,
            min_score_floor,
        )
        for item_id in selection.removed_ids:
            self._remove(item_id, state, "pruned")
        if selection.removed_ids:
            logger.info(f"Pruned {selection.removed_count} stale items")

    def _remove(self, item_id: str, state: _PassState, reason: str) -> None:
        item = self._items.pop(item_id, None)
        if item is None:
            return
        for other_id in item.linked_item_ids:
            other = self._items.get(other_id)
            if other is not None:
                other.linked_item_ids.discard(item_id)
        self.transitions.forget(item_id)
        state.mark_removed(item, reason)
        logger.debug(f"Removed {item.canonical_label} ({reason})")

    def _finish(self, state: _PassState) -> PassResult:
        """Collect tier changes and events, then publish the new view."""
        result = state.result
        now = state.now
        source = result.operation

        def context(event: HookEvent, item: PoolItem, **kwargs) -> HookContext:
            return HookContext(
                event=event,
                timestamp=now,
                item=item,
                item_id=item.id,
                tier=item.tier,
                source=source,
                **kwargs,
            )

        events: list[HookContext] = []
        for item_id in result.added:
            if item_id in self._items:
                events.append(context(HookEvent.ITEM_ADDED, self._items[item_id].model_copy(deep=True)))
            else:
                events.append(context(HookEvent.ITEM_ADDED, state.removed_items[item_id][0]))

        for item_id in result.updated:
            if item_id in self._items:
                events.append(context(HookEvent.ITEM_UPDATED, self._items[item_id].model_copy(deep=True)))

        for item_id, item in self._items.items():
            previous = state.tiers_before.get(item_id, Tier.UNCLASSIFIED)
            if item.tier != previous:
                result.tier_changes.append(TierChange(item_id, previous, item.tier))
                events.append(
                    context(
                        HookEvent.TIER_CHANGED,
                        item.model_copy(deep=True),
                        previous_tier=previous,
                    )
                )

        for item_id, (item, reason) in state.removed_items.items():
            events.append(context(HookEvent.ITEM_REMOVED, item, data={"reason": reason}))

        result.events = events
        self._publish(now)
        result.version = self._version
        return result

    def _publish(self, now: datetime) -> None:
        ordered = sorted(self._items.values(), key=rank_key)
        self._version += 1
        self._view = PoolView(
            items=tuple(item.model_copy(deep=True) for item in ordered),
            version=self._version,
            published_at=now,
            drift_stats=self.transitions.get_stats(),
        )

    def _dispatch(self, result: PassResult) -> None:
        if not self._dispatch_events:
            return
        for context in result.events:
            self.hooks.trigger(context)
