"""
Transition model for focus drift.

Learns online which items tend to follow which:
- A weighted directed graph from -> {to: accumulated strength}
- A bounded FIFO of recently seen item ids
- A bounded history of recorded transitions (diagnostics)

Produces drift momentum per item and predictions of emerging items.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from focus_pool.config import DriftConfig
from focus_pool.consolidation.tiering import rank_key
from focus_pool.models.item import PoolItem, clamp_unit


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


@dataclass
class TransitionRecord:
    """One recorded transition."""

    from_id: str
    to_id: str
    strength: float
    timestamp: datetime = field(default_factory=_utcnow)


class TransitionModel:
    """
    Online transition graph between item ids.

    Usage:
        model = TransitionModel()
        model.record_transition(None, "topic_a", 0.8)
        model.record_transition("topic_a", "topic_b", 0.6)
        predictions = model.predict_emerging(["topic_b", "topic_c"])
    """

    def __init__(self, config: DriftConfig | None = None):
        self.config = config or DriftConfig()
        self._matrix: dict[str, dict[str, float]] = {}
        self._sequence: deque[str] = deque(maxlen=self.config.sequence_capacity)
        self._history: deque[TransitionRecord] = deque(maxlen=self.config.history_capacity)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_transition(
        self,
        from_id: str | None,
        to_id: str,
        strength: float = 1.0,
        timestamp: datetime | None = None,
    ) -> None:
        """
        Record that ``to_id`` was seen, optionally following ``from_id``.

        The id is always appended to the recent sequence. An edge is added
        only when ``from_id`` is given and differs from ``to_id``.
        """
        strength = 0.0 if math.isnan(strength) else max(0.0, float(strength))
        self._sequence.append(to_id)

        if from_id is None or from_id == to_id:
            return

        row = self._matrix.setdefault(from_id, {})
        row[to_id] = row.get(to_id, 0.0) + strength
        self._history.append(
            TransitionRecord(
                from_id=from_id,
                to_id=to_id,
                strength=strength,
                timestamp=timestamp or _utcnow(),
            )
        )
        logger.debug(f"Transition {from_id} -> {to_id} (+{strength:.2f})")

    def update_trajectory(
        self,
        active_items: Iterable[PoolItem],
        timestamp: datetime | None = None,
    ) -> bool:
        """
        Follow a shift of focus to the top-ranked active item.

        Records an edge from the last item in the sequence to the leader,
        weighted by the leader's score. Nothing is recorded when the
        sequence is empty or the leader is already the last item.
        """
        leader = min(active_items, key=rank_key, default=None)
        if leader is None or not self._sequence or self._sequence[-1] == leader.id:
            return False

        self.record_transition(self._sequence[-1], leader.id, leader.composite_score, timestamp)
        return True

    @property
    def recent_sequence(self) -> list[str]:
        return list(self._sequence)

    @property
    def last_item_id(self) -> str | None:
        return self._sequence[-1] if self._sequence else None

    def strength(self, from_id: str, to_id: str) -> float:
        return self._matrix.get(from_id, {}).get(to_id, 0.0)

    # ------------------------------------------------------------------
    # Momentum
    # ------------------------------------------------------------------

    def in_degree(self, item_id: str) -> int:
        """Number of distinct other items transitioning into ``item_id``."""
        return sum(
            1
            for from_id, row in self._matrix.items()
            if from_id != item_id and row.get(item_id, 0.0) > 0.0
        )

    def mention_recency_score(self, item: PoolItem, now: datetime) -> float:
        """Share of the saturation count mentioned within the momentum window."""
        window = self.config.momentum_window_seconds
        recent = sum(
            1
            for ts in item.mention_timestamps
            if 0.0 <= (now - ts).total_seconds() <= window
        )
        return min(1.0, recent / self.config.momentum_saturation)

    def in_degree_score(self, item_id: str) -> float:
        return min(1.0, self.in_degree(item_id) / self.config.in_degree_cap)

    def sequence_position_score(self, item_id: str) -> float:
        """Most recent position in the sequence, 1.0 for the newest entry."""
        if not self._sequence:
            return 0.0
        for index in range(len(self._sequence) - 1, -1, -1):
            if self._sequence[index] == item_id:
                return (index + 1) / len(self._sequence)
        return 0.0

    def drift_momentum(self, item: PoolItem, now: datetime | None = None) -> float:
        """
        How strongly an item is trending.

        Formula: M = 0.4·mention_recency + 0.3·in_degree + 0.3·sequence_position
        """
        now = now or _utcnow()
        return clamp_unit(
            0.4 * self.mention_recency_score(item, now)
            + 0.3 * self.in_degree_score(item.id)
            + 0.3 * self.sequence_position_score(item.id)
        )

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict_emerging(
        self,
        candidate_ids: Iterable[str] | None = None,
    ) -> dict[str, float]:
        """
        Predict which items are about to become relevant.

        Walks the outgoing transitions of the last few sequence entries
        (most recent first), accumulating strength × 1/(1 + distance from
        the end), then normalizes by the maximum so the top prediction is
        exactly 1.0. Items with no accumulated score are omitted.
        """
        allowed = set(candidate_ids) if candidate_ids is not None else None
        lookback = list(self._sequence)[-self.config.prediction_lookback:]

        scores: dict[str, float] = {}
        for distance, source_id in enumerate(reversed(lookback)):
            weight = 1.0 / (1.0 + distance)
            for target_id, strength in self._matrix.get(source_id, {}).items():
                if allowed is not None and target_id not in allowed:
                    continue
                scores[target_id] = scores.get(target_id, 0.0) + strength * weight

        scores = {k: v for k, v in scores.items() if v > 0.0}
        if not scores:
            return {}

        top = max(scores.values())
        return {k: min(1.0, v / top) for k, v in scores.items()}

    def drift_score(
        self,
        item: PoolItem,
        now: datetime,
        predictions: dict[str, float] | None = None,
    ) -> float:
        """Momentum, blended with the emerging prediction when there is one."""
        momentum = self.drift_momentum(item, now)
        predicted = (predictions or {}).get(item.id)
        if predicted is None:
            return momentum
        blend = self.config.prediction_blend
        return clamp_unit((1.0 - blend) * momentum + blend * predicted)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def forget(self, item_id: str) -> None:
        """Drop every trace of a removed item."""
        self._matrix.pop(item_id, None)
        for row in self._matrix.values():
            row.pop(item_id, None)
        self._matrix = {k: row for k, row in self._matrix.items() if row}

        kept = [i for i in self._sequence if i != item_id]
        self._sequence = deque(kept, maxlen=self.config.sequence_capacity)

        history = [r for r in self._history if item_id not in (r.from_id, r.to_id)]
        self._history = deque(history, maxlen=self.config.history_capacity)

    def clear(self) -> None:
        self._matrix.clear()
        self._sequence.clear()
        self._history.clear()

    def get_transition_history(self, limit: int = 20) -> list[TransitionRecord]:
        """Most recent transitions, oldest first."""
        if limit <= 0:
            return []
        return list(self._history)[-limit:]

    def get_stats(self) -> dict:
        """Diagnostic statistics of the transition graph."""
        edges = [
            (from_id, to_id, strength)
            for from_id, row in self._matrix.items()
            for to_id, strength in row.items()
        ]
        edges.sort(key=lambda edge: edge[2], reverse=True)
        return {
            "tracked_sources": len(self._matrix),
            "edge_count": len(edges),
            "total_strength": round(sum(edge[2] for edge in edges), 4),
            "sequence_length": len(self._sequence),
            "history_length": len(self._history),
            "top_transitions": [
                {"from": f, "to": t, "strength": round(s, 4)} for f, t, s in edges[:5]
            ],
        }
