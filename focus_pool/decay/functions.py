"""
Salience scoring functions.

Pure, stateless functions combining:
- Recency decay (heavy-tailed power curve)
- Repetition scaling (logarithmic saturation)
- Connectivity scaling (degree over sqrt of pool size)
- Composite weighting of all five inputs

Every input is clamped before use, so none of these functions raise for
negative, NaN or out-of-range values.
"""

import logging
import math
from datetime import datetime, timezone

from pydantic import BaseModel

from focus_pool.config import ScoringConfig
from focus_pool.models.item import PoolItem, clamp_unit


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def clamp01(value: float) -> float:
    """Clamp into [0, 1] (NaN becomes 0)."""
    return clamp_unit(value)


def _non_negative(value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value) or value < 0:
        return 0.0
    return value


def recency_score(
    delta_seconds: float,
    tau_seconds: float = 300.0,
    beta: float = 0.7,
) -> float:
    """
    Heavy-tailed recency decay.

    Formula: R(Δt) = 1 / (1 + (Δt/τ)^β)

    Where:
    - Δt = seconds since the item was last updated (negative treated as 0)
    - τ = decay half-life (R(τ) = 0.5)
    - β ∈ (0, 1] = tail slowness (smaller β gives a heavier tail)

    Strictly decreasing in Δt and exactly 1.0 at Δt = 0.
    """
    dt = _non_negative(delta_seconds)
    if math.isinf(dt):
        return 0.0
    tau = max(_non_negative(tau_seconds), 1e-9)
    beta = max(1e-6, min(1.0, _non_negative(beta)))
    return 1.0 / (1.0 + math.pow(dt / tau, beta))


def repetition_score(count: float, max_mentions: int = 20) -> float:
    """
    Logarithmic repetition scaling.

    Formula: P(n) = min(1, ln(1 + n) / ln(1 + max_mentions))

    Monotonic and saturating, so one extra mention matters more early
    than late.
    """
    n = _non_negative(count)
    if math.isinf(n):
        return 1.0
    m = max(1.0, _non_negative(max_mentions))
    return min(1.0, math.log1p(n) / math.log1p(m))


def connectivity_score(degree: float, pool_size: int) -> float:
    """
    Link-degree scaling.

    Formula: C(d, N) = min(1, d / sqrt(max(1, N)))

    Normalized by the pool size so connectivity cannot dominate as the
    pool grows.
    """
    d = _non_negative(degree)
    if math.isinf(d):
        return 1.0
    size = max(1.0, _non_negative(pool_size))
    return min(1.0, d / math.sqrt(size))


def composite_score(
    recency: float,
    repetition: float,
    priority: float,
    connectivity: float,
    drift: float,
    config: ScoringConfig | None = None,
) -> float:
    """
    Weighted composite salience.

    Formula: S = clamp01(w_r·R + w_p·P + w_e·E + w_c·C + w_d·D)

    The weights are intended to sum to 1 (see ScoringConfig.weights_sum).
    Components are clamped into [0, 1] first, so the result stays in
    [0, 1] for adversarial inputs.
    """
    config = config or ScoringConfig()
    total = (
        _non_negative(config.recency_weight) * clamp01(recency)
        + _non_negative(config.repetition_weight) * clamp01(repetition)
        + _non_negative(config.priority_weight) * clamp01(priority)
        + _non_negative(config.connectivity_weight) * clamp01(connectivity)
        + _non_negative(config.drift_weight) * clamp01(drift)
    )
    return clamp01(total)


def cache_weight(
    composite: float,
    priority_factor: float,
    access_count: int = 0,
    access_weight: float = 0.2,
    max_mentions: int = 20,
) -> float:
    """
    Eviction weight of a cache entry.

    Formula: W = clamp01(S·(0.5 + 0.5·F) + a·P(accesses))

    Where F is the priority-enum factor and P the repetition curve applied
    to the manual access count.
    """
    base = clamp01(composite) * (0.5 + 0.5 * clamp01(priority_factor))
    bonus = clamp01(access_weight) * repetition_score(access_count, max_mentions)
    return clamp01(base + bonus)


class ScoreBreakdown(BaseModel):
    """Result of scoring one item."""

    recency: float
    repetition: float
    connectivity: float
    drift: float
    composite: float


class ScoreCalculator:
    """
    Applies the scoring functions with a fixed configuration.

    Usage:
        calculator = ScoreCalculator(ScoringConfig())
        breakdown = calculator.score(item, now, degree=2, pool_size=10, drift=0.4)
    """

    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig()
        total = self.config.weights_sum()
        if abs(total - 1.0) > 1e-6:
            logger.warning(f"Scoring weights sum to {total:.3f}, expected 1.0")

    def recency(self, last_updated: datetime, now: datetime | None = None) -> float:
        now = now or _utcnow()
        delta = (now - last_updated).total_seconds()
        return recency_score(delta, self.config.tau_seconds, self.config.beta)

    def repetition(self, count: int) -> float:
        return repetition_score(count, self.config.max_mentions)

    def connectivity(self, degree: int, pool_size: int) -> float:
        return connectivity_score(degree, pool_size)

    def composite(
        self,
        recency: float,
        repetition: float,
        priority: float,
        connectivity: float,
        drift: float,
    ) -> float:
        return composite_score(recency, repetition, priority, connectivity, drift, self.config)

    def score(
        self,
        item: PoolItem,
        now: datetime,
        degree: int,
        pool_size: int,
        drift: float,
    ) -> ScoreBreakdown:
        """Compute every derived score of an item at ``now``."""
        recency = self.recency(item.last_updated, now)
        repetition = self.repetition(item.mention_count)
        connectivity = self.connectivity(degree, pool_size)
        drift = clamp01(drift)
        return ScoreBreakdown(
            recency=recency,
            repetition=repetition,
            connectivity=connectivity,
            drift=drift,
            composite=self.composite(recency, repetition, item.priority, connectivity, drift),
        )
