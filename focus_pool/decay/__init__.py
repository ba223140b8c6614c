"""
Decay module for salience scoring.

Provides:
- Recency, repetition and connectivity curves
- Composite weighting
- Cache eviction weight
"""

from focus_pool.decay.functions import (
    ScoreBreakdown,
    ScoreCalculator,
    cache_weight,
    clamp01,
    composite_score,
    connectivity_score,
    recency_score,
    repetition_score,
)

__all__ = [
    "ScoreBreakdown",
    "ScoreCalculator",
    "cache_weight",
    "clamp01",
    "composite_score",
    "connectivity_score",
    "recency_score",
    "repetition_score",
]
