"""
Configuration management for the focus pool.

Provides centralized configuration for:
- Scoring weights and decay curve
- Similarity (merge) threshold
- Drift / transition model
- Tier sizes and floors
- Pruning and cache eviction
- Background decay ticker
- Candidate extraction providers
"""

import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class ScoringConfig(BaseModel):
    """Configuration for composite salience scoring."""

    # Component weights (intended to sum to 1.0)
    recency_weight: float = Field(
        default=0.25,
        description="Weight of the recency term (w_r)",
        ge=0.0,
        le=1.0,
    )
    repetition_weight: float = Field(
        default=0.20,
        description="Weight of the repetition term (w_p)",
        ge=0.0,
        le=1.0,
    )
    priority_weight: float = Field(
        default=0.15,
        description="Weight of the priority/emotion term (w_e)",
        ge=0.0,
        le=1.0,
    )
    connectivity_weight: float = Field(
        default=0.20,
        description="Weight of the connectivity term (w_c)",
        ge=0.0,
        le=1.0,
    )
    drift_weight: float = Field(
        default=0.20,
        description="Weight of the drift term (w_d)",
        ge=0.0,
        le=1.0,
    )

    # Recency curve: 1 / (1 + (dt / tau) ^ beta)
    tau_seconds: float = Field(
        default=300.0,
        description="Decay half-life of the recency curve in seconds",
        gt=0.0,
    )
    beta: float = Field(
        default=0.7,
        description="Tail slowness of the recency curve (smaller = heavier tail)",
        gt=0.0,
        le=1.0,
    )

    max_mentions: int = Field(
        default=20,
        description="Mention count at which the repetition term saturates",
        ge=1,
    )

    def weights_sum(self) -> float:
        """Sum of the five component weights (1.0 is the intended contract)."""
        return (
            self.recency_weight
            + self.repetition_weight
            + self.priority_weight
            + self.connectivity_weight
            + self.drift_weight
        )


class SimilarityConfig(BaseModel):
    """Configuration for merge-vs-insert decisions."""

    threshold: float = Field(
        default=0.7,
        description="Token-Jaccard threshold at or above which labels are merged",
        ge=0.0,
        le=1.0,
    )


class DriftConfig(BaseModel):
    """Configuration for the transition / drift model."""

    sequence_capacity: int = Field(
        default=20,
        description="Length of the recent-sequence buffer",
        ge=1,
    )
    history_capacity: int = Field(
        default=200,
        description="Number of transition records kept for diagnostics",
        ge=0,
    )
    momentum_window_seconds: float = Field(
        default=300.0,  # 5 minutes
        description="Window for counting recent mentions in drift momentum",
        gt=0.0,
    )
    momentum_saturation: int = Field(
        default=5,
        description="Recent mention count at which the momentum term saturates",
        ge=1,
    )
    in_degree_cap: int = Field(
        default=3,
        description="In-degree at which the in-degree term saturates",
        ge=1,
    )
    prediction_lookback: int = Field(
        default=5,
        description="Number of trailing sequence entries walked by predictions",
        ge=1,
    )
    prediction_blend: float = Field(
        default=0.5,
        description="Share of the emerging prediction in the drift score",
        ge=0.0,
        le=1.0,
    )
    min_transition_strength: float = Field(
        default=0.1,
        description="Lower bound of the strength recorded for one transition",
        ge=0.0,
        le=1.0,
    )


class TierConfig(BaseModel):
    """Configuration for active / latent tiering."""

    max_active: int = Field(default=12, description="Maximum active items", ge=1)
    min_active: int = Field(default=6, description="Minimum active items", ge=0)
    max_latent: int = Field(default=8, description="Maximum latent items", ge=0)
    active_floor: float = Field(
        default=0.3,
        description="Score floor for active when the pool holds fewer than max_active items",
        ge=0.0,
        le=1.0,
    )
    latent_floor: float = Field(
        default=0.2,
        description="Minimum score for the latent tier",
        ge=0.0,
        le=1.0,
    )


class PruneConfig(BaseModel):
    """Configuration for pruning stale fading items."""

    staleness_window_seconds: float = Field(
        default=7200.0,  # 2 hours
        description="Minimum time since last update before a fading item can be pruned",
        ge=0.0,
    )
    min_score_floor: float = Field(
        default=0.1,
        description="Fading items scoring below this floor are pruned once stale",
        ge=0.0,
        le=1.0,
    )
    auto_prune: bool = Field(
        default=True,
        description="Run a prune step at the end of every ingest/tick pass",
    )


class CacheConfig(BaseModel):
    """Configuration for the capacity-bounded cache variant."""

    capacity: int = Field(default=200, description="Total cache capacity", ge=1)
    reserved_pinned_slots: int = Field(
        default=20,
        description="Slots reserved for pinned items",
        ge=0,
    )
    priority_factors: dict[str, float] = Field(
        default={
            "low": 0.25,
            "medium": 0.5,
            "high": 0.75,
            "critical": 1.0,
        },
        description="Eviction weight factor per cache priority",
    )
    access_weight: float = Field(
        default=0.2,
        description="Weight of manual access count in the eviction weight",
        ge=0.0,
        le=1.0,
    )

    @property
    def non_pinned_bound(self) -> int:
        """Maximum number of non-pinned items the cache may hold."""
        return max(0, self.capacity - self.reserved_pinned_slots)


class TickerConfig(BaseModel):
    """Configuration for the background decay ticker."""

    enabled: bool = Field(default=True, description="Start the ticker with the system")
    interval_seconds: float = Field(
        default=60.0,  # 1 minute
        description="Interval between decay ticks",
        gt=0.0,
    )


class ExtractionConfig(BaseModel):
    """Configuration for candidate extraction (LLM with keyword fallback)."""

    provider: Literal["ollama", "openai", "anthropic", "none"] = Field(
        default="ollama",
        description="LLM provider for extraction, or 'none' for keyword-only",
    )
    model: str = Field(
        default="llama3.2",
        description="Model for extraction (e.g., llama3.2 for Ollama)",
    )
    temperature: float = Field(
        default=0.1,
        description="Temperature for LLM responses",
        ge=0.0,
        le=2.0,
    )
    max_tokens: int = Field(
        default=400,
        description="Maximum tokens for LLM responses",
    )
    timeout_seconds: float = Field(
        default=15.0,
        description="Time allowed for the LLM before falling back to keywords",
        gt=0.0,
    )
    max_candidates: int = Field(
        default=5,
        description="Maximum candidates taken from one LLM response",
        ge=1,
    )
    min_text_length: int = Field(
        default=2,
        description="Texts shorter than this are not sent to the LLM",
        ge=0,
    )

    # Ollama-specific settings
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )


class PoolConfig(BaseModel):
    """Master configuration for the focus pool."""

    # Sub-configurations
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    similarity: SimilarityConfig = Field(default_factory=SimilarityConfig)
    drift: DriftConfig = Field(default_factory=DriftConfig)
    tiers: TierConfig = Field(default_factory=TierConfig)
    prune: PruneConfig = Field(default_factory=PruneConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    ticker: TickerConfig = Field(default_factory=TickerConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)

    # Global settings
    variant: Literal["focus", "cache"] = Field(
        default="focus",
        description="Pool variant (focus state machine or bounded cache)",
    )
    link_cooccurring: bool = Field(
        default=True,
        description="Link items that arrive in the same ingest call",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    @classmethod
    def for_cache(cls, **overrides) -> "PoolConfig":
        """Preset for the capacity-bounded conversation cache."""
        config = cls(
            variant="cache",
            prune=PruneConfig(min_score_floor=0.3),
            ticker=TickerConfig(interval_seconds=300.0),
        )
        return config.model_copy(update=overrides)

    def apply_logging(self) -> None:
        """Raise the package logger to DEBUG when debug is enabled."""
        if self.debug:
            logging.getLogger("focus_pool").setLevel(logging.DEBUG)

    @classmethod
    def from_file(cls, path: Path) -> "PoolConfig":
        """Load configuration from a JSON file."""
        import json

        if path.suffix == ".json":
            with open(path) as f:
                data = json.load(f)
            return cls.model_validate(data)
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")

    def to_file(self, path: Path) -> None:
        """Save configuration to a JSON file."""
        import json

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2, default=str)
