"""
Pool item models and types.

Defines the unit managed by the pool (a focus point or a cache entry),
the candidates produced by extraction, and the derived score breakdown.
"""

import hashlib
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


MAX_MENTION_TIMESTAMPS = 100


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def clamp_unit(value: Any, default: float = 0.0) -> float:
    """Clamp a raw value into [0, 1]; NaN and non-numbers become the default."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(value):
        return default
    return max(0.0, min(1.0, value))


def normalize_label(label: str) -> str:
    """Case-fold a label and collapse internal whitespace."""
    return " ".join(label.casefold().split())


def make_item_id(item_type: str, label: str) -> str:
    """Derive a stable item id from (type, normalized label)."""
    digest = hashlib.sha1(f"{item_type}:{normalize_label(label)}".encode("utf-8"))
    return f"{item_type}_{digest.hexdigest()[:16]}"


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class Tier(str, Enum):
    """Classification bucket of a pool item."""

    UNCLASSIFIED = "unclassified"  # Inserted, not yet reclassified
    ACTIVE = "active"
    LATENT = "latent"  # Background
    FADING = "fading"  # Dormant, eligible for pruning


class FocusType(str, Enum):
    """Item kinds of the focus variant."""

    EVENT = "event"
    TOPIC = "topic"
    ENTITY = "entity"


class CachePriority(str, Enum):
    """Priority enum of the cache variant."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


CACHE_PRIORITY_ORDER = {
    CachePriority.LOW: 0,
    CachePriority.MEDIUM: 1,
    CachePriority.HIGH: 2,
    CachePriority.CRITICAL: 3,
}


class ItemSource(str, Enum):
    """Where a candidate came from."""

    LLM = "llm"
    KEYWORD = "keyword"  # Regex / keyword fallback
    MANUAL = "manual"  # add_manual override
    DIRECT = "direct"  # Handed to ingest by the caller


class ItemScores(BaseModel):
    """Derived scores, recomputed on every scoring pass."""

    recency: float = Field(default=1.0, description="1 / (1 + (dt/tau)^beta)")
    repetition: float = Field(default=0.0, description="Saturating mention count")
    connectivity: float = Field(default=0.0, description="Normalized link degree")
    drift: float = Field(default=0.0, description="Momentum blended with prediction")
    composite: float = Field(default=0.0, description="Weighted sum of the inputs")

    # Explicit override (set_item_score), cleared by the next fresh mention
    override: float | None = Field(default=None, description="Manual composite override")
    override_reason: str | None = Field(default=None, description="Why it was overridden")

    @field_validator("recency", "repetition", "connectivity", "drift", "composite", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> float:
        return clamp_unit(value)

    @field_validator("override", mode="before")
    @classmethod
    def _clamp_override(cls, value: Any) -> float | None:
        return None if value is None else clamp_unit(value)

    @property
    def effective(self) -> float:
        """Composite used for ranking (override wins when set)."""
        return self.override if self.override is not None else self.composite


class CandidateItem(BaseModel):
    """
    A candidate produced by extraction, before merge/insert.

    Blank labels are accepted here and ignored by the pool.
    """

    item_type: str = Field(description="Item kind (event/topic/entity or cache category)")
    label: str = Field(description="Human-readable label")
    aliases: list[str] = Field(default_factory=list)
    priority: float | None = Field(
        default=None,
        description="Priority or emotion in [0, 1]; None keeps the existing value on merge",
    )
    linked_labels: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    pinned: bool = False
    cache_priority: CachePriority | None = None
    source: ItemSource = ItemSource.DIRECT

    @field_validator("item_type", mode="before")
    @classmethod
    def _type_value(cls, value: Any) -> Any:
        return _enum_value(value)

    @field_validator("label", mode="before")
    @classmethod
    def _label_str(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("priority", mode="before")
    @classmethod
    def _clamp_priority(cls, value: Any) -> float | None:
        return None if value is None else clamp_unit(value, default=0.5)

    @property
    def is_blank(self) -> bool:
        return not self.label or not str(self.item_type).strip()


class PoolItem(BaseModel):
    """
    The unit managed by the pool.

    Unifies the focus point and the cache entry. Raw scoring inputs live
    directly on the item; derived scores are kept in ``scores``.
    """

    model_config = ConfigDict(validate_assignment=True)

    # Identity
    id: str = Field(frozen=True, description="Stable id derived from (type, label)")
    item_type: str = Field(description="Item kind, scopes merge candidates")
    canonical_label: str
    aliases: set[str] = Field(default_factory=set)

    # Temporal information
    created_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)
    mention_timestamps: list[datetime] = Field(default_factory=list)
    mention_count: int = Field(default=1, description="Monotonic mention counter (>= 1)")

    # Raw scoring inputs
    priority: float = Field(default=0.5, description="Priority or emotion in [0, 1]")
    linked_item_ids: set[str] = Field(default_factory=set)

    # Derived
    scores: ItemScores = Field(default_factory=ItemScores)

    # Classification
    tier: Tier = Tier.UNCLASSIFIED
    tier_override: Tier | None = Field(
        default=None,
        description="Manual tier (set_item_tier), cleared by the next fresh mention",
    )
    pinned: bool = False

    # Cache variant
    cache_priority: CachePriority = CachePriority.MEDIUM
    access_count: int = 0
    last_accessed_at: datetime | None = None

    source: ItemSource = ItemSource.DIRECT
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("item_type", mode="before")
    @classmethod
    def _type_value(cls, value: Any) -> Any:
        return _enum_value(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _clamp_priority(cls, value: Any) -> float:
        return clamp_unit(value, default=0.5)

    @field_validator("mention_count", "access_count", mode="before")
    @classmethod
    def _non_negative_count(cls, value: Any, info) -> int:
        floor = 1 if info.field_name == "mention_count" else 0
        try:
            return max(floor, int(value))
        except (TypeError, ValueError):
            return floor

    @computed_field
    @property
    def composite_score(self) -> float:
        """Ranking score (explicit override wins over the computed composite)."""
        return self.scores.effective

    @property
    def label(self) -> str:
        return self.canonical_label

    @classmethod
    def from_candidate(cls, candidate: CandidateItem, now: datetime) -> "PoolItem":
        """Create a fresh, unclassified item from a candidate."""
        aliases = {a.strip() for a in candidate.aliases if a and a.strip()}
        aliases.discard(candidate.label)
        return cls(
            id=make_item_id(candidate.item_type, candidate.label),
            item_type=candidate.item_type,
            canonical_label=candidate.label,
            aliases=aliases,
            created_at=now,
            last_updated=now,
            mention_timestamps=[now],
            mention_count=1,
            priority=0.5 if candidate.priority is None else candidate.priority,
            pinned=candidate.pinned,
            cache_priority=candidate.cache_priority or CachePriority.MEDIUM,
            source=candidate.source,
            metadata=dict(candidate.metadata),
        )

    def record_mention(self, now: datetime) -> None:
        """Record a fresh sighting of this item."""
        self.mention_timestamps.append(now)
        if len(self.mention_timestamps) > MAX_MENTION_TIMESTAMPS:
            del self.mention_timestamps[:-MAX_MENTION_TIMESTAMPS]
        self.mention_count += 1
        if now > self.last_updated:
            self.last_updated = now

    def matches_label(self, label: str) -> bool:
        """Whether a label equals the canonical label or one of the aliases."""
        target = normalize_label(label)
        if normalize_label(self.canonical_label) == target:
            return True
        return any(normalize_label(alias) == target for alias in self.aliases)

    def to_summary(self) -> dict[str, Any]:
        """JSON-shaped view for snapshots and diagnostics."""
        return self.model_dump(mode="json", exclude={"mention_timestamps"})
