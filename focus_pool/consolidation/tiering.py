"""
Tier classification (active / latent / fading).
"""

import logging

from focus_pool.config import TierConfig
from focus_pool.models.item import PoolItem, Tier


logger = logging.getLogger(__name__)


def rank_key(item: PoolItem) -> tuple:
    """Sort key: score descending, then most recently updated, then id."""
    return (-item.composite_score, -item.last_updated.timestamp(), item.id)


def _take(group: list[PoolItem], count: int) -> tuple[list[PoolItem], list[PoolItem]]:
    count = max(0, count)
    return group[:count], group[count:]


class TierClassifier:
    """
    Assigns tiers from composite scores.

    1. Pinned items are always active and sit outside the competition.
    2. Items with a manual tier keep it while their tier has room: manual
       actives fill the active slots left by pinned items, manual latents
       fill up to ``max_latent``. The lowest-ranked extras compete normally.
    3. Remaining items are ranked by composite score. When at least as many
       of them compete as there are free active slots, the best fill those
       slots; otherwise every item scoring at least ``active_floor`` is
       active.
    4. The next items scoring at least ``latent_floor`` fill the free latent
       slots; the rest are fading.
    5. If fewer than ``min_active`` are active, the best latent items are
       promoted, then (when the pool holds at least ``min_active`` items)
       the best fading ones, then manual latents and manual fadings.
    """

    def __init__(self, config: TierConfig | None = None):
        self.config = config or TierConfig()

    def classify(self, items: list[PoolItem]) -> dict[str, Tier]:
        """Return the tier of every item (does not mutate the items)."""
        config = self.config
        pinned: list[PoolItem] = []
        preferred: dict[Tier, list[PoolItem]] = {
            Tier.ACTIVE: [],
            Tier.LATENT: [],
            Tier.FADING: [],
        }
        ranked: list[PoolItem] = []

        for item in items:
            if item.pinned:
                pinned.append(item)
            elif item.tier_override in preferred:
                preferred[item.tier_override].append(item)
            else:
                ranked.append(item)

        seats = {
            Tier.ACTIVE: max(0, config.max_active - len(pinned)),
            Tier.LATENT: config.max_latent,
            Tier.FADING: len(preferred[Tier.FADING]),
        }
        seated: dict[Tier, list[PoolItem]] = {}
        for tier, group in preferred.items():
            group.sort(key=rank_key)
            seated[tier] = group[: seats[tier]]
            if len(group) > seats[tier]:
                logger.debug(f"{len(group) - seats[tier]} manual {tier.value} items over the limit")
                ranked.extend(group[seats[tier]:])

        ranked.sort(key=rank_key)
        active_cap = max(0, seats[Tier.ACTIVE] - len(seated[Tier.ACTIVE]))
        latent_cap = max(0, config.max_latent - len(seated[Tier.LATENT]))

        if len(ranked) >= active_cap:
            active = ranked[:active_cap]
        else:
            active = [i for i in ranked if i.composite_score >= config.active_floor]
        active_ids = {i.id for i in active}

        latent: list[PoolItem] = []
        fading: list[PoolItem] = []
        for item in ranked:
            if item.id in active_ids:
                continue
            if len(latent) < latent_cap and item.composite_score >= config.latent_floor:
                latent.append(item)
            else:
                fading.append(item)

        manual_latent = seated[Tier.LATENT]
        manual_fading = seated[Tier.FADING]
        shortfall = config.min_active - (len(pinned) + len(seated[Tier.ACTIVE]) + len(active))
        promoted, latent = _take(latent, shortfall)
        active.extend(promoted)
        shortfall -= len(promoted)
        if len(items) >= config.min_active:
            # Manual preferences yield last
            promoted, fading = _take(fading, shortfall)
            active.extend(promoted)
            shortfall -= len(promoted)
            promoted, manual_latent = _take(manual_latent, shortfall)
            active.extend(promoted)
            shortfall -= len(promoted)
            promoted, manual_fading = _take(manual_fading, shortfall)
            active.extend(promoted)

        assignment: dict[str, Tier] = {}
        for item in pinned + seated[Tier.ACTIVE] + active:
            assignment[item.id] = Tier.ACTIVE
        for item in latent + manual_latent:
            assignment[item.id] = Tier.LATENT
        for item in fading + manual_fading:
            assignment[item.id] = Tier.FADING

        return assignment
