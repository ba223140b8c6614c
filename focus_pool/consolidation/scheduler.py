"""
Decay ticker for background pool maintenance.

Periodically re-runs the scoring / tiering / pruning pass with no new
input, so silence is modeled as decay.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from focus_pool.config import TickerConfig


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class TickRunResult(BaseModel):
    """Result of a decay tick."""

    run_id: str
    started_at: datetime
    completed_at: datetime | None = None
    duration_seconds: float | None = None

    removed: int = 0
    tier_changes: int = 0

    # Errors
    errors: list[str] = Field(default_factory=list)

    # Status
    success: bool = True


class DecayTicker:
    """
    Background ticker for pool decay.

    The tick callable is the serialized entry point of the pool (for
    example ``PoolSystem.tick``), so ticks never interleave with ingestion.
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[Any]],
        config: TickerConfig | None = None,
    ):
        self.config = config or TickerConfig()
        self._tick = tick

        # State
        self._running = False
        self._task: asyncio.Task | None = None
        self._run_count = 0
        self._last_run: TickRunResult | None = None

    async def start(self) -> None:
        """Start the background ticker."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Decay ticker started (every {self.config.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background ticker."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Decay ticker stopped")

    async def _run_loop(self) -> None:
        """Main ticker loop."""
        while self._running:
            await asyncio.sleep(self.config.interval_seconds)
            try:
                await self.run_tick()
            except Exception as e:
                # Log error but continue
                logger.error(f"Decay tick error: {e}")

    async def run_tick(self) -> TickRunResult:
        """
        Run a single decay tick.

        This can be called manually or by the background loop.
        """
        self._run_count += 1
        started_at = _utcnow()
        result = TickRunResult(
            run_id=f"tick_{self._run_count}_{started_at.timestamp()}",
            started_at=started_at,
        )

        try:
            outcome = await self._tick()
            if outcome is not None:
                result.removed = len(getattr(outcome, "removed", []))
                result.tier_changes = len(getattr(outcome, "tier_changes", []))
        except Exception as e:
            result.success = False
            result.errors.append(str(e))
            logger.error(f"Decay tick {result.run_id} failed: {e}")

        result.completed_at = _utcnow()
        result.duration_seconds = (result.completed_at - started_at).total_seconds()

        self._last_run = result
        return result

    @property
    def is_running(self) -> bool:
        """Check if the ticker is running."""
        return self._running

    @property
    def run_count(self) -> int:
        return self._run_count

    @property
    def last_run(self) -> TickRunResult | None:
        """Get result of the last tick."""
        return self._last_run
