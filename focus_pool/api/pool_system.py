"""
Pool System Orchestrator.

The main entry point for applications. Ties the scored pool, the
extractor, the decay ticker and the hook registry into one async
interface with a single writer.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable

from focus_pool.api.hooks import HookEvent, HookRegistry
from focus_pool.config import PoolConfig
from focus_pool.consolidation.scheduler import DecayTicker
from focus_pool.core.pool import PassResult, ScoredPool
from focus_pool.encoding.extractor import BaseExtractor, KeywordExtractor, create_extractor
from focus_pool.models.item import CachePriority, CandidateItem, FocusType, PoolItem, Tier
from focus_pool.models.turn import ConversationTurn


logger = logging.getLogger(__name__)


@dataclass
class _Command:
    """A queued mutation for the writer task."""

    operation: str
    apply: Callable[[], Any]
    future: asyncio.Future


class PoolSystem:
    """
    Async, single-writer front end of a ScoredPool.

    Ingestion, ticks and overrides are queued and applied strictly in
    order by one worker task; extraction runs before a command is queued.
    Reads go straight to the pool's published view.

    Hooks are dispatched by the worker after each pass; a hook must not
    await another mutation of the same system.

    Usage:
        system = PoolSystem(PoolConfig())
        await system.start()

        await system.ingest_turn(ConversationTurn(text="我在做Flutter性能优化", emotion="curious"))
        print(system.snapshot())

        await system.stop()
    """

    def __init__(
        self,
        config: PoolConfig | None = None,
        extractor: BaseExtractor | None = None,
        hooks: HookRegistry | None = None,
    ):
        self.config = config or PoolConfig()
        self.hooks = hooks or HookRegistry()
        self.pool = ScoredPool(self.config, hooks=self.hooks, dispatch_events=False)

        self._extractor = extractor
        self._fallback = KeywordExtractor()
        self._ticker: DecayTicker | None = None
        self._queue: asyncio.Queue[_Command] | None = None
        self._worker: asyncio.Task | None = None

        # State
        self._initialized = False
        self._running = False

    async def initialize(self) -> None:
        """Initialize the extractor and the writer task."""
        if self._initialized:
            return

        if self._extractor is None:
            self._extractor = create_extractor(self.config.extraction)

        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run_worker())
        self._ticker = DecayTicker(self.tick, self.config.ticker)

        self._initialized = True

    async def start(self) -> None:
        """Start background processes (the decay ticker, when enabled)."""
        if not self._initialized:
            await self.initialize()

        if self._running:
            return

        self._running = True
        if self.config.ticker.enabled and self._ticker:
            await self._ticker.start()

    async def stop(self) -> None:
        """Stop background processes, the writer task and the extractor."""
        self._running = False

        if self._ticker:
            await self._ticker.stop()

        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        # Fail commands that never reached the writer
        while self._queue is not None and not self._queue.empty():
            command = self._queue.get_nowait()
            if not command.future.done():
                command.future.cancel()

        if self._extractor:
            await self._extractor.close()

        self._initialized = False

    async def __aenter__(self) -> "PoolSystem":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Writer
    # ------------------------------------------------------------------

    async def _submit(self, operation: str, apply: Callable[[], Any]) -> Any:
        """Queue a mutation and wait for the writer to apply it."""
        if not self._initialized:
            await self.initialize()

        future = asyncio.get_running_loop().create_future()
        await self._queue.put(_Command(operation, apply, future))
        return await future

    async def _run_worker(self) -> None:
        """Apply queued commands one at a time."""
        while True:
            command = await self._queue.get()
            try:
                result = command.apply()
            except Exception as e:
                logger.error(f"Pool command {command.operation} failed: {e}")
                if not command.future.done():
                    command.future.set_exception(e)
            else:
                if not command.future.done():
                    command.future.set_result(result)
                if isinstance(result, PassResult):
                    for context in result.events:
                        await self.hooks.trigger_async(context)
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def extract(self, turn: ConversationTurn) -> list[CandidateItem]:
        """
        Extract candidates from a turn.

        Extractor errors fall back to keyword extraction. Cancelling the
        caller propagates and leaves the pool untouched.
        """
        if not self._initialized:
            await self.initialize()

        try:
            return await self._extractor.extract(turn)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Extractor failed ({e}), using keyword fallback")
            return await self._fallback.extract(turn)

    async def ingest_turn(
        self,
        turn: ConversationTurn | str,
        now: datetime | None = None,
    ) -> PassResult | None:
        """
        Extract candidates from a turn and ingest them.

        Returns None for blank turns with nothing known about them.
        """
        if isinstance(turn, str):
            turn = ConversationTurn(text=turn)
        if turn.is_blank and not turn.intent and not turn.entities:
            logger.debug("Ignoring blank turn")
            return None

        candidates = await self.extract(turn)
        return await self.ingest(candidates, now or turn.timestamp)

    async def ingest(
        self,
        candidates: Iterable[CandidateItem | dict],
        now: datetime | None = None,
    ) -> PassResult:
        """Ingest already-extracted candidates."""
        candidates = list(candidates)
        return await self._submit("ingest", lambda: self.pool.ingest(candidates, now))

    async def tick(self, now: datetime | None = None) -> PassResult:
        """Run a decay pass through the writer."""
        return await self._submit("tick", lambda: self.pool.tick(now))

    # ------------------------------------------------------------------
    # Manual overrides
    # ------------------------------------------------------------------

    async def set_item_score(
        self,
        item_id: str,
        value: float,
        reason: str | None = None,
    ) -> PassResult | None:
        return await self._submit(
            "set_item_score",
            lambda: self.pool.set_item_score(item_id, value, reason),
        )

    async def set_item_tier(self, item_id: str, tier: Tier | str) -> PassResult | None:
        return await self._submit("set_item_tier", lambda: self.pool.set_item_tier(item_id, tier))

    async def add_manual(
        self,
        label: str,
        importance: float = 0.8,
        item_type: FocusType | str = FocusType.TOPIC,
        pinned: bool = False,
        cache_priority: CachePriority | None = None,
        **kwargs,
    ) -> PassResult:
        return await self._submit(
            "add_manual",
            lambda: self.pool.add_manual(
                label,
                importance,
                item_type=item_type,
                pinned=pinned,
                cache_priority=cache_priority,
                **kwargs,
            ),
        )

    async def pin(self, item_id: str) -> PassResult | None:
        return await self._submit("pin", lambda: self.pool.pin(item_id))

    async def unpin(self, item_id: str) -> PassResult | None:
        return await self._submit("unpin", lambda: self.pool.unpin(item_id))

    async def remove(self, item_id: str) -> PassResult | None:
        return await self._submit("remove", lambda: self.pool.remove(item_id))

    async def record_access(self, item_id: str) -> bool:
        return await self._submit("record_access", lambda: self.pool.record_access(item_id))

    async def clear_all(self) -> PassResult:
        return await self._submit("clear_all", self.pool.clear_all)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, item_id: str) -> PoolItem | None:
        return self.pool.get(item_id)

    def get_top(self, n: int = 5, active_only: bool = False) -> list[PoolItem]:
        return self.pool.get_top(n, active_only)

    def get_by_type(self, item_type: FocusType | str) -> list[PoolItem]:
        return self.pool.get_by_type(item_type)

    def get_active(self) -> list[PoolItem]:
        return self.pool.get_active()

    def get_latent(self) -> list[PoolItem]:
        return self.pool.get_latent()

    def get_all(self) -> list[PoolItem]:
        return self.pool.get_all()

    def snapshot(self) -> dict[str, Any]:
        return self.pool.snapshot()

    def get_statistics(self) -> dict[str, Any]:
        """Get system statistics."""
        stats = self.pool.get_statistics()
        stats.update(
            {
                "initialized": self._initialized,
                "running": self._running,
                "ticker_runs": self._ticker.run_count if self._ticker else 0,
                "pending_commands": self._queue.qsize() if self._queue else 0,
            }
        )
        return stats

    def register_hook(self, event: HookEvent, callback: Callable, is_async: bool = False) -> None:
        """Register an event hook."""
        if is_async:
            self.hooks.register_async(event, callback)
        else:
            self.hooks.register(event, callback)

    @property
    def ticker(self) -> DecayTicker | None:
        return self._ticker

    @property
    def is_running(self) -> bool:
        return self._running
