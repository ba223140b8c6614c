"""
Event hooks for pool item transitions.

Provides a pub/sub system for:
- Item added / updated events
- Tier change events
- Item removal events (pruned, evicted, cleared)

Each pool owns its registry; there is no process-wide instance.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from ulid import ULID

from focus_pool.models.item import PoolItem, Tier


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class HookEvent(str, Enum):
    """Types of hook events."""

    ITEM_ADDED = "item_added"
    ITEM_UPDATED = "item_updated"
    TIER_CHANGED = "tier_changed"
    ITEM_REMOVED = "item_removed"


@dataclass
class HookContext:
    """Context passed to hook callbacks (carries the item's full state)."""

    event: HookEvent
    timestamp: datetime = field(default_factory=_utcnow)
    event_id: str = field(default_factory=lambda: str(ULID()))
    item: PoolItem | None = None
    item_id: str | None = None
    previous_tier: Tier | None = None
    tier: Tier | None = None
    data: dict = field(default_factory=dict)
    source: str | None = None

    def to_dict(self) -> dict:
        """JSON-shaped form for downstream consumers."""
        return {
            "event": self.event.value,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "item_id": self.item_id,
            "previous_tier": self.previous_tier.value if self.previous_tier else None,
            "tier": self.tier.value if self.tier else None,
            "item": self.item.to_summary() if self.item else None,
            "data": self.data,
            "source": self.source,
        }


# Type for hook callbacks
HookCallback = Callable[[HookContext], None]
AsyncHookCallback = Callable[[HookContext], Awaitable[None]]


class HookRegistry:
    """
    Registry for pool event hooks.

    Allows consumers (prompt assembly, UI) to subscribe to item
    transitions. Callback errors are collected and returned, never raised.
    """

    def __init__(self):
        self._sync_hooks: dict[HookEvent, list[HookCallback]] = {}
        self._async_hooks: dict[HookEvent, list[AsyncHookCallback]] = {}
        self._global_hooks: list[HookCallback] = []
        self._enabled = True

    def register(
        self,
        event: HookEvent,
        callback: HookCallback,
    ) -> None:
        """
        Register a synchronous hook for an event.

        Args:
            event: The event to hook
            callback: Function to call when event occurs
        """
        self._sync_hooks.setdefault(event, []).append(callback)

    def register_async(
        self,
        event: HookEvent,
        callback: AsyncHookCallback,
    ) -> None:
        """
        Register an async hook for an event.

        Async hooks only fire through ``trigger_async``.
        """
        self._async_hooks.setdefault(event, []).append(callback)

    def register_global(self, callback: HookCallback) -> None:
        """Register a hook that fires for all events."""
        self._global_hooks.append(callback)

    def on(self, event: HookEvent):
        """
        Decorator to register a hook for an event.

        Usage:
            @pool.hooks.on(HookEvent.TIER_CHANGED)
            def my_hook(context: HookContext):
                print(f"{context.item_id}: {context.previous_tier} -> {context.tier}")
        """
        def decorator(func: HookCallback) -> HookCallback:
            self.register(event, func)
            return func
        return decorator

    def unregister(
        self,
        event: HookEvent,
        callback: HookCallback | AsyncHookCallback,
    ) -> bool:
        """
        Unregister a hook.

        Returns:
            True if callback was found and removed
        """
        for hooks in (self._sync_hooks, self._async_hooks):
            if event in hooks and callback in hooks[event]:
                hooks[event].remove(callback)
                return True
        return False

    def trigger(self, context: HookContext) -> list[Exception]:
        """
        Trigger all synchronous hooks for an event.

        Returns:
            List of any exceptions that occurred
        """
        if not self._enabled:
            return []

        errors = []

        for callback in self._global_hooks:
            try:
                callback(context)
            except Exception as e:
                errors.append(e)

        for callback in self._sync_hooks.get(context.event, []):
            try:
                callback(context)
            except Exception as e:
                errors.append(e)

        for error in errors:
            logger.warning(f"Hook error on {context.event.value}: {error}")
        return errors

    async def trigger_async(self, context: HookContext) -> list[Exception]:
        """
        Trigger sync hooks, then async hooks, for an event.

        Returns:
            List of any exceptions that occurred
        """
        if not self._enabled:
            return []

        errors = self.trigger(context)

        async_errors = []
        for callback in self._async_hooks.get(context.event, []):
            try:
                await callback(context)
            except Exception as e:
                async_errors.append(e)

        for error in async_errors:
            logger.warning(f"Async hook error on {context.event.value}: {error}")
        return errors + async_errors

    def enable(self) -> None:
        """Enable hook triggering."""
        self._enabled = True

    def disable(self) -> None:
        """Disable hook triggering (for testing/debugging)."""
        self._enabled = False

    def clear(self, event: HookEvent | None = None) -> None:
        """
        Clear registered hooks.

        Args:
            event: Specific event to clear, or None for all
        """
        if event:
            self._sync_hooks.pop(event, None)
            self._async_hooks.pop(event, None)
        else:
            self._sync_hooks.clear()
            self._async_hooks.clear()
            self._global_hooks.clear()

    def get_hook_count(self, event: HookEvent | None = None) -> int:
        """Get count of registered hooks."""
        if event:
            sync = len(self._sync_hooks.get(event, []))
            async_ = len(self._async_hooks.get(event, []))
            return sync + async_

        total = len(self._global_hooks)
        for hooks in self._sync_hooks.values():
            total += len(hooks)
        for hooks in self._async_hooks.values():
            total += len(hooks)
        return total
