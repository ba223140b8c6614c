"""
API module for the focus pool.

Provides:
- Hooks: Event system for item transitions
- PoolSystem: Async single-writer orchestrator
"""

from focus_pool.api.hooks import (
    AsyncHookCallback,
    HookCallback,
    HookContext,
    HookEvent,
    HookRegistry,
)
from focus_pool.api.pool_system import PoolSystem

__all__ = [
    # Hooks
    "AsyncHookCallback",
    "HookCallback",
    "HookContext",
    "HookEvent",
    "HookRegistry",
    # System
    "PoolSystem",
]
