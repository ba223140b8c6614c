"""
Drift module: online transition graph, momentum and emerging-item prediction.
"""

from focus_pool.drift.transition import TransitionModel, TransitionRecord

__all__ = [
    "TransitionModel",
    "TransitionRecord",
]
