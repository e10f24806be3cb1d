"""
Delta dispatch runtime.

Matches incoming deltas against the configured rules, accumulates matched
changes per rule for the rule's grace period, and delivers the (optionally
folded) result to the rule's callback.
"""

from .config import EngineConfig, get_engine_config
from .engine import (
    DeltaEngine,
    get_engine,
    get_engine_status,
    notify_delta,
    set_engine,
    shutdown_engine,
)

__all__ = [
    "DeltaEngine",
    "EngineConfig",
    "get_engine",
    "get_engine_config",
    "get_engine_status",
    "notify_delta",
    "set_engine",
    "shutdown_engine",
]
