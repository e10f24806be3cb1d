"""Bounded, expiring record of origin markers used by this engine's own dispatches."""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable

from .changes import Delta
from .rules import Rule

logger = logging.getLogger(__name__)


class OriginFilter:
    """
    Thread-safe recent-origins set with a retention window and a size bound.

    When the bound is exceeded the oldest markers are evicted; an evicted
    marker can only make a self-originated delta look external, never the
    reverse.
    """

    def __init__(
        self,
        *,
        retention_ms: int,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        if retention_ms < 0:
            raise ValueError("retention_ms must be non-negative")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self._retention_sec = retention_ms / 1000.0
        self._max_entries = max_entries
        self._clock = clock
        self._markers: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()
        self.evicted = 0

    def _expire_locked(self, now: float) -> None:
        """Drop markers older than the retention window. Must hold lock."""
        cutoff = now - self._retention_sec
        while self._markers:
            marker, recorded_at = next(iter(self._markers.items()))
            if recorded_at >= cutoff:
                break
            self._markers.popitem(last=False)

    def record(self, marker: str) -> None:
        """Remember `marker` as produced by one of our own dispatches."""
        if not marker:
            return
        with self._lock:
            now = self._clock()
            self._expire_locked(now)
            self._markers.pop(marker, None)
            self._markers[marker] = now
            overflow = len(self._markers) - self._max_entries
            for _ in range(max(overflow, 0)):
                self._markers.popitem(last=False)
                self.evicted += 1
            if overflow > 0:
                logger.debug("Origin filter full, evicted %d oldest marker(s)", overflow)

    def is_self_origin(self, origin: str | None) -> bool:
        if not origin:
            return False
        with self._lock:
            self._expire_locked(self._clock())
            return origin in self._markers

    def should_ignore(self, delta: Delta, rule: Rule) -> bool:
        """True iff `rule` ignores self-originated deltas and `delta` is one."""
        return rule.options.ignore_from_self and self.is_self_origin(delta.origin)

    def __len__(self) -> int:
        with self._lock:
            self._expire_locked(self._clock())
            return len(self._markers)
