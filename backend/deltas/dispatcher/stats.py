"""Observability counters and statistics for the delta engine."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class RuleStats:
    """Per-rule statistics."""

    matched_changes: int = 0
    ignored_self: int = 0
    flushes: int = 0
    empty_flushes: int = 0
    cancelled_changes: int = 0
    dispatched: int = 0
    dispatch_failures: int = 0
    retries: int = 0
    last_dispatch_at: datetime | None = None
    last_error: str = ""

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "matched_changes": self.matched_changes,
            "ignored_self": self.ignored_self,
            "flushes": self.flushes,
            "empty_flushes": self.empty_flushes,
            "cancelled_changes": self.cancelled_changes,
            "dispatched": self.dispatched,
            "dispatch_failures": self.dispatch_failures,
            "retries": self.retries,
            "last_dispatch_at": self.last_dispatch_at.isoformat() if self.last_dispatch_at else None,
            "last_error": self.last_error,
        }


@dataclass
class EngineStats:
    """Global engine statistics."""

    deltas_received: int = 0
    changes_received: int = 0
    changes_skipped: int = 0
    evaluation_errors: int = 0
    discarded_on_shutdown: int = 0
    last_delta_at: datetime | None = None

    by_rule: dict[str, RuleStats] = field(default_factory=dict)

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _rule(self, rule_name: str) -> RuleStats:
        """Must hold lock."""
        if rule_name not in self.by_rule:
            self.by_rule[rule_name] = RuleStats()
        return self.by_rule[rule_name]

    def record_delta(self, *, change_count: int, skipped: int, errors: int, now: datetime) -> None:
        with self._lock:
            self.deltas_received += 1
            self.changes_received += change_count
            self.changes_skipped += skipped
            self.evaluation_errors += errors
            self.last_delta_at = now

    def record_match(self, rule_name: str, count: int) -> None:
        with self._lock:
            self._rule(rule_name).matched_changes += count

    def record_ignored_self(self, rule_name: str) -> None:
        with self._lock:
            self._rule(rule_name).ignored_self += 1

    def record_flush(self, rule_name: str, *, buffered: int, effective: int) -> None:
        """Record a window flush; `buffered - effective` changes were folded away."""
        with self._lock:
            stats = self._rule(rule_name)
            stats.flushes += 1
            stats.cancelled_changes += max(buffered - effective, 0)
            if effective == 0:
                stats.empty_flushes += 1

    def record_dispatch(
        self,
        rule_name: str,
        *,
        success: bool,
        attempts: int,
        now: datetime,
        error: str = "",
    ) -> None:
        with self._lock:
            stats = self._rule(rule_name)
            stats.retries += max(attempts - 1, 0)
            if success:
                stats.dispatched += 1
                stats.last_dispatch_at = now
            else:
                stats.dispatch_failures += 1
                stats.last_error = error[:497] + "..." if len(error) > 500 else error

    def record_discarded(self, count: int) -> None:
        with self._lock:
            self.discarded_on_shutdown += count

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for API/monitoring."""
        with self._lock:
            return {
                "deltas_received": self.deltas_received,
                "changes_received": self.changes_received,
                "changes_skipped": self.changes_skipped,
                "evaluation_errors": self.evaluation_errors,
                "discarded_on_shutdown": self.discarded_on_shutdown,
                "last_delta_at": self.last_delta_at.isoformat() if self.last_delta_at else None,
                "by_rule": {k: v.as_dict() for k, v in self.by_rule.items()},
            }

    def reset(self) -> None:
        """Reset all counters (for testing)."""
        with self._lock:
            self.deltas_received = 0
            self.changes_received = 0
            self.changes_skipped = 0
            self.evaluation_errors = 0
            self.discarded_on_shutdown = 0
            self.last_delta_at = None
            self.by_rule.clear()
