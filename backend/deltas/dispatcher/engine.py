"""Core delta dispatch engine: origin filtering, matching and per-rule fan-out."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import httpx
from django.utils import timezone

from deltas.changes import Delta
from deltas.matcher import MatchResult, match_delta
from deltas.origin_filter import OriginFilter
from deltas.rules import Rule, load_rules_file

from .callback import CallbackClient
from .config import EngineConfig, get_engine_config
from .scheduler import RuleChannel, TimerFactory, default_timer_factory
from .stats import EngineStats

logger = logging.getLogger(__name__)


class DeltaEngine:
    """
    Receives deltas, matches them against the rule set and feeds each rule's
    accumulation channel.

    Deltas are processed one at a time so that the changes of one delta are
    never interleaved with another's in any rule buffer.
    """

    def __init__(
        self,
        rules: Sequence[Rule],
        *,
        config: EngineConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        timer_factory: TimerFactory = default_timer_factory,
        sleep: Callable[[float], None] | None = None,
    ):
        self._config = config or EngineConfig()
        self.rules: tuple[Rule, ...] = tuple(rules)
        self.origin_filter = OriginFilter(
            retention_ms=self._config.origin_retention_ms,
            max_entries=self._config.origin_max_entries,
        )
        self._stats = EngineStats()

        client_kwargs: dict[str, Any] = {"transport": transport}
        if sleep is not None:
            client_kwargs["sleep"] = sleep
        self._client = CallbackClient(
            config=self._config,
            origin_filter=self.origin_filter,
            **client_kwargs,
        )
        self._channels: dict[Rule, RuleChannel] = {
            rule: RuleChannel(
                rule,
                deliver=self._client.deliver,
                stats=self._stats,
                timer_factory=timer_factory,
            )
            for rule in self.rules
        }
        self._ingest_lock = threading.Lock()
        self._shutdown = False

    @classmethod
    def from_config(cls, config: EngineConfig | None = None, **kwargs: Any) -> DeltaEngine:
        """Build an engine with the rules file named by the configuration."""
        config = config or get_engine_config()
        rules = load_rules_file(resolve_rules_path(config.rules_path), policy=config.malformed_rule_policy)
        return cls(rules, config=config, **kwargs)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def stats(self) -> EngineStats:
        return self._stats

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown

    def channel(self, rule: Rule) -> RuleChannel:
        return self._channels[rule]

    def ingest(self, delta: Delta, *, skipped: int = 0) -> MatchResult:
        """
        Route one delta to every rule it matches.

        Args:
            delta: The delta to process
            skipped: Changes already dropped while decoding the delta

        Returns:
            MatchResult describing the fan-out
        """
        if self._shutdown:
            logger.debug("Engine shut down, ignoring delta from %s", delta.origin)
            return MatchResult()

        with self._ingest_lock:
            result = match_delta(delta, self.rules, self.origin_filter)
            self._stats.record_delta(
                change_count=len(delta.changes),
                skipped=skipped,
                errors=result.evaluation_errors,
                now=delta.timestamp or timezone.now(),
            )
            for rule in result.ignored_self:
                self._stats.record_ignored_self(rule.name)

            for rule, changes in result.matches.items():
                if self._config.log_matches:
                    logger.info(
                        "Rule %s matched %d change(s) of delta from %s",
                        rule.name,
                        len(changes),
                        delta.origin,
                    )
                self._stats.record_match(rule.name, len(changes))
                try:
                    self._channels[rule].append(changes)
                except Exception:
                    logger.exception("Rule %s: failed to buffer matched changes", rule.name)

        return result

    def get_status(self) -> dict[str, Any]:
        """Get engine status and statistics."""
        return {
            "rules": len(self.rules),
            "shutdown": self._shutdown,
            "config": {
                "origin_header": self._config.origin_header,
                "origin_retention_ms": self._config.origin_retention_ms,
                "origin_max_entries": self._config.origin_max_entries,
                "retry_attempts": self._config.retry_attempts,
                "retry_backoff_ms": list(self._config.retry_backoff_ms),
            },
            "tracked_origins": len(self.origin_filter),
            "evicted_origins": self.origin_filter.evicted,
            "channels": [channel.snapshot() for channel in self._channels.values()],
            "stats": self._stats.as_dict(),
        }

    def shutdown(self, *, wait: bool = True) -> None:
        """
        Shutdown the engine gracefully.

        Open windows are discarded; dispatches already handed to a worker are
        allowed to finish.
        """
        self._shutdown = True
        discarded = 0
        with self._ingest_lock:
            for channel in self._channels.values():
                discarded += channel.close(wait=wait)
        if discarded:
            self._stats.record_discarded(discarded)
            logger.warning("Discarded %d buffered change(s) on shutdown", discarded)


def resolve_rules_path(rules_path: str) -> Path:
    path = Path(rules_path)
    if path.is_absolute():
        return path
    from django.conf import settings

    return Path(settings.BASE_DIR) / path


# Module-level singleton
_engine: DeltaEngine | None = None
_engine_lock = threading.Lock()


def get_engine() -> DeltaEngine:
    """Get or create the singleton engine instance."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = DeltaEngine.from_config()
        return _engine


def set_engine(engine: DeltaEngine | None) -> None:
    """Replace the singleton (used by tests and embedding code)."""
    global _engine
    with _engine_lock:
        _engine = engine


def notify_delta(delta: Delta, *, skipped: int = 0) -> MatchResult:
    """Public API to hand a delta to the engine."""
    return get_engine().ingest(delta, skipped=skipped)


def get_engine_status() -> dict[str, Any]:
    """Get engine status and statistics."""
    return get_engine().get_status()


def shutdown_engine() -> None:
    """Shutdown the engine gracefully."""
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.shutdown()
            _engine = None
