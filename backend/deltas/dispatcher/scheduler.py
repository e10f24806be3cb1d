"""Per-rule accumulation windows and flush scheduling."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Protocol

from django.utils import timezone

from deltas.changes import Change
from deltas.folding import fold_changes
from deltas.rules import Rule

from .callback import DispatchResult
from .stats import EngineStats

logger = logging.getLogger(__name__)


class ChannelState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]
Deliver = Callable[[Rule, Sequence[Change]], DispatchResult]


def default_timer_factory(delay_sec: float, callback: Callable[[], None]) -> Timer:
    timer = threading.Timer(delay_sec, callback)
    timer.daemon = True
    return timer


class RuleChannel:
    """
    Accumulation buffer, one-shot window timer and dispatch worker for one rule.

    The window opens on the first matched change and is fixed from that point;
    later changes join the buffer without moving the deadline. Each activation
    is flushed exactly once. Dispatches for a rule run on the rule's own
    single worker, in flush order, so a slow callback never holds up another
    rule.
    """

    def __init__(
        self,
        rule: Rule,
        *,
        deliver: Deliver,
        stats: EngineStats,
        timer_factory: TimerFactory = default_timer_factory,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rule = rule
        self._deliver = deliver
        self._stats = stats
        self._timer_factory = timer_factory
        self._clock = clock

        self._lock = threading.Lock()
        # Serializes flushes so dispatches are submitted in window order.
        self._flush_lock = threading.Lock()
        self._state = ChannelState.IDLE
        self._buffer: list[Change] = []
        self._timer: Timer | None = None
        self._activation = 0
        self._window_started_at: float | None = None
        self._closed = False
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"delta-{rule.name}-")

    @property
    def state(self) -> ChannelState:
        with self._lock:
            return self._state

    @property
    def grace_period_sec(self) -> float:
        return self.rule.options.grace_period_ms / 1000.0

    def append(self, changes: Sequence[Change]) -> None:
        """Add matched changes to the current window, opening one if idle."""
        if not changes:
            return

        flush_activation: int | None = None
        with self._lock:
            if self._closed:
                return
            self._buffer.extend(changes)
            if self._state is ChannelState.IDLE:
                flush_activation = self._activate_locked()

        if flush_activation is not None:
            self._flush(flush_activation)

    def _activate_locked(self) -> int | None:
        """
        Open a new window. Must hold lock.

        Returns the activation id when the window must be flushed right away
        (zero grace period), otherwise None after arming the timer.
        """
        self._activation += 1
        activation = self._activation
        self._state = ChannelState.ACCUMULATING
        self._window_started_at = self._clock()

        if self.rule.options.grace_period_ms == 0:
            return activation

        def _on_timer() -> None:
            try:
                self._flush(activation)
            except Exception:
                logger.exception("Rule %s: flush of window %d failed", self.rule.name, activation)

        self._timer = self._timer_factory(self.grace_period_sec, _on_timer)
        self._timer.start()
        logger.debug(
            "Rule %s: window %d opened for %dms",
            self.rule.name,
            activation,
            self.rule.options.grace_period_ms,
        )
        return None

    def _flush(self, activation: int) -> None:
        with self._flush_lock:
            with self._lock:
                if self._state is not ChannelState.ACCUMULATING or activation != self._activation:
                    return
                self._state = ChannelState.FLUSHING
                self._timer = None
                buffered = self._buffer
                self._buffer = []

            try:
                self._hand_off(buffered)
            finally:
                restart: int | None = None
                with self._lock:
                    self._state = ChannelState.IDLE
                    self._window_started_at = None
                    # Changes that arrived mid-flush open the next window.
                    if self._buffer and not self._closed:
                        restart = self._activate_locked()

        if restart is not None:
            self._flush(restart)

    def _hand_off(self, buffered: list[Change]) -> None:
        if self.rule.options.fold_effective_changes:
            effective = fold_changes(buffered)
        else:
            effective = list(buffered)

        self._stats.record_flush(self.rule.name, buffered=len(buffered), effective=len(effective))
        if not effective:
            logger.debug(
                "Rule %s: %d buffered change(s) folded to nothing, skipping dispatch",
                self.rule.name,
                len(buffered),
            )
            return

        try:
            self._worker.submit(self._dispatch, effective)
        except RuntimeError as exc:
            # Worker may be shutting down
            logger.warning("Rule %s: failed to submit dispatch: %s", self.rule.name, exc)

    def _dispatch(self, changes: list[Change]) -> None:
        try:
            result = self._deliver(self.rule, changes)
        except Exception as exc:
            logger.exception("Rule %s: dispatch raised unexpectedly", self.rule.name)
            self._stats.record_dispatch(
                self.rule.name, success=False, attempts=1, now=timezone.now(), error=str(exc)
            )
            return

        self._stats.record_dispatch(
            self.rule.name,
            success=result.success,
            attempts=result.attempts,
            now=timezone.now(),
            error="" if result.success else result.message,
        )

    def close(self, *, wait: bool = True) -> int:
        """
        Stop accepting changes, discard the open window and drain the worker.

        Returns:
            Number of buffered changes discarded
        """
        with self._lock:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            discarded = len(self._buffer)
            self._buffer = []
            if self._state is ChannelState.ACCUMULATING:
                self._state = ChannelState.IDLE
            self._window_started_at = None

        if discarded:
            logger.info("Rule %s: discarding %d pending change(s) on shutdown", self.rule.name, discarded)
        self._worker.shutdown(wait=wait)
        return discarded

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            window_age_ms = None
            if self._window_started_at is not None:
                window_age_ms = int((self._clock() - self._window_started_at) * 1000)
            return {
                "rule": self.rule.name,
                "state": self._state.value,
                "buffered_changes": len(self._buffer),
                "activations": self._activation,
                "window_age_ms": window_age_ms,
            }
