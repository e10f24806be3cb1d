"""
Outbound callback delivery.

Posts effective change sets to a rule's callback URL with bounded retries
and increasing backoff, tagging each request with a fresh origin marker.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from uuid import uuid4

import httpx

from deltas.changes import Change
from deltas.errors import DispatchFailure
from deltas.formats import encode_changes
from deltas.origin_filter import OriginFilter
from deltas.rules import Rule

from .config import EngineConfig

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Result of delivering one change set to a callback."""

    success: bool
    message: str
    attempts: int = 1
    error_code: str | None = None
    status_code: int | None = None
    origin: str | None = None

    @classmethod
    def ok(
        cls, message: str = "Delivered", *, attempts: int = 1, status_code: int | None = None, origin: str | None = None
    ) -> "DispatchResult":
        """Create a successful result."""
        return cls(success=True, message=message, attempts=attempts, status_code=status_code, origin=origin)

    @classmethod
    def error(
        cls,
        message: str,
        code: str = "ERROR",
        *,
        attempts: int = 1,
        status_code: int | None = None,
        origin: str | None = None,
    ) -> "DispatchResult":
        """Create an error result."""
        return cls(
            success=False,
            message=message,
            attempts=attempts,
            error_code=code,
            status_code=status_code,
            origin=origin,
        )


def _new_origin_marker() -> str:
    return uuid4().hex


class CallbackClient:
    """Deliver change sets over HTTP for any rule."""

    def __init__(
        self,
        *,
        config: EngineConfig,
        origin_filter: OriginFilter,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        marker_factory: Callable[[], str] = _new_origin_marker,
    ):
        self._config = config
        self._origin_filter = origin_filter
        self._transport = transport
        self._sleep = sleep
        self._marker_factory = marker_factory

    def max_attempts(self, rule: Rule) -> int:
        retries = rule.options.retry if rule.options.retry is not None else self._config.retry_attempts
        return 1 + max(retries, 0)

    def backoff_ms(self, rule: Rule, retry_number: int) -> int:
        """
        Delay before retry `retry_number` (1-based).

        A rule's `retryTimeout` doubles per retry; otherwise the configured
        schedule is used, repeating its last step.
        """
        if retry_number < 1:
            return 0
        if rule.options.retry_timeout_ms is not None:
            return rule.options.retry_timeout_ms * (2 ** (retry_number - 1))
        schedule = self._config.retry_backoff_ms
        return schedule[min(retry_number - 1, len(schedule) - 1)]

    def _build_headers(self, origin: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            self._config.origin_header: origin,
        }

    def _send_once(self, client: httpx.Client, rule: Rule, payload: dict, headers: dict) -> int:
        """Perform one request; raises DispatchFailure on any non-2xx outcome."""
        try:
            response = client.request(
                rule.callback.method,
                rule.callback.url,
                json=payload,
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise DispatchFailure(f"Request to {rule.callback.url} timed out", error_code="TIMEOUT") from exc
        except httpx.RequestError as exc:
            raise DispatchFailure(f"Network error: {exc}", error_code="NETWORK_ERROR") from exc

        if 200 <= response.status_code < 300:
            return response.status_code
        raise DispatchFailure(
            f"Callback returned {response.status_code}",
            error_code=f"HTTP_{response.status_code}",
        )

    def deliver(self, rule: Rule, changes: Sequence[Change]) -> DispatchResult:
        """
        Deliver `changes` to the rule's callback, retrying with backoff.

        The origin marker is recorded before the first request so that deltas
        produced by the callback's own writes can be recognized even when they
        arrive before the response.
        """
        origin = self._marker_factory()
        payload = encode_changes(rule.options.resource_format, changes)
        headers = self._build_headers(origin)
        max_attempts = self.max_attempts(rule)

        if self._config.log_sends:
            logger.info("Rule %s: sending %s %s %s", rule.name, rule.callback.method, rule.callback.url, payload)

        with httpx.Client(timeout=self._config.request_timeout_seconds, transport=self._transport) as client:
            attempt = 1
            while True:
                self._origin_filter.record(origin)
                try:
                    status_code = self._send_once(client, rule, payload, headers)
                except DispatchFailure as exc:
                    exc.attempts = attempt
                    if attempt >= max_attempts:
                        return self._give_up(rule, changes, exc, origin=origin)

                    delay_ms = self.backoff_ms(rule, attempt)
                    logger.warning(
                        "Rule %s: retrying callback in %dms (attempt %d/%d): %s",
                        rule.name,
                        delay_ms,
                        attempt + 1,
                        max_attempts,
                        exc,
                    )
                    self._sleep(delay_ms / 1000.0)
                    attempt += 1
                    continue

                logger.info(
                    "Rule %s: delivered %d change(s) to %s (%d)",
                    rule.name,
                    len(changes),
                    rule.callback.url,
                    status_code,
                )
                return DispatchResult.ok(
                    f"Callback returned {status_code}",
                    attempts=attempt,
                    status_code=status_code,
                    origin=origin,
                )

    def _give_up(
        self, rule: Rule, changes: Sequence[Change], failure: DispatchFailure, *, origin: str
    ) -> DispatchResult:
        logger.error(
            "Rule %s: dropping %d change(s) after %d failed attempt(s) to %s: %s",
            rule.name,
            len(changes),
            failure.attempts,
            rule.callback.url,
            failure,
        )
        return DispatchResult.error(
            str(failure),
            code=failure.error_code or "ERROR",
            attempts=failure.attempts,
            origin=origin,
        )
