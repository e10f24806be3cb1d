"""Engine configuration dataclass and settings normalization."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from deltas.rules import POLICY_FAIL, POLICY_SKIP

DEFAULT_RULES_PATH = "config/delta/rules.json"
DEFAULT_RETRY_BACKOFF_MS = (500, 2000, 5000)


@dataclass(frozen=True)
class EngineConfig:
    """Tunables for the delta dispatch engine."""

    rules_path: str = DEFAULT_RULES_PATH
    malformed_rule_policy: str = POLICY_FAIL
    origin_header: str = "mu-call-id"
    scope_header: str = "mu-auth-scope"
    origin_retention_ms: int = 300_000  # 5 minutes
    origin_max_entries: int = 10_000
    retry_attempts: int = 3  # retries after the first attempt
    retry_backoff_ms: tuple[int, ...] = DEFAULT_RETRY_BACKOFF_MS
    request_timeout_seconds: float = 10.0
    log_matches: bool = False
    log_sends: bool = False


def _non_empty_str(raw: dict, key: str, default: str) -> str:
    value = raw.get(key, default)
    if not isinstance(value, str) or not value.strip():
        return default
    return value.strip()


def _int_at_least(raw: dict, key: str, default: int, minimum: int, maximum: int | None = None) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    if value < minimum:
        return minimum
    if maximum is not None and value > maximum:
        return maximum
    return value


def normalize_engine_config(raw: Any) -> EngineConfig:
    """
    Normalize raw settings dict into a typed EngineConfig.

    Args:
        raw: Raw settings value (dict or None)

    Returns:
        Validated EngineConfig with defaults applied
    """
    if not isinstance(raw, dict):
        return EngineConfig()

    policy = raw.get("malformed_rule_policy", POLICY_FAIL)
    if policy not in (POLICY_FAIL, POLICY_SKIP):
        policy = POLICY_FAIL

    backoff = raw.get("retry_backoff_ms", DEFAULT_RETRY_BACKOFF_MS)
    if isinstance(backoff, (list, tuple)):
        backoff = tuple(
            v for v in backoff if isinstance(v, int) and not isinstance(v, bool) and v >= 0
        )
    else:
        backoff = ()
    if not backoff:
        backoff = DEFAULT_RETRY_BACKOFF_MS

    timeout = raw.get("request_timeout_seconds", 10.0)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        timeout = 10.0

    return EngineConfig(
        rules_path=_non_empty_str(raw, "rules_path", DEFAULT_RULES_PATH),
        malformed_rule_policy=policy,
        origin_header=_non_empty_str(raw, "origin_header", "mu-call-id"),
        scope_header=_non_empty_str(raw, "scope_header", "mu-auth-scope"),
        origin_retention_ms=_int_at_least(raw, "origin_retention_ms", 300_000, 1_000),
        origin_max_entries=_int_at_least(raw, "origin_max_entries", 10_000, 10),
        retry_attempts=_int_at_least(raw, "retry_attempts", 3, 0, 20),
        retry_backoff_ms=backoff,
        request_timeout_seconds=float(timeout),
        log_matches=bool(raw.get("log_matches", False)),
        log_sends=bool(raw.get("log_sends", False)),
    )


def get_engine_config() -> EngineConfig:
    """
    Load engine configuration from Django settings.

    Returns:
        EngineConfig built from settings.DELTA_NOTIFIER
    """
    from django.conf import settings

    return normalize_engine_config(getattr(settings, "DELTA_NOTIFIER", None))
