"""Rule records and loading/validation of the rules file."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any
from urllib.parse import urlparse

from config.domain_exceptions import ConfigurationError

from .changes import CHANGE_FIELDS, TERM_ATTRIBUTES
from .errors import MalformedRuleError
from .formats import DEFAULT_RESOURCE_FORMAT, ensure_supported

logger = logging.getLogger(__name__)

ALLOWED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE", "GET"})

POLICY_FAIL = "fail"
POLICY_SKIP = "skip"


@dataclass(frozen=True)
class CallbackConfig:
    url: str
    method: str = "POST"


@dataclass(frozen=True)
class RuleOptions:
    resource_format: str = DEFAULT_RESOURCE_FORMAT
    grace_period_ms: int = 0
    fold_effective_changes: bool = False
    ignore_from_self: bool = False
    send_matches_only: bool = True
    retry: int | None = None
    retry_timeout_ms: int | None = None
    opt_in_scopes: tuple[str, ...] = ()
    opt_out_scopes: tuple[str, ...] = ()


@dataclass(frozen=True, eq=False)
class Rule:
    """
    One configured rule: a match pattern plus callback and batching options.

    Rules compare and hash by identity; each loaded rule owns one dispatch
    channel for the lifetime of the engine.
    """

    name: str
    match: Mapping[str, Any]
    callback: CallbackConfig
    options: RuleOptions = field(default_factory=RuleOptions)

    def accepts_scope(self, scope: str | None) -> bool:
        if scope is not None and scope in self.options.opt_out_scopes:
            return False
        if self.options.opt_in_scopes:
            return scope is not None and scope in self.options.opt_in_scopes
        return True

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "match": {k: (dict(v) if isinstance(v, Mapping) else v) for k, v in self.match.items()},
            "callback": {"url": self.callback.url, "method": self.callback.method},
            "options": {
                "resourceFormat": self.options.resource_format,
                "gracePeriod": self.options.grace_period_ms,
                "foldEffectiveChanges": self.options.fold_effective_changes,
                "ignoreFromSelf": self.options.ignore_from_self,
                "sendMatchesOnly": self.options.send_matches_only,
                "retry": self.options.retry,
                "retryTimeout": self.options.retry_timeout_ms,
                "optInScopes": list(self.options.opt_in_scopes),
                "optOutScopes": list(self.options.opt_out_scopes),
            },
        }


def _parse_match(raw: Any, index: int) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise MalformedRuleError("'match' is required and must be an object", rule_index=index)

    pattern: dict[str, Any] = {}
    for field_name, value in raw.items():
        if field_name not in CHANGE_FIELDS:
            raise MalformedRuleError(f"unknown match field '{field_name}'", rule_index=index)
        if value is None:
            continue
        if isinstance(value, str):
            pattern[field_name] = value
            continue
        if not isinstance(value, Mapping):
            raise MalformedRuleError(
                f"match.{field_name} must be a string or an object", rule_index=index
            )
        term: dict[str, str] = {}
        for key, attr_value in value.items():
            attribute = TERM_ATTRIBUTES.get(key)
            if attribute is None:
                raise MalformedRuleError(
                    f"unknown term attribute '{key}' in match.{field_name}", rule_index=index
                )
            if not isinstance(attr_value, str):
                raise MalformedRuleError(
                    f"match.{field_name}.{key} must be a string", rule_index=index
                )
            term[attribute] = attr_value
        # An empty term constraint is the wildcard; drop it so matching skips the field.
        if term:
            pattern[field_name] = MappingProxyType(term)
    return MappingProxyType(pattern)


def _parse_callback(raw: Any, index: int) -> CallbackConfig:
    if not isinstance(raw, Mapping):
        raise MalformedRuleError("'callback' is required and must be an object", rule_index=index)

    url = raw.get("url")
    if not isinstance(url, str) or not url.strip():
        raise MalformedRuleError("'callback.url' is required", rule_index=index)
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise MalformedRuleError(
            f"'callback.url' must be an absolute http(s) URL, got '{url}'", rule_index=index
        )

    method = raw.get("method", "POST")
    if not isinstance(method, str) or method.upper() not in ALLOWED_METHODS:
        raise MalformedRuleError(f"unsupported callback.method '{method}'", rule_index=index)

    return CallbackConfig(url=url, method=method.upper())


def _bool_option(raw: Mapping[str, Any], key: str, default: bool, index: int) -> bool:
    value = raw.get(key, default)
    if not isinstance(value, bool):
        raise MalformedRuleError(f"options.{key} must be a boolean", rule_index=index)
    return value


def _int_option(raw: Mapping[str, Any], key: str, default: int | None, index: int) -> int | None:
    value = raw.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedRuleError(f"options.{key} must be a non-negative integer", rule_index=index)
    return value


def _scopes_option(raw: Mapping[str, Any], key: str, index: int) -> tuple[str, ...]:
    value = raw.get(key) or []
    if isinstance(value, str) or not isinstance(value, Sequence):
        raise MalformedRuleError(f"options.{key} must be a list of strings", rule_index=index)
    if not all(isinstance(item, str) for item in value):
        raise MalformedRuleError(f"options.{key} must be a list of strings", rule_index=index)
    return tuple(value)


def _parse_options(raw: Any, index: int) -> RuleOptions:
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise MalformedRuleError("'options' must be an object", rule_index=index)

    resource_format = raw.get("resourceFormat", DEFAULT_RESOURCE_FORMAT)
    if not isinstance(resource_format, str):
        raise MalformedRuleError("options.resourceFormat must be a string", rule_index=index)
    try:
        ensure_supported(resource_format)
    except MalformedRuleError as exc:
        raise type(exc)(str(exc), rule_index=index) from exc

    return RuleOptions(
        resource_format=resource_format,
        grace_period_ms=_int_option(raw, "gracePeriod", 0, index) or 0,
        fold_effective_changes=_bool_option(raw, "foldEffectiveChanges", False, index),
        ignore_from_self=_bool_option(raw, "ignoreFromSelf", False, index),
        send_matches_only=_bool_option(raw, "sendMatchesOnly", True, index),
        retry=_int_option(raw, "retry", None, index),
        retry_timeout_ms=_int_option(raw, "retryTimeout", None, index),
        opt_in_scopes=_scopes_option(raw, "optInScopes", index),
        opt_out_scopes=_scopes_option(raw, "optOutScopes", index),
    )


def parse_rule(raw: Any, index: int = 0) -> Rule:
    """
    Validate one raw rule record and build a Rule.

    Raises:
        MalformedRuleError: if required fields are missing or invalid
    """
    if not isinstance(raw, Mapping):
        raise MalformedRuleError("rule must be an object", rule_index=index)

    name = raw.get("name") or f"rule-{index}"
    if not isinstance(name, str):
        raise MalformedRuleError("'name' must be a string", rule_index=index)

    return Rule(
        name=name,
        match=_parse_match(raw.get("match"), index),
        callback=_parse_callback(raw.get("callback"), index),
        options=_parse_options(raw.get("options"), index),
    )


def load_rules(raw_rules: Any, *, policy: str = POLICY_FAIL) -> tuple[Rule, ...]:
    """
    Build the immutable rule set from a list of raw rule records.

    Under the "fail" policy the first malformed rule raises; under "skip"
    malformed rules are logged and dropped.
    """
    if not isinstance(raw_rules, Sequence) or isinstance(raw_rules, (str, bytes)):
        raise MalformedRuleError("rules configuration must be a list of rule objects")

    rules: list[Rule] = []
    seen_names: set[str] = set()
    for index, raw in enumerate(raw_rules):
        try:
            rule = parse_rule(raw, index)
            if rule.name in seen_names:
                raise MalformedRuleError(f"duplicate rule name '{rule.name}'", rule_index=index)
        except MalformedRuleError as exc:
            if policy != POLICY_SKIP:
                raise
            logger.warning("Skipping malformed delta rule: %s", exc)
            continue
        seen_names.add(rule.name)
        rules.append(rule)

    logger.info("Loaded %d delta rule(s)", len(rules))
    return tuple(rules)


def load_rules_file(path: str | Path, *, policy: str = POLICY_FAIL) -> tuple[Rule, ...]:
    """Read and validate a JSON rules file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read delta rules file {path}: {exc}") from exc

    try:
        raw_rules = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedRuleError(f"rules file {path} is not valid JSON: {exc}") from exc

    return load_rules(raw_rules, policy=policy)
