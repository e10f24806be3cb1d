"""Rule matcher: fan a delta out over the rule set."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from .changes import Change, Delta, change_matches
from .errors import MatchEvaluationError
from .origin_filter import OriginFilter
from .rules import Rule

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """Per-rule matched changes for one delta, plus what was filtered out."""

    matches: dict[Rule, list[Change]] = field(default_factory=dict)
    ignored_self: list[Rule] = field(default_factory=list)
    out_of_scope: list[Rule] = field(default_factory=list)
    evaluation_errors: int = 0

    @property
    def matched_rule_count(self) -> int:
        return len(self.matches)


def match_rule(rule: Rule, delta: Delta) -> tuple[list[Change], int]:
    """
    Return the changes of `delta` matched by `rule` and the number of changes
    that could not be evaluated.

    With `sendMatchesOnly` disabled, one matching change selects the whole delta.
    """
    matched: list[Change] = []
    errors = 0
    for change in delta.changes:
        try:
            ok = change_matches(change, rule.match)
        except MatchEvaluationError as exc:
            errors += 1
            logger.warning("Rule %s: skipping change that cannot be evaluated: %s", rule.name, exc)
            continue
        if ok:
            matched.append(change)

    if matched and not rule.options.send_matches_only:
        return list(delta.changes), errors
    return matched, errors


def match_delta(
    delta: Delta,
    rules: Sequence[Rule],
    origin_filter: OriginFilter | None = None,
) -> MatchResult:
    """
    Evaluate every rule against `delta` independently.

    Rules that ignore self-originated deltas, or that exclude the delta's
    scope, contribute nothing. A rule with no matched change is absent from
    `MatchResult.matches`.
    """
    result = MatchResult()
    for rule in rules:
        if origin_filter is not None and origin_filter.should_ignore(delta, rule):
            result.ignored_self.append(rule)
            continue
        if not rule.accepts_scope(delta.scope):
            result.out_of_scope.append(rule)
            continue

        matched, errors = match_rule(rule, delta)
        result.evaluation_errors += errors
        if matched:
            result.matches[rule] = matched

    logger.debug(
        "Delta from %s: %d change(s) matched %d/%d rule(s), %d ignored as self-originated",
        delta.origin,
        len(delta.changes),
        result.matched_rule_count,
        len(rules),
        len(result.ignored_self),
    )
    return result
