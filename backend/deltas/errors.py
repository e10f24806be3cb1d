from __future__ import annotations

from config.domain_exceptions import DomainError, GatewayError, ValidationError


class MalformedRuleError(ValidationError):
    """A configured rule is missing required fields or carries invalid values."""

    def __init__(self, message: str, *, rule_index: int | None = None):
        self.rule_index = rule_index
        if rule_index is not None:
            message = f"Rule #{rule_index}: {message}"
        super().__init__(message)


class UnsupportedResourceFormat(MalformedRuleError):
    pass


class MatchEvaluationError(DomainError):
    """A change or pattern has a shape the matcher cannot evaluate."""


class DispatchFailure(GatewayError):
    gateway_name = "Delta callback"

    def __init__(self, message: str, *, error_code: str | None = None, attempts: int = 0):
        super().__init__(message)
        self.error_code = error_code
        self.attempts = attempts
