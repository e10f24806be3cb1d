from __future__ import annotations


class DomainError(Exception):
    """
    Base class for predictable domain errors of the delta engine.
    """


class ValidationError(DomainError):
    pass


class ServiceUnavailableError(DomainError):
    pass


class ConfigurationError(DomainError):
    """
    Missing/invalid server-side configuration required to run the engine.
    """


class GatewayError(DomainError):
    """
    Base exception for failures talking to an external HTTP endpoint.

    Subclasses should set `gateway_name` as a class attribute or instance attribute.
    """

    gateway_name: str | None = None
