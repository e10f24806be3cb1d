"""
Payload encoders for the callback resource formats.

Each encoder turns an ordered sequence of changes into the JSON body posted
to a rule's callback URL.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from .changes import Change, ChangeType
from .errors import UnsupportedResourceFormat

DEFAULT_RESOURCE_FORMAT = "v0.0.1"
GENESIS_RESOURCE_FORMAT = "v0.0.0-genesis"


def _encode_v0_0_1(changes: Sequence[Change]) -> dict[str, Any]:
    return {
        "resourceFormat": DEFAULT_RESOURCE_FORMAT,
        "changes": [change.as_dict() for change in changes],
    }


def _encode_genesis(changes: Sequence[Change]) -> dict[str, Any]:
    inserts = [c.as_quad() for c in changes if c.change_type is ChangeType.ADDITION]
    deletes = [c.as_quad() for c in changes if c.change_type is ChangeType.DELETION]
    return {
        "resourceFormat": GENESIS_RESOURCE_FORMAT,
        "delta": {"inserts": inserts, "deletes": deletes},
    }


_ENCODERS: dict[str, Callable[[Sequence[Change]], dict[str, Any]]] = {
    DEFAULT_RESOURCE_FORMAT: _encode_v0_0_1,
    GENESIS_RESOURCE_FORMAT: _encode_genesis,
}


def supported_formats() -> list[str]:
    return sorted(_ENCODERS)


def ensure_supported(resource_format: str) -> str:
    if resource_format not in _ENCODERS:
        raise UnsupportedResourceFormat(
            f"Unsupported resourceFormat '{resource_format}' (supported: {', '.join(supported_formats())})"
        )
    return resource_format


def encode_changes(resource_format: str, changes: Sequence[Change]) -> dict[str, Any]:
    """Build the callback body for `changes` in the given resource format."""
    return _ENCODERS[ensure_supported(resource_format)](changes)
