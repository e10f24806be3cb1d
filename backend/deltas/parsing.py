"""Decode incoming delta request bodies into Delta records."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from django.utils import timezone

from .changes import Change, ChangeType, Delta, Term

logger = logging.getLogger(__name__)


class MalformedChange(ValueError):
    pass


def parse_term(raw: Any, *, field_name: str) -> Term:
    if isinstance(raw, str):
        return Term(value=raw)
    if not isinstance(raw, Mapping):
        raise MalformedChange(f"{field_name} must be a term object")

    value = raw.get("value")
    if not isinstance(value, str):
        raise MalformedChange(f"{field_name}.value must be a string")
    term_type = raw.get("type", "uri")
    if not isinstance(term_type, str):
        raise MalformedChange(f"{field_name}.type must be a string")
    datatype = raw.get("datatype")
    lang = raw.get("xml:lang", raw.get("lang"))
    if datatype is not None and not isinstance(datatype, str):
        raise MalformedChange(f"{field_name}.datatype must be a string")
    if lang is not None and not isinstance(lang, str):
        raise MalformedChange(f"{field_name}.xml:lang must be a string")
    return Term(value=value, type=term_type, datatype=datatype or None, lang=lang or None)


def parse_change(raw: Any, change_type: ChangeType) -> Change:
    """Build one Change from a quad object; raises MalformedChange."""
    if not isinstance(raw, Mapping):
        raise MalformedChange("quad must be an object")
    for required in ("subject", "predicate", "object"):
        if required not in raw:
            raise MalformedChange(f"quad is missing '{required}'")

    graph_raw = raw.get("graph")
    return Change(
        subject=parse_term(raw["subject"], field_name="subject"),
        predicate=parse_term(raw["predicate"], field_name="predicate"),
        object=parse_term(raw["object"], field_name="object"),
        graph=parse_term(graph_raw, field_name="graph") if graph_raw is not None else None,
        change_type=change_type,
    )


def parse_delta(
    body: Any,
    *,
    origin: str,
    scope: str | None = None,
    timestamp: datetime | None = None,
) -> tuple[Delta, int]:
    """
    Decode a list of `{"inserts": [...], "deletes": [...]}` change sets.

    Within a change set deletions precede additions. Quads that cannot be
    decoded are skipped and counted rather than rejecting the whole delta.

    Returns:
        Tuple of (delta, skipped_count)
    """
    if isinstance(body, Mapping):
        body = [body]
    if not isinstance(body, list):
        raise MalformedChange("delta body must be a list of change sets")

    changes: list[Change] = []
    skipped = 0
    for change_set in body:
        if not isinstance(change_set, Mapping):
            skipped += 1
            logger.warning("Skipping change set that is not an object")
            continue
        for key, change_type in (("deletes", ChangeType.DELETION), ("inserts", ChangeType.ADDITION)):
            quads = change_set.get(key) or []
            if not isinstance(quads, list):
                skipped += 1
                logger.warning("Skipping change set '%s' that is not a list", key)
                continue
            for quad in quads:
                try:
                    changes.append(parse_change(quad, change_type))
                except MalformedChange as exc:
                    skipped += 1
                    logger.warning("Skipping malformed %s quad: %s", change_type.value, exc)

    delta = Delta(
        origin=origin,
        timestamp=timestamp or timezone.now(),
        changes=tuple(changes),
        scope=scope,
    )
    return delta, skipped
