"""Change model: terms, single-statement changes, deltas and pattern matching."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .errors import MatchEvaluationError

CHANGE_FIELDS = ("subject", "predicate", "object", "graph")

# Attributes a mapping-style pattern may constrain, with accepted aliases.
TERM_ATTRIBUTES = {
    "type": "type",
    "value": "value",
    "datatype": "datatype",
    "lang": "lang",
    "xml:lang": "lang",
}


class ChangeType(str, Enum):
    ADDITION = "addition"
    DELETION = "deletion"


@dataclass(frozen=True)
class Term:
    """One RDF term (URI, literal or blank node) as carried by a delta."""

    value: str
    type: str = "uri"
    datatype: str | None = None
    lang: str | None = None

    def as_dict(self) -> dict[str, str]:
        out = {"type": self.type, "value": self.value}
        if self.datatype:
            out["datatype"] = self.datatype
        if self.lang:
            out["xml:lang"] = self.lang
        return out


@dataclass(frozen=True)
class Change:
    """A single addition or deletion of one subject-predicate-object-graph statement."""

    subject: Term
    predicate: Term
    object: Term
    graph: Term | None
    change_type: ChangeType

    @property
    def identity(self) -> tuple[Term, Term, Term, Term | None]:
        """Statement identity, independent of the change type."""
        return (self.subject, self.predicate, self.object, self.graph)

    def with_type(self, change_type: ChangeType) -> Change:
        if change_type is self.change_type:
            return self
        return Change(
            subject=self.subject,
            predicate=self.predicate,
            object=self.object,
            graph=self.graph,
            change_type=change_type,
        )

    def as_quad(self) -> dict[str, dict[str, str]]:
        quad = {
            "subject": self.subject.as_dict(),
            "predicate": self.predicate.as_dict(),
            "object": self.object.as_dict(),
        }
        if self.graph is not None:
            quad["graph"] = self.graph.as_dict()
        return quad

    def as_dict(self) -> dict[str, Any]:
        return {"changeType": self.change_type.value, **self.as_quad()}


@dataclass(frozen=True)
class Delta:
    """
    Ordered group of changes produced by one transaction.

    `origin` identifies the producer; `scope` is the optional authorization
    scope the producer wrote under.
    """

    origin: str
    timestamp: datetime
    changes: tuple[Change, ...] = field(default_factory=tuple)
    scope: str | None = None

    def __len__(self) -> int:
        return len(self.changes)


def _term_matches(term: Term | None, expected: Any, field_name: str) -> bool:
    if expected is None:
        return True
    if isinstance(expected, str):
        return term is not None and term.value == expected
    if not isinstance(expected, Mapping):
        raise MatchEvaluationError(
            f"Pattern field '{field_name}' must be a string or mapping, got {type(expected).__name__}"
        )
    if not expected:
        return True
    if term is None:
        return False
    for key, wanted in expected.items():
        attribute = TERM_ATTRIBUTES.get(key)
        if attribute is None:
            raise MatchEvaluationError(f"Unknown term attribute '{key}' in pattern field '{field_name}'")
        if getattr(term, attribute) != wanted:
            return False
    return True


def change_matches(change: Change, pattern: Mapping[str, Any]) -> bool:
    """
    Return True when every constrained field of `pattern` equals the change's field.

    Fields absent from the pattern, or given as `{}`/None, match anything, so an
    empty pattern matches every change. Raises MatchEvaluationError when the
    pattern or the change has an unexpected shape.
    """
    if not isinstance(pattern, Mapping):
        raise MatchEvaluationError(f"Pattern must be a mapping, got {type(pattern).__name__}")
    if not isinstance(change, Change):
        raise MatchEvaluationError(f"Expected a Change, got {type(change).__name__}")

    for field_name, expected in pattern.items():
        if field_name not in CHANGE_FIELDS:
            raise MatchEvaluationError(f"Unknown pattern field '{field_name}'")
        if not _term_matches(getattr(change, field_name), expected, field_name):
            return False
    return True
