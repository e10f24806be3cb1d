"""Fold engine: collapse a window of changes into its effective changes."""

from __future__ import annotations

from collections.abc import Iterable

from .changes import Change


def fold_changes(changes: Iterable[Change]) -> list[Change]:
    """
    Fold an ordered sequence of changes into the effective change set.

    Processing in arrival order, the first change for a statement sets its
    net effect; an opposite change for a statement with a net effect cancels
    it out entirely; a repeat of the same change type is absorbed. The result
    keeps one change per surviving statement, in first-seen order.

    Cancellation is a heuristic: it assumes the pair refers to the statement's
    pre-window state and does not consult the store.
    """
    net: dict[tuple, Change] = {}
    for change in changes:
        key = change.identity
        current = net.get(key)
        if current is None:
            net[key] = change
        elif current.change_type is not change.change_type:
            del net[key]
    return list(net.values())
