"""Generic desired-versus-observed diff engine.

Each category supplies its own predicates; this module owns the rules they
share:

- Duplicate desired entries (same identity) collapse into one
- Pairing is 1:1: an observed item pairs with at most one desired item
- ToCreate and ToUpdate follow desired order
- An unpaired observed item is deleted only if it matches an owned item
  (non-greedy deletion) and is not already closing

Computing a diff never raises; listing failures happen before it is called.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

D = TypeVar("D")
O = TypeVar("O")


@dataclass
class Diff(Generic[D, O]):
    """Operations needed to converge observed state to desired state."""

    to_create: list[D] = field(default_factory=list)
    to_update: list[tuple[O, D]] = field(default_factory=list)
    to_delete: list[O] = field(default_factory=list)

    # Matched pairs that need no remote call (status refresh only)
    in_sync: list[tuple[O, D]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when no remote mutation is needed."""
        return not self.to_create and not self.to_update and not self.to_delete

    @property
    def matched(self) -> list[tuple[O, D]]:
        """All matched pairs, updates first."""
        return [*self.to_update, *self.in_sync]

    def summary(self) -> dict[str, int]:
        return {
            "to_create": len(self.to_create),
            "to_update": len(self.to_update),
            "to_delete": len(self.to_delete),
            "in_sync": len(self.in_sync),
        }


@dataclass
class Collapsed(Generic[D]):
    """A unique desired item and how many desired entries collapsed into it."""

    item: D
    count: int = 1


def collapse(items: Iterable[D], identity: Callable[[D], Hashable]) -> list[Collapsed[D]]:
    """Collapse desired entries sharing an identity, keeping first-seen order."""
    unique: dict[Hashable, Collapsed[D]] = {}
    for item in items:
        key = identity(item)
        if key in unique:
            unique[key].count += 1
        else:
            unique[key] = Collapsed(item)
    return list(unique.values())


def compute_diff(
    desired: Sequence[D],
    observed: Sequence[O],
    owned: Sequence[D],
    *,
    matches: Callable[[D, O], bool],
    identity: Callable[[D], Hashable],
    is_closing: Callable[[O], bool] | None = None,
    needs_update: Callable[[O, D], bool] | None = None,
) -> Diff[D, O]:
    """Compute the create/update/delete sets for one category.

    Args:
        desired: Desired items in declaration order.
        observed: Remote items as listed.
        owned: Desired items recorded by the last successful cycle.
        matches: Identity predicate between a desired and an observed item.
        identity: Identity key of a desired item (duplicate collapsing).
        is_closing: Whether an observed item is already being deleted.
        needs_update: Whether a matched pair needs a remote update call.
            Pairs that do not go to ``in_sync``.

    Returns:
        The diff. Deletions are gated by ownership.
    """
    diff: Diff[D, O] = Diff()
    paired: set[int] = set()

    for entry in collapse(desired, identity):
        if entry.count > 1:
            logger.warning(
                "Collapsed duplicate desired entries",
                extra={"identity": str(identity(entry.item)), "count": entry.count},
            )
        match_index = _first_unpaired_match(entry.item, observed, paired, matches)
        if match_index is None:
            diff.to_create.append(entry.item)
            continue
        paired.add(match_index)
        pair = (observed[match_index], entry.item)
        if needs_update is not None and needs_update(*pair):
            diff.to_update.append(pair)
        else:
            diff.in_sync.append(pair)

    for index, item in enumerate(observed):
        if index in paired:
            continue
        if is_closing is not None and is_closing(item):
            continue
        if any(matches(owned_item, item) for owned_item in owned):
            diff.to_delete.append(item)

    return diff


def _first_unpaired_match(
    item: D,
    observed: Sequence[O],
    paired: set[int],
    matches: Callable[[D, O], bool],
) -> int | None:
    for index, candidate in enumerate(observed):
        if index not in paired and matches(item, candidate):
            return index
    return None


def match_positional(
    desired: Sequence[D],
    observed: Sequence[O],
    sort_key: Callable[[O], str],
) -> tuple[list[tuple[O, D]], list[D], list[O]]:
    """Pair keyless desired items with keyless observed items by position.

    Observed items are sorted by their provider-assigned id ascending before
    pairing, so repeated passes over the same remote state pair identically.
    This relies on remote ids being stable; reordering of ids between passes
    would re-pair placeholders.

    Returns:
        (pairs, unmatched desired, unmatched observed in ascending id order).
    """
    ordered = sorted(observed, key=sort_key)
    pair_count = min(len(desired), len(ordered))
    pairs = [(ordered[i], desired[i]) for i in range(pair_count)]
    return pairs, list(desired[pair_count:]), ordered[pair_count:]
