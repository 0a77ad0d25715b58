"""Containment helpers for the list arguments changeset operations accept."""
from typing import Any, Collection

from changeset.errors import NotASequenceError

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def ensure_sequence(items: Any) -> Collection:
    """Return items unchanged if it is a list, tuple, set or frozenset.

    Raises:
        NotASequenceError: For anything else (including strings and mappings)
    """
    if not isinstance(items, _SEQUENCE_TYPES):
        raise NotASequenceError(f"must be a sequence, got {type(items).__name__}")
    return items


def includes(items: Collection, *candidates: Any) -> bool:
    """True if every candidate is in items."""
    ensure_sequence(items)
    return all(candidate in items for candidate in candidates)
