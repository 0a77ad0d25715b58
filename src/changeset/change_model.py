"""
Value wrappers held in a changeset's flat maps, and the snapshot model.

Design:
- Immutable wrappers (frozen dataclasses) so merged changesets can share them
- Snapshots hold plain values only - no wrapper or changeset references
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict

from changeset.errors import SnapshotError


@dataclass(frozen=True)
class Change:
    """Accepted pending value for a field path, not yet committed."""
    value: Any


@dataclass(frozen=True)
class Err:
    """Rejected staged value plus its validation reason(s).

    validation is whatever the validator returned: a message, a list of
    messages, False, etc.
    """
    value: Any
    validation: Any

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value, 'validation': self.validation}


def _require_mapping(name: str, value: Any) -> Mapping:
    if not isinstance(value, Mapping):
        raise SnapshotError(f"{name} must be a mapping, got {type(value).__name__}")
    for key in value:
        if not isinstance(key, str):
            raise SnapshotError(f"{name} keys must be dotted path strings, got {key!r}")
    return value


@dataclass(frozen=True)
class ChangesetSnapshot:
    """Plain-value capture of a changeset's changes and errors.

    changes: dotted path -> staged value
    errors:  dotted path -> {'value': ..., 'validation': ...}
    """
    changes: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def capture(cls, changes: Mapping, errors: Mapping) -> 'ChangesetSnapshot':
        """Build a snapshot from flat maps of Change / Err wrappers."""
        return cls(
            changes={key: c.value for key, c in changes.items()},
            errors={key: e.to_dict() for key, e in errors.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Export to a plain dict (JSON-serializable if the values are)."""
        return {
            'changes': dict(self.changes),
            'errors': {key: dict(e) for key, e in self.errors.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> 'ChangesetSnapshot':
        """Import from a dict produced by to_dict().

        Raises:
            SnapshotError: If data, 'changes' or 'errors' is not a mapping,
                or an error entry lacks 'value' / 'validation'
        """
        if not isinstance(data, Mapping):
            raise SnapshotError(f"snapshot must be a mapping, got {type(data).__name__}")
        changes = _require_mapping('snapshot.changes', data.get('changes'))
        errors = _require_mapping('snapshot.errors', data.get('errors'))
        for key, e in errors.items():
            if not isinstance(e, Mapping) or 'value' not in e or 'validation' not in e:
                raise SnapshotError(f"snapshot.errors[{key!r}] must have 'value' and 'validation'")
        return cls(
            changes=dict(changes),
            errors={key: {'value': e['value'], 'validation': e['validation']} for key, e in errors.items()},
        )

    def to_changes(self) -> Dict[str, Change]:
        return {key: Change(value) for key, value in self.changes.items()}

    def to_errors(self) -> Dict[str, Err]:
        return {key: Err(e['value'], e['validation']) for key, e in self.errors.items()}
