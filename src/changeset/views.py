"""
Read-only projections of a changeset's flat maps.

All functions are pure: they take the flat map and return a fresh structure.
The changeset caches the results (see token_cache) and drops them on every
mutation.
"""
from collections.abc import Mapping
from typing import Any, Callable, Dict, List

from changeset.path_store import set_path


def _identity(value: Any) -> Any:
    return value


def transform(flat: Mapping, fn: Callable[[Any], Any]) -> Dict[str, Any]:
    """Flat map with every value passed through fn ({'a.b': Change(1)} -> {'a.b': 1})."""
    return {key: fn(value) for key, value in flat.items()}


def object_to_array(
    flat: Mapping,
    fn: Callable[[Any], Any] = _identity,
    flatten_objects: bool = False,
) -> List[Dict[str, Any]]:
    """Array form of a flat map.

    Each entry is {'key': key, 'value': fn(value)}. With flatten_objects, a
    mapping returned by fn is spread into the entry instead:
    {'key': key, **fn(value)}.
    """
    result = []
    for key, value in flat.items():
        transformed = fn(value)
        if flatten_objects and isinstance(transformed, Mapping):
            result.append({'key': key, **transformed})
        else:
            result.append({'key': key, 'value': transformed})
    return result


def inflate(flat: Mapping, fn: Callable[[Any], Any] = _identity) -> Dict[str, Any]:
    """Nested dict built from a flat map of dotted keys (keys applied in sorted order).

    {'user.name': 'Bob', 'age': 3} -> {'age': 3, 'user': {'name': 'Bob'}}
    """
    inflated: Dict[str, Any] = {}
    for key in sorted(flat):
        set_path(inflated, key, fn(flat[key]))
    return inflated
