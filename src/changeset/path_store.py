"""
Dotted-path access for nested data.

Two kinds of storage are addressed by the same dotted keys:

- Nested content (the caller's object): walked segment by segment through
  mappings, sequences and plain attribute objects.
- Flat maps (a changeset's changes/errors): one entry per full dotted key,
  e.g. {'user.name': Change('Bob')}. A sub-field edit never decomposes the
  parent value.

External API: get_path(content, 'user.name')
Internal:     changes['user.name'] (flat dict)
"""
import logging
from collections.abc import Mapping, MutableMapping, Sequence
from typing import Any, Dict, Iterable, List, Tuple

from changeset.errors import PathError

logger = logging.getLogger(__name__)

_SCALARS = (str, bytes, bytearray, int, float, complex, bool, type(None))


def split_path(path: str) -> Tuple[str, ...]:
    """Split a dotted path into its segments."""
    if not isinstance(path, str):
        raise PathError(str(path), "Path must be a string")
    return tuple(path.split('.'))


def is_object(value: Any) -> bool:
    """True for mappings and attribute-bearing objects (not scalars or sequences)."""
    if isinstance(value, Mapping):
        return True
    if isinstance(value, _SCALARS) or isinstance(value, Sequence):
        return False
    return hasattr(value, '__dict__') or hasattr(value, '__slots__')


def _get_segment(current: Any, segment: str, missing: Any) -> Any:
    if isinstance(current, Mapping):
        return current.get(segment, missing)
    if isinstance(current, Sequence) and not isinstance(current, _SCALARS):
        try:
            return current[int(segment)]
        except (ValueError, IndexError):
            return missing
    if isinstance(current, _SCALARS):
        return missing
    return getattr(current, segment, missing)


def get_path(root: Any, path: str, default: Any = None) -> Any:
    """Resolve a dotted path, returning default for any missing segment.

    Args:
        root: Nested mapping / sequence / object to read from
        path: Dotted path like 'user.address.city'
        default: Value returned when a segment is missing

    Returns:
        The value at path, or default
    """
    missing = object()
    current = root
    for segment in split_path(path):
        current = _get_segment(current, segment, missing)
        if current is missing:
            return default
    return current


def _set_segment(container: Any, segment: str, value: Any, path: str) -> None:
    if isinstance(container, MutableMapping):
        container[segment] = value
    elif isinstance(container, list):
        try:
            idx = int(segment)
        except ValueError as e:
            raise PathError(path, f"Invalid list index: {e}")
        while len(container) <= idx:
            container.append(None)
        container[idx] = value
    elif isinstance(container, _SCALARS) or isinstance(container, (Mapping, Sequence)):
        raise PathError(path, f"Cannot write into {type(container).__name__}")
    else:
        setattr(container, segment, value)


def set_path(root: Any, path: str, value: Any) -> Any:
    """Deep-write value at a dotted path.

    Missing (or None) intermediate levels are created as dicts; sibling keys
    are preserved.

    Raises:
        PathError: If an intermediate segment holds a non-container value
    """
    segments = split_path(path)
    missing = object()
    current = root
    for i, segment in enumerate(segments[:-1]):
        nxt = _get_segment(current, segment, missing)
        if nxt is missing or nxt is None:
            nxt = {}
            _set_segment(current, segment, nxt, path)
        elif isinstance(nxt, _SCALARS):
            partial = '.'.join(segments[:i + 1])
            raise PathError(path, f"'{partial}' holds {type(nxt).__name__}, not a container")
        current = nxt
    _set_segment(current, segments[-1], value, path)
    return value


def delete_path(root: Any, path: str) -> bool:
    """Remove the leaf at path. Returns True if something was removed."""
    segments = split_path(path)
    missing = object()
    parent = root
    for segment in segments[:-1]:
        parent = _get_segment(parent, segment, missing)
        if parent is missing:
            return False
    leaf = segments[-1]
    if isinstance(parent, MutableMapping):
        if leaf in parent:
            del parent[leaf]
            return True
        return False
    if isinstance(parent, _SCALARS) or isinstance(parent, (Mapping, Sequence)):
        return False
    if hasattr(parent, leaf):
        delattr(parent, leaf)
        return True
    return False


# ==================== FLAT MAP HELPERS ====================

def set_nested_property(flat: Dict[str, Any], key: str, value: Any) -> Any:
    """Write key into a flat map, evicting entries that would conflict with it.

    A flat map never holds both a path and one of its prefixes:
    writing 'user.name' drops 'user', writing 'user' drops 'user.name'.
    """
    for ancestor in ancestors(key):
        if ancestor in flat:
            logger.debug(f"set_nested_property: {key!r} evicts ancestor {ancestor!r}")
            del flat[ancestor]
    prefix = f"{key}."
    for existing in [k for k in flat if k.startswith(prefix)]:
        logger.debug(f"set_nested_property: {key!r} evicts descendant {existing!r}")
        del flat[existing]
    flat[key] = value
    return value


def merge_nested(*flats: Mapping) -> Dict[str, Any]:
    """Merge flat maps left to right into a new flat map."""
    merged: Dict[str, Any] = {}
    for flat in flats:
        for key, value in flat.items():
            set_nested_property(merged, key, value)
    return merged


def object_without(excluded_keys: Iterable[str], flat: Mapping) -> Dict[str, Any]:
    """Copy of flat without excluded_keys."""
    excluded = set(excluded_keys)
    return {k: v for k, v in flat.items() if k not in excluded}


def take(flat: Mapping, keys: Iterable[str]) -> Dict[str, Any]:
    """Copy of flat restricted to keys (missing keys are skipped)."""
    return {k: flat[k] for k in keys if k in flat}


def ancestors(key: str) -> List[str]:
    """Dotted prefixes of key, shortest first ('a.b.c' -> ['a', 'a.b'])."""
    segments = split_path(key)
    return ['.'.join(segments[:i]) for i in range(1, len(segments))]
