"""
Changeset options and process-wide defaults.

Per-instance options are layered over the module-level defaults:

    set_default_options(skip_validate=True)   # every new changeset
    Changeset(obj, options={'skip_validate': False})  # this one only
"""
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any, Optional, Union


@dataclass(frozen=True)
class ChangesetOptions:
    """Behaviour switches for a changeset.

    skip_validate: record every set() as an accepted change without calling
                   the validator.
    """
    skip_validate: bool = False


_default_options: ChangesetOptions = ChangesetOptions()


def set_default_options(**overrides: Any) -> ChangesetOptions:
    """Replace the process-wide defaults used by changesets created afterwards."""
    global _default_options
    _default_options = replace(_default_options, **overrides)
    return _default_options


def get_default_options() -> ChangesetOptions:
    return _default_options


def reset_default_options() -> None:
    """Restore built-in defaults (mainly for tests)."""
    global _default_options
    _default_options = ChangesetOptions()


def resolve_options(options: Optional[Union[ChangesetOptions, Mapping]] = None) -> ChangesetOptions:
    """Merge per-instance options over the current defaults.

    Args:
        options: None, a ChangesetOptions, or a mapping of overrides

    Raises:
        TypeError: If a mapping names an unknown option
    """
    if options is None:
        return _default_options
    if isinstance(options, ChangesetOptions):
        return options
    known = {f.name for f in fields(ChangesetOptions)}
    unknown = set(options) - known
    if unknown:
        raise TypeError(f"Unknown changeset option(s): {sorted(unknown)}")
    return replace(_default_options, **dict(options))
