"""
Buffered, validated edits over an arbitrary nested object.

Callers stage field edits against a Changeset instead of the object itself.
Each edit is validated (synchronously or asynchronously) before it is
accepted; pending changes and errors are tracked per dotted field path, and
the caller later commits, discards, merges or snapshots them.

Quick Start:
    >>> from changeset import Changeset
    >>>
    >>> def not_blank(key, new_value, old_value, changes, content):
    ...     return bool(new_value) or f"{key} can't be blank"
    >>>
    >>> user = {'name': 'Al'}
    >>> cs = Changeset(user, not_blank)
    >>> cs.set('name', '')
    Err(value='', validation="name can't be blank")
    >>> cs.is_invalid
    True
    >>> cs.set('name', 'Bob')
    'Bob'
    >>> cs.execute().data
    {'name': 'Bob'}

Architecture:
    set(key) -> Path Store reads the old value -> Validation Pipeline decides
    accept/reject -> changes or errors map updated -> derived views recompute
    on next read.

Modules:
    - changeset: Changeset engine (get/set/validate/execute/save/merge/...)
    - path_store: dotted-path get/set/delete and flat-map helpers
    - change_model: Change / Err wrappers and ChangesetSnapshot
    - validation: validator invocation and running-validation tracking
    - events: observer registration for changeset notifications
    - views: array / inflated / flat projections of the maps
    - token_cache: revision-token cache backing the views
    - config: ChangesetOptions and process-wide defaults
    - errors: contract-violation exceptions
"""

# Engine
from changeset.changeset import Changeset, is_changeset

# Values + snapshots
from changeset.change_model import Change, Err, ChangesetSnapshot

# Validation
from changeset.validation import (
    ValidationPipeline,
    default_validator,
    is_valid_result,
    is_awaitable_result,
)

# Notifications
from changeset.events import (
    ChangesetEvents,
    BEFORE_VALIDATION,
    AFTER_VALIDATION,
    AFTER_ROLLBACK,
    PROPERTY_CHANGED,
)

# Path store
from changeset.path_store import get_path, set_path, delete_path

# Configuration
from changeset.config import (
    ChangesetOptions,
    set_default_options,
    get_default_options,
    reset_default_options,
)

# Errors
from changeset.errors import (
    ChangesetError,
    ContentMissingError,
    MergeError,
    ErrorPayloadError,
    SnapshotError,
    PrepareError,
    NotASequenceError,
    PathError,
)

__all__ = [
    # Engine
    'Changeset',
    'is_changeset',
    # Values + snapshots
    'Change',
    'Err',
    'ChangesetSnapshot',
    # Validation
    'ValidationPipeline',
    'default_validator',
    'is_valid_result',
    'is_awaitable_result',
    # Notifications
    'ChangesetEvents',
    'BEFORE_VALIDATION',
    'AFTER_VALIDATION',
    'AFTER_ROLLBACK',
    'PROPERTY_CHANGED',
    # Path store
    'get_path',
    'set_path',
    'delete_path',
    # Configuration
    'ChangesetOptions',
    'set_default_options',
    'get_default_options',
    'reset_default_options',
    # Errors
    'ChangesetError',
    'ContentMissingError',
    'MergeError',
    'ErrorPayloadError',
    'SnapshotError',
    'PrepareError',
    'NotASequenceError',
    'PathError',
]
