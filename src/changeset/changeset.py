"""
Changeset: buffered, validated edits over a caller-owned object.

Edits are staged against the changeset instead of the object. Each set() is
validated (sync or async) and lands in exactly one of two flat maps:

- _changes: dotted path -> Change (accepted, differs from content)
- _errors:  dotted path -> Err (rejected value + validation reason(s))

A key is never in both maps at rest. Nothing touches the content until
execute() (or save()) commits the changes.

Reading a key resolves, in order:
    error value -> change value -> value inside a changed ancestor -> content

Everything else is derived from the two maps:
- is_valid / is_pristine  -> maps empty
- changes / errors        -> array form
- change / error          -> inflated nested form
- bare_changes            -> flat {path: value}

Lifecycle: maps start empty, are mutated by set/validate/add_error/
push_errors/cast/prepare/rollback*/merge/restore, and are cleared by
rollback() or by save() after the content saved.

Thread safety: Not thread-safe (single logical owner; async validations run
cooperatively on the owner's event loop).
"""
import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from changeset.change_model import Change, ChangesetSnapshot, Err
from changeset.config import ChangesetOptions, resolve_options
from changeset.errors import ContentMissingError, ErrorPayloadError, MergeError, PrepareError
from changeset.events import AFTER_ROLLBACK, PROPERTY_CHANGED, ChangesetEvents
from changeset.path_store import (
    ancestors,
    get_path,
    is_object,
    merge_nested,
    object_without,
    set_nested_property,
    set_path,
    take,
)
from changeset.sequence_utils import ensure_sequence, includes
from changeset.token_cache import TokenCache
from changeset.validation import ValidationPipeline, Validator, is_awaitable_result, is_valid_result
from changeset.views import inflate, object_to_array, transform

logger = logging.getLogger(__name__)

CHANGES = '_changes'
ERRORS = '_errors'


def _change_value(change: Change) -> Any:
    return change.value


def _error_value(error: Err) -> Dict[str, Any]:
    return error.to_dict()


async def _resolved(value: Any) -> Any:
    return value


def _as_awaitable(outcome: Any) -> Any:
    return outcome if is_awaitable_result(outcome) else _resolved(outcome)


class Changeset:
    """Buffered-mutation overlay for a nested object.

    Args:
        content: The object being edited (mapping or attribute object). Required.
        validator: Callable(key=, new_value=, old_value=, changes=, content=)
                   returning True, a rejection, or an awaitable of either.
                   None accepts everything.
        validation_map: Mapping whose keys are the fields validate() checks
                        when called without a key.
        options: ChangesetOptions or a mapping of overrides over the defaults.

    Raises:
        ContentMissingError: If content is None
    """

    def __init__(
        self,
        content: Any,
        validator: Optional[Validator] = None,
        validation_map: Optional[Mapping] = None,
        options: Optional[Union[ChangesetOptions, Mapping]] = None,
    ):
        if content is None:
            raise ContentMissingError("Underlying object for changeset is missing")

        # === Core State ===
        self._content = content
        self._changes: Dict[str, Change] = {}
        self._errors: Dict[str, Err] = {}
        self._validation_map: Dict[str, Any] = dict(validation_map or {})
        self._options: ChangesetOptions = resolve_options(options)

        # === Notifications + validation ===
        self._events = ChangesetEvents()
        self._validation = ValidationPipeline(validator, self._events)

        # === Derived view cache (bumped on every mutation) ===
        self._revision = 0
        self._views: TokenCache[Any] = TokenCache(lambda: self._revision)

    def __repr__(self) -> str:
        return f"changeset:{self._content!r}"

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    # ==================== SUBSCRIPTION ====================

    def on(self, event: str, callback: Callable[..., None]) -> None:
        """Subscribe to before_validation / after_validation / after_rollback / property_changed."""
        self._events.subscribe(event, callback)

    def off(self, event: str, callback: Callable[..., None]) -> None:
        """Unsubscribe from a changeset event."""
        self._events.unsubscribe(event, callback)

    def _notify(self, *keys: str) -> None:
        """Invalidate derived views and announce the keys whose resolved value may have changed."""
        self._revision += 1
        for key in dict.fromkeys(keys):
            self._events.fire(PROPERTY_CHANGED, key)

    def _notify_virtual_properties(self, keys: Optional[Iterable[str]] = None) -> None:
        if keys is None:
            keys = self._rollback_keys()
        self._notify(CHANGES, ERRORS, *keys)

    def _rollback_keys(self) -> List[str]:
        """Keys currently in changes or errors (unique, changes first)."""
        return list(dict.fromkeys([*self._changes, *self._errors]))

    # ==================== STATE + VIEWS ====================

    @property
    def data(self) -> Any:
        """The underlying content."""
        return self._content

    @property
    def options(self) -> ChangesetOptions:
        return self._options

    @property
    def is_valid(self) -> bool:
        return not self._errors

    @property
    def is_invalid(self) -> bool:
        return not self.is_valid

    @property
    def is_pristine(self) -> bool:
        return not self._changes

    @property
    def is_dirty(self) -> bool:
        return not self.is_pristine

    @property
    def changes(self) -> List[Dict[str, Any]]:
        """[{'key': path, 'value': staged value}, ...]"""
        return self._views.get_or_compute(
            'changes', lambda: object_to_array(self._changes, _change_value))

    @property
    def errors(self) -> List[Dict[str, Any]]:
        """[{'key': path, 'value': rejected value, 'validation': reason(s)}, ...]"""
        return self._views.get_or_compute(
            'errors', lambda: object_to_array(self._errors, _error_value, flatten_objects=True))

    @property
    def change(self) -> Dict[str, Any]:
        """Changes inflated into a nested dict ({'user.name': 'Bob'} -> {'user': {'name': 'Bob'}})."""
        return self._views.get_or_compute('change', lambda: inflate(self._changes, _change_value))

    @property
    def error(self) -> Dict[str, Any]:
        """Errors inflated into a nested dict of {'value', 'validation'} leaves."""
        return self._views.get_or_compute('error', lambda: inflate(self._errors, _error_value))

    @property
    def bare_changes(self) -> Dict[str, Any]:
        """Flat {path: staged value}."""
        return self._views.get_or_compute('bare_changes', lambda: transform(self._changes, _change_value))

    def is_validating(self, key: Optional[str] = None) -> bool:
        """True while an async validation (for key, or any key) has not settled."""
        return self._validation.is_validating(key)

    # ==================== READ ====================

    def get(self, key: str) -> Any:
        """Resolved value for key: error value, change value, changed ancestor, then content."""
        return self._value_for(key)

    def _value_for(self, key: str) -> Any:
        if key in self._errors:
            return self._errors[key].value
        if key in self._changes:
            return self._changes[key].value

        # Nested key under a changed ancestor: read the remainder from the staged value
        for ancestor in reversed(ancestors(key)):
            if ancestor in self._changes:
                value = self._changes[ancestor].value
                if not is_object(value):
                    return value
                return get_path(value, key[len(ancestor) + 1:])

        return get_path(self._content, key)

    # ==================== WRITE + VALIDATE ====================

    def set(self, key: str, value: Any) -> Any:
        """Stage value for key and validate it.

        Returns:
            value if accepted, the Err if rejected, or an asyncio.Task
            resolving to one of these when the validator is async

        If the validator raises (or is async with no running event loop),
        both maps are put back as they were and the exception propagates.
        An async validator that fails after being scheduled drops the staged
        change for key.
        """
        old_value = get_path(self._content, key)
        prior_changes, prior_errors = dict(self._changes), dict(self._errors)
        self._set_property(key, value, old_value)
        try:
            if self._options.skip_validate:
                return self._handle_validation(True, key, value)
            return self._validate_key(
                key, value, discard=lambda: self._discard_unvalidated(key, value))
        except Exception:
            self._changes, self._errors = prior_changes, prior_errors
            logger.debug(f"set aborted: key={key!r} value={value!r}")
            self._notify(CHANGES, ERRORS, key)
            raise

    def _set_property(self, key: str, value: Any, old_value: Any) -> None:
        """Record the attempted change, replacing whatever was staged for key."""
        self._errors.pop(key, None)
        if old_value != value:
            set_nested_property(self._changes, key, Change(value))
        else:
            self._changes.pop(key, None)
        logger.debug(f"set: key={key!r} old={old_value!r} new={value!r}")
        self._notify(CHANGES, ERRORS, key)

    def _validate_key(self, key: str, value: Any, discard: Optional[Callable[[], None]] = None) -> Any:
        old_value = get_path(self._content, key)
        return self._validation.run(
            key,
            value,
            old_value,
            inflate(self._changes, _change_value),
            self._content,
            lambda result: self._handle_validation(result, key, value),
            discard,
        )

    def _discard_unvalidated(self, key: str, value: Any) -> None:
        """Drop key's staged change if it still holds value."""
        if self._changes.get(key) == Change(value):
            del self._changes[key]
            logger.debug(f"discarded unvalidated change: key={key!r} value={value!r}")
            self._notify(CHANGES, ERRORS, key)

    def _handle_validation(self, validation: Any, key: str, value: Any) -> Any:
        """Apply a settled validation result: accept into changes or reject into errors."""
        if not is_valid_result(validation):
            logger.debug(f"rejected: key={key!r} value={value!r} validation={validation!r}")
            return self._write_error(key, Err(value, validation))

        self._errors.pop(key, None)
        if get_path(self._content, key) != value:
            set_nested_property(self._changes, key, Change(value))
        else:
            self._changes.pop(key, None)
        self._notify(CHANGES, ERRORS, key)
        return value

    def _write_error(self, key: str, error: Err) -> Err:
        self._changes.pop(key, None)
        set_nested_property(self._errors, key, error)
        self._notify(CHANGES, ERRORS, key)
        return error

    async def validate(self, key: Optional[str] = None) -> Any:
        """Re-run validation against the resolved values.

        With key: validate that key. Without: validate every key in the
        validation map concurrently and return their outcomes in map order.
        No validation map: returns None without validating.
        """
        if not self._validation_map:
            return None
        if key is None:
            outcomes = [
                self._validate_key(validation_key, self._value_for(validation_key))
                for validation_key in self._validation_map
            ]
            return await asyncio.gather(*(_as_awaitable(o) for o in outcomes))
        return await _as_awaitable(self._validate_key(key, self._value_for(key)))

    # ==================== MANUAL ERRORS ====================

    def add_error(self, key: str, error: Any) -> Err:
        """Record an error for key, replacing any change or error staged for it.

        Args:
            key: Dotted path
            error: Mapping with 'value' and 'validation', an Err, or a bare
                   validation reason (paired with the key's resolved value)

        Raises:
            ErrorPayloadError: If a mapping lacks 'value' or 'validation'
        """
        if isinstance(error, Err):
            new_error = error
        elif isinstance(error, Mapping):
            if 'value' not in error:
                raise ErrorPayloadError("Error must have value.")
            if 'validation' not in error:
                raise ErrorPayloadError("Error must have validation.")
            new_error = Err(error['value'], error['validation'])
        else:
            new_error = Err(self._value_for(key), error)
        return self._write_error(key, new_error)

    def push_errors(self, key: str, *new_errors: Any) -> Err:
        """Append validation reasons to key's error (created if absent)."""
        existing = self._errors.get(key)
        validation = existing.validation if existing is not None else []
        if isinstance(validation, (list, tuple)):
            validation = list(validation)
        elif validation is None or validation == '':
            validation = []
        else:
            validation = [validation]
        return self._write_error(key, Err(self._value_for(key), [*validation, *new_errors]))

    # ==================== COMMIT ====================

    def prepare(self, prepare_changes_fn: Callable[[Dict[str, Any]], Mapping]) -> 'Changeset':
        """Replace changes with prepare_changes_fn(bare_changes) before execute().

        Raises:
            PrepareError: If the callback does not return a mapping
        """
        prepared = prepare_changes_fn(dict(self.bare_changes))
        if not isinstance(prepared, Mapping):
            raise PrepareError("Callback to `prepare` must return a mapping")
        old_keys = list(self._changes)
        self._changes = merge_nested({key: Change(value) for key, value in prepared.items()})
        self._notify(CHANGES, *old_keys, *self._changes)
        return self

    def execute(self) -> 'Changeset':
        """Commit every change into the content, but only when valid and dirty."""
        if self.is_valid and self.is_dirty:
            for key, change in self._changes.items():
                set_path(self._content, key, change.value)
            logger.debug(f"execute: committed {list(self._changes)}")
        else:
            logger.debug(f"execute skipped: valid={self.is_valid} dirty={self.is_dirty}")
        return self

    def _content_save(self) -> Optional[Callable[..., Any]]:
        save = getattr(self._content, 'save', None)
        if callable(save):
            return save
        if isinstance(self._content, Mapping) and callable(self._content.get('save')):
            return self._content['save']
        return None

    async def save(self, options: Any = None) -> Any:
        """execute(), save the content (if it can save), then rollback().

        Returns:
            The content's save result, or self when the content has no save
        """
        self.execute()
        result: Any = self
        save = self._content_save()
        if save is not None:
            result = save(options) if options is not None else save()
            if is_awaitable_result(result):
                result = await result
        self.rollback()
        return result

    # ==================== MERGE ====================

    def merge(self, other: 'Changeset') -> 'Changeset':
        """New changeset combining self and other; other wins per key.

        An error in other evicts a change in self for that key, and a change
        in other evicts an error in self.

        Raises:
            MergeError: If other is not a changeset or wraps different content
        """
        if not is_changeset(other):
            raise MergeError("Cannot merge with a non-changeset")
        if other._content is not self._content:
            raise MergeError("Cannot merge with a changeset of different content")
        if self.is_pristine and other.is_pristine:
            return self

        new_errors = object_without(other._changes, self._errors)
        new_changes = object_without(other._errors, self._changes)

        merged = Changeset(self._content, self._validation.validator, self._validation_map, self._options)
        merged._errors = merge_nested(new_errors, other._errors)
        merged._changes = merge_nested(new_changes, other._changes)
        merged._notify_virtual_properties()
        logger.debug(f"merge: changes={list(merged._changes)} errors={list(merged._errors)}")
        return merged

    # ==================== ROLLBACK ====================

    def rollback(self) -> 'Changeset':
        """Discard all changes and errors."""
        keys = self._rollback_keys()
        self._changes = {}
        self._errors = {}
        self._notify_virtual_properties(keys)
        self._events.fire(AFTER_ROLLBACK)
        logger.debug(f"rollback: cleared {keys}")
        return self

    def rollback_invalid(self, key: Optional[str] = None) -> 'Changeset':
        """Discard errors (for key, or all), plus any change staged under an erroring key."""
        error_keys = list(self._errors)
        if key is not None:
            self._errors.pop(key, None)
            if key in error_keys:
                self._changes.pop(key, None)
            self._notify(CHANGES, ERRORS, key)
        else:
            self._errors = {}
            for error_key in error_keys:
                self._changes.pop(error_key, None)
            self._notify(CHANGES, ERRORS, *error_keys)
        return self

    def rollback_property(self, key: str) -> 'Changeset':
        """Discard the change and the error for exactly key."""
        self._changes.pop(key, None)
        self._errors.pop(key, None)
        self._notify(CHANGES, ERRORS, key)
        return self

    def cast(self, allowed: Iterable[str] = ()) -> 'Changeset':
        """Keep only changes whose key is in allowed.

        An empty allowed list keeps everything.

        Raises:
            NotASequenceError: If allowed is not a list, tuple or set
        """
        ensure_sequence(allowed)
        if len(allowed) == 0:
            return self
        valid_keys = [key for key in self._changes if includes(allowed, key)]
        dropped = [key for key in self._changes if key not in valid_keys]
        self._changes = take(self._changes, valid_keys)
        if dropped:
            logger.debug(f"cast: dropped {dropped}")
        self._notify(CHANGES, *dropped)
        return self

    # ==================== SNAPSHOT ====================

    def snapshot(self) -> Dict[str, Any]:
        """Plain-value copy of changes and errors (see ChangesetSnapshot.to_dict)."""
        return ChangesetSnapshot.capture(self._changes, self._errors).to_dict()

    def restore(self, snapshot: Union[ChangesetSnapshot, Mapping]) -> 'Changeset':
        """Replace changes and errors with those of a snapshot.

        Raises:
            SnapshotError: If 'changes' or 'errors' is not a mapping
        """
        if not isinstance(snapshot, ChangesetSnapshot):
            snapshot = ChangesetSnapshot.from_dict(snapshot)
        old_keys = self._rollback_keys()
        self._changes = merge_nested(snapshot.to_changes())
        self._errors = merge_nested(snapshot.to_errors())
        self._notify_virtual_properties([*old_keys, *self._rollback_keys()])
        logger.debug(f"restore: changes={list(self._changes)} errors={list(self._errors)}")
        return self


def is_changeset(obj: Any) -> bool:
    return isinstance(obj, Changeset)
