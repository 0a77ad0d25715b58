"""
Validation pipeline: validator invocation, result normalisation and
in-flight tracking.

A validator is called with keyword arguments:

    validator(key=..., new_value=..., old_value=..., changes=..., content=...)

and returns True (valid), anything else (rejection payload: False, a message,
a list of messages), None (valid, for sync validators only), or an awaitable
resolving to True or a rejection payload. An awaitable resolving to None is
a rejection.

Async validations for the same key may overlap. They are counted, never
cancelled, and the one that settles LAST decides the outcome - not the one
issued last. Callers needing last-write-wins must serialise their own writes
per field.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Optional

from changeset.events import AFTER_VALIDATION, BEFORE_VALIDATION, ChangesetEvents

logger = logging.getLogger(__name__)

Validator = Callable[..., Any]


def default_validator(**_context: Any) -> bool:
    """Validator used when none is supplied: accepts everything."""
    return True


def is_valid_result(result: Any) -> bool:
    """True iff result is True or a single-element list/tuple holding True."""
    if result is True:
        return True
    return isinstance(result, (list, tuple)) and len(result) == 1 and result[0] is True


def is_awaitable_result(result: Any) -> bool:
    """True if the validator result must be awaited (coroutine, Future, Task...)."""
    return inspect.isawaitable(result)


class ValidationPipeline:
    """Invokes the validator and tracks running async validations per key.

    running: dotted key -> number of async validations in flight. Entries
    are removed when their count reaches zero.
    """

    def __init__(self, validator: Optional[Validator] = None, events: Optional[ChangesetEvents] = None):
        self.validator: Validator = validator if callable(validator) else default_validator
        self.events = events if events is not None else ChangesetEvents()
        self.running: Dict[str, int] = {}

    def invoke(self, key: str, new_value: Any, old_value: Any, changes: Any, content: Any) -> Any:
        """Run the validator; a sync None result counts as valid."""
        result = self.validator(
            key=key,
            new_value=new_value,
            old_value=old_value,
            changes=changes,
            content=content,
        )
        return True if result is None else result

    def run(
        self,
        key: str,
        new_value: Any,
        old_value: Any,
        changes: Any,
        content: Any,
        apply: Callable[[Any], Any],
        discard: Optional[Callable[[], None]] = None,
    ) -> Any:
        """Validate new_value for key and hand the outcome to apply().

        Sync validators: apply(result) runs immediately and its return value
        is returned. Async validators: the key is counted as running and an
        asyncio.Task is returned that resolves to apply(result) once the
        validator settles. If the awaitable fails, discard() is called before
        the exception propagates out of the task.

        Raises:
            RuntimeError: Async validator result with no running event loop
        """
        self.events.fire(BEFORE_VALIDATION, key)
        result = self.invoke(key, new_value, old_value, changes, content)
        if not is_awaitable_result(result):
            outcome = apply(result)
            self.events.fire(AFTER_VALIDATION, key)
            return outcome
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(result):
                result.close()
            raise
        self.begin(key)
        return loop.create_task(self._settle(key, result, apply, discard))

    async def _settle(
        self,
        key: str,
        pending: Any,
        apply: Callable[[Any], Any],
        discard: Optional[Callable[[], None]] = None,
    ) -> Any:
        # A failing awaitable propagates; counters and after_validation still fire.
        try:
            result = await pending
        except Exception:
            if discard is not None:
                discard()
            raise
        finally:
            self.finish(key)
            self.events.fire(AFTER_VALIDATION, key)
        return apply(result)

    def begin(self, key: str) -> None:
        self.running[key] = self.running.get(key, 0) + 1
        logger.debug(f"validation started: key={key!r} running={self.running[key]}")

    def finish(self, key: str) -> None:
        count = self.running.get(key, 0)
        if count <= 1:
            self.running.pop(key, None)
        else:
            self.running[key] = count - 1
        logger.debug(f"validation finished: key={key!r} running={self.running.get(key, 0)}")

    def is_validating(self, key: Optional[str] = None) -> bool:
        """Any validation in flight (for key, or for any key when key is None)."""
        if key is not None:
            return key in self.running
        return bool(self.running)
