"""
Synchronous observer registration for changeset notifications.

Events and callback signatures:
- before_validation(key): validator about to run for key
- after_validation(key): validation for key settled
- after_rollback(): rollback() cleared the changeset
- property_changed(key): resolved value of key (or the '_changes' /
  '_errors' map itself) may have changed; binding layers re-read via get()
"""
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

BEFORE_VALIDATION = 'before_validation'
AFTER_VALIDATION = 'after_validation'
AFTER_ROLLBACK = 'after_rollback'
PROPERTY_CHANGED = 'property_changed'

EVENT_NAMES = (BEFORE_VALIDATION, AFTER_VALIDATION, AFTER_ROLLBACK, PROPERTY_CHANGED)


class ChangesetEvents:
    """Per-changeset subscriber lists, one per event name.

    Thread safety: Not thread-safe (single logical owner per changeset).
    """

    def __init__(self):
        self._callbacks: Dict[str, List[Callable[..., None]]] = {name: [] for name in EVENT_NAMES}

    def _callbacks_for(self, event: str) -> List[Callable[..., None]]:
        try:
            return self._callbacks[event]
        except KeyError:
            raise ValueError(f"Unknown changeset event {event!r}. Available: {list(EVENT_NAMES)}") from None

    def subscribe(self, event: str, callback: Callable[..., None]) -> None:
        """Subscribe callback to event (duplicates are ignored)."""
        callbacks = self._callbacks_for(event)
        if callback not in callbacks:
            callbacks.append(callback)

    def unsubscribe(self, event: str, callback: Callable[..., None]) -> None:
        callbacks = self._callbacks_for(event)
        if callback in callbacks:
            callbacks.remove(callback)

    def fire(self, event: str, *args: Any) -> None:
        """Invoke every subscriber of event in registration order (best-effort)."""
        for callback in list(self._callbacks_for(event)):
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"Error in {event} callback: {e}")
