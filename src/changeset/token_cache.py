"""
Revision-token cache for derived changeset views.

Every mutating changeset operation bumps the changeset's revision. Views are
cached under their name and the whole cache is dropped the first time it is
read after the revision moved.
"""

from typing import Callable, Dict, Generic, TypeVar

T = TypeVar('T')


class TokenCache(Generic[T]):
    """
    Name-keyed cache invalidated when the token changes.

    Example:
        cache = TokenCache(lambda: changeset._revision)

        value = cache.get_or_compute('changes', lambda: object_to_array(...))
        # Recomputed once changeset._revision moves on
    """

    def __init__(self, token_provider: Callable[[], int]):
        """
        Args:
            token_provider: Function that returns the current token value
        """
        self._token_provider = token_provider
        self._cache: Dict[str, T] = {}
        self._last_token: int = -1

    def _sync_token(self) -> None:
        current_token = self._token_provider()
        if current_token != self._last_token:
            self._cache.clear()
            self._last_token = current_token

    def get_or_compute(self, name: str, compute_fn: Callable[[], T]) -> T:
        """Get cached view or compute and cache it."""
        self._sync_token()
        if name in self._cache:
            return self._cache[name]
        value = compute_fn()
        self._cache[name] = value
        return value

    def invalidate(self) -> None:
        """Manually invalidate the entire cache."""
        self._cache.clear()
        self._last_token = -1
