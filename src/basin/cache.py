"""Namespaced artifact cache used between pipeline stages."""
from typing import Any

import structlog

from basin.errors import InvalidKeyError

logger = structlog.get_logger()


class CacheStore:
    """Two-level key/value store: store name -> key -> value.

    Stores are created lazily on first write and keep insertion order, so
    ``get(store)`` iterates values in the order their keys were first
    cached. There is no locking; concurrent writers of one key race and the
    last write wins.
    """

    def __init__(self) -> None:
        """Initialize an empty cache."""
        self._stores: dict[str, dict[str, Any]] = {}

    @staticmethod
    def _check(store: str, key: str | None = None, *, key_required: bool) -> None:
        if not isinstance(store, str) or not store:
            raise InvalidKeyError("Cache store name must be a non-empty string", store, key)
        if key_required and (not isinstance(key, str) or not key):
            raise InvalidKeyError("Cache key must be a non-empty string", store, key)

    def cache(self, store: str, key: str, value: Any) -> Any:
        """Upsert a value under ``(store, key)``.

        Only the given key is written; other entries of the store are kept.

        Args:
            store: Store name.
            key: Artifact key within the store.
            value: Value to cache.

        Returns:
            The cached value.

        Raises:
            InvalidKeyError: If store or key is empty.
        """
        self._check(store, key, key_required=True)
        self._stores.setdefault(store, {})[key] = value
        logger.debug("cache_stored", store=store, key=key)
        return value

    def purge(self, store: str, key: str) -> Any | None:
        """Remove and return the value under ``(store, key)``.

        Args:
            store: Store name.
            key: Artifact key within the store.

        Returns:
            The removed value, or None if the store or key does not exist.

        Raises:
            InvalidKeyError: If store or key is empty.
        """
        self._check(store, key, key_required=True)
        entries = self._stores.get(store)
        if entries is None or key not in entries:
            return None
        value = entries.pop(key)
        logger.debug("cache_purged", store=store, key=key)
        return value

    def get(self, store: str, key: str | None = None) -> Any:
        """Look up one value, or snapshot every value of a store.

        Args:
            store: Store name.
            key: Artifact key. When omitted, all values are returned.

        Returns:
            The value (or None) when key is given, otherwise a list of the
            store's values, empty if the store does not exist.

        Raises:
            InvalidKeyError: If store is empty, or key is given but empty.
        """
        self._check(store, key, key_required=key is not None)
        entries = self._stores.get(store, {})
        if key is None:
            return list(entries.values())
        return entries.get(key)

    def stores(self) -> list[str]:
        """Names of the stores created so far."""
        return list(self._stores)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._stores.values())
