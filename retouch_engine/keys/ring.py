"""Key ring: the single writer of the key pool."""

from __future__ import annotations

import threading
from typing import Callable, Iterable

from .pool import ApiKeyPool, select_key
from .store import KeyStore
from .validation import AddKeysResult, validate_keys


class KeyRing:
    """Owns the current ``ApiKeyPool`` and persists it after every mutation."""

    def __init__(
        self,
        store: KeyStore | None = None,
        validator: Callable[[str, str], bool] | None = None,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self.validator = validator
        self.max_workers = max_workers
        self._lock = threading.Lock()
        self._pool = store.load() if store is not None else ApiKeyPool()

    @property
    def pool(self) -> ApiKeyPool:
        return self._pool

    def _replace(self, pool: ApiKeyPool) -> None:
        with self._lock:
            self._pool = pool
        if self.store is not None:
            self.store.save(pool)

    def add_keys(self, provider: str, keys: Iterable[str]) -> AddKeysResult:
        """Validate keys not yet held for ``provider`` and add the ones that pass.

        When every submitted key is already present nothing is probed and all
        of them are reported as failed. The pool is replaced once, after all
        probes finish.
        """
        submitted = [str(key).strip() for key in keys if str(key).strip()]
        current = self._pool
        unique: list[str] = []
        for key in submitted:
            if not current.contains(provider, key) and key not in unique:
                unique.append(key)
        if not unique:
            return AddKeysResult(added=[], failed=submitted)

        validator = self.validator
        if validator is None:
            raise RuntimeError("No key validator configured.")
        result = validate_keys(unique, lambda key: validator(key, provider), self.max_workers)
        if result.added:
            with self._lock:
                pool = self._pool.with_keys(provider, result.added)
                if pool.active is None:
                    pool = pool.with_active(provider, result.added[0])
                self._pool = pool
            if self.store is not None:
                self.store.save(pool)
        return result

    def remove_key(self, provider: str, key: str) -> bool:
        if not self._pool.contains(provider, key):
            return False
        pool = self._pool.without_key(provider, key)
        if pool.active is None:
            pool = ApiKeyPool(keys=pool.keys, active=pool.first_key())
        self._replace(pool)
        return True

    def set_active(self, provider: str, key: str) -> None:
        self._replace(self._pool.with_active(provider, key))

    def select(self, provider: str) -> str | None:
        """Resolve the key for ``provider``, persisting any promotion before returning it."""
        key, pool = select_key(self._pool, provider)
        if pool is not self._pool:
            self._replace(pool)
        return key

    def evict(self, provider: str, key: str) -> bool:
        return self.remove_key(provider, key)
