"""Per-provider API key pool with an active pointer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


@dataclass(frozen=True)
class ActiveKey:
    provider: str
    key: str


@dataclass(frozen=True)
class ApiKeyPool:
    """Immutable value; every mutation returns a new pool.

    ``keys`` maps a provider to its ordered, de-duplicated keys. ``active``
    always references a key held for its provider, or is ``None``.
    """

    keys: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    active: ActiveKey | None = None

    def keys_for(self, provider: str) -> tuple[str, ...]:
        return tuple(self.keys.get(provider, ()))

    def contains(self, provider: str, key: str) -> bool:
        return key in self.keys_for(provider)

    def is_empty(self, provider: str | None = None) -> bool:
        if provider is not None:
            return not self.keys_for(provider)
        return not any(self.keys.values())

    def entries(self) -> list[tuple[str, str]]:
        return [(provider, key) for provider, keys in self.keys.items() for key in keys]

    def providers_holding(self, key: str) -> list[str]:
        return [provider for provider, keys in self.keys.items() if key in keys]

    def first_key(self, provider: str | None = None) -> ActiveKey | None:
        if provider is not None:
            keys = self.keys_for(provider)
            return ActiveKey(provider, keys[0]) if keys else None
        for entry_provider, key in self.entries():
            return ActiveKey(entry_provider, key)
        return None

    def with_keys(self, provider: str, new_keys: Iterable[str]) -> "ApiKeyPool":
        existing = list(self.keys_for(provider))
        for key in new_keys:
            if key and key not in existing:
                existing.append(key)
        keys = dict(self.keys)
        keys[provider] = tuple(existing)
        return ApiKeyPool(keys=keys, active=self.active)

    def without_key(self, provider: str, key: str) -> "ApiKeyPool":
        """Drop ``key``; a pointer at it falls back to the provider's first remaining key."""
        if not self.contains(provider, key):
            return self
        keys = dict(self.keys)
        remaining = tuple(item for item in self.keys_for(provider) if item != key)
        if remaining:
            keys[provider] = remaining
        else:
            keys.pop(provider, None)
        pool = ApiKeyPool(keys=keys, active=self.active)
        if self.active == ActiveKey(provider, key):
            pool = ApiKeyPool(keys=keys, active=pool.first_key(provider))
        return pool

    def with_active(self, provider: str, key: str) -> "ApiKeyPool":
        if not self.contains(provider, key):
            raise ValueError(f"Key is not registered for provider '{provider}'.")
        return ApiKeyPool(keys=dict(self.keys), active=ActiveKey(provider, key))

    def to_records(self) -> tuple[dict[str, list[str]], dict[str, str] | None]:
        keys_record = {provider: list(keys) for provider, keys in self.keys.items() if keys}
        active_record = None
        if self.active is not None:
            active_record = {"provider": self.active.provider, "key": self.active.key}
        return keys_record, active_record

    @classmethod
    def from_records(
        cls,
        keys_record: Mapping[str, Any] | None,
        active_record: Mapping[str, Any] | None,
    ) -> "ApiKeyPool":
        """Build a pool from stored records; a dangling pointer falls back to the first stored key."""
        pool = cls()
        for provider, keys in (keys_record or {}).items():
            if not isinstance(keys, list):
                raise ValueError(f"Stored keys for '{provider}' must be a list.")
            pool = pool.with_keys(str(provider), [str(key) for key in keys if isinstance(key, str)])
        pool = cls(keys={p: k for p, k in pool.keys.items() if k}, active=None)
        active = None
        if active_record:
            provider = active_record.get("provider")
            key = active_record.get("key")
            if isinstance(provider, str) and isinstance(key, str) and pool.contains(provider, key):
                active = ActiveKey(provider, key)
        if active is None:
            active = pool.first_key()
        return cls(keys=pool.keys, active=active)


def select_key(pool: ApiKeyPool, target_provider: str) -> tuple[str | None, ApiKeyPool]:
    """Pick the key to use for ``target_provider``.

    The active pointer wins when it belongs to the target provider; otherwise
    the provider's first key is promoted to active. With no keys the pool is
    returned unchanged.
    """
    if pool.active is not None and pool.active.provider == target_provider:
        if pool.contains(target_provider, pool.active.key):
            return pool.active.key, pool
    promoted = pool.first_key(target_provider)
    if promoted is None:
        return None, pool
    return promoted.key, pool.with_active(promoted.provider, promoted.key)
