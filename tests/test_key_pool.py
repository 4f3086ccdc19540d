from __future__ import annotations

import pytest

from retouch_engine.keys.pool import ActiveKey, ApiKeyPool, select_key


def _pool() -> ApiKeyPool:
    return ApiKeyPool().with_keys("gemini", ["g-1", "g-2"]).with_keys("openai", ["o-1"])


def test_with_keys_dedupes_and_keeps_order() -> None:
    pool = ApiKeyPool().with_keys("gemini", ["a", "b", "a"]).with_keys("gemini", ["b", "c"])
    assert pool.keys_for("gemini") == ("a", "b", "c")


def test_select_key_prefers_active_pointer() -> None:
    pool = _pool().with_active("gemini", "g-2")
    key, updated = select_key(pool, "gemini")
    assert key == "g-2"
    assert updated is pool


def test_select_key_promotes_first_key_for_other_provider() -> None:
    pool = _pool().with_active("gemini", "g-2")
    key, updated = select_key(pool, "openai")
    assert key == "o-1"
    assert updated.active == ActiveKey("openai", "o-1")
    assert pool.active == ActiveKey("gemini", "g-2")


def test_select_key_empty_provider_leaves_pool_untouched() -> None:
    pool = ApiKeyPool().with_keys("gemini", ["g-1"]).with_active("gemini", "g-1")
    key, updated = select_key(pool, "openai")
    assert key is None
    assert updated is pool
    assert updated.active == ActiveKey("gemini", "g-1")


@pytest.mark.parametrize("provider", ["gemini", "openai"])
def test_select_key_only_returns_pooled_keys(provider: str) -> None:
    pool = _pool()
    for _ in range(3):
        key, pool = select_key(pool, provider)
        assert key in pool.keys_for(provider)


def test_without_key_moves_pointer_to_first_remaining() -> None:
    pool = _pool().with_active("gemini", "g-1")
    updated = pool.without_key("gemini", "g-1")
    assert updated.keys_for("gemini") == ("g-2",)
    assert updated.active == ActiveKey("gemini", "g-2")

    emptied = ApiKeyPool().with_keys("openai", ["o-1"]).with_active("openai", "o-1").without_key("openai", "o-1")
    assert emptied.active is None
    assert emptied.is_empty()


def test_with_active_rejects_unknown_key() -> None:
    with pytest.raises(ValueError):
        _pool().with_active("openai", "g-1")


def test_from_records_falls_back_to_first_stored_key() -> None:
    pool = ApiKeyPool.from_records({"openai": ["o-1"], "gemini": ["g-1"]}, {"provider": "gemini", "key": "gone"})
    assert pool.active == ActiveKey("openai", "o-1")

    kept = ApiKeyPool.from_records({"gemini": ["g-1", "g-2"]}, {"provider": "gemini", "key": "g-2"})
    assert kept.active == ActiveKey("gemini", "g-2")


def test_records_round_trip() -> None:
    pool = _pool().with_active("openai", "o-1")
    keys_record, active_record = pool.to_records()
    assert keys_record == {"gemini": ["g-1", "g-2"], "openai": ["o-1"]}
    assert ApiKeyPool.from_records(keys_record, active_record) == pool
