"""JSON persistence for the key pool."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..utils import write_json
from .pool import ApiKeyPool


@dataclass
class KeyStore:
    """Two records under the state dir: ``keys.json`` and ``active_key.json``.

    A record that cannot be parsed, or has the wrong shape, is deleted and the
    pool loads empty.
    """

    keys_path: Path
    active_path: Path

    @classmethod
    def in_dir(cls, state_dir: Path) -> "KeyStore":
        return cls(keys_path=state_dir / "keys.json", active_path=state_dir / "active_key.json")

    def load(self) -> ApiKeyPool:
        try:
            keys_record = _read_record(self.keys_path)
            active_record = _read_record(self.active_path)
            if keys_record is not None and not isinstance(keys_record, dict):
                raise ValueError("keys record must be an object")
            if active_record is not None and not isinstance(active_record, dict):
                raise ValueError("active key record must be an object")
            pool = ApiKeyPool.from_records(keys_record, active_record)
        except ValueError:
            self.clear()
            return ApiKeyPool()
        stored_active = (active_record or {}).get("key") if isinstance(active_record, dict) else None
        if pool.active is not None and pool.active.key != stored_active:
            self.save(pool)
        return pool

    def save(self, pool: ApiKeyPool) -> None:
        keys_record, active_record = pool.to_records()
        write_json(self.keys_path, keys_record)
        if active_record is None:
            self.active_path.unlink(missing_ok=True)
        else:
            write_json(self.active_path, active_record)

    def clear(self) -> None:
        self.keys_path.unlink(missing_ok=True)
        self.active_path.unlink(missing_ok=True)


def _read_record(path: Path) -> Any:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Unreadable record {path.name}: {exc}") from exc
