"""Concurrent validation of newly submitted keys."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Sequence

Validator = Callable[[str], bool]


@dataclass
class AddKeysResult:
    added: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def validate_keys(keys: Sequence[str], validator: Validator, max_workers: int = 4) -> AddKeysResult:
    """Probe every key concurrently and wait for all of them.

    A probe that raises counts as a failed key. The result preserves the
    submission order of ``keys``.
    """
    if not keys:
        return AddKeysResult()
    verdicts: dict[str, bool] = {}
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(keys)))) as pool:
        future_map = {pool.submit(validator, key): key for key in keys}
        for future in as_completed(future_map):
            key = future_map[future]
            try:
                verdicts[key] = bool(future.result())
            except Exception:
                verdicts[key] = False
    result = AddKeysResult()
    for key in keys:
        (result.added if verdicts.get(key) else result.failed).append(key)
    return result
