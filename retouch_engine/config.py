"""Environment-driven configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .utils import getenv_float, getenv_int

DEFAULT_HOME = Path.home() / ".retouch"
DEFAULT_OPENAI_API_BASE = "https://api.openai.com/v1"


@dataclass(frozen=True)
class EngineConfig:
    state_dir: Path = DEFAULT_HOME
    openai_api_base: str = DEFAULT_OPENAI_API_BASE
    http_timeout_s: float = 90.0
    validation_workers: int = 4
    events_path: Path | None = None

    @property
    def keys_path(self) -> Path:
        return self.state_dir / "keys.json"

    @property
    def active_key_path(self) -> Path:
        return self.state_dir / "active_key.json"


def load_config() -> EngineConfig:
    home = str(os.getenv("RETOUCH_HOME") or "").strip()
    events = str(os.getenv("RETOUCH_EVENTS") or "").strip()
    api_base = str(os.getenv("RETOUCH_OPENAI_API_BASE") or "").strip()
    return EngineConfig(
        state_dir=Path(home).expanduser() if home else DEFAULT_HOME,
        openai_api_base=(api_base or DEFAULT_OPENAI_API_BASE).rstrip("/"),
        http_timeout_s=max(1.0, getenv_float("RETOUCH_HTTP_TIMEOUT_S", 90.0)),
        validation_workers=max(1, getenv_int("RETOUCH_VALIDATION_WORKERS", 4)),
        events_path=Path(events).expanduser() if events else None,
    )
