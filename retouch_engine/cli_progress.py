"""Elapsed-time ticker for long-running CLI calls."""

from __future__ import annotations

import sys
import threading
import time
from typing import TextIO

_BOLD = "\x1b[1m"
_GREY = "\x1b[38;2;150;157;165m"
_RESET = "\x1b[0m"


def format_duration(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds), 60)
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


class ProgressTicker:
    """Redraws ``• label (Ns)`` once per interval on a TTY; prints once otherwise."""

    def __init__(self, label: str, stream: TextIO | None = None, interval_s: float = 1.0) -> None:
        self.label = label
        self.stream = stream or sys.stdout
        self.interval_s = max(0.2, interval_s)
        self._origin = time.monotonic()
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._tty = bool(getattr(self.stream, "isatty", lambda: False)())

    def __enter__(self) -> "ProgressTicker":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop(done=exc_type is None)

    def start(self) -> None:
        self._origin = time.monotonic()
        if not self._tty:
            self.stream.write(f"• {self.label}\n")
            self.stream.flush()
            return
        self._redraw()
        self._thread.start()

    def stop(self, done: bool = True) -> None:
        if self._tty and self._thread.is_alive():
            self._stop.set()
            self._thread.join()
            self.stream.write("\r\033[K")
        elapsed = format_duration(int(time.monotonic() - self._origin))
        status = "done" if done else "failed"
        self.stream.write(f"{_GREY}{self.label}: {status} in {elapsed}{_RESET}\n")
        self.stream.flush()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            self._redraw()

    def _redraw(self) -> None:
        elapsed = format_duration(int(time.monotonic() - self._origin))
        self.stream.write(f"\r{_BOLD}• {self.label} ({elapsed}){_RESET}\033[K")
        self.stream.flush()
