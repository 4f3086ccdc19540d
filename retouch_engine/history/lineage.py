"""Linear undo/redo lineage of committed images."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")

EMPTY = "empty"
EDITING = "editing"
RESULT_PENDING = "result_pending"


@dataclass
class EditHistory(Generic[T]):
    """Committed images plus a cursor; a generated result waits in ``pending``.

    Transitions that are not valid from the current state return ``False``
    and leave the history untouched.
    """

    entries: list[T] = field(default_factory=list)
    index: int = -1
    pending: T | None = None

    @property
    def state(self) -> str:
        if not self.entries:
            return EMPTY
        if self.pending is not None:
            return RESULT_PENDING
        return EDITING

    @property
    def current(self) -> T | None:
        if not self.entries:
            return None
        return self.entries[self.index]

    @property
    def can_undo(self) -> bool:
        return bool(self.entries) and self.index > 0

    @property
    def can_redo(self) -> bool:
        return bool(self.entries) and self.index < len(self.entries) - 1

    def load(self, image: T) -> None:
        self.entries = [image]
        self.index = 0
        self.pending = None

    def set_result(self, image: T) -> bool:
        if not self.entries:
            return False
        self.pending = image
        return True

    def discard_result(self) -> bool:
        if self.pending is None:
            return False
        self.pending = None
        return True

    def commit(self) -> bool:
        if self.pending is None or not self.entries:
            return False
        # Committing after an undo drops the redo tail; there is no branching.
        del self.entries[self.index + 1 :]
        self.entries.append(self.pending)
        self.index = len(self.entries) - 1
        self.pending = None
        return True

    def undo(self) -> bool:
        if not self.can_undo:
            return False
        self.index -= 1
        self.pending = None
        return True

    def redo(self) -> bool:
        if not self.can_redo:
            return False
        self.index += 1
        self.pending = None
        return True

    def clear(self) -> None:
        self.entries = []
        self.index = -1
        self.pending = None

    def snapshot(self) -> dict[str, int | str | bool]:
        return {
            "state": self.state,
            "index": self.index,
            "length": len(self.entries),
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
        }
