from __future__ import annotations

import random

from retouch_engine.history.lineage import EDITING, EMPTY, RESULT_PENDING, EditHistory


def test_redo_tail_is_discarded_on_commit() -> None:
    history: EditHistory[str] = EditHistory()
    history.load("A")
    for image in ("B", "C"):
        history.set_result(image)
        history.commit()
    assert history.entries == ["A", "B", "C"]

    assert history.undo()
    assert history.current == "B"
    history.set_result("D")
    assert history.commit()

    assert history.entries == ["A", "B", "D"]
    assert history.index == 2
    assert not history.can_redo


def test_state_transitions() -> None:
    history: EditHistory[str] = EditHistory()
    assert history.state == EMPTY
    assert not history.set_result("X")
    assert not history.commit()

    history.load("A")
    assert history.state == EDITING
    assert history.set_result("B")
    assert history.state == RESULT_PENDING
    assert history.entries == ["A"]

    assert history.discard_result()
    assert history.state == EDITING
    assert not history.discard_result()

    history.clear()
    assert history.state == EMPTY
    assert history.current is None


def test_invalid_moves_return_false_and_change_nothing() -> None:
    history: EditHistory[str] = EditHistory()
    history.load("A")
    assert not history.undo()
    assert not history.redo()
    assert not history.commit()
    assert history.entries == ["A"]
    assert history.index == 0


def test_undo_and_redo_drop_pending_result() -> None:
    history: EditHistory[str] = EditHistory()
    history.load("A")
    history.set_result("B")
    history.commit()
    history.set_result("C")

    assert history.undo()
    assert history.pending is None
    history.set_result("D")
    assert history.redo()
    assert history.pending is None
    assert history.current == "B"


def test_load_resets_lineage() -> None:
    history: EditHistory[str] = EditHistory()
    history.load("A")
    history.set_result("B")
    history.commit()
    history.set_result("C")

    history.load("Z")

    assert history.entries == ["Z"]
    assert history.index == 0
    assert history.pending is None


def test_cursor_stays_in_bounds_under_random_operations() -> None:
    rng = random.Random(7)
    history: EditHistory[int] = EditHistory()
    counter = 0
    for _ in range(500):
        action = rng.choice(["load", "generate", "commit", "undo", "redo", "discard"])
        counter += 1
        if action == "load":
            history.load(counter)
        elif action == "generate":
            history.set_result(counter)
        elif action == "commit":
            history.commit()
        elif action == "undo":
            history.undo()
        elif action == "redo":
            history.redo()
        else:
            history.discard_result()
        if history.entries:
            assert 0 <= history.index <= len(history.entries) - 1
            assert history.current == history.entries[history.index]
