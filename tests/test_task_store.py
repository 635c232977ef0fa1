# tests/test_task_store.py

from __future__ import annotations

from dataclasses import replace

import pytest

from tasksheet.core.errors import DuplicateTaskError, TaskNotFoundError
from tasksheet.tasks.task_models import TaskStatus
from tasksheet.tasks.task_store import TaskMutation, TaskStore

from .fakes import make_task


def test_apply_returns_previous_snapshot_for_rollback() -> None:
    t1 = make_task("t1")
    store = TaskStore([t1])

    previous = store.apply(TaskMutation.update(replace(t1, status=TaskStatus.IN_PROGRESS)))

    assert store.require("t1").status == TaskStatus.IN_PROGRESS
    assert store.is_dirty

    store.revert(previous, ["t1"])
    assert store.require("t1") == t1


def test_revert_touches_only_the_named_tasks() -> None:
    a, b = make_task("a"), make_task("b")
    store = TaskStore([a, b])

    previous = store.apply(TaskMutation.update(replace(a, title="edited")))
    store.apply(TaskMutation.update(replace(b, status=TaskStatus.IN_PROGRESS)))
    store.apply(TaskMutation.create(make_task("c")))

    store.revert(previous, ["a", "c"])

    assert store.require("a") == a
    assert store.require("b").status == TaskStatus.IN_PROGRESS
    assert "c" not in store


def test_create_and_delete() -> None:
    store = TaskStore()

    store.apply(TaskMutation.create(make_task("a")))
    assert "a" in store

    store.apply(TaskMutation.delete("a"))
    assert "a" not in store
    assert len(store) == 0


def test_rejected_mutation_leaves_store_untouched() -> None:
    a, b = make_task("a"), make_task("b")
    store = TaskStore([a, b])
    before = store.all()

    with pytest.raises(TaskNotFoundError):
        store.apply(TaskMutation.update(replace(a, title="new"), make_task("ghost")))
    with pytest.raises(DuplicateTaskError):
        store.apply(TaskMutation.create(make_task("a")))
    with pytest.raises(TaskNotFoundError):
        store.apply(TaskMutation.delete("ghost"))

    assert store.all() == before
    assert not store.is_dirty


def test_snapshot_is_not_affected_by_later_writes() -> None:
    store = TaskStore([make_task("a")])
    snap = store.snapshot()

    store.apply(TaskMutation.create(make_task("b")))

    assert set(snap.tasks) == {"a"}
    assert len(snap) == 1


def test_replace_all_keeps_first_duplicate_and_clears_dirty() -> None:
    store = TaskStore([make_task("old")])
    store.apply(TaskMutation.create(make_task("local")))

    store.replace_all([make_task("x", title="first"), make_task("x", title="second"), make_task("y")])

    assert [t.id for t in store.all()] == ["x", "y"]
    assert store.require("x").title == "first"
    assert not store.is_dirty


def test_column_is_sorted_by_order() -> None:
    store = TaskStore([make_task("b", order=2), make_task("a", order=1), make_task("z", status=TaskStatus.COMPLETED)])

    assert [t.id for t in store.column(TaskStatus.NOT_STARTED)] == ["a", "b"]
    assert [t.id for t in store.column(TaskStatus.COMPLETED)] == ["z"]


def test_constructor_rejects_duplicate_ids() -> None:
    with pytest.raises(DuplicateTaskError):
        TaskStore([make_task("a"), make_task("a")])
