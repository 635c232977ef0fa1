# tests/test_ordering.py

from __future__ import annotations

import pytest

from tasksheet.core.errors import TaskNotFoundError
from tasksheet.tasks.ordering import changed_tasks, column_index, next_order, reorder, sort_column
from tasksheet.tasks.task_models import TaskStatus

from .fakes import make_task

NS = TaskStatus.NOT_STARTED
IP = TaskStatus.IN_PROGRESS


def _orders(tasks, status):
    return {t.id: t.order for t in tasks if t.status == status}


def test_reorder_to_top_of_same_column() -> None:
    tasks = [make_task("t1", order=0), make_task("t2", order=1)]

    out = reorder(tasks, "t2", NS, 0)

    assert _orders(out, NS) == {"t2": 0, "t1": 1}


def test_reorder_keeps_every_task_once_and_renumbers_destination_densely() -> None:
    tasks = [
        make_task("a", order=0),
        make_task("b", order=5),
        make_task("c", order=9),
        make_task("x", status=IP, order=0),
        make_task("y", status=IP, order=3),
    ]

    out = reorder(tasks, "b", IP, 1)

    assert sorted(t.id for t in out) == ["a", "b", "c", "x", "y"]
    dest = sort_column(t for t in out if t.status == IP)
    assert [t.id for t in dest] == ["x", "b", "y"]
    assert [t.order for t in dest] == [0, 1, 2]
    # Source column is not renumbered.
    assert _orders(out, NS) == {"a": 0, "c": 9}


def test_reorder_is_idempotent() -> None:
    tasks = [make_task("a", order=0), make_task("b", order=1), make_task("c", order=2)]

    once = reorder(tasks, "c", NS, 1)
    twice = reorder(once, "c", NS, 1)

    assert _orders(once, NS) == _orders(twice, NS) == {"a": 0, "c": 1, "b": 2}


def test_reorder_into_empty_column_gets_order_zero() -> None:
    tasks = [make_task("a", order=4)]

    out = reorder(tasks, "a", IP, 3)

    assert out[0].status == IP
    assert out[0].order == 0


def test_reorder_index_is_clamped() -> None:
    tasks = [make_task("a", order=0), make_task("b", order=1)]

    assert [t.id for t in sort_column(reorder(tasks, "a", NS, 99))] == ["b", "a"]
    assert [t.id for t in sort_column(reorder(tasks, "b", NS, -5))] == ["b", "a"]


def test_reorder_unknown_task_raises() -> None:
    with pytest.raises(TaskNotFoundError):
        reorder([make_task("a")], "zzz", NS, 0)


def test_equal_orders_sort_newest_first() -> None:
    old = make_task("old", order=0, created_minutes=0)
    new = make_task("new", order=0, created_minutes=30)

    assert [t.id for t in sort_column([old, new])] == ["new", "old"]


def test_next_order_and_column_index() -> None:
    tasks = [make_task("a", order=0), make_task("b", order=7), make_task("x", status=IP, order=2)]

    assert next_order(tasks, NS) == 8
    assert next_order(tasks, TaskStatus.COMPLETED) == 0
    assert column_index(tasks, "b") == 1
    assert column_index(tasks, "x") == 0


def test_changed_tasks_reports_only_differences() -> None:
    tasks = [make_task("t1", order=0), make_task("t2", order=1)]

    out = reorder(tasks, "t2", NS, 0)

    assert {t.id for t in changed_tasks(tasks, out)} == {"t1", "t2"}
    assert changed_tasks(out, out) == []


@pytest.mark.parametrize("index", [0, 1, 2, 3])
def test_moved_task_lands_at_requested_index(index: int) -> None:
    tasks = [
        make_task("a", order=0),
        make_task("b", order=1),
        make_task("c", order=2),
        make_task("m", status=IP),
    ]

    out = reorder(tasks, "m", NS, index)

    assert column_index(out, "m") == index
