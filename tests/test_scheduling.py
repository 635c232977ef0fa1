# tests/test_scheduling.py

from __future__ import annotations

from datetime import date

import pytest

from tasksheet.tasks.scheduling import (
    DateWindow,
    DragKind,
    bar_geometry,
    date_window,
    dependency_links,
    pixels_to_days,
    reschedule,
    topological_order,
)

from .fakes import make_task

D = date(2024, 1, 10)


def _d(day: int) -> date:
    return date(2024, 1, day)


def test_dependents_follow_their_predecessor() -> None:
    tasks = [
        make_task("c", start=_d(8), due=_d(9), predecessor="a"),
        make_task("b", start=_d(2), due=_d(3)),
        make_task("a", start=_d(1), due=_d(2)),
        make_task("d", start=_d(5), due=_d(6), predecessor="a"),
    ]

    assert [t.id for t in topological_order(tasks)] == ["a", "d", "c", "b"]


def test_dangling_predecessor_is_appended_once() -> None:
    tasks = [
        make_task("t3", start=_d(1), due=_d(2), predecessor="ghost"),
        make_task("t1", start=_d(5), due=_d(6)),
    ]

    ids = [t.id for t in topological_order(tasks)]

    assert ids == ["t1", "t3"]


def test_predecessor_off_timeline_makes_task_a_root() -> None:
    tasks = [
        make_task("undated"),
        make_task("child", start=_d(3), due=_d(4), predecessor="undated"),
        make_task("early", start=_d(1), due=_d(2)),
    ]

    assert [t.id for t in topological_order(tasks)] == ["early", "child"]


def test_cycle_members_appear_exactly_once() -> None:
    tasks = [
        make_task("x", start=_d(1), due=_d(2), predecessor="y"),
        make_task("y", start=_d(3), due=_d(4), predecessor="x"),
        make_task("z", start=_d(5), due=_d(6)),
    ]

    ids = [t.id for t in topological_order(tasks)]

    assert sorted(ids) == ["x", "y", "z"]
    assert ids[0] == "z"


def test_undated_tasks_are_excluded() -> None:
    tasks = [make_task("a", start=_d(1)), make_task("b", due=_d(1)), make_task("c")]

    assert topological_order(tasks) == []


def test_date_window_pads_range() -> None:
    tasks = [make_task("a", start=_d(10), due=_d(12)), make_task("b", start=_d(11), due=_d(15))]

    window = date_window(tasks, D, days_before=7, days_after=14)

    assert window == DateWindow(start=_d(3), end=_d(29))
    assert len(window) == 27
    assert window.days[0] == _d(3)


def test_date_window_without_schedule_is_today() -> None:
    window = date_window([make_task("a")], D)

    assert window == DateWindow(start=D, end=D)


@pytest.mark.parametrize(
    ("pixels", "days"),
    [(0, 0), (19, 0), (20, 1), (59, 1), (60, 2), (-19, 0), (-20, 0), (-21, -1), (-60, -1), (-61, -2)],
)
def test_pixels_round_half_up(pixels: float, days: int) -> None:
    assert pixels_to_days(pixels, 40) == days


def test_move_shifts_both_dates() -> None:
    task = make_task("a", start=_d(10), due=_d(12))

    result = reschedule(task, DragKind.MOVE, 80, 40)

    assert result.changed
    assert (result.task.start_date, result.task.due_date) == (_d(12), _d(14))
    assert result.day_delta == 2


def test_resize_left_and_right() -> None:
    task = make_task("a", start=_d(10), due=_d(12))

    left = reschedule(task, DragKind.RESIZE_LEFT, -40, 40)
    right = reschedule(task, DragKind.RESIZE_RIGHT, 120, 40)

    assert (left.task.start_date, left.task.due_date) == (_d(9), _d(12))
    assert (right.task.start_date, right.task.due_date) == (_d(10), _d(15))


def test_resize_left_to_due_date_is_allowed() -> None:
    task = make_task("a", start=_d(10), due=_d(12))

    result = reschedule(task, DragKind.RESIZE_LEFT, 80, 40)

    assert result.changed
    assert result.task.start_date == result.task.due_date == _d(12)


def test_resize_past_due_is_refused_with_reason() -> None:
    task = make_task("a", start=_d(10), due=_d(12))

    result = reschedule(task, DragKind.RESIZE_LEFT, 120, 40)

    assert not result.changed
    assert result.task is task
    assert "after due date" in (result.reason or "")


def test_small_drag_is_a_no_op() -> None:
    task = make_task("a", start=_d(10), due=_d(12))

    result = reschedule(task, DragKind.MOVE, 10, 40)

    assert not result.changed
    assert result.reason is None


def test_bar_geometry_and_links() -> None:
    window = DateWindow(start=_d(1), end=_d(20))
    a = make_task("a", start=_d(3), due=_d(5))
    b = make_task("b", start=_d(6), due=_d(6), predecessor="a")

    assert bar_geometry(a, window, 40).x == 80
    assert bar_geometry(a, window, 40).width == 120
    assert bar_geometry(b, window, 40).width == 40
    assert bar_geometry(make_task("c"), window, 40) is None
    assert dependency_links([a, b]) == [(0, 1)]
