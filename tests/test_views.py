# tests/test_views.py

from __future__ import annotations

from datetime import date

from tasksheet.tasks.task_models import TaskStatus, User, Visibility
from tasksheet.tasks.views import TaskFilter, filter_tasks, is_visible_to, workload_stats

from .fakes import ME, make_task

OTHER = "other@example.com"
USERS = [
    User(email=ME, name="Me", department="Ops"),
    User(email=OTHER, name="Other", department="Sales"),
]


def test_private_tasks_are_only_visible_to_assignee() -> None:
    mine = make_task("a", visibility=Visibility.PRIVATE)
    theirs = make_task("b", visibility=Visibility.PRIVATE, assignee=OTHER)

    assert is_visible_to(mine, ME)
    assert not is_visible_to(theirs, ME)
    assert not is_visible_to(mine, None)
    assert is_visible_to(make_task("c"), None)


def test_filters_combine() -> None:
    tasks = [
        make_task("a", title="Write report", tag="docs"),
        make_task("b", title="Fix login", detail="report bug", assignee=OTHER),
        make_task("c", title="Deploy", status=TaskStatus.COMPLETED),
    ]

    by_text = filter_tasks(tasks, viewer_email=ME, users=USERS, task_filter=TaskFilter(search="REPORT"))
    by_dept = filter_tasks(tasks, viewer_email=ME, users=USERS, task_filter=TaskFilter(department="Sales"))
    by_status = filter_tasks(
        tasks, viewer_email=ME, users=USERS, task_filter=TaskFilter(status=TaskStatus.COMPLETED)
    )
    by_tag = filter_tasks(tasks, viewer_email=ME, users=USERS, task_filter=TaskFilter(tag="docs"))

    assert [t.id for t in by_text] == ["a", "b"]
    assert [t.id for t in by_dept] == ["b"]
    assert [t.id for t in by_status] == ["c"]
    assert [t.id for t in by_tag] == ["a"]


def test_workload_stats() -> None:
    today = date(2024, 1, 10)
    tasks = [
        make_task("a", due=today),
        make_task("b", status=TaskStatus.IN_PROGRESS),
        make_task("c", status=TaskStatus.COMPLETED, due=today),
        make_task("d", assignee=OTHER),
    ]

    stats = workload_stats(tasks, USERS, today)

    assert [s.user.email for s in stats] == [ME, OTHER]
    mine = stats[0]
    assert (mine.due_today, mine.active, mine.completed, mine.total) == (1, 2, 1, 3)
    assert (stats[1].active, stats[1].total) == (1, 1)
