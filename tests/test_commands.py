# tests/test_commands.py

from __future__ import annotations

from datetime import date

import pytest

from tasksheet.cli.commands import CommandRegistry, UsageError, parse_date, parse_status, registry
from tasksheet.tasks.task_models import TaskStatus

from .fakes import make_task


@pytest.mark.asyncio
async def test_command_registry_routes_and_aliases(state) -> None:
    reg = CommandRegistry()
    seen: list[list[str]] = []

    async def handler(state, args):
        seen.append(args)
        return "ok"

    reg.register("a", handler, "a", aliases=["alpha"])

    assert await reg.handle(state, "/a x y") == "ok"
    assert await reg.handle(state, "/ALPHA") == "ok"
    assert seen == [["x", "y"], []]


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")
    assert "Empty command" in (await reg.handle(state, "/") or "")


@pytest.mark.asyncio
async def test_usage_errors_become_replies(state) -> None:
    reg = CommandRegistry()

    async def handler(state, args):
        raise UsageError("Usage: /x <id>")

    reg.register("x", handler, "x")

    assert await reg.handle(state, "/x") == "Usage: /x <id>"


def test_parse_helpers() -> None:
    today = date(2024, 1, 10)

    assert parse_status("doing") == TaskStatus.IN_PROGRESS
    assert parse_status("COMPLETED") == TaskStatus.COMPLETED
    assert parse_date("+3", today) == date(2024, 1, 13)
    assert parse_date("-1", today) == date(2024, 1, 9)
    assert parse_date("2024-02-01", today) == date(2024, 2, 1)
    assert parse_date("none", today) is None
    with pytest.raises(UsageError):
        parse_status("later")
    with pytest.raises(UsageError):
        parse_date("soon", today)


@pytest.mark.asyncio
async def test_add_move_and_board(state, remote) -> None:
    remote.rows = [make_task("t1", title="Design", status=TaskStatus.COMPLETED)]
    await state.engine.start()

    reply = await registry.handle(state, "/add Build it tag=dev after=t1 start=2024-01-10 due=+2")
    assert reply and reply.startswith("Created task_")
    new_id = reply.split()[1].rstrip(".")

    assert await registry.handle(state, f"/move {new_id} doing") == f"Moved {new_id}."
    board = await registry.handle(state, "/board") or ""
    assert "== In progress (1)" in board
    assert "Build it" in board


@pytest.mark.asyncio
async def test_gated_move_reports_reason(state, remote) -> None:
    remote.rows = [make_task("t1", title="Design"), make_task("t2", predecessor="t1")]
    await state.engine.start()

    reply = await registry.handle(state, "/move t2 done") or ""

    assert reply.startswith("Not allowed:")
    assert '"Design"' in reply


@pytest.mark.asyncio
async def test_unknown_task_is_a_usage_error(state) -> None:
    await state.engine.start()

    assert await registry.handle(state, "/delete nope") == "No such task: nope"


@pytest.mark.asyncio
async def test_drag_timeline_and_stats(state, remote) -> None:
    remote.rows = [make_task("t1", start=date(2024, 1, 10), due=date(2024, 1, 12))]
    await state.engine.start()

    assert await registry.handle(state, "/drag t1 move 40") == "t1: 2024-01-11..2024-01-13"
    timeline = await registry.handle(state, "/timeline") or ""
    assert "T1 [t1]" in timeline
    stats = await registry.handle(state, "/stats") or ""
    assert "Me: 0 / 1 / 0 / 1" in stats
