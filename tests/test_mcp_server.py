# tests/test_mcp_server.py

from __future__ import annotations

import csv
import io
import json
from types import SimpleNamespace

import anyio
import pytest

from mcp_server import knbn_mcp_server as knbn

from .conftest import PASSWORD

pytestmark = pytest.mark.anyio


class FakeContext:
    """Just enough of mcp's Context for the tools: a session object and info()."""

    def __init__(self) -> None:
        self.session = SimpleNamespace()
        self.logged: list[str] = []

    async def info(self, message: str) -> None:
        self.logged.append(message)


@pytest.fixture()
def services(db, monkeypatch: pytest.MonkeyPatch):
    services = knbn.Services(db)
    monkeypatch.setattr(knbn, "_services", services)
    return services


@pytest.fixture()
async def ctx(services, db) -> FakeContext:
    db.create_user("alice@example.com", PASSWORD)
    context = FakeContext()
    await knbn.login("alice@example.com", PASSWORD, context)
    return context


@pytest.fixture()
async def board_id(ctx) -> str:
    created = await knbn.create_board(ctx, "Sprint", "Current sprint")
    return created["board"]["id"]


async def test_login_failure_and_require_user(services, db) -> None:
    db.create_user("alice@example.com", PASSWORD)
    context = FakeContext()

    with pytest.raises(ValueError, match="Not authenticated"):
        await knbn.current_user(context)
    with pytest.raises(ValueError, match="Invalid login credentials"):
        await knbn.login("alice@example.com", "wrong", context)


async def test_login_logout_round(ctx) -> None:
    me = await knbn.current_user(ctx)
    assert me["email"] == "alice@example.com"
    assert any("Welcome alice@example.com!" in message for message in ctx.logged)

    assert await knbn.logout(ctx) == "Logged out."
    with pytest.raises(ValueError, match="Not authenticated"):
        await knbn.current_user(ctx)


async def test_sessions_are_isolated(ctx, services) -> None:
    with pytest.raises(ValueError):
        await knbn.list_boards(FakeContext())


async def test_list_boards_with_counts(ctx, board_id, db) -> None:
    me = await knbn.current_user(ctx)
    db.seed_task(me["user_id"], board_id, "one", status="todo")
    db.seed_task(me["user_id"], board_id, "two", status="done")

    boards = await knbn.list_boards(ctx)

    assert [b["name"] for b in boards] == ["Sprint"]
    assert boards[0]["relation"] == "owned"
    assert boards[0]["task_counts"] == {"backlog": 0, "todo": 1, "in-progress": 0, "done": 1}


async def test_task_lifecycle(ctx, board_id, db) -> None:
    added = await knbn.add_task(ctx, board_id, "Plan", "kickoff", "backlog", "high", "2030-01-02", "alice")
    task_id = added["task"]["id"]
    assert added["task"]["due_date"].startswith("2030-01-02")

    updated = await knbn.update_task(ctx, board_id, task_id, title="Plan v2", due_date="")
    assert updated["task"]["title"] == "Plan v2"
    assert updated["task"]["due_date"] is None
    assert updated["task"]["priority"] == "high"

    moved = await knbn.set_task_status(ctx, board_id, task_id, "in-progress")
    assert moved["task"]["status"] == "in-progress"

    listing = await knbn.list_tasks(ctx, board_id)
    assert listing["name"] == "Sprint"
    assert [t["title"] for t in listing["columns"][2]["tasks"]] == ["Plan v2"]

    await knbn.delete_task(ctx, board_id, task_id)
    assert db.tasks == {}


async def test_add_task_validation(ctx, board_id) -> None:
    with pytest.raises(ValueError, match="title"):
        await knbn.add_task(ctx, board_id, "   ")
    with pytest.raises(ValueError, match="YYYY-MM-DD"):
        await knbn.add_task(ctx, board_id, "Plan", due_date="tomorrow")
    with pytest.raises(ValueError, match="Invalid status"):
        await knbn.add_task(ctx, board_id, "Plan", status="someday")
    with pytest.raises(ValueError, match="at least one field"):
        await knbn.update_task(ctx, board_id, 1)


async def test_move_task_places_at_index(ctx, board_id) -> None:
    ids = [(await knbn.add_task(ctx, board_id, title))["task"]["id"] for title in ("A", "B", "C")]

    result = await knbn.move_task(ctx, board_id, ids[2], "todo", 0)

    assert result["order"] == [ids[2], ids[0], ids[1]]
    assert result["index"] == 0


async def test_store_failures_surface_as_errors(ctx, board_id, db) -> None:
    task_id = (await knbn.add_task(ctx, board_id, "A"))["task"]["id"]
    db.fail_on.add("update_task_positions")

    with pytest.raises(ValueError, match="Error moving task"):
        await knbn.move_task(ctx, board_id, task_id, "done", 0)


async def test_unknown_task_is_reported(ctx, board_id) -> None:
    with pytest.raises(ValueError, match="Task not found"):
        await knbn.delete_task(ctx, board_id, 404)


async def test_personal_tasks_without_board(ctx) -> None:
    await knbn.add_task(ctx, None, "Errand")
    listing = await knbn.list_tasks(ctx)
    assert listing["name"] == "Personal tasks"
    assert [t["title"] for t in listing["columns"][1]["tasks"]] == ["Errand"]


async def test_board_management_and_sharing(ctx, board_id, db) -> None:
    bob = db.create_user("bob@example.com", PASSWORD)

    renamed = await knbn.update_board(ctx, board_id, "Sprint 2")
    assert renamed["board"]["name"] == "Sprint 2"

    shared = await knbn.share_board(ctx, board_id, "bob@example.com")
    assert shared["member"]["user_id"] == bob["id"]

    members = await knbn.list_members(ctx, board_id)
    assert [m["email"] for m in members] == ["alice@example.com", "bob@example.com"]

    with pytest.raises(ValueError, match="Already a member"):
        await knbn.share_board(ctx, board_id, "bob@example.com")

    await knbn.remove_member(ctx, board_id, shared["member"]["id"])
    assert len(await knbn.list_members(ctx, board_id)) == 1

    await knbn.delete_board(ctx, board_id)
    with pytest.raises(ValueError, match="Board not found"):
        await knbn.list_tasks(ctx, board_id)


async def test_shared_member_sees_board_but_cannot_delete(ctx, board_id, db) -> None:
    db.create_user("bob@example.com", PASSWORD)
    await knbn.share_board(ctx, board_id, "bob@example.com")
    await knbn.add_task(ctx, board_id, "Visible")

    bob_ctx = FakeContext()
    await knbn.login("bob@example.com", PASSWORD, bob_ctx)

    boards = await knbn.list_boards(bob_ctx)
    assert [(b["name"], b["relation"]) for b in boards] == [("Sprint", "shared")]
    listing = await knbn.list_tasks(bob_ctx, board_id)
    assert [t["title"] for t in listing["columns"][1]["tasks"]] == ["Visible"]

    with pytest.raises(ValueError, match="Only board owners"):
        await knbn.delete_board(bob_ctx, board_id)


async def test_stats_summary_and_export(ctx, board_id) -> None:
    await knbn.add_task(ctx, board_id, "Late", priority="high", due_date="2000-01-01")
    await knbn.add_task(ctx, board_id, "Done", status="done", due_date="2000-01-01")
    await knbn.add_task(ctx, board_id, "Someday", status="backlog", owner="bob")

    stats = await knbn.get_board_stats(ctx, board_id)
    assert stats["total_count"] == 3
    assert stats["by_status"] == {"backlog": 1, "todo": 1, "in-progress": 0, "done": 1}
    assert stats["overdue_count"] == 1
    assert stats["unassigned_count"] == 1

    summary = (await knbn.generate_board_summary(ctx, board_id))["summary"]
    assert "Board 'Sprint' overview:" in summary
    assert "- Overdue tasks: 1" in summary
    assert "Next due task: 'Late' on 2000-01-01" in summary

    export = await knbn.export_board_data(ctx, board_id)
    assert json.loads(export["json"])["name"] == "Sprint"
    rows = list(csv.DictReader(io.StringIO(export["csv"])))
    assert [(row["title"], row["status"]) for row in rows] == [("Someday", "backlog"), ("Late", "todo"), ("Done", "done")]
    assert rows[1]["due_date"] == "2000-01-01"


async def test_concurrent_calls_keep_their_own_failures(ctx, board_id, db) -> None:
    task_id = (await knbn.add_task(ctx, board_id, "A"))["task"]["id"]
    db.fail_on.add("update_task")
    db.slow_on["select_tasks"] = 0.05
    outcomes: dict[str, object] = {}

    async def run(name, call) -> None:
        try:
            outcomes[name] = await call()
        except ValueError as exc:
            outcomes[name] = exc

    async with anyio.create_task_group() as tg:
        tg.start_soon(run, "move", lambda: knbn.move_task(ctx, board_id, task_id, "done", 0))
        tg.start_soon(run, "boards", lambda: knbn.list_boards(ctx))
        tg.start_soon(run, "stats", lambda: knbn.get_board_stats(ctx, board_id))

    assert isinstance(outcomes["move"], ValueError)
    assert "Error moving task" in str(outcomes["move"])
    assert [b["name"] for b in outcomes["boards"]] == ["Sprint"]
    assert outcomes["stats"]["total_count"] == 1
    assert db.tasks[task_id]["status"] == "todo"


async def test_task_removed_behind_the_session_is_an_error(ctx, board_id, db) -> None:
    task_id = (await knbn.add_task(ctx, board_id, "A"))["task"]["id"]
    del db.tasks[task_id]

    with pytest.raises(ValueError, match="Task not found"):
        await knbn.set_task_status(ctx, board_id, task_id, "done")
    with pytest.raises(ValueError, match="Task not found"):
        await knbn.move_task(ctx, board_id, task_id, "done", 0)


async def test_silent_false_result_is_an_error(ctx) -> None:
    def reorder_lanes():
        return False

    with pytest.raises(ValueError, match="reorder_lanes failed"):
        await knbn._call(ctx, reorder_lanes)
