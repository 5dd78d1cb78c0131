from __future__ import annotations

import argparse
import csv
import functools
import io
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import anyio
from mcp.server.fastmcp import Context, FastMCP

from boards import BoardManager
from database import Database
from kanban_state import KanbanState
from models import Board, TaskPriority, TaskStatus, format_date, utcnow
from notifications import DESTRUCTIVE, Notifier
from session_store import SessionStore

INSTRUCTIONS = (
    "Interact with the KNBN kanban database to review boards and manage tasks for the authenticated user."
)


@dataclass
class Services:
    db: Database


_services: Services | None = None
_services_error: Exception | None = None


def get_services() -> Services:
    """Lazy-load shared services so the module can import without a database."""
    global _services, _services_error
    if _services is None and _services_error is None:
        try:
            _services = Services(Database())
        except Exception as exc:  # pragma: no cover - surfaced via tool errors
            _services_error = exc
    if _services is None:
        raise RuntimeError(f"KNBN MCP server failed to initialize: {_services_error}")
    return _services


async def _run_db(func, /, *args, **kwargs):
    """Execute blocking database work in a worker thread."""
    return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))


SESSION_KEY = "knbn"


def _get_session_store(ctx: Context) -> Dict[str, Any]:
    session = ctx.session
    store = getattr(session, SESSION_KEY, None)
    if store is None:
        store = {}
        setattr(session, SESSION_KEY, store)
    return store


def _auth(ctx: Context) -> SessionStore:
    """The session store kept for this MCP session."""
    store = _get_session_store(ctx)
    auth = store.get("auth")
    if auth is None:
        db = get_services().db
        store["lock"] = anyio.Lock()
        store["states"] = {}
        store["boards"] = BoardManager(db, Notifier())
        auth = SessionStore(db, store.setdefault("identity", {}), Notifier())
        store["auth"] = auth
    return auth


def _use_notifier(store: Dict[str, Any], notifier: Notifier) -> None:
    """Point every cached object of the session at one call's notifier."""
    store["auth"].notifier = notifier
    store["boards"].notifier = notifier
    for state in store["states"].values():
        state.notifier = notifier


def _require_user(ctx: Context) -> Dict[str, Any]:
    user = _auth(ctx).user
    if user is None:
        raise ValueError("Not authenticated. Call login(email, password) first.")
    return user


async def _call(ctx: Context, func, /, *args, **kwargs):
    """
    Run a blocking session/state/manager call and relay its notifications.

    Calls within one MCP session run one at a time, each with its own
    notifier. Destructive notifications, or a False result, become a
    ValueError for the client; the others are forwarded as info log messages.
    """
    store = _get_session_store(ctx)
    notifier = Notifier()
    async with store["lock"]:
        _use_notifier(store, notifier)
        result = await _run_db(func, *args, **kwargs)
    failure = None
    for note in notifier.drain():
        if note.variant == DESTRUCTIVE:
            failure = failure or note
        else:
            await ctx.info(f"{note.title}: {note.description}" if note.description else note.title)
    if failure is not None:
        raise ValueError(f"{failure.title}: {failure.description}" if failure.description else failure.title)
    if result is False:
        name = getattr(func, "__name__", "operation")
        raise ValueError(f"{name} failed.")
    return result


def _boards(ctx: Context) -> BoardManager:
    _auth(ctx)
    return _get_session_store(ctx)["boards"]


async def _open_board(ctx: Context, board_id: str) -> Board:
    user = _require_user(ctx)
    board = await _call(ctx, _boards(ctx).get_board, board_id, user["id"])
    if board is None:
        raise ValueError("Board not found for the current user.")
    return board


async def _board_state(ctx: Context, board_id: Optional[str]) -> KanbanState:
    """Cached state container for a board (None selects the user's personal tasks), re-synced on each call."""
    user = _require_user(ctx)
    if board_id is not None:
        await _open_board(ctx, board_id)
    store = _get_session_store(ctx)
    key = board_id or "personal"
    state = store["states"].get(key)
    if state is None:
        state = KanbanState(get_services().db, user, board_id, Notifier())
        state.bind(store["auth"])
        store["states"][key] = state
    await _call(ctx, state.fetch_tasks)
    return state


def _validate_due_date(value: Optional[str]) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise ValueError("Due date must be YYYY-MM-DD.") from exc
    return parsed.replace(tzinfo=timezone.utc)


def _board_payload(state: KanbanState, name: str) -> Dict[str, Any]:
    payload = state.to_dict()
    payload["name"] = name
    return payload


def _build_board_csv(board_payload: Dict[str, Any]) -> str:
    """Generate a CSV string representing board tasks."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["id", "status", "title", "priority", "due_date", "owner", "description", "created_at"])

    for column in board_payload.get("columns", []) or []:
        for task in column.get("tasks", []) or []:
            writer.writerow([
                task.get("id"),
                column.get("id"),
                task.get("title"),
                task.get("priority"),
                (task.get("due_date") or "")[:10],
                task.get("owner") or "",
                task.get("description", ""),
                task.get("created_at"),
            ])

    return output.getvalue()


def _board_stats(state: KanbanState) -> Dict[str, Any]:
    tasks = state.all_tasks()
    now = utcnow()
    open_tasks = [task for task in tasks if task.status != TaskStatus.DONE]
    due_soon = [
        task for task in open_tasks
        if task.due_date is not None and now <= task.due_date <= now + timedelta(days=7)
    ]
    return {
        "total_count": len(tasks),
        "by_status": {column.status.value: len(column.tasks) for column in state.columns},
        "by_priority": {
            priority.value: len([task for task in tasks if task.priority == priority])
            for priority in TaskPriority
        },
        "overdue_count": len([task for task in tasks if task.is_overdue]),
        "due_within_7_days": len(due_soon),
        "unassigned_count": len([task for task in open_tasks if not task.owner]),
    }


def _summarize_board(name: str, state: KanbanState) -> str:
    """Create a human-readable summary of board health."""
    stats = _board_stats(state)
    lines = [f"Board '{name}' overview:"]
    for column in state.columns:
        lines.append(f"- {column.title}: {len(column.tasks)}")
    lines.extend([
        f"- Total tasks: {stats['total_count']}",
        f"- Overdue tasks: {stats['overdue_count']}",
        f"- Due within 7 days: {stats['due_within_7_days']}",
        f"- High priority: {stats['by_priority'][TaskPriority.HIGH.value]}",
    ])

    dated = [task for task in state.all_tasks() if task.due_date is not None and task.status != TaskStatus.DONE]
    if dated:
        next_due = min(dated, key=lambda task: task.due_date)
        lines.append(f"- Next due task: '{next_due.title}' on {format_date(next_due.due_date)}")

    return "\n".join(lines)


server = FastMCP(
    name="KNBN MCP Server",
    instructions=INSTRUCTIONS,
)


@server.tool()
async def login(email: str, password: str, ctx: Context) -> Dict[str, Any]:
    """Authenticate a user and persist their session for subsequent calls."""
    auth = _auth(ctx)
    user = await _call(ctx, auth.sign_in_with_password, email, password)
    if not user:
        raise ValueError("Invalid email or password.")
    return {"user_id": user["id"], "email": user["email"]}


@server.tool()
async def logout(ctx: Context) -> str:
    """Clear the active MCP session."""
    await _call(ctx, _auth(ctx).sign_out)
    _get_session_store(ctx).clear()
    await ctx.info("Cleared KNBN session state")
    return "Logged out."


@server.tool()
async def current_user(ctx: Context) -> Dict[str, Any]:
    """Return the currently authenticated user."""
    user = _require_user(ctx)
    return {"user_id": user["id"], "email": user["email"], "last_sign_in_at": user.get("last_sign_in_at")}


@server.tool()
async def list_boards(ctx: Context) -> List[Dict[str, Any]]:
    """List owned and shared boards with per-column task counts."""
    user = _require_user(ctx)
    owned, shared = await _call(ctx, _boards(ctx).list_boards, user["id"])
    db = get_services().db

    def _counts(board_id: str) -> Dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for row in db.select_tasks(board_id=board_id):
            if row.get("status") in counts:
                counts[row["status"]] += 1
        return counts

    result: List[Dict[str, Any]] = []
    for board, relation in [(b, "owned") for b in owned] + [(b, "shared") for b in shared]:
        payload = board.to_dict()
        payload["relation"] = relation
        payload["task_counts"] = await _run_db(_counts, board.id)
        result.append(payload)
    return result


@server.tool()
async def create_board(ctx: Context, name: str, description: str | None = None) -> Dict[str, Any]:
    """Create a new board owned by the current user."""
    if not name.strip():
        raise ValueError("Board name cannot be empty.")
    user = _require_user(ctx)
    board = await _call(ctx, _boards(ctx).create_board, user["id"], name, description)
    return {"status": "created", "board": board.to_dict()}


@server.tool()
async def update_board(ctx: Context, board_id: str, name: str, description: str | None = None) -> Dict[str, Any]:
    """Rename a board or change its description (owners only)."""
    board = await _open_board(ctx, board_id)
    updated = await _call(ctx, _boards(ctx).update_board, board, name, description)
    return {"status": "updated", "board": updated.to_dict()}


@server.tool()
async def delete_board(ctx: Context, board_id: str) -> Dict[str, Any]:
    """Delete a board and its tasks (owners only)."""
    board = await _open_board(ctx, board_id)
    await _call(ctx, _boards(ctx).delete_board, board)
    _get_session_store(ctx)["states"].pop(board_id, None)
    return {"status": "deleted", "board_id": board_id}


@server.tool()
async def list_tasks(ctx: Context, board_id: str | None = None) -> Dict[str, Any]:
    """Return a board's tasks grouped into columns; omit board_id for personal tasks."""
    state = await _board_state(ctx, board_id)
    name = (await _open_board(ctx, board_id)).name if board_id else "Personal tasks"
    return _board_payload(state, name)


@server.tool()
async def add_task(
    ctx: Context,
    board_id: str | None,
    title: str,
    description: str = "",
    status: str = TaskStatus.TODO.value,
    priority: str = TaskPriority.MEDIUM.value,
    due_date: str | None = None,
    owner: str | None = None,
) -> Dict[str, Any]:
    """Add a task at the bottom of a column."""
    if not title.strip():
        raise ValueError("Task title cannot be empty.")
    TaskStatus.parse(status)
    TaskPriority.parse(priority)
    due = _validate_due_date(due_date)
    state = await _board_state(ctx, board_id)
    task = await _call(ctx, state.add_task, title, description, status, priority, due, owner)
    if task is None:
        raise ValueError("Unable to add task.")
    await ctx.info(f"Added task {task.id}: {task.title}")
    return {"status": "created", "task": task.to_dict()}


@server.tool()
async def update_task(
    ctx: Context,
    board_id: str | None,
    task_id: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
    priority: Optional[str] = None,
    due_date: Optional[str] = None,
    owner: Optional[str] = None,
) -> Dict[str, Any]:
    """Update task details; fields left out keep their value, an empty due_date clears it."""
    if all(value is None for value in (title, description, priority, due_date, owner)):
        raise ValueError("Provide at least one field to update.")
    if title is not None and not title.strip():
        raise ValueError("Task title cannot be empty.")

    state = await _board_state(ctx, board_id)
    task = state.find_task(task_id)
    if task is None:
        raise ValueError("Task not found on this board.")

    await _call(
        ctx,
        state.update_task_details,
        task_id,
        title if title is not None else task.title,
        description if description is not None else task.description,
        priority if priority is not None else task.priority,
        _validate_due_date(due_date) if due_date is not None else task.due_date,
        owner if owner is not None else task.owner,
    )
    return {"status": "updated", "task": state.find_task(task_id).to_dict()}


@server.tool()
async def set_task_status(ctx: Context, board_id: str | None, task_id: int, status: str) -> Dict[str, Any]:
    """Move a task to the bottom of another column."""
    new_status = TaskStatus.parse(status)
    state = await _board_state(ctx, board_id)
    await _call(ctx, state.update_task_status, task_id, new_status)
    return {"status": "updated", "task": state.find_task(task_id).to_dict()}


@server.tool()
async def move_task(
    ctx: Context,
    board_id: str | None,
    task_id: int,
    status: str,
    index: int | None = None,
) -> Dict[str, Any]:
    """Place a task in a column at a given index (0 is the top; omit to append)."""
    new_status = TaskStatus.parse(status)
    state = await _board_state(ctx, board_id)
    await _call(ctx, state.move_task, task_id, new_status, index)
    column = state.column(new_status)
    return {
        "status": "moved",
        "task_id": task_id,
        "column": new_status.value,
        "index": column.index_of(task_id),
        "order": [task.id for task in column.tasks],
    }


@server.tool()
async def delete_task(ctx: Context, board_id: str | None, task_id: int) -> Dict[str, Any]:
    """Delete a task."""
    state = await _board_state(ctx, board_id)
    await _call(ctx, state.delete_task, task_id)
    await ctx.info(f"Deleted task {task_id}")
    return {"status": "deleted", "task_id": task_id, "board_id": board_id}


@server.tool()
async def share_board(ctx: Context, board_id: str, email: str, role: str = "member") -> Dict[str, Any]:
    """Share a board with another registered user by email (owners only)."""
    if not email.strip():
        raise ValueError("Email cannot be empty.")
    board = await _open_board(ctx, board_id)
    member = await _call(ctx, _boards(ctx).share_board, board, email, role)
    return {"status": "shared", "member": member.to_dict() if member else None}


@server.tool()
async def list_members(ctx: Context, board_id: str) -> List[Dict[str, Any]]:
    """List the members of a board."""
    board = await _open_board(ctx, board_id)
    members = await _call(ctx, _boards(ctx).list_members, board.id)
    return [member.to_dict() for member in members]


@server.tool()
async def remove_member(ctx: Context, board_id: str, member_id: int) -> Dict[str, Any]:
    """Remove a membership from a board (owners only)."""
    board = await _open_board(ctx, board_id)
    await _call(ctx, _boards(ctx).remove_member, board, member_id)
    return {"status": "removed", "member_id": member_id, "board_id": board_id}


@server.tool()
async def get_board_stats(ctx: Context, board_id: str | None = None) -> Dict[str, Any]:
    """Return aggregate statistics for a board."""
    state = await _board_state(ctx, board_id)
    stats = _board_stats(state)
    stats["board_id"] = board_id
    return stats


@server.tool()
async def generate_board_summary(ctx: Context, board_id: str | None = None) -> Dict[str, Any]:
    """Produce a textual summary describing board health."""
    payload = await list_tasks(ctx=ctx, board_id=board_id)
    state = _get_session_store(ctx)["states"][board_id or "personal"]
    return {"board_id": board_id, "summary": _summarize_board(payload["name"], state)}


@server.tool()
async def export_board_data(ctx: Context, board_id: str | None = None) -> Dict[str, Any]:
    """Export board data as JSON and CSV strings."""
    payload = await list_tasks(ctx=ctx, board_id=board_id)
    json_data = json.dumps(payload, indent=2, default=str)
    csv_data = _build_board_csv(payload)
    return {"board_id": board_id, "json": json_data, "csv": csv_data}


def main() -> None:
    parser = argparse.ArgumentParser(description="KNBN MCP server")
    parser.add_argument(
        "--transport",
        default="stdio",
        choices=["stdio", "sse", "streamable-http"],
        help="Transport protocol to use.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Host for SSE or HTTP transports.")
    parser.add_argument("--port", type=int, default=8765, help="Port for SSE or HTTP transports.")
    parser.add_argument("--mount-path", default="/", help="Mount path for SSE transport.")
    args = parser.parse_args()

    # Configure server for non-stdio transports
    if args.transport != "stdio":
        server.settings.host = args.host
        server.settings.port = args.port

    mount = args.mount_path if args.transport == "sse" else None
    server.run(args.transport, mount_path=mount)


if __name__ == "__main__":
    main()
