"""
KNBN board state

Holds the status -> ordered task list mapping for one board (or for a user's
personal tasks when no board is set), mirrors every mutation to the database
and patches the local columns with the result.

Mutations go to the store first and only touch local state once the store
call returned. move_task() is the exception: it splices locally first so the
dragged card lands immediately, and falls back to a re-fetch when the store
rejects the move.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from models import (
    Column,
    Task,
    TaskPriority,
    TaskStatus,
    empty_columns,
    utcnow,
)
from notifications import Notifier
from session_store import SIGNED_IN, SIGNED_OUT

logger = logging.getLogger(__name__)


class KanbanState:
    def __init__(self, database, user: Optional[Dict[str, Any]] = None, board_id: Optional[str] = None, notifier: Optional[Notifier] = None):
        self.db = database
        self.user = user
        self.board_id = board_id
        self.notifier = notifier or Notifier()
        self.columns: List[Column] = empty_columns()
        self.loading = False

    # Session wiring
    def bind(self, session_store):
        """Follow the session: load on sign-in, clear on sign-out."""
        self.user = session_store.user
        return session_store.on_auth_state_change(self._on_auth_event)

    def _on_auth_event(self, event: str, session: Optional[Dict[str, Any]]) -> None:
        if event == SIGNED_IN:
            self.user = session["user"] if session else None
            self.fetch_tasks()
        elif event == SIGNED_OUT:
            self.user = None
            self.fetch_tasks()

    # Lookups
    def column(self, status) -> Column:
        status = TaskStatus.parse(status)
        for column in self.columns:
            if column.status == status:
                return column
        raise KeyError(status)

    def find_task(self, task_id: int) -> Optional[Task]:
        for column in self.columns:
            for task in column.tasks:
                if task.id == task_id:
                    return task
        return None

    def all_tasks(self) -> List[Task]:
        return [task for column in self.columns for task in column.tasks]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "board_id": self.board_id,
            "loading": self.loading,
            "columns": [column.to_dict() for column in self.columns],
        }

    def _require_task(self, task_id: int, action: str) -> Optional[Task]:
        task = self.find_task(task_id)
        if task is None:
            logger.warning(f"Cannot {action}: task {task_id} is not on this board")
            self.notifier.error("Task not found", f"Task {task_id} is not on this board")
        return task

    def _task_vanished(self, task_id: int, snapshot: Optional[List[Column]] = None) -> bool:
        """The store no longer has the task: drop the stale card by re-fetching."""
        logger.warning(f"Task {task_id} no longer exists in the store")
        self.notifier.error("Task not found", f"Task {task_id} no longer exists")
        if snapshot is not None:
            self.columns = snapshot
        self.fetch_tasks()
        return False

    # Store sync
    def fetch_tasks(self) -> None:
        if not self.user:
            logger.info("No user found, skipping task fetch")
            self.columns = empty_columns()
            return

        self.loading = True
        try:
            logger.info(f"Fetching tasks for user: {self.user['id']} board: {self.board_id or 'personal'}")
            if self.board_id:
                rows = self.db.select_tasks(board_id=self.board_id)
            else:
                rows = self.db.select_tasks(user_id=self.user['id'])
            logger.info(f"Tasks fetched: {len(rows)}")

            columns = empty_columns()
            by_status = {column.status: column for column in columns}
            for row in rows:
                try:
                    task = Task.from_row(row)
                except ValueError as e:
                    logger.warning(f"Skipping task row {row.get('id')}: {e}")
                    continue
                by_status[task.status].tasks.append(task)
            for column in columns:
                column.tasks.sort(key=lambda task: (task.position, task.created_at, task.id))
            self.columns = columns
        except Exception as e:
            logger.error(f"Error fetching tasks: {e}")
            self.notifier.error("Error fetching tasks", str(e))
        finally:
            self.loading = False

    def add_task(self, title: str, description: str = "", status=TaskStatus.TODO, priority=TaskPriority.MEDIUM, due_date: Optional[datetime] = None, owner: Optional[str] = None) -> Optional[Task]:
        if not self.user:
            logger.error("Cannot add task: No user logged in.")
            self.notifier.error("Authentication required", "You must be logged in to add tasks")
            return None

        try:
            status = TaskStatus.parse(status)
            priority = TaskPriority.parse(priority)
            title = (title or "").strip()
            if not title:
                raise ValueError("Title is required")

            position = self.db.next_task_position(self.user['id'], self.board_id, status.value)
            row = self.db.insert_task({
                "title": title,
                "description": description or "",
                "status": status.value,
                "priority": priority.value,
                "created_at": utcnow(),
                "due_date": due_date,
                "owner": owner or None,
                "user_id": self.user['id'],
                "board_id": self.board_id,
                "position": position,
            })
            if not row:
                return None

            task = Task.from_row(row)
            self.column(task.status).tasks.append(task)
            return task
        except Exception as e:
            logger.error(f"Error adding task: {e}")
            self.notifier.error("Error adding task", str(e))
            return None

    def update_task_status(self, task_id: int, new_status) -> bool:
        task = self._require_task(task_id, "update status")
        if task is None:
            return False

        try:
            new_status = TaskStatus.parse(new_status)
            target = self.column(new_status)
            position = max((t.position for t in target.tasks if t.id != task_id), default=0) + 1
            updated = self.db.update_task(task_id, {"status": new_status.value, "position": position})
        except Exception as e:
            logger.error(f"Error updating task status: {e}")
            self.notifier.error("Error updating task", str(e))
            return False

        if not updated:
            return self._task_vanished(task_id)

        for column in self.columns:
            column.tasks = [t for t in column.tasks if t.id != task_id]
        task.status = new_status
        task.position = position
        target.tasks.append(task)
        return True

    def update_task_details(self, task_id: int, title: str, description: str, priority, due_date: Optional[datetime], owner: Optional[str]) -> bool:
        task = self._require_task(task_id, "update details")
        if task is None:
            return False

        try:
            priority = TaskPriority.parse(priority)
            title = (title or "").strip()
            if not title:
                raise ValueError("Title is required")
            updated = self.db.update_task(task_id, {
                "title": title,
                "description": description or "",
                "priority": priority.value,
                "due_date": due_date,
                "owner": owner or None,
            })
        except Exception as e:
            logger.error(f"Error updating task details: {e}")
            self.notifier.error("Error updating task details", str(e))
            return False

        if not updated:
            return self._task_vanished(task_id)

        task.title = title
        task.description = description or ""
        task.priority = priority
        task.due_date = due_date
        task.owner = owner or None
        return True

    def delete_task(self, task_id: int) -> bool:
        if self._require_task(task_id, "delete") is None:
            return False

        try:
            deleted = self.db.delete_task(task_id)
        except Exception as e:
            logger.error(f"Error deleting task: {e}")
            self.notifier.error("Error deleting task", str(e))
            return False

        if not deleted:
            return self._task_vanished(task_id)

        for column in self.columns:
            column.tasks = [t for t in column.tasks if t.id != task_id]
        return True

    def move_task(self, task_id: int, new_status, index: Optional[int] = None) -> bool:
        """
        Drop a card into ``new_status`` at ``index`` (None appends).

        The index is relative to the target column without the moved card.
        """
        task = self._require_task(task_id, "move")
        if task is None:
            return False
        try:
            new_status = TaskStatus.parse(new_status)
        except ValueError as e:
            self.notifier.error("Error moving task", str(e))
            return False

        snapshot = copy.deepcopy(self.columns)

        for column in self.columns:
            column.tasks = [t for t in column.tasks if t.id != task_id]
        target = self.column(new_status)
        if index is None or index > len(target.tasks):
            index = len(target.tasks)
        index = max(0, index)
        task.status = new_status
        target.tasks.insert(index, task)
        for position, item in enumerate(target.tasks, start=1):
            item.position = position

        try:
            if not self.db.update_task(task_id, {"status": new_status.value}):
                return self._task_vanished(task_id, snapshot)
            self.db.update_task_positions([t.id for t in target.tasks])
            logger.info(f"Moved task {task_id} to {new_status.value} at index {index}")
            return True
        except Exception as e:
            logger.error(f"Error moving task {task_id}: {e}")
            self.notifier.error("Error moving task", str(e))
            self.columns = snapshot
            self.fetch_tasks()
            return False
