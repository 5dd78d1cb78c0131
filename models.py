"""
KNBN data model

Tasks, columns, boards, memberships and profiles as they travel between the
database rows and the board views.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class TaskStatus(str, Enum):
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def parse(cls, value: Any) -> "TaskStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Invalid status: {value}") from exc


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "TaskPriority":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Invalid priority: {value}") from exc


class MemberRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"


# Canonical column order and headings
COLUMN_TITLES: Dict[TaskStatus, str] = {
    TaskStatus.BACKLOG: "Backlog",
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.DONE: "Done",
}

DEFAULT_BOARD_NAME = "My Board"
DEFAULT_BOARD_DESCRIPTION = "Your personal kanban board"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Best-effort conversion of a row value or form string into a datetime."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def format_date(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%Y-%m-%d")


@dataclass
class Task:
    id: int
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    created_at: datetime = field(default_factory=utcnow)
    due_date: Optional[datetime] = None
    owner: Optional[str] = None
    user_id: Optional[str] = None
    board_id: Optional[str] = None
    position: int = 0

    @property
    def is_overdue(self) -> bool:
        if self.due_date is None or self.status == TaskStatus.DONE:
            return False
        return self.due_date < utcnow()

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Task":
        """Map a ``tasks`` row onto a Task."""
        return cls(
            id=int(row["id"]),
            title=row.get("title") or "",
            description=row.get("description") or "",
            status=TaskStatus.parse(row.get("status") or TaskStatus.TODO),
            priority=TaskPriority.parse(row.get("priority") or TaskPriority.MEDIUM),
            created_at=parse_datetime(row.get("created_at")) or utcnow(),
            due_date=parse_datetime(row.get("due_date")),
            owner=row.get("owner") or None,
            user_id=row.get("user_id"),
            board_id=row.get("board_id"),
            position=row.get("position") or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "created_at": self.created_at.isoformat(),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "owner": self.owner,
            "board_id": self.board_id,
            "position": self.position,
            "is_overdue": self.is_overdue,
        }


@dataclass
class Column:
    status: TaskStatus
    title: str
    tasks: List[Task] = field(default_factory=list)

    def index_of(self, task_id: int) -> int:
        for index, task in enumerate(self.tasks):
            if task.id == task_id:
                return index
        return -1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.status.value,
            "title": self.title,
            "tasks": [task.to_dict() for task in self.tasks],
        }


def empty_columns() -> List[Column]:
    return [Column(status, title) for status, title in COLUMN_TITLES.items()]


@dataclass
class Board:
    id: str
    name: str
    user_id: str
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    is_owner: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any], is_owner: bool = False) -> "Board":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            user_id=str(row.get("user_id")),
            description=row.get("description") or None,
            created_at=parse_datetime(row.get("created_at")) or utcnow(),
            updated_at=parse_datetime(row.get("updated_at")) or utcnow(),
            is_owner=is_owner,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "is_owner": self.is_owner,
        }


@dataclass
class BoardMember:
    id: int
    board_id: str
    user_id: str
    role: MemberRole
    username: str = "Unknown"
    full_name: str = "Unknown User"
    email: str = "No email"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BoardMember":
        return cls(
            id=int(row["id"]),
            board_id=str(row["board_id"]),
            user_id=str(row["user_id"]),
            role=MemberRole(row.get("role") or MemberRole.MEMBER.value),
            username=row.get("username") or "Unknown",
            full_name=row.get("full_name") or "Unknown User",
            email=row.get("email") or "No email",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role": self.role.value,
            "username": self.username,
            "full_name": self.full_name,
            "email": self.email,
        }


@dataclass
class Profile:
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Profile":
        return cls(
            id=str(row["id"]),
            username=row.get("username"),
            full_name=row.get("full_name"),
            avatar_url=row.get("avatar_url"),
            updated_at=parse_datetime(row.get("updated_at")) or utcnow(),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "avatar_url": self.avatar_url,
            "updated_at": self.updated_at,
        }
