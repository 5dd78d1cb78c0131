# tests/conftest.py

from __future__ import annotations

import pytest

from boards import BoardManager
from kanban_state import KanbanState
from notifications import Notifier
from session_store import SessionStore

from .fakes import FakeDatabase

PASSWORD = "secret-pass"


@pytest.fixture()
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture()
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture()
def session_store(db: FakeDatabase, notifier: Notifier) -> SessionStore:
    """Session store over a plain dict, the way the MCP server uses it."""
    return SessionStore(db, {}, notifier)


@pytest.fixture()
def user(session_store: SessionStore, notifier: Notifier) -> dict:
    """A registered, signed-in user."""
    signed_in = session_store.sign_up("alice@example.com", PASSWORD)
    notifier.drain()
    return signed_in


@pytest.fixture()
def other_user(db: FakeDatabase) -> dict:
    return db.create_user("bob@example.com", PASSWORD)


@pytest.fixture()
def board(db: FakeDatabase, user: dict):
    return BoardManager(db).create_board(user["id"], "Sprint", "Current sprint")


@pytest.fixture()
def state(db: FakeDatabase, user: dict, board, notifier: Notifier) -> KanbanState:
    kanban = KanbanState(db, user, board.id, notifier)
    kanban.fetch_tasks()
    return kanban


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def flask_app(db: FakeDatabase, monkeypatch: pytest.MonkeyPatch):
    import app as web

    monkeypatch.setattr(web, "_db", db)
    web.app.config.update(TESTING=True, SECRET_KEY="test-secret")
    return web.app


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def signed_in_client(client, db: FakeDatabase):
    """Test client with a registered and signed-in user (alice)."""
    db.create_user("alice@example.com", PASSWORD)
    response = client.post("/auth", data={"action": "signin", "email": "alice@example.com", "password": PASSWORD})
    assert response.status_code == 302
    return client
