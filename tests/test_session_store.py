# tests/test_session_store.py

from __future__ import annotations

from notifications import DESTRUCTIVE
from session_store import SESSION_KEY, SIGNED_IN, SIGNED_OUT, SessionStore


def test_sign_up_signs_the_user_in(session_store, db, notifier) -> None:
    user = session_store.sign_up("  Dana@Example.com ", "longenough")

    assert user["email"] == "dana@example.com"
    assert session_store.user_id == user["id"]
    assert session_store.get_session()["user"] == user
    assert notifier.drain()[-1].description == "Welcome dana@example.com!"


def test_sign_up_validation(session_store, notifier) -> None:
    assert session_store.sign_up("", "longenough") is None
    assert session_store.sign_up("x@example.com", "12345") is None
    notes = notifier.drain()
    assert [note.title for note in notes] == ["Error signing up", "Error signing up"]
    assert all(note.variant == DESTRUCTIVE for note in notes)
    assert "at least 6 characters" in notes[1].description
    assert session_store.user is None


def test_sign_up_rejects_registered_email(session_store, user, notifier) -> None:
    session_store.sign_out()
    notifier.drain()

    assert session_store.sign_up("alice@example.com", "another-pass") is None
    assert notifier.drain()[0].description == "User already registered"


def test_sign_in_success_records_last_sign_in_and_emits(session_store, user, notifier) -> None:
    events = []
    session_store.sign_out()
    session_store.on_auth_state_change(lambda event, session: events.append((event, session)))
    notifier.drain()

    signed_in = session_store.sign_in_with_password("ALICE@example.com", "secret-pass")

    assert signed_in["id"] == user["id"]
    assert signed_in["last_sign_in_at"] is not None
    assert events == [(SIGNED_IN, session_store.session)]
    note = notifier.drain()[0]
    assert (note.title, note.description) == ("Signed in successfully", "Welcome alice@example.com!")


def test_sign_in_failure_keeps_previous_state(session_store, user, notifier) -> None:
    before = session_store.session

    assert session_store.sign_in_with_password("alice@example.com", "wrong") is None

    assert session_store.session == before
    note = notifier.drain()[0]
    assert note.description == "Invalid login credentials"
    assert note.variant == DESTRUCTIVE


def test_sign_in_store_error_is_notified(session_store, db, notifier) -> None:
    db.fail_on.add("authenticate_user")
    assert session_store.sign_in_with_password("alice@example.com", "secret-pass") is None
    assert notifier.drain()[0].title == "Error signing in"


def test_sign_out_clears_and_emits(session_store, user, notifier) -> None:
    events = []
    unsubscribe = session_store.on_auth_state_change(lambda event, session: events.append((event, session)))

    session_store.sign_out()

    assert session_store.user is None
    assert SESSION_KEY not in session_store.storage
    assert events == [(SIGNED_OUT, None)]
    assert notifier.drain()[-1].title == "Signed out"

    unsubscribe()
    session_store.sign_in_with_password("alice@example.com", "secret-pass")
    assert len(events) == 1


def test_sign_out_without_session_is_a_no_op(session_store, notifier) -> None:
    session_store.sign_out()
    assert notifier.drain() == []


def test_storage_is_shared_between_stores(db, user, session_store) -> None:
    other = SessionStore(db, session_store.storage)
    assert other.user == session_store.user


def test_refresh_drops_deleted_users(session_store, db, user) -> None:
    assert session_store.refresh() == user
    del db.users[user["id"]]
    assert session_store.refresh() is None
    assert session_store.user is None
