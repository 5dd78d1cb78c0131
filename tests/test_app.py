# tests/test_app.py

from __future__ import annotations

from .conftest import PASSWORD


def _board_id(db, email="alice@example.com") -> str:
    user = db.find_user_by_email(email)
    return db.get_owned_boards(user["id"])[-1]["id"]


def _open_board(client, db) -> str:
    response = client.get("/my-board")
    assert response.status_code == 302
    return _board_id(db)


def test_pages_require_sign_in(client) -> None:
    for path in ("/my-board", "/profile", "/board/abc"):
        response = client.get(path)
        assert response.status_code == 302
        assert response.headers["Location"].endswith("/auth")


def test_api_requires_sign_in(client) -> None:
    response = client.get("/api/boards/abc/columns")
    assert response.status_code == 401
    assert response.get_json() == {"error": "Authentication required"}


def test_sign_up_and_land_on_default_board(client, db) -> None:
    response = client.post("/auth", data={"action": "signup", "email": "new@example.com", "password": PASSWORD})
    assert response.status_code == 302

    response = client.get("/", follow_redirects=True)
    assert response.status_code == 200
    assert b"My Board" in response.data
    assert b"Backlog" in response.data and b"In Progress" in response.data


def test_bad_credentials_rerender_auth_page(client, db) -> None:
    db.create_user("alice@example.com", PASSWORD)
    response = client.post("/auth", data={"action": "signin", "email": "alice@example.com", "password": "nope"})
    assert response.status_code == 200
    assert b"Invalid login credentials" in response.data


def test_logout_clears_session(signed_in_client) -> None:
    response = signed_in_client.get("/logout")
    assert response.status_code == 302
    assert signed_in_client.get("/profile").status_code == 302


def test_add_edit_status_and_delete_task(signed_in_client, db) -> None:
    board_id = _open_board(signed_in_client, db)

    response = signed_in_client.post(
        f"/board/{board_id}/tasks",
        data={"title": "Write tests", "description": "all of them", "status": "backlog",
              "priority": "high", "due_date": "2030-01-02", "owner": "alice"},
    )
    assert response.status_code == 302
    (task,) = db.tasks.values()
    assert (task["status"], task["priority"], task["owner"]) == ("backlog", "high", "alice")
    assert task["due_date"].strftime("%Y-%m-%d") == "2030-01-02"

    page = signed_in_client.get(f"/board/{board_id}?edit={task['id']}")
    assert b"Write tests" in page.data

    signed_in_client.post(
        f"/board/{board_id}/tasks/{task['id']}/edit",
        data={"title": "Write more tests", "description": "", "priority": "low", "due_date": "", "owner": ""},
    )
    assert db.tasks[task["id"]]["title"] == "Write more tests"
    assert db.tasks[task["id"]]["due_date"] is None

    signed_in_client.post(f"/board/{board_id}/tasks/{task['id']}/status", data={"status": "done"})
    assert db.tasks[task["id"]]["status"] == "done"

    signed_in_client.post(f"/board/{board_id}/tasks/{task['id']}/delete")
    assert db.tasks == {}


def test_columns_api(signed_in_client, db) -> None:
    board_id = _open_board(signed_in_client, db)
    user = db.find_user_by_email("alice@example.com")
    db.seed_task(user["id"], board_id, "Queued", status="todo")

    payload = signed_in_client.get(f"/api/boards/{board_id}/columns").get_json()

    assert payload["board"]["name"] == "My Board"
    assert [column["id"] for column in payload["columns"]] == ["backlog", "todo", "in-progress", "done"]
    assert payload["columns"][1]["tasks"][0]["title"] == "Queued"


def test_move_api_resolves_column_and_index_from_geometry(signed_in_client, db) -> None:
    board_id = _open_board(signed_in_client, db)
    user = db.find_user_by_email("alice@example.com")
    first = db.seed_task(user["id"], board_id, "First", status="done")
    second = db.seed_task(user["id"], board_id, "Second", status="done")
    moving = db.seed_task(user["id"], board_id, "Moving", status="todo")

    response = signed_in_client.post(
        f"/api/boards/{board_id}/tasks/{moving['id']}/move",
        json={
            "pointer": {"x": 350, "y": 120},
            "columns": [
                {"status": "backlog", "left": 0, "right": 100, "top": 0, "bottom": 800},
                {"status": "todo", "left": 110, "right": 210, "top": 0, "bottom": 800},
                {"status": "in-progress", "left": 220, "right": 320, "top": 0, "bottom": 800},
                {"status": "done", "left": 330, "right": 430, "top": 0, "bottom": 800},
            ],
            "cards": [
                {"id": first["id"], "top": 0, "height": 100},
                {"id": second["id"], "top": 110, "height": 100},
            ],
        },
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["moved"] == {"task_id": moving["id"], "status": "done", "index": 1}
    done = [task["title"] for task in payload["columns"][3]["tasks"]]
    assert done == ["First", "Moving", "Second"]
    assert [db.tasks[t["id"]]["position"] for t in (first, moving, second)] == [1, 2, 3]


def test_move_api_with_explicit_status_and_index(signed_in_client, db) -> None:
    board_id = _open_board(signed_in_client, db)
    user = db.find_user_by_email("alice@example.com")
    task = db.seed_task(user["id"], board_id, "Solo", status="todo")

    response = signed_in_client.post(
        f"/api/boards/{board_id}/tasks/{task['id']}/move", json={"status": "in-progress", "index": 0}
    )

    assert response.status_code == 200
    assert db.tasks[task["id"]]["status"] == "in-progress"


def test_move_api_reports_the_landed_index(signed_in_client, db) -> None:
    board_id = _open_board(signed_in_client, db)
    user = db.find_user_by_email("alice@example.com")
    db.seed_task(user["id"], board_id, "Existing", status="done")
    task = db.seed_task(user["id"], board_id, "Late", status="todo")
    url = f"/api/boards/{board_id}/tasks/{task['id']}/move"

    far = signed_in_client.post(url, json={"status": "done", "index": 99}).get_json()
    assert far["moved"]["index"] == 1

    negative = signed_in_client.post(url, json={"status": "done", "index": -5}).get_json()
    assert negative["moved"]["index"] == 0
    assert [t["title"] for t in negative["columns"][3]["tasks"]] == ["Late", "Existing"]


def test_move_api_errors(signed_in_client, db) -> None:
    board_id = _open_board(signed_in_client, db)
    user = db.find_user_by_email("alice@example.com")
    task = db.seed_task(user["id"], board_id, "Solo", status="todo")
    url = f"/api/boards/{board_id}/tasks/{task['id']}/move"

    assert signed_in_client.post(url, json={}).status_code == 400
    assert signed_in_client.post(url, json={"status": "someday"}).status_code == 400
    assert signed_in_client.post(f"/api/boards/{board_id}/tasks/999/move", json={"status": "done"}).status_code == 404
    assert signed_in_client.post(f"/api/boards/missing/tasks/{task['id']}/move", json={"status": "done"}).status_code == 404


def test_board_sharing_flow(signed_in_client, db) -> None:
    board_id = _open_board(signed_in_client, db)
    bob = db.create_user("bob@example.com", PASSWORD)

    signed_in_client.post(f"/board/{board_id}/members", data={"email": "bob@example.com"})
    membership = db.get_membership(board_id, bob["id"])
    assert membership["role"] == "member"

    page = signed_in_client.get(f"/board/{board_id}")
    assert b"bob@example.com" in page.data

    signed_in_client.post(f"/board/{board_id}/members/{membership['id']}/delete")
    assert db.get_membership(board_id, bob["id"]) is None


def test_inaccessible_board_redirects_to_profile(signed_in_client, db) -> None:
    bob = db.create_user("bob@example.com", PASSWORD)
    theirs = db.create_board(bob["id"], "Private", None)

    response = signed_in_client.get(f"/board/{theirs['id']}")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/profile")


def test_profile_page_and_board_management(signed_in_client, db) -> None:
    response = signed_in_client.post("/boards", data={"name": "Launch", "description": "go live"})
    assert response.status_code == 302
    board = next(b for b in db.boards.values() if b["name"] == "Launch")

    page = signed_in_client.get("/profile")
    assert page.status_code == 200
    assert b"Launch" in page.data

    signed_in_client.post(f"/boards/{board['id']}/edit", data={"name": "Launched", "description": ""})
    assert db.boards[board["id"]]["name"] == "Launched"

    signed_in_client.post(f"/boards/{board['id']}/delete")
    assert board["id"] not in db.boards

    signed_in_client.post("/profile", data={"username": "ally", "full_name": "Alice", "avatar_url": ""})
    user = db.find_user_by_email("alice@example.com")
    assert db.profiles[user["id"]]["username"] == "ally"


def test_health_reports_store_counts(client, db) -> None:
    payload = client.get("/health").get_json()
    assert payload["status"] == "ok"
    assert payload["database"]["total_tasks"] == 0

    db.fail_on.add("get_database_stats")
    assert client.get("/health").status_code == 503


def test_unknown_route_renders_not_found(client) -> None:
    response = client.get("/definitely-not-here")
    assert response.status_code == 404
    assert b"404" in response.data


def test_linkify_escapes_before_linking(flask_app) -> None:
    from app import linkify

    out = linkify("<b>ping</b> bob@example.com, see https://example.org/docs now")
    assert "&lt;b&gt;ping&lt;/b&gt;" in out
    assert '<a href="mailto:bob@example.com">bob@example.com</a>' in out
    assert '<a href="https://example.org/docs" target="_blank">https://example.org/docs</a>' in out
    assert linkify("") == ""
