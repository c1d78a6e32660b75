"""Session endpoints: login, current viewer, logout, and the due-soon gate per login."""

from compliance.integrations.backend_gateway import hash_password

TASK_ROWS = [
    ["T-1", "百福立體停車場", "A01", "Extinguishers", "2024-01-06", "待處理", "", "", ""],
    ["T-2", "百福立體停車場", "A02", "Lighting", "2024-03-01", "待處理", "", "", ""],
]


def test_login_requires_email_and_password(client, fake_gateway):
    res = client.post("/api/v1/session", json={"email": "a@b.c"})
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"
    assert fake_gateway.calls == []


def test_login_sends_sha256_and_returns_viewer(client, fake_gateway):
    fake_gateway.password_hash = hash_password("secret")
    res = client.post("/api/v1/session", json={"email": " Admin@Example.com ", "password": "secret"})
    assert res.status_code == 200
    body = res.get_json()
    assert body["viewer"]["email"] == "admin@example.com"
    assert body["viewer"]["assigned_station"] == "ALL"
    assert "resolve_alert" in body["capabilities"]
    assert body["due_soon_pending"] is True


def test_wrong_password_is_401_with_backend_message(client, fake_gateway):
    fake_gateway.password_hash = hash_password("right")
    res = client.post("/api/v1/session", json={"email": "a@b.c", "password": "wrong"})
    assert res.status_code == 401
    assert res.get_json()["error"] == "密碼錯誤"


def test_backend_down_is_502(client, fake_gateway):
    fake_gateway.down = True
    res = client.post("/api/v1/session", json={"email": "a@b.c", "password": "pw"})
    assert res.status_code == 502
    assert res.get_json()["code"] == "ERR_BACKEND"


def test_pending_account_cannot_log_in(client, fake_gateway):
    fake_gateway.user["role"] = "PENDING"
    res = client.post("/api/v1/session", json={"email": "a@b.c", "password": "pw"})
    assert res.status_code == 403


def test_session_endpoints_require_login(client, fake_gateway):
    for path in ("/api/v1/session", "/api/v1/dashboard", "/api/v1/tasks",
                 "/api/v1/checklists/alerts", "/api/v1/admin/logs"):
        res = client.get(path)
        assert res.status_code == 401, path
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"


def test_get_and_delete_session(client, login):
    login(role="OPERATOR", assignedStation="CHENG")
    me = client.get("/api/v1/session").get_json()
    assert me["viewer"]["role"] == "OPERATOR"
    assert me["capabilities"] == ["update_task"]

    assert client.delete("/api/v1/session").status_code == 200
    assert client.get("/api/v1/session").status_code == 401


def test_due_soon_fires_once_per_login(client, fake_gateway, login, fixed_now):
    fake_gateway.task_rows = [list(r) for r in TASK_ROWS]
    login()

    first = client.get("/api/v1/tasks/due-soon").get_json()
    assert first["fired"] is True
    assert [t["uid"] for t in first["tasks"]] == ["T-1"]

    second = client.get("/api/v1/tasks/due-soon?refresh=1").get_json()
    assert second == {"fired": False, "tasks": []}

    # A fresh login re-arms the reminder
    login()
    assert client.get("/api/v1/tasks/due-soon").get_json()["fired"] is True


def test_due_soon_waits_for_tasks(client, fake_gateway, login, fixed_now):
    login()
    assert client.get("/api/v1/tasks/due-soon").get_json()["fired"] is False

    fake_gateway.task_rows = [list(r) for r in TASK_ROWS]
    client.get("/api/v1/tasks?refresh=1")
    assert client.get("/api/v1/tasks/due-soon").get_json()["fired"] is True


def test_health_ready(client):
    res = client.get("/api/v1/health/ready")
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok"}
    assert "X-Request-ID" in res.headers


def test_unknown_api_path_is_json_404(client):
    res = client.get("/api/v1/nope")
    assert res.status_code == 404
    assert res.get_json()["path"] == "/api/v1/nope"
