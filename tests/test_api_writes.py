"""Write endpoints: checklist submission, template editing, task publishing and password change."""

import base64

import pytest

from compliance.integrations.backend_gateway import hash_password

TEMPLATE = [
    {"id": "i1", "category": "Fire", "content": "Hose"},
    {"id": "i2", "category": "Lighting", "content": "Emergency lamp"},
    {"id": "i3", "category": "Lighting", "content": "Exit sign"},
]


@pytest.fixture()
def loaded(fake_gateway, fixed_now):
    fake_gateway.template = [dict(t) for t in TEMPLATE]
    return fake_gateway


def _photo(size):
    return {"name": "lamp.jpg", "type": "image/jpeg",
            "content": base64.b64encode(b"\xff" * size).decode("ascii")}


# ── Checklist submission ─────────────────────────────────────────────────


def test_submit_fills_unanswered_items_and_copies_template_text(client, loaded, login):
    login()
    res = client.post("/api/v1/checklists/submissions", json={
        "station_code": "BAIFU",
        "year_month": "2024-01",
        "results": [
            {"item_id": "i2", "status": "ISSUE", "note": "Lamp out", "photo": _photo(64)},
            {"item_id": "i3", "status": "不適用"},
        ],
    })
    assert res.status_code == 201
    body = res.get_json()
    assert body["issue_count"] == 1
    assert body["submission"]["station_code"] == "BAIFU"
    assert body["submission"]["score"] == 0

    sent = loaded.last_submit
    assert sent["stationCode"] == "BAIFU"
    assert sent["yearMonth"] == "2024-01"
    assert sent["submittedBy"] == "admin@example.com"
    assert [(r["itemId"], r["status"]) for r in sent["results"]] == [
        ("i1", "正常"), ("i2", "異常"), ("i3", "不適用"),
    ]
    assert sent["results"][1]["content"] == "Emergency lamp"
    assert sent["results"][1]["file"]["name"] == "lamp.jpg"
    assert "file" not in sent["results"][0]


def test_submission_refreshes_the_cached_list(client, loaded, login):
    login()
    assert client.get("/api/v1/checklists/submissions").get_json()["total"] == 0
    client.post("/api/v1/checklists/submissions", json={"station_code": "CHENG", "year_month": "2024-01"})

    listing = client.get("/api/v1/checklists/submissions").get_json()
    assert [s["station_code"] for s in listing["items"]] == ["CHENG"]
    assert loaded.calls.count("getChecklistSubmissions") == 2


def test_issue_without_note_is_rejected_before_sending(client, loaded, login):
    login()
    res = client.post("/api/v1/checklists/submissions", json={
        "station_code": "BAIFU", "year_month": "2024-01",
        "results": [{"item_id": "i1", "status": "ISSUE", "note": "  "}],
    })
    assert res.status_code == 422
    assert res.get_json()["details"] == {"item_id": "i1"}
    assert "submitChecklist" not in loaded.calls


@pytest.mark.parametrize("body", [
    {"year_month": "2024-1"},
    {"year_month": "2024-01", "results": [{"item_id": "gone", "status": "OK"}]},
    {"year_month": "2024-01", "results": [{"item_id": "i1", "status": "maybe"}]},
    {"year_month": "2024-01", "results": [{"item_id": "i1"}, {"item_id": "i1"}]},
])
def test_malformed_submission_is_422(client, loaded, login, body):
    login()
    res = client.post("/api/v1/checklists/submissions", json={"station_code": "BAIFU", **body})
    assert res.status_code == 422
    assert "submitChecklist" not in loaded.calls


def test_photo_over_five_megabytes_is_rejected(client, loaded, login):
    login()
    res = client.post("/api/v1/checklists/submissions", json={
        "station_code": "BAIFU", "year_month": "2024-01",
        "results": [{"item_id": "i1", "status": "OK", "photo": _photo(5 * 1024 * 1024 + 1)}],
    })
    assert res.status_code == 422
    assert res.get_json()["details"]["item_id"] == "i1"


def test_read_only_roles_cannot_submit(client, loaded, login):
    login(role="MANAGER_DEPT", assignedStation="BAIFU")
    res = client.post("/api/v1/checklists/submissions", json={"station_code": "BAIFU", "year_month": "2024-01"})
    assert res.status_code == 403
    assert res.get_json()["details"]["capability"] == "edit_checklist"
    assert "submitChecklist" not in loaded.calls


def test_station_outside_scope_is_404(client, loaded, login):
    login(role="MANAGER_3D", assignedStation="CHENG")
    res = client.post("/api/v1/checklists/submissions", json={"station_code": "BAIFU", "year_month": "2024-01"})
    assert res.status_code == 404
    missing = client.post("/api/v1/checklists/submissions", json={"year_month": "2024-01"})
    assert missing.status_code == 400


def test_rejected_submission_is_422_and_failed_one_502(client, loaded, login):
    login()
    loaded.write_ok = False
    rejected = client.post("/api/v1/checklists/submissions", json={"station_code": "BAIFU", "year_month": "2024-01"})
    assert rejected.status_code == 422
    assert rejected.get_json()["error"] == "無權限"

    loaded.write_ok = True
    loaded.down = True
    failed = client.post("/api/v1/checklists/submissions", json={"station_code": "BAIFU", "year_month": "2024-01"})
    assert failed.status_code == 502
    assert failed.get_json()["details"]["action"] == "submitChecklist"


# ── Template ─────────────────────────────────────────────────────────────


def test_template_is_readable_by_everyone(client, loaded, login):
    login(role="OPERATOR", assignedStation="BAIFU")
    body = client.get("/api/v1/checklists/template").get_json()
    assert [i["id"] for i in body["items"]] == ["i1", "i2", "i3"]
    assert body["read_only"] is True


def test_save_template_replaces_rows_and_assigns_ids(client, loaded, login):
    login(role="MANAGER_3D")
    res = client.put("/api/v1/checklists/template", json={"items": [
        {"id": "i1", "category": "Fire", "content": "Hose pressure"},
        {"category": "Drainage", "content": "Sump pump"},
    ]})
    assert res.status_code == 200
    items = res.get_json()["items"]
    assert items[0] == {"id": "i1", "category": "Fire", "content": "Hose pressure"}
    assert items[1]["id"].startswith("item-")
    assert loaded.last_template == items

    # The session copy is replaced without another fetch
    body = client.get("/api/v1/checklists/template").get_json()
    assert [i["content"] for i in body["items"]] == ["Hose pressure", "Sump pump"]
    assert "getChecklistTemplate" not in loaded.calls


@pytest.mark.parametrize("items", [
    [],
    [{"id": "a", "category": "", "content": "x"}],
    [{"id": "a", "category": "c", "content": "x"}, {"id": "a", "category": "c", "content": "y"}],
    "not a list",
])
def test_invalid_template_is_422(client, loaded, login, items):
    login()
    assert client.put("/api/v1/checklists/template", json={"items": items}).status_code == 422
    assert "saveChecklistTemplate" not in loaded.calls


def test_operator_cannot_edit_template(client, loaded, login):
    login(role="OPERATOR", assignedStation="ALL")
    res = client.put("/api/v1/checklists/template", json={"items": TEMPLATE})
    assert res.status_code == 403
    assert "saveChecklistTemplate" not in loaded.calls


# ── Task publishing ──────────────────────────────────────────────────────


NEW_TASK = {
    "station_code": "XINYI",
    "item_code": "B07",
    "item_name": "Ventilation fans",
    "deadline": "2024/1/20",
    "executor_email": " Op@Example.com ",
}


def test_admin_publishes_task(client, loaded, login):
    login()
    res = client.post("/api/v1/tasks", json=NEW_TASK)
    assert res.status_code == 201
    task = res.get_json()["task"]
    assert task["station_code"] == "XINYI"
    assert task["effective_status"] == "PENDING"
    assert task["deadline_display"] == "2024-01-20"

    assert loaded.last_create == {
        "stationName": "信義國小地下停車場",
        "itemCode": "B07",
        "itemName": "Ventilation fans",
        "deadline": "2024-01-20",
        "executorEmail": "op@example.com",
        "status": "待處理",
    }
    listing = client.get("/api/v1/tasks?station=XINYI").get_json()
    assert [t["item_code"] for t in listing["items"]] == ["B07"]


@pytest.mark.parametrize("role", ["MANAGER_3D", "MANAGER_DEPT", "OPERATOR"])
def test_only_admins_publish_tasks(client, loaded, login, role):
    login(role=role, assignedStation="ALL")
    res = client.post("/api/v1/tasks", json=NEW_TASK)
    assert res.status_code == 403
    assert res.get_json()["details"]["capability"] == "create_task"
    assert "createTask" not in loaded.calls


@pytest.mark.parametrize("change,status", [
    ({"station_code": ""}, 400),
    ({"station_code": "NOWHERE"}, 404),
    ({"deadline": "next friday"}, 422),
    ({"item_name": " "}, 422),
    ({"executor_email": "nobody"}, 422),
])
def test_invalid_task_is_not_sent(client, loaded, login, change, status):
    login()
    assert client.post("/api/v1/tasks", json={**NEW_TASK, **change}).status_code == status
    assert "createTask" not in loaded.calls


# ── Password change ──────────────────────────────────────────────────────


def test_password_change_clears_forced_flag_and_rotates_token(client, loaded, login):
    before = login(forceChangePassword=True)
    assert before["viewer"]["force_change_password"] is True

    res = client.post("/api/v1/session/password", json={"new_password": "n3w-passw0rd"})
    assert res.status_code == 200
    assert res.get_json()["viewer"]["force_change_password"] is False
    assert loaded.last_password == (hash_password("secret"), hash_password("n3w-passw0rd"))
    assert client.get("/api/v1/session").get_json()["viewer"]["force_change_password"] is False

    # Later calls authenticate with the new hash
    client.post("/api/v1/session/password", json={"new_password": "another-one"})
    assert loaded.last_password[0] == hash_password("n3w-passw0rd")


@pytest.mark.parametrize("body,status", [
    ({}, 400),
    ({"new_password": "abc"}, 422),
    ({"new_password": "secret"}, 422),
])
def test_invalid_new_password(client, loaded, login, body, status):
    login()
    assert client.post("/api/v1/session/password", json=body).status_code == status
    assert "changePassword" not in loaded.calls


def test_rejected_password_change_keeps_session_token(client, loaded, login):
    login(forceChangePassword=True)
    loaded.write_ok = False
    res = client.post("/api/v1/session/password", json={"new_password": "n3w-passw0rd"})
    assert res.status_code == 422
    assert res.get_json()["error"] == "舊密碼錯誤"
    assert client.get("/api/v1/session").get_json()["viewer"]["force_change_password"] is True


def test_password_change_requires_login(client, fake_gateway):
    assert client.post("/api/v1/session/password", json={"new_password": "n3w-passw0rd"}).status_code == 401
