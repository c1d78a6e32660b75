"""
Shared pytest fixtures for the Facility Compliance Dashboard test suite.

Provides:
    - app: Flask application (session-scoped)
    - client: Flask test client (function-scoped)
    - fake_gateway: in-memory stand-in for the remote API, installed on the app
    - login: helper that opens a viewer session through POST /api/v1/session
    - fixed_now: pins the request clock used by the blueprints
    - make_viewer / make_task / make_submission: record factories

No test performs real HTTP. Gateway unit tests pass a MagicMock session to
BackendGateway; blueprint tests replace the app's gateway with FakeGateway.
"""

from datetime import datetime

import pytest

from compliance import create_app
from compliance.integrations.backend_gateway import GatewayResult
from compliance.models.checklist import CheckStatus, ChecklistResult, ChecklistSubmission
from compliance.models.station import station_name
from compliance.models.task import Task, TaskStatus
from compliance.models.user import StationAssignment, UserRole, Viewer
from compliance.services import session_data
from compliance.services.status_resolver import local_timezone


# ── Record factories ─────────────────────────────────────────────────────


def make_viewer(assigned="ALL", role=UserRole.ADMIN, email="viewer@example.com") -> Viewer:
    return Viewer(email=email, role=role, assignment=StationAssignment.parse(assigned))


def make_task(uid="T-1", station="BAIFU", deadline="2024-01-10",
              status=TaskStatus.PENDING, item_name="Fire extinguisher check", **kwargs) -> Task:
    return Task(
        uid=uid,
        station_code=station,
        station_name=station_name(station),
        item_code=kwargs.pop("item_code", "A01"),
        item_name=item_name,
        deadline=deadline,
        status=status,
        **kwargs,
    )


def make_submission(sub_id="S-1", station="BAIFU", month="2024-01",
                    statuses=(CheckStatus.OK,), resolved=(), **kwargs) -> ChecklistSubmission:
    results = kwargs.pop("results", None)
    if results is None:
        results = [
            ChecklistResult(item_id=f"i{n}", status=s, category="Safety", content=f"Item {n}")
            for n, s in enumerate(statuses, start=1)
        ]
    return ChecklistSubmission(
        id=sub_id,
        station_code=station,
        station_name=kwargs.pop("station_name", station_name(station)),
        year_month=month,
        resolved_alerts=set(resolved),
        results=results,
        **kwargs,
    )


@pytest.fixture()
def viewer_factory():
    return make_viewer


@pytest.fixture()
def task_factory():
    return make_task


@pytest.fixture()
def submission_factory():
    return make_submission


# ── Fake remote API ──────────────────────────────────────────────────────


def _ok(**data) -> GatewayResult:
    return GatewayResult(True, 200, {"success": True, **data}, None, 1)


def _rejected(msg) -> GatewayResult:
    return GatewayResult(False, 200, {"success": False, "msg": msg}, msg, 1)


class FakeGateway:
    """Records calls and answers from in-memory wire-format data."""

    def __init__(self):
        self.base_url = "https://backend.test/exec"
        self.circuit_open = False
        self.user = {"email": "admin@example.com", "name": "Admin", "role": "ADMIN",
                     "assignedStation": "ALL"}
        self.password_hash = None
        self.task_rows: list = []
        self.submissions: list = []
        self.template: list = []
        self.logs: list = []
        self.task_logs: list = []
        self.resolve_ok = True
        self.update_ok = True
        self.write_ok = True
        self.down = False
        self.calls: list = []

    def _answer(self, action, result):
        self.calls.append(action)
        if self.down:
            return GatewayResult(False, None, None, "connection refused", 0)
        return result

    def check_user_auth(self, email, password_hash):
        if self.password_hash is not None and password_hash != self.password_hash:
            return self._answer("checkUserAuth", _rejected("密碼錯誤"))
        return self._answer("checkUserAuth", _ok(user=dict(self.user)))

    def get_tasks(self, identity, station="全部"):
        return self._answer("getTasks", _ok(tasks=[list(r) for r in self.task_rows]))

    def get_checklist_submissions(self, identity):
        return self._answer("getChecklistSubmissions",
                            _ok(submissions=[dict(s) for s in self.submissions]))

    def get_checklist_template(self, identity):
        return self._answer("getChecklistTemplate", _ok(template=list(self.template)))

    def get_logs(self, identity):
        return self._answer("getLogs", _ok(logs=list(self.logs)))

    def get_task_logs(self, identity, uid):
        return self._answer("getTaskLogs", _ok(logs=[l for l in self.task_logs if l.get("taskUid") == uid]))

    def resolve_alert(self, identity, submission_id, alert_id):
        self.last_resolve = (submission_id, alert_id)
        if not self.resolve_ok:
            return self._answer("resolveAlert", _rejected("權限不足"))
        for sub in ([] if self.down else self.submissions):
            if sub["id"] == submission_id:
                sub.setdefault("resolvedAlerts", []).append(alert_id)
        return self._answer("resolveAlert", _ok())

    def update_task(self, identity, uid, status_wire, *, current_attachment_url=None, attachment=None):
        self.last_update = {"uid": uid, "status": status_wire,
                            "currentAttachmentUrl": current_attachment_url, "file": attachment}
        if not self.update_ok:
            return self._answer("updateTask", _rejected("無權限"))
        for row in ([] if self.down else self.task_rows):
            if row[0] == uid:
                row[5] = status_wire
        return self._answer("updateTask", _ok())

    def create_task(self, identity, task_data):
        self.last_create = dict(task_data)
        if not self.write_ok:
            return self._answer("createTask", _rejected("無權限"))
        uid = f"T-NEW-{len(self.task_rows) + 1}"
        if not self.down:
            self.task_rows.append([
                uid, task_data["stationName"], task_data["itemCode"], task_data["itemName"],
                task_data["deadline"], task_data["status"], task_data["executorEmail"], "", "",
            ])
        return self._answer("createTask", _ok(uid=uid))

    def submit_checklist(self, identity, data):
        self.last_submit = data
        if not self.write_ok:
            return self._answer("submitChecklist", _rejected("無權限"))
        if not self.down:
            self.submissions.append({
                "id": f"S-NEW-{len(self.submissions) + 1}",
                "stationCode": data["stationCode"],
                "yearMonth": data["yearMonth"],
                "submittedBy": data["submittedBy"],
                "submittedAt": "2024-01-05T10:00:00+08:00",
                "results": [{k: v for k, v in r.items() if k != "file"} for r in data["results"]],
            })
        return self._answer("submitChecklist", _ok())

    def save_checklist_template(self, identity, items):
        self.last_template = items
        if not self.write_ok:
            return self._answer("saveChecklistTemplate", _rejected("無權限"))
        if not self.down:
            self.template = [dict(i) for i in items]
        return self._answer("saveChecklistTemplate", _ok())

    def change_password(self, identity, new_password_hash):
        self.last_password = (identity.token, new_password_hash)
        if not self.write_ok:
            return self._answer("changePassword", _rejected("舊密碼錯誤"))
        if not self.down:
            self.password_hash = new_password_hash
        return self._answer("changePassword", _ok())


# ── App & client fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(autouse=True)
def _clean_sessions(app):
    """Every test starts with no viewer sessions."""
    app.extensions["viewer_sessions"].clear()
    yield
    app.extensions["viewer_sessions"].clear()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def fake_gateway(app):
    """Install a FakeGateway on the app for one test."""
    previous = app.extensions["backend_gateway"]
    fake = FakeGateway()
    app.extensions["backend_gateway"] = fake
    yield fake
    app.extensions["backend_gateway"] = previous


@pytest.fixture()
def login(client, fake_gateway):
    """Log in as the given backend user dict; returns the session response JSON."""

    def _login(**user):
        fake_gateway.user.update(user)
        res = client.post("/api/v1/session",
                          json={"email": fake_gateway.user["email"], "password": "secret"})
        assert res.status_code == 200, res.get_json()
        return res.get_json()

    return _login


@pytest.fixture()
def fixed_now(monkeypatch):
    """Pin the request clock to 2024-01-05 10:00 local time."""
    moment = datetime(2024, 1, 5, 10, 0, tzinfo=local_timezone())
    monkeypatch.setattr(session_data, "now", lambda: moment)
    return moment
