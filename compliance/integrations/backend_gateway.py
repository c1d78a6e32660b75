"""
Remote API Gateway.

All outbound HTTP calls to the spreadsheet-backed web-app API go through
this class. Direct `requests` calls in services or blueprints are FORBIDDEN.

Protocol (owned by the backend):
  - Reads:  GET  <url>?action=<name>&userEmail=<email>&token=<hash>&...
  - Writes: POST <url> with a JSON body {"action": <name>, ...} sent as
    text/plain (the web-app host rejects application/json preflights)
  - Every response: {"success": bool, "data" | <entity>: [...], "msg"?: str}

Reliability:
  - Retry: max 2 attempts after the first, backoff from config (1 s → 4 s)
  - Timeout: 30 s (configurable)
  - Circuit breaker: ≥5 failures in 60 s → 30 s pause
  - A backend answer of success=false is a decision, not a fault: it is
    returned immediately and never retried.

Testability: pass a mock `session` to BackendGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import requests

logger = logging.getLogger(__name__)

# ── Circuit breaker constants ──────────────────────────────────────────────
_CB_FAILURE_THRESHOLD = 5          # failures within window before opening
_CB_WINDOW_SECONDS = 60            # failure counting window (seconds)
_CB_OPEN_DURATION_SECONDS = 30     # how long circuit stays open

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_DEFAULT_BACKOFF_SECONDS = [1, 4]  # sleep[0] after 1st fail, sleep[1] after 2nd

_DEFAULT_TIMEOUT = 30

# The backend filters tasks by station display name; this value means "no filter"
ALL_STATIONS_FILTER = "全部"


@dataclass(frozen=True)
class BackendIdentity:
    """Caller identity sent with every authenticated request.

    ``token`` is the SHA-256 hex of the user's password, the same value the
    backend stores and compares.
    """

    email: str
    token: str


class GatewayResult:
    """Structured return value from BackendGateway calls.

    Attributes:
        ok:          True if HTTP 2xx AND the backend reported success.
        status_code: HTTP status code (None if network-level failure).
        data:        Parsed JSON response body (dict or list), else None.
        error:       Backend ``msg`` or transport error text, else None.
        duration_ms: Round-trip latency in milliseconds.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        duration_ms: int,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms

    @property
    def rejected(self) -> bool:
        """The backend answered and said no (``success: false``)."""
        return not self.ok and isinstance(self.data, dict) and self.data.get("success") is False

    def entity_list(self, *keys: str) -> list:
        """First list found under ``keys`` then ``data``; [] if none.

        The backend is inconsistent about the envelope key
        (``tasks`` vs ``data``, ``submissions`` vs ``data``) and a few
        actions return a bare list.
        """
        if isinstance(self.data, list):
            return self.data
        if not isinstance(self.data, dict):
            return []
        for key in (*keys, "data"):
            value = self.data.get(key)
            if isinstance(value, list):
                return value
        return []

    def __repr__(self) -> str:
        return f"GatewayResult(ok={self.ok}, status_code={self.status_code}, error={self.error!r})"


def encode_attachment(name: str, mime_type: str, content: bytes) -> dict:
    """Attachment payload the backend stores in its upload folder."""
    return {
        "name": name,
        "type": mime_type,
        "content": base64.b64encode(content).decode("ascii"),
    }


def hash_password(plaintext: str) -> str:
    """SHA-256 hex digest, the form the backend stores and compares."""
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


class BackendGateway:
    """Remote API gateway.

    One instance per application (``app.extensions["backend_gateway"]``).
    Pass a custom `session` in tests to intercept HTTP calls without
    making real network requests.

    Usage:
        gateway = current_app.extensions["backend_gateway"]
        result = gateway.fetch("getTasks", identity, station="全部")
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: int = _DEFAULT_TIMEOUT,
        backoff: list[int] | None = None,
        upload_folder_id: str = "",
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.backoff = list(backoff) if backoff is not None else list(_DEFAULT_BACKOFF_SECONDS)
        self.upload_folder_id = upload_folder_id
        # Inject custom session for testing; create real one lazily otherwise.
        self._session: requests.Session | None = session
        self._cb_state: dict = {"failures": [], "open_until": None}

    @classmethod
    def from_config(cls, config: dict, session: requests.Session | None = None) -> BackendGateway:
        return cls(
            config.get("BACKEND_API_URL", ""),
            timeout=config.get("BACKEND_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT),
            backoff=config.get("BACKEND_RETRY_BACKOFF"),
            upload_folder_id=config.get("UPLOAD_FOLDER_ID", ""),
            session=session,
        )

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Circuit breaker ───────────────────────────────────────────────────────

    def _circuit_closed(self) -> bool:
        """Return True if the circuit allows calls; False if open (paused)."""
        state = self._cb_state
        now = datetime.now(timezone.utc)

        if state["open_until"] and now < state["open_until"]:
            logger.warning("Backend circuit open until %s", state["open_until"])
            return False

        # Prune failures outside the counting window
        window_start = now - timedelta(seconds=_CB_WINDOW_SECONDS)
        state["failures"] = [f for f in state["failures"] if f >= window_start]

        if len(state["failures"]) >= _CB_FAILURE_THRESHOLD:
            state["open_until"] = now + timedelta(seconds=_CB_OPEN_DURATION_SECONDS)
            logger.error(
                "Backend circuit opened: %d failures in %ds window",
                len(state["failures"]), _CB_WINDOW_SECONDS,
            )
            return False

        return True

    @property
    def circuit_open(self) -> bool:
        """True while calls are suspended; read-only, unlike ``_circuit_closed``."""
        until = self._cb_state["open_until"]
        return bool(until and datetime.now(timezone.utc) < until)

    def _record_failure(self) -> None:
        self._cb_state["failures"].append(datetime.now(timezone.utc))

    def _record_success(self) -> None:
        """On success, reset failure history and close the circuit."""
        self._cb_state["failures"].clear()
        self._cb_state["open_until"] = None

    # ── Core request dispatcher ───────────────────────────────────────────────

    def _do_request(self, method: str, *, params: dict | None, body: dict | None) -> requests.Response:
        """Execute a single HTTP request, no retry logic here."""
        kwargs: dict[str, Any] = {"timeout": self.timeout}
        if params:
            kwargs["params"] = params
        if body is not None:
            kwargs["data"] = json.dumps(body, ensure_ascii=False).encode("utf-8")
            kwargs["headers"] = {"Content-Type": "text/plain;charset=utf-8"}
        return self.session.request(method, self.base_url, **kwargs)

    def _call(self, method: str, action: str, *, params: dict | None = None,
              body: dict | None = None) -> GatewayResult:
        """Execute a request with retries; always returns, never raises."""
        if not self.base_url:
            return GatewayResult(False, None, None, "BACKEND_API_URL is not configured", 0)

        if not self._circuit_closed():
            return GatewayResult(
                ok=False,
                status_code=None,
                data=None,
                error="Circuit breaker is open — backend calls temporarily suspended",
                duration_ms=0,
            )

        last_error = "Unknown error"
        last_status: int | None = None
        log_extra = {"backend_action": action}

        for attempt in range(_RETRY_MAX + 1):  # 0, 1, 2
            try:
                t0 = time.perf_counter()
                resp = self._do_request(method, params=params, body=body)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.ok:
                    self._record_success()
                    try:
                        data = resp.json() if resp.content else {}
                    except ValueError:
                        logger.warning("Backend returned non-JSON for action=%s", action, extra=log_extra)
                        return GatewayResult(False, resp.status_code, None,
                                             "Backend returned a non-JSON response", duration_ms)

                    if isinstance(data, dict) and not data.get("success", False):
                        msg = data.get("msg") or "Backend reported failure"
                        logger.info("Backend rejected action=%s: %s", action, msg, extra=log_extra)
                        return GatewayResult(False, resp.status_code, data, msg, duration_ms)

                    return GatewayResult(True, resp.status_code, data, None, duration_ms)

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                self._record_failure()
                logger.warning(
                    "Backend request failed attempt=%d/%d status=%d action=%s",
                    attempt + 1, _RETRY_MAX + 1, resp.status_code, action, extra=log_extra,
                )
                if resp.status_code < 500:
                    break

            except requests.Timeout:
                last_error = f"Request timed out after {self.timeout}s"
                self._record_failure()
                logger.warning(
                    "Backend request timed out attempt=%d/%d action=%s",
                    attempt + 1, _RETRY_MAX + 1, action, extra=log_extra,
                )

            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                self._record_failure()
                logger.warning(
                    "Backend network error attempt=%d/%d action=%s error=%s",
                    attempt + 1, _RETRY_MAX + 1, action, last_error, extra=log_extra,
                )

            # Sleep before retry (except after last attempt)
            if attempt < _RETRY_MAX and self.backoff:
                sleep_s = self.backoff[min(attempt, len(self.backoff) - 1)]
                if sleep_s:
                    logger.info("Retrying backend action=%s in %ss", action, sleep_s)
                    time.sleep(sleep_s)

        return GatewayResult(False, last_status, None, last_error, 0)

    # ── Generic verbs ─────────────────────────────────────────────────────────

    def fetch(self, action: str, identity: BackendIdentity | None = None, **params) -> GatewayResult:
        query = {"action": action}
        if identity is not None:
            query["userEmail"] = identity.email
            query["token"] = identity.token
        query.update({k: v for k, v in params.items() if v is not None})
        return self._call("GET", action, params=query)

    def post(self, action: str, identity: BackendIdentity | None = None, **payload) -> GatewayResult:
        body: dict[str, Any] = {"action": action}
        if identity is not None:
            body["userEmail"] = identity.email
            body["token"] = identity.token
        body.update(payload)
        return self._call("POST", action, body=body)

    # ── Backend actions ──────────────────────────────────────────────────────

    def check_user_auth(self, email: str, password_hash: str) -> GatewayResult:
        return self.post("checkUserAuth", userEmail=email, password=password_hash)

    def get_tasks(self, identity: BackendIdentity, station: str = ALL_STATIONS_FILTER) -> GatewayResult:
        return self.fetch("getTasks", identity, station=station)

    def get_checklist_submissions(self, identity: BackendIdentity) -> GatewayResult:
        return self.fetch("getChecklistSubmissions", identity)

    def get_checklist_template(self, identity: BackendIdentity) -> GatewayResult:
        return self.fetch("getChecklistTemplate", identity)

    def get_logs(self, identity: BackendIdentity) -> GatewayResult:
        return self.fetch("getLogs", identity)

    def get_task_logs(self, identity: BackendIdentity, uid: str) -> GatewayResult:
        return self.fetch("getTaskLogs", identity, uid=uid)

    def resolve_alert(self, identity: BackendIdentity, submission_id: str, alert_id: str) -> GatewayResult:
        return self.post("resolveAlert", identity, submissionId=submission_id, alertId=alert_id)

    def update_task(
        self,
        identity: BackendIdentity,
        uid: str,
        status_wire: str,
        *,
        current_attachment_url: str | None = None,
        attachment: dict | None = None,
    ) -> GatewayResult:
        """Progress update by the executor; ``attachment`` from ``encode_attachment``."""
        return self.post(
            "updateTask", identity,
            uid=uid,
            status=status_wire,
            currentAttachmentUrl=current_attachment_url,
            file=attachment,
            folderId=self.upload_folder_id,
        )

    def create_task(self, identity: BackendIdentity, task_data: dict) -> GatewayResult:
        """Publish a new task (admin only); the backend assigns the uid."""
        return self.post("createTask", adminEmail=identity.email, token=identity.token, taskData=task_data)

    def submit_checklist(self, identity: BackendIdentity, data: dict) -> GatewayResult:
        """One station's monthly answers; result photos travel inline as attachments."""
        return self.post("submitChecklist", identity, data=data)

    def save_checklist_template(self, identity: BackendIdentity, items: list[dict]) -> GatewayResult:
        """Replace the whole template; rows missing from ``items`` are deleted."""
        return self.post("saveChecklistTemplate", identity, items=items)

    def change_password(self, identity: BackendIdentity, new_password_hash: str) -> GatewayResult:
        """The current hash authenticates the call; the new hash becomes the token."""
        return self.post("changePassword", email=identity.email, token=identity.token,
                         newPassword=new_password_hash)
