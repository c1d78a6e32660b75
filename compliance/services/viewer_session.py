"""
Per-login viewer state.

One ``ViewerSession`` per successful login. It owns the fetched collections
and the due-soon gate; nothing in the core reads them from anywhere else.
The browser only holds an opaque session id in Flask's signed cookie.

Entries live in a process-local dict with a sliding TTL. A logout or a new
login drops the old entry, so a new login always starts with a fresh
``DueSoonGate.PENDING``.
"""

import logging
import secrets
import threading
import time
from dataclasses import dataclass, field

from compliance.integrations.backend_gateway import BackendIdentity
from compliance.models.audit import AuditLog
from compliance.models.checklist import ChecklistItem, ChecklistSubmission
from compliance.models.task import Task
from compliance.models.user import Viewer
from compliance.services.due_soon import DueSoonGate

logger = logging.getLogger(__name__)

DEFAULT_TTL = 8 * 3600


@dataclass
class ViewerSession:
    viewer: Viewer
    identity: BackendIdentity
    # None means "not fetched yet"; [] is a fetched, empty collection
    tasks: list[Task] | None = None
    submissions: list[ChecklistSubmission] | None = None
    template: list[ChecklistItem] | None = None
    logs: list[AuditLog] | None = None
    due_soon_gate: DueSoonGate = DueSoonGate.PENDING
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class SessionStore:
    """Thread-safe in-memory store: session id → (ViewerSession, expire_ts)."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[ViewerSession, float]] = {}
        self._lock = threading.Lock()

    def create(self, viewer: Viewer, identity: BackendIdentity) -> str:
        sid = secrets.token_urlsafe(32)
        with self._lock:
            self._purge_expired()
            self._entries[sid] = (ViewerSession(viewer=viewer, identity=identity),
                                  time.time() + self.ttl_seconds)
        logger.info("Viewer session opened for %s", viewer.email,
                    extra={"viewer_email": viewer.email})
        return sid

    def get(self, sid: str | None) -> ViewerSession | None:
        if not sid:
            return None
        with self._lock:
            entry = self._entries.get(sid)
            if entry is None:
                return None
            session, expires = entry
            now = time.time()
            if now > expires:
                self._entries.pop(sid, None)
                return None
            self._entries[sid] = (session, now + self.ttl_seconds)
            return session

    def drop(self, sid: str | None) -> None:
        if not sid:
            return
        with self._lock:
            self._entries.pop(sid, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self) -> None:
        now = time.time()
        for sid in [k for k, (_, exp) in self._entries.items() if now > exp]:
            del self._entries[sid]
