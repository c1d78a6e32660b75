"""
Collections cached in a viewer session.

Each loader returns the session's cached collection, fetching it through the
gateway first when it has not been loaded yet or ``refresh`` is set. A failed
read raises ``BackendUnavailable``; the cached value is left untouched.
The session lock is held only while reading or replacing the cache, never
across a gateway call. Two concurrent misses may both fetch; the later one wins.

Tasks are always fetched unfiltered (station "全部"). Station scoping is
applied locally by ``access_scope`` so every view sees the same collection.
"""

import logging
from datetime import datetime
from typing import Callable

from compliance.core.exceptions import BackendUnavailable
from compliance.integrations.backend_gateway import BackendGateway, BackendIdentity, GatewayResult
from compliance.models.audit import AuditLog
from compliance.models.checklist import ChecklistItem, ChecklistSubmission
from compliance.models.task import Task
from compliance.services.ingest import (
    audit_logs_from_wire,
    submissions_from_wire,
    tasks_from_rows,
    template_from_wire,
)
from compliance.services.status_resolver import local_timezone
from compliance.services.viewer_session import ViewerSession

logger = logging.getLogger(__name__)


def now() -> datetime:
    """Current local time; the single clock read by request handlers."""
    return datetime.now(local_timezone())


def _require(result, action: str):
    if not result.ok:
        raise BackendUnavailable(action, result.error)
    return result


def _load(vs: ViewerSession, attr: str, refresh: bool, action: str,
          fetch: Callable[[BackendIdentity], GatewayResult], convert: Callable[[GatewayResult], list]) -> list:
    # The lock guards the cache swap only; gateway calls run without it
    with vs.lock:
        cached = getattr(vs, attr)
        identity = vs.identity
    if cached is not None and not refresh:
        return cached

    loaded = convert(_require(fetch(identity), action))
    with vs.lock:
        setattr(vs, attr, loaded)
    logger.debug("Loaded %d %s", len(loaded), attr, extra={"backend_action": action})
    return loaded


def load_tasks(vs: ViewerSession, gateway: BackendGateway, refresh: bool = False) -> list[Task]:
    return _load(vs, "tasks", refresh, "getTasks", gateway.get_tasks,
                 lambda result: tasks_from_rows(result.entity_list("tasks")))


def load_submissions(vs: ViewerSession, gateway: BackendGateway,
                     refresh: bool = False) -> list[ChecklistSubmission]:
    return _load(vs, "submissions", refresh, "getChecklistSubmissions", gateway.get_checklist_submissions,
                 lambda result: submissions_from_wire(result.entity_list("submissions")))


def load_template(vs: ViewerSession, gateway: BackendGateway,
                  refresh: bool = False) -> list[ChecklistItem]:
    return _load(vs, "template", refresh, "getChecklistTemplate", gateway.get_checklist_template,
                 lambda result: template_from_wire(result.entity_list("template", "items")))


def load_logs(vs: ViewerSession, gateway: BackendGateway, refresh: bool = False) -> list[AuditLog]:
    return _load(vs, "logs", refresh, "getLogs", gateway.get_logs,
                 lambda result: audit_logs_from_wire(result.entity_list("logs")))
