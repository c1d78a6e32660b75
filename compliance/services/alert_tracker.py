"""
Abnormality alerts derived from monthly checklist submissions.

An alert is never stored. It is re-derived from the submissions every time
they are available; its id is ``<stationCode>-<yearMonth>`` so the flag kept
in the owning submission's ``resolved_alerts`` still matches after a reload.

Resolution is one-way and optimistic:

    IDLE ──► PENDING (flag applied locally) ──► COMMITTED
                                           └──► REFETCHED

A rejected or failed backend write is reconciled by re-fetching the whole
submission collection and replacing the local one. The local flag is never
removed field by field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from compliance.core.exceptions import NotFoundError
from compliance.integrations.backend_gateway import BackendGateway, BackendIdentity
from compliance.models.checklist import (
    AbnormalityAlert,
    CheckStatus,
    ChecklistItem,
    ChecklistSubmission,
)
from compliance.models.user import Viewer
from compliance.services.access_scope import filter_accessible
from compliance.services.checklist_scorer import TemplateLookup
from compliance.services.ingest import submissions_from_wire

logger = logging.getLogger(__name__)


def alert_id(station_code: str, year_month: str) -> str:
    return f"{station_code}-{year_month}"


def derive_alerts(
    submissions: Iterable[ChecklistSubmission],
    viewer: Viewer | None,
    template: Iterable[ChecklistItem] | None = None,
) -> list[AbnormalityAlert]:
    """One alert per accessible submission with at least one ISSUE result.

    Only the access scope applies; station and month pickers elsewhere in
    the UI do not narrow this view. Newest month first, then station name.
    """
    lookup = TemplateLookup(template)
    alerts = []
    for sub in filter_accessible(submissions, viewer):
        issues = [r for r in sub.results if r.status == CheckStatus.ISSUE]
        if not issues:
            continue
        ident = alert_id(sub.station_code, sub.year_month)
        alerts.append(AbnormalityAlert(
            id=ident,
            submission_id=sub.id,
            station_name=sub.station_name,
            month=sub.year_month,
            items=tuple(lookup.content(r) for r in issues),
            is_resolved=ident in (sub.resolved_alerts or ()),
        ))

    # Two stable passes: secondary key first
    alerts.sort(key=lambda a: a.station_name)
    alerts.sort(key=lambda a: a.month, reverse=True)
    return alerts


def unresolved_count(alerts: Iterable[AbnormalityAlert]) -> int:
    return sum(1 for a in alerts if not a.is_resolved)


class ResolutionState(str, Enum):
    IDLE = "IDLE"
    PENDING = "PENDING"
    COMMITTED = "COMMITTED"
    REFETCHED = "REFETCHED"


@dataclass
class ResolutionOutcome:
    """Result of one ``AlertTracker.resolve`` call.

    ``submissions`` is the collection the caller must keep from now on: the
    same (optimistically updated) list on COMMITTED, the re-fetched one on
    REFETCHED, or None when the re-fetch failed too and the cached
    collection can no longer be trusted.
    """

    state: ResolutionState
    submissions: list[ChecklistSubmission] | None
    error: str | None = None

    @property
    def committed(self) -> bool:
        return self.state == ResolutionState.COMMITTED


class AlertTracker:
    """Applies alert resolutions against the backend.

    Usage:
        tracker = AlertTracker(gateway, identity)
        outcome = tracker.resolve(submissions, "SUB-1", "BAIFU-2024-01")
        session.submissions = outcome.submissions
    """

    def __init__(self, gateway: BackendGateway, identity: BackendIdentity):
        self.gateway = gateway
        self.identity = identity
        self.state = ResolutionState.IDLE

    def resolve(
        self,
        submissions: list[ChecklistSubmission],
        submission_id: str,
        alert: str,
    ) -> ResolutionOutcome:
        target = next((s for s in submissions if s.id == submission_id), None)
        if target is None:
            raise NotFoundError(resource="ChecklistSubmission", resource_id=submission_id)

        # Optimistic: the only mutation this module performs
        target.resolved_alerts.add(alert)
        self.state = ResolutionState.PENDING

        result = self.gateway.resolve_alert(self.identity, submission_id, alert)
        if result.ok:
            self.state = ResolutionState.COMMITTED
            logger.info("Alert %s resolved on submission %s", alert, submission_id,
                        extra={"station_code": target.station_code})
            return ResolutionOutcome(self.state, submissions)

        logger.warning(
            "Resolving alert %s failed (%s); re-fetching submissions",
            alert, result.error,
            extra={"backend_action": "resolveAlert", "station_code": target.station_code},
        )
        return self._refetch(result.error)

    def _refetch(self, error: str | None) -> ResolutionOutcome:
        self.state = ResolutionState.REFETCHED
        result = self.gateway.get_checklist_submissions(self.identity)
        if not result.ok:
            logger.error("Submission re-fetch failed after rejected resolution: %s", result.error,
                         extra={"backend_action": "getChecklistSubmissions"})
            return ResolutionOutcome(self.state, None, error=result.error or error)
        fresh = submissions_from_wire(result.entity_list("submissions"))
        return ResolutionOutcome(self.state, fresh, error=error)
