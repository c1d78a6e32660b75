"""
Checklist Blueprint — monthly station inspections.

  GET  /api/v1/checklists/submissions                      — list (station, month)
  POST /api/v1/checklists/submissions                      — submit a station's month
  GET  /api/v1/checklists/submissions/<id>                 — detail grouped by category
  GET  /api/v1/checklists/series                           — score trend (station)
  GET  /api/v1/checklists/alerts                           — abnormality alerts
  POST /api/v1/checklists/alerts/<alert_id>/resolve        — mark an alert resolved
  GET  /api/v1/checklists/template                         — current template rows
  PUT  /api/v1/checklists/template                         — replace the template

Writes need EDIT_CHECKLIST; other viewers get a read-only view.

The alert list ignores the station/month pickers and the trend
ignores the month picker. Both are still scoped to the viewer's stations.
"""

import logging

from flask import Blueprint, jsonify, request

from compliance.blueprints import (
    current_viewer_session,
    gateway,
    register_error_handlers,
    require_write,
    wants_refresh,
)
from compliance.core.exceptions import BackendUnavailable, NotFoundError, ValidationError
from compliance.models.checklist import CheckStatus
from compliance.models.station import get_station
from compliance.services import session_data
from compliance.services.access_scope import can_access
from compliance.services.alert_tracker import (
    AlertTracker,
    alert_id as make_alert_id,
    derive_alerts,
    unresolved_count,
)
from compliance.services.backend_writes import checklist_data, template_items
from compliance.services.checklist_scorer import (
    build_series,
    filter_submissions,
    group_results,
    issue_count,
    score,
    series_station_names,
)
from compliance.services.permission import Capability, check_permission, has_permission
from compliance.utils.errors import E, api_error

logger = logging.getLogger(__name__)

checklist_bp = Blueprint("checklist", __name__, url_prefix="/api/v1/checklists")
register_error_handlers(checklist_bp)


def _summary(sub):
    data = sub.to_dict(include_results=False)
    data["score"] = score(sub)
    data["issue_count"] = issue_count(sub)
    return data


@checklist_bp.route("/submissions", methods=["GET"])
def list_submissions():
    vs = current_viewer_session()
    subs = session_data.load_submissions(vs, gateway(), refresh=wants_refresh())
    rows = filter_submissions(
        subs, vs.viewer,
        station=request.args.get("station") or None,
        month=request.args.get("month") or None,
    )
    return jsonify({
        "items": [_summary(s) for s in rows],
        "total": len(rows),
        "read_only": not has_permission(vs.viewer, Capability.EDIT_CHECKLIST),
    }), 200


@checklist_bp.route("/submissions", methods=["POST"])
def submit_checklist():
    """
    Submit one station's checklist for a month.

    Body: { "station_code": "BAIFU", "year_month": "2024-01",
            "results": [{ "item_id": "...", "status": "ISSUE", "note": "...",
                          "photo": {"name", "type", "content"} }] }

    Unanswered template rows are submitted as OK.
    """
    vs = current_viewer_session()
    check_permission(vs.viewer, Capability.EDIT_CHECKLIST)

    body = request.get_json(silent=True) or {}
    code = str(body.get("station_code", "")).strip()
    if not code:
        return api_error(E.VALIDATION_REQUIRED, "station_code is required")
    station = get_station(code)
    if station is None or not can_access(vs.viewer, station.code):
        raise NotFoundError(resource="Station", resource_id=code)

    template = session_data.load_template(vs, gateway())
    data = checklist_data(body, template, station, submitted_by=vs.viewer.email)
    require_write(gateway().submit_checklist(vs.identity, data), "submitChecklist")

    issues = sum(1 for r in data["results"] if r["status"] == CheckStatus.ISSUE.wire)
    logger.info("Checklist for %s %s submitted with %d issue(s)", station.code, data["yearMonth"], issues,
                extra={"viewer_email": vs.viewer.email, "station_code": station.code})

    try:
        subs = session_data.load_submissions(vs, gateway(), refresh=True)
    except BackendUnavailable as exc:
        logger.warning("Submission saved but re-fetch failed: %s", exc,
                       extra={"backend_action": "getChecklistSubmissions"})
        with vs.lock:
            vs.submissions = None
        subs = []
    matching = filter_submissions(subs, vs.viewer, station=station.code, month=data["yearMonth"])
    return jsonify({
        "submission": _summary(matching[-1]) if matching else None,
        "issue_count": issues,
    }), 201


@checklist_bp.route("/template", methods=["GET"])
def get_template():
    vs = current_viewer_session()
    template = session_data.load_template(vs, gateway(), refresh=wants_refresh())
    return jsonify({
        "items": [item.to_dict() for item in template],
        "read_only": not has_permission(vs.viewer, Capability.EDIT_CHECKLIST),
    }), 200


@checklist_bp.route("/template", methods=["PUT"])
def save_template():
    """
    Replace the checklist template.

    Body: { "items": [{ "id": "...", "category": "...", "content": "..." }] }

    Rows left out are deleted. Past submissions keep their own copies of
    category and content, so their display does not change.
    """
    vs = current_viewer_session()
    check_permission(vs.viewer, Capability.EDIT_CHECKLIST)

    items = template_items((request.get_json(silent=True) or {}).get("items"))
    require_write(gateway().save_checklist_template(vs.identity, [i.to_dict() for i in items]),
                  "saveChecklistTemplate")
    with vs.lock:
        vs.template = items

    logger.info("Checklist template saved with %d items", len(items),
                extra={"viewer_email": vs.viewer.email})
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@checklist_bp.route("/submissions/<submission_id>", methods=["GET"])
def get_submission(submission_id):
    vs = current_viewer_session()
    subs = session_data.load_submissions(vs, gateway())
    sub = next((s for s in filter_submissions(subs, vs.viewer) if s.id == submission_id), None)
    if sub is None:
        raise NotFoundError(resource="ChecklistSubmission", resource_id=submission_id)

    template = session_data.load_template(vs, gateway())
    data = _summary(sub)
    data["groups"] = group_results(sub, template)
    return jsonify(data), 200


@checklist_bp.route("/series", methods=["GET"])
def series():
    vs = current_viewer_session()
    subs = session_data.load_submissions(vs, gateway(), refresh=wants_refresh())
    station = request.args.get("station") or None
    return jsonify({
        "points": build_series(subs, vs.viewer, station),
        "stations": series_station_names(subs, vs.viewer, station),
    }), 200


@checklist_bp.route("/alerts", methods=["GET"])
def list_alerts():
    vs = current_viewer_session()
    refresh = wants_refresh()
    subs = session_data.load_submissions(vs, gateway(), refresh=refresh)
    template = session_data.load_template(vs, gateway(), refresh=refresh)
    alerts = derive_alerts(subs, vs.viewer, template)
    return jsonify({
        "alerts": [a.to_dict() for a in alerts],
        "unresolved": unresolved_count(alerts),
        "can_resolve": has_permission(vs.viewer, Capability.RESOLVE_ALERT),
    }), 200


@checklist_bp.route("/alerts/<alert_id>/resolve", methods=["POST"])
def resolve_alert(alert_id):
    """
    Body: { "submission_id": "..." }

    The alert is marked resolved locally before the backend confirms. If the
    backend rejects it, the submissions are re-fetched and the response
    reports ``REFETCHED`` with the reconciled alert.
    """
    vs = current_viewer_session()
    check_permission(vs.viewer, Capability.RESOLVE_ALERT)

    data = request.get_json(silent=True) or {}
    submission_id = str(data.get("submission_id", "")).strip()
    if not submission_id:
        return api_error(E.VALIDATION_REQUIRED, "submission_id is required")

    subs = session_data.load_submissions(vs, gateway())
    sub = next((s for s in filter_submissions(subs, vs.viewer) if s.id == submission_id), None)
    if sub is None:
        raise NotFoundError(resource="ChecklistSubmission", resource_id=submission_id)
    if make_alert_id(sub.station_code, sub.year_month) != alert_id:
        raise ValidationError("Alert does not belong to this submission",
                              details={"alert_id": alert_id, "submission_id": submission_id})

    tracker = AlertTracker(gateway(), vs.identity)
    with vs.lock:
        # A concurrent failed re-fetch may have dropped the cache since the load
        current = vs.submissions if vs.submissions is not None else subs
        outcome = tracker.resolve(current, submission_id, alert_id)
        vs.submissions = outcome.submissions

    if outcome.submissions is None:
        raise BackendUnavailable("getChecklistSubmissions", outcome.error)

    template = session_data.load_template(vs, gateway())
    current = next((a for a in derive_alerts(outcome.submissions, vs.viewer, template)
                    if a.id == alert_id), None)
    body = {
        "state": outcome.state.value,
        "alert": current.to_dict() if current is not None else None,
    }
    if outcome.committed:
        return jsonify(body), 200
    return api_error(E.BACKEND, outcome.error or "Resolution was not saved", details=body)
