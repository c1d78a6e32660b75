"""
Request body → backend write payload.

The outbound counterpart of ``ingest``. Each builder validates what the
viewer sent and returns the camelCase shape the remote API stores; any
problem raises ``ValidationError`` naming the field, and nothing half-valid
is sent.

Usage:
    from compliance.services.backend_writes import checklist_data
    data = checklist_data(body, template, station, submitted_by=viewer.email)
    gateway.submit_checklist(identity, data)
"""

from __future__ import annotations

import base64
import binascii
import re
import uuid
from typing import Any

from compliance.core.exceptions import ValidationError
from compliance.models.checklist import CheckStatus, ChecklistItem
from compliance.models.station import Station
from compliance.models.task import TaskStatus
from compliance.services.status_resolver import deadline_date

# Per result photo, after base64 decoding
MAX_PHOTO_BYTES = 5 * 1024 * 1024
MIN_PASSWORD_LENGTH = 6

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DATA_URL_RE = re.compile(r"^data:[^;,]*;base64,")


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


# ── Tasks ────────────────────────────────────────────────────────────────


def task_data(body: dict, station: Station) -> dict:
    """``taskData`` for createTask. New tasks always start PENDING.

    Task rows only carry the station *name*, so that is what is sent.
    """
    missing = [f for f in ("item_code", "item_name", "deadline", "executor_email")
               if not _text(body.get(f))]
    if missing:
        raise ValidationError("Missing required fields", details={"missing": missing})

    day = deadline_date(_text(body["deadline"]))
    if day is None:
        raise ValidationError("deadline must be a date", details={"deadline": body["deadline"]})

    executor = _text(body["executor_email"]).lower()
    if not _EMAIL_RE.match(executor):
        raise ValidationError("executor_email is not an email address",
                              details={"executor_email": body["executor_email"]})

    return {
        "stationName": station.name,
        "itemCode": _text(body["item_code"]),
        "itemName": _text(body["item_name"]),
        "deadline": day.isoformat(),
        "executorEmail": executor,
        "status": TaskStatus.PENDING.wire,
    }


# ── Checklists ───────────────────────────────────────────────────────────


def template_items(raw: Any) -> list[ChecklistItem]:
    """The full replacement template. Rows without an id get a fresh one."""
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list", details={"items": "invalid"})

    items: list[ChecklistItem] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError("Template rows must be objects", details={"index": index})
        category, content = _text(entry.get("category")), _text(entry.get("content"))
        if not category or not content:
            raise ValidationError("Template rows need a category and content", details={"index": index})

        item_id = _text(entry.get("id")) or f"item-{uuid.uuid4().hex[:12]}"
        if item_id in seen:
            raise ValidationError("Duplicate template item id", details={"id": item_id})
        seen.add(item_id)
        items.append(ChecklistItem(id=item_id, category=category, content=content))
    return items


def _photo(raw: Any, item_id: str) -> dict:
    if not isinstance(raw, dict) or not _text(raw.get("content")):
        raise ValidationError("photo needs name, type and base64 content", details={"item_id": item_id})

    content = _text(raw["content"])
    try:
        size = len(base64.b64decode(_DATA_URL_RE.sub("", content), validate=True))
    except (binascii.Error, ValueError):
        raise ValidationError("photo content is not base64", details={"item_id": item_id})
    if size > MAX_PHOTO_BYTES:
        raise ValidationError("photo exceeds 5 MB", details={"item_id": item_id, "bytes": size})

    return {
        "name": _text(raw.get("name")) or f"{item_id}.jpg",
        "type": _text(raw.get("type")) or "application/octet-stream",
        "content": content,
    }


def checklist_data(
    body: dict,
    template: list[ChecklistItem],
    station: Station,
    submitted_by: str,
) -> dict:
    """``data`` for submitChecklist: one result per template row.

    Answers are matched to rows by ``item_id``; a row left unanswered is
    recorded as OK. Each result carries the row's category and content as
    they are now, so later template edits do not rewrite this month.
    """
    year_month = _text(body.get("year_month"))
    if not _MONTH_RE.match(year_month):
        raise ValidationError("year_month must be YYYY-MM", details={"year_month": body.get("year_month")})
    if not template:
        raise ValidationError("The checklist template has no items")

    answers = body.get("results") or []
    if not isinstance(answers, list):
        raise ValidationError("results must be a list", details={"results": "invalid"})

    known = {item.id for item in template}
    by_item: dict[str, dict] = {}
    for entry in answers:
        item_id = _text(entry.get("item_id")) if isinstance(entry, dict) else ""
        if item_id not in known:
            raise ValidationError("Unknown checklist item", details={"item_id": item_id})
        if item_id in by_item:
            raise ValidationError("Item answered twice", details={"item_id": item_id})
        by_item[item_id] = entry

    results = []
    for item in template:
        entry = by_item.get(item.id, {})
        raw_status = entry.get("status")
        status = CheckStatus.from_wire(raw_status) if raw_status else CheckStatus.OK
        if status is None:
            raise ValidationError("Unknown check status", details={"item_id": item.id, "status": raw_status})

        note = _text(entry.get("note"))
        if status == CheckStatus.ISSUE and not note:
            raise ValidationError("An abnormal item needs a note", details={"item_id": item.id})

        result = {
            "itemId": item.id,
            "category": item.category,
            "content": item.content,
            "status": status.wire,
            "note": note,
        }
        if entry.get("photo"):
            result["file"] = _photo(entry["photo"], item.id)
        results.append(result)

    return {
        "stationCode": station.code,
        "yearMonth": year_month,
        "submittedBy": submitted_by,
        "results": results,
    }


# ── Accounts ─────────────────────────────────────────────────────────────


def new_password(body: dict) -> str:
    """Plaintext new password; hashing happens at the gateway boundary."""
    password = str(body.get("new_password") or "")
    if len(password.strip()) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"new_password must be at least {MIN_PASSWORD_LENGTH} characters",
                              details={"new_password": "too_short"})
    return password
