"""Audit log views: admin search and per-task history."""

import logging
from datetime import datetime, timezone
from typing import Iterable

from compliance.models.audit import AuditLog
from compliance.services.status_resolver import to_local

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def search_logs(logs: Iterable[AuditLog], query: str = "") -> list[AuditLog]:
    """Substring match on user email, details or action (case-insensitive)."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(logs)
    return [
        log for log in logs
        if needle in log.user_email.lower()
        or needle in log.details.lower()
        or needle in log.action.lower()
    ]


def _parse_timestamp(raw: str) -> datetime | None:
    text = (raw or "").strip().replace("/", "-")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_local(datetime.fromisoformat(text))
    except ValueError:
        return None


def newest_first(logs: Iterable[AuditLog]) -> list[AuditLog]:
    """Most recent entry first; entries with unreadable timestamps go last."""
    def _key(log):
        moment = _parse_timestamp(log.timestamp)
        return (moment is not None, moment or _EPOCH)

    return sorted(logs, key=_key, reverse=True)
