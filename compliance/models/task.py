"""
Task records — one compliance work item owned by a station.

The backend stores the status as its display string; ``TaskStatus`` keeps
English member values internally and translates at the wire boundary.
A stored status is only what was last persisted. What a viewer sees is the
*effective* status, computed at read time by
``compliance.services.status_resolver``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"

    @property
    def wire(self) -> str:
        """Value the remote API stores in the status column."""
        return _STATUS_WIRE[self]

    @classmethod
    def from_wire(cls, raw) -> TaskStatus | None:
        """Accept either the backend display string or the member name.

        Returns None for anything unrecognised; the caller decides the
        fallback and logs it.
        """
        text = str(raw or "").strip()
        if text in _WIRE_STATUS:
            return _WIRE_STATUS[text]
        try:
            return cls(text.upper())
        except ValueError:
            return None


_STATUS_WIRE = {
    TaskStatus.PENDING: "待處理",
    TaskStatus.IN_PROGRESS: "執行中",
    TaskStatus.COMPLETED: "已完成",
    TaskStatus.OVERDUE: "逾期",
}
_WIRE_STATUS = {label: status for status, label in _STATUS_WIRE.items()}


@dataclass
class Task:
    """A task as fetched. ``deadline`` stays the raw backend string so a
    malformed value can be carried (and reported) instead of rejected."""

    uid: str
    station_code: str
    station_name: str
    item_code: str
    item_name: str
    deadline: str
    status: TaskStatus
    executor_email: str = ""
    last_updated: str = ""
    attachment_url: str | None = None

    def to_dict(self, effective_status: TaskStatus | None = None) -> dict:
        data = {
            "uid": self.uid,
            "station_code": self.station_code,
            "station_name": self.station_name,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "deadline": self.deadline,
            "status": self.status.value,
            "executor_email": self.executor_email,
            "last_updated": self.last_updated,
            "attachment_url": self.attachment_url,
        }
        if effective_status is not None:
            data["effective_status"] = effective_status.value
        return data
