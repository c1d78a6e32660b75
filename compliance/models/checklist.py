"""
Monthly checklist records.

A submission is one station's answers for one month. Each result keeps its
own copy of the item's category/content as they were at submission time, so
later template edits never rewrite history; the live template is only a
fallback for results submitted before those copies were stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class CheckStatus(str, Enum):
    OK = "OK"
    ISSUE = "ISSUE"
    NA = "NA"

    @property
    def wire(self) -> str:
        return _CHECK_WIRE[self]

    @classmethod
    def from_wire(cls, raw) -> CheckStatus | None:
        text = str(raw or "").strip()
        if text in _WIRE_CHECK:
            return _WIRE_CHECK[text]
        try:
            return cls(text.upper())
        except ValueError:
            return None


_CHECK_WIRE = {
    CheckStatus.OK: "正常",
    CheckStatus.ISSUE: "異常",
    CheckStatus.NA: "不適用",
}
_WIRE_CHECK = {label: status for status, label in _CHECK_WIRE.items()}


@dataclass(frozen=True)
class ChecklistItem:
    """Template row. Admin-editable; never consulted when a result carries
    its own content."""

    id: str
    category: str
    content: str

    def to_dict(self) -> dict:
        return {"id": self.id, "category": self.category, "content": self.content}


@dataclass
class ChecklistResult:
    item_id: str
    status: CheckStatus
    category: str | None = None
    content: str | None = None
    note: str | None = None
    photo_url: str | None = None

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "status": self.status.value,
            "category": self.category,
            "content": self.content,
            "note": self.note,
            "photo_url": self.photo_url,
        }


@dataclass
class ChecklistSubmission:
    id: str
    station_code: str
    station_name: str
    year_month: str
    submitted_by: str = ""
    submitted_at: str = ""
    resolved_alerts: set[str] = field(default_factory=set)
    results: list[ChecklistResult] = field(default_factory=list)

    def to_dict(self, include_results: bool = True) -> dict:
        data = {
            "id": self.id,
            "station_code": self.station_code,
            "station_name": self.station_name,
            "year_month": self.year_month,
            "submitted_by": self.submitted_by,
            "submitted_at": self.submitted_at,
            "resolved_alerts": sorted(self.resolved_alerts),
        }
        if include_results:
            data["results"] = [r.to_dict() for r in self.results]
        return data


@dataclass(frozen=True)
class AbnormalityAlert:
    """Derived view of a submission's ISSUE results.

    Never persisted on its own. ``id`` depends only on (station, month), so
    re-deriving from the same submissions yields the same identity and the
    resolution flag stored on the submission keeps matching.
    """

    id: str
    submission_id: str
    station_name: str
    month: str
    items: tuple[str, ...]
    is_resolved: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "station_name": self.station_name,
            "month": self.month,
            "items": list(self.items),
            "is_resolved": self.is_resolved,
        }
