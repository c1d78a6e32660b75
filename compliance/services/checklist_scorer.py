"""
Checklist scoring and trend series.

Score: +1 per OK result, -1 per ISSUE, 0 per NA. It has no fixed range and
is only meaningful compared month over month for the same station.

Display text for a result follows one fallback policy, implemented once in
``TemplateLookup``:
  1. the content/category stored on the result at submission time
  2. the live template row with the same item id
  3. a fixed placeholder ("未知項目" / "未分類")
so historical submissions still render after template rows are edited or
deleted.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterable

from compliance.models.checklist import (
    CheckStatus,
    ChecklistItem,
    ChecklistResult,
    ChecklistSubmission,
)
from compliance.models.station import station_name
from compliance.models.user import Viewer
from compliance.services.access_scope import can_access

UNKNOWN_ITEM = "未知項目"
UNCATEGORISED = "未分類"

_SCORE = {
    CheckStatus.OK: 1,
    CheckStatus.ISSUE: -1,
    CheckStatus.NA: 0,
}


class TemplateLookup:
    """Result → display text, with the stored → template → placeholder policy."""

    def __init__(self, template: Iterable[ChecklistItem] | None = None):
        self._by_id = {item.id: item for item in (template or [])}

    def content(self, result: ChecklistResult) -> str:
        if result.content:
            return result.content
        item = self._by_id.get(result.item_id)
        if item is not None and item.content:
            return item.content
        return UNKNOWN_ITEM

    def category(self, result: ChecklistResult) -> str:
        if result.category:
            return result.category
        item = self._by_id.get(result.item_id)
        if item is not None and item.category:
            return item.category
        return UNCATEGORISED


def score(submission: ChecklistSubmission) -> int:
    return sum(_SCORE.get(r.status, 0) for r in submission.results)


def issue_count(submission: ChecklistSubmission) -> int:
    return sum(1 for r in submission.results if r.status == CheckStatus.ISSUE)


def filter_submissions(
    submissions: Iterable[ChecklistSubmission],
    viewer: Viewer | None,
    station: str | None = None,
    month: str | None = None,
) -> list[ChecklistSubmission]:
    """Submission list view: scope plus the optional station / month pickers."""
    return [
        sub for sub in submissions
        if can_access(viewer, sub.station_code)
        and (not station or sub.station_code == station)
        and (not month or sub.year_month == month)
    ]


def _series_input(submissions, viewer, station_filter):
    # No month filter: the trend spans all months
    return filter_submissions(submissions, viewer, station=station_filter)


def build_series(
    submissions: Iterable[ChecklistSubmission],
    viewer: Viewer | None,
    station_filter: str | None = None,
) -> list[dict]:
    """One point per month (ascending), keyed by station name.

    A (month, station) pair with no submission is left out of the point
    rather than filled with 0, so the chart shows a gap instead of a false
    neutral score.
    """
    subs = _series_input(submissions, viewer, station_filter)
    months = sorted({s.year_month for s in subs})

    # First submission wins for a (month, station) pair
    by_key: dict[tuple[str, str], ChecklistSubmission] = {}
    for sub in subs:
        by_key.setdefault((sub.year_month, sub.station_code), sub)

    points = []
    for month in months:
        point: dict = {"month": month}
        for (sub_month, _code), sub in by_key.items():
            if sub_month == month:
                point[station_name(sub.station_code)] = score(sub)
        points.append(point)
    return points


def series_station_names(
    submissions: Iterable[ChecklistSubmission],
    viewer: Viewer | None,
    station_filter: str | None = None,
) -> list[str]:
    """Legend for ``build_series``: station names in first-seen order."""
    names: OrderedDict[str, str] = OrderedDict()
    for sub in _series_input(submissions, viewer, station_filter):
        names.setdefault(sub.station_code, station_name(sub.station_code))
    return list(names.values())


def group_results(
    submission: ChecklistSubmission,
    template: Iterable[ChecklistItem] | None = None,
) -> list[dict]:
    """Results grouped by display category, in first-seen category order."""
    lookup = TemplateLookup(template)
    groups: OrderedDict[str, list[dict]] = OrderedDict()
    for result in submission.results:
        row = result.to_dict()
        row["display_content"] = lookup.content(result)
        groups.setdefault(lookup.category(result), []).append(row)
    return [{"category": name, "results": rows} for name, rows in groups.items()]
