"""
Station access scoping.

Every read path filters through ``can_access`` before any counting or
derivation, so a viewer never sees (or has counted) data from a station
outside their assignment. Unauthorised data is simply absent; nothing here
raises.

Usage:
    from compliance.services.access_scope import can_access, filter_accessible

    if can_access(viewer, "BAIFU"):
        ...
    visible = filter_accessible(tasks, viewer)
"""

from __future__ import annotations

from typing import Iterable, TypeVar

from compliance.models.station import STATIONS, Station
from compliance.models.user import Viewer

T = TypeVar("T")


def can_access(viewer: Viewer | None, station_code) -> bool:
    """True when ``viewer``'s assignment covers ``station_code``.

    A missing viewer or an empty assignment grants nothing.
    """
    if viewer is None:
        return False
    code = getattr(station_code, "value", station_code)
    return viewer.assignment.allows(str(code))


def filter_accessible(items: Iterable[T], viewer: Viewer | None) -> list[T]:
    """Keep the records (anything with ``station_code``) the viewer may see."""
    return [item for item in items if can_access(viewer, item.station_code)]


def accessible_stations(viewer: Viewer | None) -> list[Station]:
    """Registry stations offered in the viewer's station pickers."""
    return [s for s in STATIONS if can_access(viewer, s.code)]
