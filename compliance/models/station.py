"""
Station registry — the fixed catalogue of parking facilities.

Stations are the unit of access scoping and task ownership. Every other
record refers to a station by its code; names are for display only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class StationCode(str, Enum):
    BAIFU = "BAIFU"
    CHENG = "CHENG"
    XINYI = "XINYI"
    SHELIAO = "SHELIAO"


@dataclass(frozen=True)
class Station:
    code: str
    name: str

    def to_dict(self) -> dict:
        return {"code": self.code, "name": self.name}


STATIONS: tuple[Station, ...] = (
    Station(StationCode.BAIFU.value, "百福立體停車場"),
    Station(StationCode.CHENG.value, "成功立體停車場"),
    Station(StationCode.XINYI.value, "信義國小地下停車場"),
    Station(StationCode.SHELIAO.value, "社寮橋平面停車場"),
)

STATION_CODES: frozenset[str] = frozenset(s.code for s in STATIONS)

_BY_CODE = {s.code: s for s in STATIONS}
_BY_NAME = {s.name: s for s in STATIONS}


def get_station(code: str) -> Station | None:
    """Return the registry entry for ``code``, or None for unknown codes."""
    return _BY_CODE.get(code)


def station_name(code: str) -> str:
    """Display name for ``code``; unknown codes are shown as-is."""
    station = _BY_CODE.get(code)
    return station.name if station else code


def station_code_by_name(name: str) -> str | None:
    """Reverse lookup used for task rows, which only carry the station name."""
    station = _BY_NAME.get((name or "").strip())
    return station.code if station else None
