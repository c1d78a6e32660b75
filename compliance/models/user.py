"""
Viewer identity and station assignment.

The backend stores a user's stations as a comma-joined string ("BAIFU,CHENG")
or the literal "ALL". That string is parsed into a ``StationAssignment``
once, when the viewer is built, and nothing downstream splits it again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

ALL_STATIONS = "ALL"


class UserRole(str, Enum):
    ADMIN = "ADMIN"              # system administrator
    MANAGER_3D = "MANAGER_3D"    # 3D team
    MANAGER_DEPT = "MANAGER_DEPT"  # transport department
    OPERATOR = "OPERATOR"        # facility operator
    PENDING = "PENDING"          # awaiting approval

    @classmethod
    def from_wire(cls, raw) -> UserRole:
        """Unknown or blank roles are treated as not yet approved."""
        try:
            return cls(str(raw or "").strip().upper())
        except ValueError:
            return cls.PENDING


ROLE_LABELS = {
    UserRole.ADMIN: "系統管理員",
    UserRole.MANAGER_3D: "三維團隊",
    UserRole.MANAGER_DEPT: "交通處",
    UserRole.OPERATOR: "經營業者",
    UserRole.PENDING: "待審核",
}


@dataclass(frozen=True)
class StationAssignment:
    """Either every station, or an explicit (possibly empty) set of codes."""

    all_stations: bool = False
    codes: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def parse(cls, raw: str | None) -> StationAssignment:
        """Parse the backend's comma-joined field.

        Blank or missing input yields an empty assignment (no access), never
        ALL. Unknown codes are kept; they simply never match a station.
        """
        parts = {p.strip() for p in str(raw or "").split(",")}
        parts.discard("")
        if ALL_STATIONS in parts:
            return cls(all_stations=True)
        return cls(codes=frozenset(parts))

    def allows(self, station_code: str) -> bool:
        return self.all_stations or station_code in self.codes

    def to_wire(self) -> str:
        return ALL_STATIONS if self.all_stations else ",".join(sorted(self.codes))


@dataclass(frozen=True)
class Viewer:
    email: str
    role: UserRole
    assignment: StationAssignment
    name: str = ""
    organization: str = ""
    force_change_password: bool = False

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "name": self.name,
            "organization": self.organization,
            "role": self.role.value,
            "role_label": ROLE_LABELS[self.role],
            "assigned_station": self.assignment.to_wire(),
            "force_change_password": self.force_change_password,
        }
