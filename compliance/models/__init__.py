"""
Facility Compliance Dashboard
Record types shared by the services and blueprints.

Records are plain dataclasses built from backend payloads by
``compliance.services.ingest``; this service persists nothing itself.
"""

from compliance.models.audit import AuditLog, LogAction  # noqa: F401
from compliance.models.checklist import (  # noqa: F401
    AbnormalityAlert,
    CheckStatus,
    ChecklistItem,
    ChecklistResult,
    ChecklistSubmission,
)
from compliance.models.station import STATIONS, Station, StationCode  # noqa: F401
from compliance.models.task import Task, TaskStatus  # noqa: F401
from compliance.models.user import (  # noqa: F401
    ALL_STATIONS,
    StationAssignment,
    UserRole,
    Viewer,
)
