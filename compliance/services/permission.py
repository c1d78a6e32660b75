"""
Role-based capabilities.

Roles gate *actions* (opening the admin panel, resolving alerts, editing
checklists, publishing tasks). Which *stations* a viewer sees is a separate
question answered by ``access_scope``.

Usage:
    from compliance.services.permission import check_permission, has_permission

    # Raises PermissionDenied if not allowed
    check_permission(viewer, Capability.RESOLVE_ALERT)

    if has_permission(viewer, Capability.ADMIN_PANEL):
        ...
"""

from enum import Enum

from compliance.core.exceptions import PermissionDenied
from compliance.models.user import UserRole, Viewer


class Capability(str, Enum):
    ADMIN_PANEL = "admin_panel"
    RESOLVE_ALERT = "resolve_alert"
    EDIT_CHECKLIST = "edit_checklist"
    UPDATE_TASK = "update_task"
    CREATE_TASK = "create_task"


PERMISSION_MATRIX: dict[UserRole, set[Capability]] = {
    UserRole.ADMIN: {
        Capability.ADMIN_PANEL, Capability.RESOLVE_ALERT,
        Capability.EDIT_CHECKLIST, Capability.UPDATE_TASK,
        Capability.CREATE_TASK,
    },
    UserRole.MANAGER_3D: {
        Capability.ADMIN_PANEL, Capability.RESOLVE_ALERT,
        Capability.EDIT_CHECKLIST, Capability.UPDATE_TASK,
    },
    # Checklists are read-only for these two
    UserRole.MANAGER_DEPT: {Capability.UPDATE_TASK},
    UserRole.OPERATOR: {Capability.UPDATE_TASK},
    UserRole.PENDING: set(),
}


def has_permission(viewer: Viewer | None, capability: Capability) -> bool:
    if viewer is None:
        return False
    return capability in PERMISSION_MATRIX.get(viewer.role, set())


def check_permission(viewer: Viewer, capability: Capability) -> None:
    """Raise ``PermissionDenied`` unless the viewer's role grants ``capability``."""
    if not has_permission(viewer, capability):
        raise PermissionDenied(email=viewer.email, capability=capability.value)


def capabilities(viewer: Viewer | None) -> list[str]:
    """Sorted capability names, for the session payload."""
    if viewer is None:
        return []
    return sorted(c.value for c in PERMISSION_MATRIX.get(viewer.role, set()))
