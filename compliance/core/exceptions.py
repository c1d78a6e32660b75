"""
Application-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Data-quality problems in fetched records (bad dates, missing template rows,
blank station assignments) are NOT raised. They degrade to a documented
default inside the service that meets them. The types below are for request
handling only.

Usage:
    from compliance.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ChecklistSubmission", resource_id="sub-7")
    raise ValidationError("submission_id is required", details={"submission_id": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist within the viewer's scope.

    Used for BOTH genuinely missing records AND records belonging to a
    station the viewer cannot access. A 403 would confirm the record exists;
    a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Task", "ChecklistSubmission").
        resource_id: The id that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when request input is well-formed but unusable.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthenticationRequired(Exception):
    """Raised when a request needs a logged-in viewer session and has none.

    Maps to HTTP 401.
    """

    def __init__(self, message: str = "Login required") -> None:
        super().__init__(message)


class PermissionDenied(Exception):
    """Raised when the viewer's role lacks a capability (e.g. resolving alerts).

    Station scoping never raises this: a viewer outside a station's scope
    simply sees no data for it.

    Maps to HTTP 403.
    """

    def __init__(self, email: str, capability: str) -> None:
        super().__init__(f"User {email} does not have permission for '{capability}'")
        self.email = email
        self.capability = capability


class BackendUnavailable(Exception):
    """Raised when the remote API could not be reached or refused a read.

    Maps to HTTP 502.

    Args:
        action: The backend action that failed (e.g. "getTasks").
        message: Backend ``msg`` or transport error text.
    """

    def __init__(self, action: str, message: str | None = None) -> None:
        self.action = action
        self.message = message
        msg = f"Backend action '{action}' failed"
        if message:
            msg += f": {message}"
        super().__init__(msg)
