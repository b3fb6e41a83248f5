"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere. Every exception here is
raised BEFORE any mutation is persisted, except PersistenceError and
ConflictError, which are raised after the session has been rolled back.

Usage:
    from propman.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=project_id)
    raise ValidationError("Budget must be greater than 0", details={"budget": "..."})
"""


class NotFoundError(Exception):
    """Raised when a referenced project, funding entry, user or group does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "FundingDetail").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or violates a business rule.

    Over-budget funding schedules, missing approval comments and missing
    approver assignments all end up here. Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for inline form errors.
                 Keys are field names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(Exception):
    """Raised when the acting user lacks the approval level or group membership.

    Maps to HTTP 403.
    """

    def __init__(self, message: str, user_id: str | None = None, project_id: str | None = None) -> None:
        self.user_id = user_id
        self.project_id = project_id
        super().__init__(message)


class InvalidStateError(Exception):
    """Raised when an action targets an entity that is not in the required state.

    Examples: approving a project that is not pending-approval, marking an
    already-paid funding entry as paid. Maps to HTTP 409.
    """

    def __init__(
        self,
        resource: str,
        action: str,
        current: str | None,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.action = action
        self.current_state = current
        self.reason = reason
        msg = f"Cannot '{action}' {resource} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConflictError(Exception):
    """Raised when a concurrent writer changed the row first, or a unique value is taken.

    Maps to HTTP 409. The caller may reload and retry.
    """

    def __init__(self, message: str, resource: str | None = None) -> None:
        self.resource = resource
        super().__init__(message)


class PersistenceError(Exception):
    """Raised when the database write fails after a valid in-memory transition.

    The session has already been rolled back when this is raised, so the
    in-memory state matches the database again. ``retryable`` tells the UI it
    may resubmit the same request without re-running validation.
    Maps to HTTP 503.
    """

    def __init__(self, message: str, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)
