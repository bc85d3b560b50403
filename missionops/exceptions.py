"""
Typed errors raised by the mission engine.

    MissionOpsError
    +-- ValidationError          client-side check failed, nothing was sent
    +-- RemoteStoreError         the store answered with success=false (or not at all)
    |   +-- NotFoundError        404
    |   +-- ConflictError        409, e.g. duplicate daily log
    |   +-- BusinessRuleError    400/422 rejection, e.g. invoice with no earnings
    +-- InvalidTransitionError   status change outside the lifecycle table
    +-- DayDeletionError         day is part of the nominal range and has no logs
    +-- NoOpenDeploymentError
    +-- BatchError               partial batch failure, carries the BatchResult

The human readable message from the store is kept verbatim in ``message``.
"""
from typing import Any, Optional


class MissionOpsError(Exception):
    code: str = "MISSIONOPS_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MissionOpsError):
    code = "VALIDATION_ERROR"


class RemoteStoreError(MissionOpsError):
    code = "REMOTE_STORE_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class NotFoundError(RemoteStoreError):
    code = "NOT_FOUND"


class ConflictError(RemoteStoreError):
    code = "CONFLICT"


class BusinessRuleError(RemoteStoreError):
    code = "BUSINESS_RULE"


class InvalidTransitionError(MissionOpsError):
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str, allowed=None):
        allowed = list(allowed or [])
        super().__init__(
            f"Invalid status transition from {current} to {requested}"
            + (f" (allowed: {', '.join(allowed)})" if allowed else " (no transitions allowed)")
        )
        self.current = current
        self.requested = requested
        self.allowed = allowed


class DayDeletionError(MissionOpsError):
    code = "DAY_DELETION_REFUSED"

    def __init__(self, day: str):
        super().__init__(
            f"{day} is part of the scheduled range and has no logs. "
            "Adjust daysOnSite or the start date instead."
        )
        self.day = day


class NoOpenDeploymentError(MissionOpsError):
    code = "NO_OPEN_DEPLOYMENT"

    def __init__(self, message: str = "No deployment is open"):
        super().__init__(message)


class BatchError(MissionOpsError):
    code = "BATCH_PARTIAL_FAILURE"

    def __init__(self, operation: str, result):
        failed = len(result.failed)
        super().__init__(
            f"{operation} failed: {failed} of {result.total} item(s) did not complete. "
            "Reopen the deployment to resynchronize."
        )
        self.operation = operation
        self.result = result


def error_for_status(status_code: Optional[int], message: str, payload: Any = None) -> RemoteStoreError:
    """Map an HTTP status onto the matching RemoteStoreError subclass."""
    if status_code == 404:
        return NotFoundError(message, status_code, payload)
    if status_code == 409:
        return ConflictError(message, status_code, payload)
    if status_code in (400, 422):
        return BusinessRuleError(message, status_code, payload)
    return RemoteStoreError(message, status_code, payload)
