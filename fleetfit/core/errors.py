"""
Error taxonomy for the fit scoring core.

ValidationError       - malformed or missing input, never retried
StorageError          - persistence failed; reads may be retried, writes must not be
AlreadyRunningError   - a learner run is already in flight, retry later
UpstreamError         - a feature provider failed, degrade to a neutral result
LearnerCancelledError - a learner run was cancelled before committing

Every error serialises its `retryable` flag so HTTP callers can decide
whether to try again.
"""

from typing import Any, Dict, Optional


class FleetFitError(Exception):
    """Base error. Carries a machine code and whether a retry can help."""

    code: str = "fleetfit_error"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        return self.message


class ValidationError(FleetFitError):
    """Input failed validation; nothing was written."""

    code = "validation_error"
    retryable = False


class StorageError(FleetFitError):
    """The persistence layer failed. `operation` is 'read' or 'write'."""

    code = "storage_error"

    def __init__(self, message: str, operation: str = "write",
                 details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.setdefault("operation", operation)
        super().__init__(message, details, retryable=(operation == "read"))
        self.operation = operation


class AlreadyRunningError(FleetFitError):
    """A learner run is in flight; this request was rejected, not queued."""

    code = "already_running"
    retryable = True


class UpstreamError(FleetFitError):
    """A dependency (feature provider) failed."""

    code = "upstream_error"
    retryable = True


class LearnerCancelledError(FleetFitError):
    """The caller cancelled a learner run; the previous weights still stand."""

    code = "learner_cancelled"
    retryable = True


class NotFoundError(ValidationError):
    """A referenced record (load, driver) does not exist."""

    code = "not_found"
