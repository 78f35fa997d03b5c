"""Structured errors raised by the workflow engine.

Every error carries a machine-readable ``kind`` and a human message. The API
layer renders them with the HTTP status attached to each category:

- ConfigurationError / ValidationError -> 400
- AuthorizationError -> 403
- NotFoundError -> 404
- StateConflictError -> 409
- AdapterError -> 502
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorKind(str, Enum):
    """Machine-readable error codes."""

    # Configuration
    DEFINITION_INACTIVE = "DEFINITION_INACTIVE"
    EMPTY_WORKFLOW = "EMPTY_WORKFLOW"
    STAGE_MISCONFIGURED = "STAGE_MISCONFIGURED"
    UNKNOWN_REQUEST_TYPE = "UNKNOWN_REQUEST_TYPE"

    # Validation
    REJECT_REQUIRES_COMMENT = "REJECT_REQUIRES_COMMENT"
    DUPLICATE_ORDER = "DUPLICATE_ORDER"
    INVALID_ORDER = "INVALID_ORDER"
    INVALID_DECISION = "INVALID_DECISION"
    INVALID_POLICY = "INVALID_POLICY"
    UNKNOWN_FIELD = "UNKNOWN_FIELD"

    # Authorization
    NOT_ELIGIBLE_REVIEWER = "NOT_ELIGIBLE_REVIEWER"
    FORBIDDEN = "FORBIDDEN"

    # Lookup
    NOT_FOUND = "NOT_FOUND"

    # State conflicts
    INSTANCE_NOT_PENDING = "INSTANCE_NOT_PENDING"
    STAGE_ALREADY_DECIDED = "STAGE_ALREADY_DECIDED"
    INSTANCE_NOT_FINALIZED = "INSTANCE_NOT_FINALIZED"
    DUPLICATE_VOTE = "DUPLICATE_VOTE"
    DUPLICATE_ACTIVE_INSTANCE = "DUPLICATE_ACTIVE_INSTANCE"
    STAGE_IN_USE = "STAGE_IN_USE"
    DEFINITION_IN_USE = "DEFINITION_IN_USE"

    # External collaborators
    ADAPTER_FAILED = "ADAPTER_FAILED"


class WorkflowError(Exception):
    """Base class for all engine errors."""

    http_status: int = 400

    def __init__(self, kind: ErrorKind, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, **self.details}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.kind.value}: {self.message}>"


class ConfigurationError(WorkflowError):
    """Workflow definition cannot be bound in its current shape."""
    http_status = 400


class ValidationError(WorkflowError):
    """Caller input is malformed for the requested operation."""
    http_status = 400


class AuthorizationError(WorkflowError):
    """Caller is not allowed to perform the operation."""
    http_status = 403


class NotFoundError(WorkflowError):
    """Referenced definition, stage, instance or request does not exist."""
    http_status = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(ErrorKind.NOT_FOUND, f"{resource} {identifier} not found")
        self.resource = resource
        self.identifier = identifier


class StateConflictError(WorkflowError):
    """Operation conflicts with the current persisted state."""
    http_status = 409


class AdapterError(WorkflowError):
    """The approvable-request adapter failed to apply a final outcome."""
    http_status = 502

    def __init__(self, message: str, *, request_type: Optional[str] = None, request_id: Any = None):
        super().__init__(
            ErrorKind.ADAPTER_FAILED,
            message,
            details={"request_type": request_type, "request_id": request_id},
        )
