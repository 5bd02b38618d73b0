"""
Error taxonomy shared by the stores, the orchestration service and both transports.
"""

from typing import Dict, Any, Optional
from enum import Enum


class ErrorType(str, Enum):
    """Error type classification"""
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    VERSION_CONFLICT = "version_conflict"
    PROTOCOL = "protocol_error"
    INVALID_ACTION = "invalid_action"
    STORAGE = "storage_error"
    CANCELLED = "cancelled"


class ContextServiceError(Exception):
    """Base class for classified errors"""

    status_code: int = 500
    error_type: ErrorType = ErrorType.STORAGE
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses"""
        return {
            "error": self.message,
            "errorType": self.error_type.value,
            "retryable": self.retryable,
            "details": self.details,
        }


class InvalidInputError(ContextServiceError):
    """Client supplied malformed or incomplete data"""
    status_code = 400
    error_type = ErrorType.INVALID_INPUT


class NotFoundError(ContextServiceError):
    """Referenced id does not resolve to a document"""
    status_code = 404
    error_type = ErrorType.NOT_FOUND

    def __init__(self, message: str, entity_id: Optional[str] = None, **details: Any):
        if entity_id is not None:
            details["id"] = entity_id
        super().__init__(message, details)
        self.entity_id = entity_id


class VersionConflictError(ContextServiceError):
    """Optimistic lock lost; re-read the document and resubmit"""
    status_code = 409
    error_type = ErrorType.VERSION_CONFLICT
    retryable = True

    def __init__(self, context_id: str, expected_version: Optional[int]):
        super().__init__(
            f"version conflict for context {context_id} at version {expected_version}",
            {"id": context_id, "expectedVersion": expected_version},
        )
        self.context_id = context_id
        self.expected_version = expected_version


class ProtocolError(ContextServiceError):
    """Malformed envelope: wrong kind, type or payload"""
    status_code = 400
    error_type = ErrorType.PROTOCOL


class InvalidActionError(ProtocolError):
    """Envelope action is not one of the dispatchable actions"""
    error_type = ErrorType.INVALID_ACTION

    def __init__(self, action: str):
        super().__init__(f"invalid action: {action}", {"action": action})
        self.action = action


class StorageError(ContextServiceError):
    """Unclassified failure of the backing store"""
    status_code = 500
    error_type = ErrorType.STORAGE


class OperationCancelledError(ContextServiceError):
    """Operation aborted by a deadline or cancellation"""
    status_code = 504
    error_type = ErrorType.CANCELLED


class AppendOnlyViolation(RuntimeError):
    """Raised when code tries to rewrite or remove a history snapshot"""
