"""
Domain Exceptions with Type Discrimination

Defines the error taxonomy for production execution tracking. Every error
carries the offending field(s) or entity id(s) in ``details`` so the boundary
layer can render a precise message.
"""

from enum import Enum
from uuid import UUID


class ErrorType(str, Enum):
    """Error type enumeration for discriminated unions."""

    VALIDATION = "validation"
    INVALID_INTERVAL = "invalid_interval"
    STATE = "state"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class DomainError(Exception):
    """Base class for all domain errors with type discrimination."""

    retryable: bool = False
    code: str = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        error_type: ErrorType,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.details = details or {}

    def to_dict(self) -> dict[str, str | bool | dict[str, str | int | bool | None]]:
        """Convert error to dictionary for API responses."""
        return {
            "type": self.error_type.value,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationError(DomainError):
    """Raised when input is malformed or missing. Not retried automatically."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        field_name: str,
        value: str | int | float | bool | None,
        message: str,
        error_code: str | None = None,
        details: dict[str, str | int | bool | None] | None = None,
        error_type: ErrorType = ErrorType.VALIDATION,
    ) -> None:
        self.field_name = field_name
        self.value = value
        self.error_code = error_code or "VALIDATION_ERROR"

        full_message = f"Validation failed for field '{field_name}': {message}"
        details = details or {}
        details.update(
            {
                "field": field_name,
                "value": str(value) if value is not None else None,
                "error_code": self.error_code,
            }
        )

        super().__init__(full_message, error_type, details)


class MultipleValidationError(ValidationError):
    """Raised when several fields fail validation at once."""

    def __init__(self, validation_errors: list[ValidationError]) -> None:
        self.validation_errors = validation_errors
        combined_message = "; ".join(error.message for error in validation_errors)
        fields = ",".join(error.field_name for error in validation_errors)

        super().__init__(
            fields,
            None,
            combined_message,
            "MULTIPLE_VALIDATION_ERRORS",
            {"error_count": len(validation_errors)},
        )

    @property
    def error_count(self) -> int:
        """Get the number of validation errors."""
        return len(self.validation_errors)


class InvalidIntervalError(ValidationError):
    """Raised when a start/end pair is not strictly ordered."""

    code = "INVALID_INTERVAL"

    def __init__(
        self,
        start_field: str,
        start_value: object,
        end_field: str,
        end_value: object,
    ) -> None:
        self.start_field = start_field
        self.end_field = end_field
        super().__init__(
            end_field,
            str(end_value),
            f"{end_field} ({end_value}) must be after {start_field} ({start_value})",
            error_code="INVALID_INTERVAL",
            details={start_field: str(start_value), "start_field": start_field},
            error_type=ErrorType.INVALID_INTERVAL,
        )


class StateError(DomainError):
    """Raised when an operation is not permitted in the current lifecycle state."""

    code = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: UUID,
        current_state: str,
        action: str,
        message: str | None = None,
    ) -> None:
        details = {
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "current_state": current_state,
            "action": action,
        }
        super().__init__(
            message
            or f"Cannot {action} {entity_type} {entity_id} in state {current_state}",
            ErrorType.STATE,
            details,
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action


class ConflictError(DomainError):
    """Raised when a concurrent invariant would be violated. Retry after refetch."""

    retryable = True
    code = "CONFLICT"

    def __init__(
        self,
        message: str,
        entity_type: str,
        entity_id: UUID | str | None = None,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        conflict_details = details or {}
        conflict_details.update(
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id) if entity_id is not None else None,
            }
        )
        super().__init__(message, ErrorType.CONFLICT, conflict_details)
        self.entity_type = entity_type
        self.entity_id = entity_id


class NotFoundError(DomainError):
    """Raised when a referenced entity is absent in the caller's tenant."""

    code = "NOT_FOUND"

    def __init__(
        self, entity_type: str, entity_id: UUID | str, reason: str | None = None
    ) -> None:
        message = f"{entity_type} not found: {entity_id}"
        if reason:
            message += f" ({reason})"
        super().__init__(
            message,
            ErrorType.NOT_FOUND,
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class PersistenceTimeoutError(DomainError):
    """Raised when collaborator I/O exceeds its deadline. Safe to retry."""

    retryable = True
    code = "TIMEOUT"

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        super().__init__(
            f"{operation} timed out after {timeout_seconds} seconds",
            ErrorType.TIMEOUT,
            {"operation": operation, "timeout_seconds": str(timeout_seconds)},
        )
        self.operation = operation
        self.timeout_seconds = timeout_seconds


class OperationCancelledError(DomainError):
    """Raised when the caller cancels an operation before it was committed."""

    code = "CANCELLED"

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"{operation} was cancelled before commit",
            ErrorType.CANCELLED,
            {"operation": operation},
        )
        self.operation = operation
