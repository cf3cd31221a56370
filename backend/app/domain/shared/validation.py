"""
Validators and sanitizers shared by execution entities and services.

All validators raise :class:`~app.domain.shared.exceptions.ValidationError`
(or its :class:`InvalidIntervalError` subtype) naming the offending field.
"""

import re
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .exceptions import InvalidIntervalError, MultipleValidationError, ValidationError

# pydantic error types mapped onto domain error codes
_PYDANTIC_ERROR_CODES = {
    "missing": "REQUIRED_FIELD",
    "string_too_short": "REQUIRED_FIELD",
    "string_too_long": "TOO_LONG",
    "greater_than": "NOT_POSITIVE",
    "greater_than_equal": "NEGATIVE_VALUE",
    "uuid_parsing": "INVALID_UUID",
    "uuid_type": "INVALID_UUID",
    "uuid_version": "INVALID_UUID",
}


def _error_value(value: Any) -> str | int | float | bool | None:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def validation_error_from_pydantic(error: PydanticValidationError) -> ValidationError:
    """Translate a pydantic model error into the domain error naming its field."""
    errors = [
        ValidationError(
            ".".join(str(part) for part in item["loc"]) or "input",
            _error_value(item.get("input")),
            item["msg"],
            _PYDANTIC_ERROR_CODES.get(item["type"], "INVALID_TYPE"),
        )
        for item in error.errors()
    ]
    if len(errors) == 1:
        return errors[0]
    return MultipleValidationError(errors)


@contextmanager
def model_errors_as_validation() -> Iterator[None]:
    """Re-raise pydantic errors from model construction or assignment as domain errors."""
    try:
        yield
    except PydanticValidationError as e:
        raise validation_error_from_pydantic(e) from e


class ValidationContext:
    """Collects several field errors before raising them together."""

    def __init__(self) -> None:
        self.errors: list[ValidationError] = []

    def add_error(
        self, field_name: str, value: Any, message: str, error_code: str | None = None
    ) -> None:
        """Add validation error."""
        self.errors.append(ValidationError(field_name, value, message, error_code))

    def check(self, validator, *args) -> None:
        """Run a validator and collect its error instead of raising."""
        try:
            validator(*args)
        except ValidationError as e:
            self.errors.append(e)

    @property
    def has_errors(self) -> bool:
        """Check if context has validation errors."""
        return len(self.errors) > 0

    def raise_if_errors(self) -> None:
        if not self.errors:
            return
        if len(self.errors) == 1:
            raise self.errors[0]
        raise MultipleValidationError(self.errors)


# Input Sanitization Utilities
class DataSanitizer:
    """Utilities for cleaning and sanitizing input data."""

    @staticmethod
    def sanitize_string(
        value: str,
        max_length: int | None = None,
        field_name: str = "input",
        allow_empty: bool = True,
    ) -> str:
        """
        Sanitize string input.

        Args:
            value: Input string
            max_length: Maximum allowed length
            field_name: Field reported on failure
            allow_empty: Whether to allow empty strings

        Returns:
            Sanitized string

        Raises:
            ValidationError: If validation fails
        """
        if not isinstance(value, str):
            raise ValidationError(
                field_name, value, "Input must be a string", "INVALID_TYPE"
            )

        value = value.strip()

        if not allow_empty and not value:
            raise ValidationError(
                field_name, value, "Value cannot be empty", "EMPTY_VALUE"
            )

        if max_length and len(value) > max_length:
            raise ValidationError(
                field_name,
                value,
                f"Value exceeds maximum length of {max_length}",
                "TOO_LONG",
            )

        # Remove null bytes and control characters
        return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x84\x86-\x9f]", "", value)

    @staticmethod
    def sanitize_optional(
        value: str | None, max_length: int, field_name: str
    ) -> str | None:
        """Sanitize free text, mapping blank input to ``None``."""
        if value is None:
            return None
        value = DataSanitizer.sanitize_string(value, max_length, field_name)
        return value or None

    @staticmethod
    def sanitize_code(
        value: str, field_name: str = "code", pattern: str = r"^[A-Z0-9_-]+$"
    ) -> str:
        """
        Sanitize code/identifier fields (work order numbers, downtime codes).

        Raises:
            ValidationError: If the code is blank, too long or malformed
        """
        value = DataSanitizer.sanitize_string(
            value, max_length=50, field_name=field_name, allow_empty=False
        ).upper()

        if not re.match(pattern, value):
            raise ValidationError(
                field_name,
                value,
                "Must contain only letters, numbers, hyphens, and underscores",
                "INVALID_FORMAT",
            )

        return value


# Business Rule Validators
class BusinessRuleValidators:
    """Collection of business rule validation functions."""

    @staticmethod
    def validate_date_range(
        start_field: str,
        start_date: datetime,
        end_field: str,
        end_date: datetime,
    ) -> None:
        """Validate date range (end strictly after start)."""
        BusinessRuleValidators.validate_datetime(start_field, start_date)
        BusinessRuleValidators.validate_datetime(end_field, end_date)
        if end_date <= start_date:
            raise InvalidIntervalError(start_field, start_date, end_field, end_date)

    @staticmethod
    def validate_datetime(field_name: str, value: Any) -> None:
        """Validate that a supplied value is a datetime."""
        if value is not None and not isinstance(value, datetime):
            raise ValidationError(
                field_name, str(value), "Must be a datetime", "INVALID_TYPE"
            )

    @staticmethod
    def validate_number_type(field_name: str, value: Any) -> None:
        """Validate that a value is a number (booleans are not)."""
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise ValidationError(
                field_name, str(value), "Must be a number", "INVALID_TYPE"
            )

    @staticmethod
    def validate_positive_number(field_name: str, value: int | float | Decimal) -> None:
        """Validate that number is positive."""
        if value is None:
            raise ValidationError(
                field_name, value, "Value must be positive", "NOT_POSITIVE"
            )
        BusinessRuleValidators.validate_number_type(field_name, value)
        if value <= 0:
            raise ValidationError(
                field_name, value, "Value must be positive", "NOT_POSITIVE"
            )

    @staticmethod
    def validate_non_negative(field_name: str, value: int | float | Decimal) -> None:
        """Validate that number is zero or positive."""
        if value is None:
            raise ValidationError(
                field_name, value, "Value cannot be negative", "NEGATIVE_VALUE"
            )
        BusinessRuleValidators.validate_number_type(field_name, value)
        if value < 0:
            raise ValidationError(
                field_name, value, "Value cannot be negative", "NEGATIVE_VALUE"
            )

    @staticmethod
    def validate_required_field(field_name: str, value: Any) -> None:
        """Validate that required field is not empty."""
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(
                field_name, value, f"{field_name} is required", "REQUIRED_FIELD"
            )
