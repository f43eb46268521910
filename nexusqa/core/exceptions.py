"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and map them to HTTP status codes and ``E.*`` error codes.

Usage:
    from nexusqa.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="TestCase", resource_id=42)
    raise ValidationError("status is invalid", details={"status": "BROKEN"})
"""


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist at the time of the operation.

    Args:
        resource: Human-readable entity name (e.g. "TestCase", "TestResult").
        resource_id: The key that was looked up. Included in the message.
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
    """Raised when input is malformed, missing, or violates a business rule.

    Maps to HTTP 400. Never retried.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class HistoryExistsError(ValidationError):
    """Raised when steps of a test case with execution history would be removed."""

    def __init__(self, test_case_id: int) -> None:
        self.test_case_id = test_case_id
        super().__init__(
            "Cannot delete steps for a test case with execution history",
            details={"test_case_id": test_case_id},
        )


class ConflictError(Exception):
    """Raised when an operation collides with the current state of an entity.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field or state that conflicts.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} conflicts with current state")


class StoreFailureError(Exception):
    """Raised after a failed commit has been rolled back. Maps to HTTP 500."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Database error during {operation}")


class ExternalToolFailure(Exception):
    """Raised inside the automation runner when the external tool cannot be run.

    The runner converts it into a failed tool outcome; it never leaves the
    runner as an error.
    """

    def __init__(self, message: str, exit_code: int = -1) -> None:
        self.exit_code = exit_code
        super().__init__(message)
