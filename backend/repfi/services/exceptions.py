# backend/repfi/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
The global handlers in main.py map them to HTTP responses.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── MissingFilesError
    │   ├── InvalidFileTypeError
    │   ├── FileTooLargeError
    │   ├── PeriodLockedError
    │   ├── IncompleteBatchError
    │   └── ExportNotAvailableError
    ├── NotFoundError
    │   ├── ClientNotFoundError
    │   ├── CompanyNotFoundError
    │   └── PeriodNotFoundError
    ├── ConflictError
    │   ├── PeriodOverlapError
    │   └── PeriodStateConflictError
    ├── StorageError
    ├── EtlTriggerError
    ├── AuthenticationError
    │   ├── InvalidCredentialsError
    │   └── TokenExpiredError
    └── AuthorizationError
        └── PermissionDeniedError
"""

from datetime import datetime


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when input validation fails.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class MissingFilesError(ValidationError):
    """
    Raised when one or more required comptable files are absent.

    Attributes:
        missing: Labels of the missing files
        required: (type, label) pairs of every required file
    """

    def __init__(self, missing: list[str], required: list[tuple[str, str]]) -> None:
        self.missing = missing
        self.required = required
        super().__init__(f"Missing file(s): {', '.join(missing)}")


class InvalidFileTypeError(ValidationError):
    """Raised when an uploaded file is not an Excel workbook."""

    def __init__(self, label: str, filename: str, content_type: str | None) -> None:
        self.label = label
        self.filename = filename
        self.content_type = content_type
        super().__init__(
            f'The file "{label}" ({filename}) must be an Excel file (.xls or .xlsx)',
            field="file",
        )


class FileTooLargeError(ValidationError):
    """Raised when an uploaded file exceeds the configured size limit."""

    def __init__(self, filename: str, size: int, max_size: int) -> None:
        self.filename = filename
        self.size = size
        self.max_size = max_size
        super().__init__(
            f"File too large: {filename} is {size} bytes, maximum is {max_size} bytes",
            field="file",
        )


class PeriodLockedError(ValidationError):
    """Raised when a period cannot be modified while the ETL is working on it."""

    def __init__(self, period_id: str, status: str, action: str = "delete") -> None:
        self.period_id = period_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} a period being processed (status: {status})")


class IncompleteBatchError(ValidationError):
    """Raised when a batch does not hold one file per required type."""

    def __init__(self, batch_id: str, found: int, expected: int) -> None:
        self.batch_id = batch_id
        self.found = found
        self.expected = expected
        super().__init__(f"Invalid files: {found}/{expected}")


class ExportNotAvailableError(ValidationError):
    """Raised when a period has no downloadable ETL export."""

    def __init__(self, period_id: str, reason: str = "No Excel export is available for this period") -> None:
        self.period_id = period_id
        super().__init__(reason)


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Client", "ComptablePeriod")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class ClientNotFoundError(NotFoundError):
    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        super().__init__(
            f"Client {client_id} not found",
            resource_type="Client",
            resource_id=client_id,
        )


class CompanyNotFoundError(NotFoundError):
    def __init__(self, company_id: str) -> None:
        self.company_id = company_id
        super().__init__(
            f"Company {company_id} not found",
            resource_type="Company",
            resource_id=company_id,
        )


class PeriodNotFoundError(NotFoundError):
    """Raised when a comptable period cannot be found by id or batch id."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(
            f"Comptable period {identifier} not found",
            resource_type="ComptablePeriod",
            resource_id=identifier,
        )


# =============================================================================
# CONFLICT ERRORS
# =============================================================================


class ConflictError(ServiceError):
    """Base exception for requests conflicting with existing state."""
    pass


class PeriodOverlapError(ConflictError):
    """
    Raised when a new period overlaps a period already processed.

    Attributes:
        existing_start: Start of the overlapping completed period
        existing_end: End of the overlapping completed period
    """

    def __init__(self, existing_start: datetime, existing_end: datetime) -> None:
        self.existing_start = existing_start
        self.existing_end = existing_end
        super().__init__("This period overlaps a period that has already been processed")


class PeriodStateConflictError(ConflictError):
    """
    Raised when a period cannot move to processing from its current state.

    Attributes:
        period_id: The period that was asked to start
        status: Its current status
    """

    def __init__(self, period_id: str, status: str, message: str) -> None:
        self.period_id = period_id
        self.status = status
        super().__init__(message)


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(ServiceError):
    """
    Raised when the object storage rejects or fails an operation.

    Attributes:
        operation: Storage operation that failed (put, copy, list, delete, presign)
        key: Object key or prefix involved
    """

    def __init__(self, operation: str, key: str, reason: str) -> None:
        self.operation = operation
        self.key = key
        self.reason = reason
        super().__init__(f"Storage {operation} failed for '{key}': {reason}")


# =============================================================================
# ETL ERRORS
# =============================================================================


class EtlTriggerError(ServiceError):
    """
    Raised when the ETL orchestrator cannot start a run.

    Attributes:
        batch_id: Batch that was to be processed
        reason: Error reported by the orchestrator, or the configuration problem
    """

    def __init__(self, batch_id: str, reason: str) -> None:
        self.batch_id = batch_id
        self.reason = reason
        super().__init__(f"ETL trigger failed for batch {batch_id}: {reason}")


# =============================================================================
# AUTHENTICATION / AUTHORIZATION ERRORS
# =============================================================================


class AuthenticationError(ServiceError):
    pass


class InvalidCredentialsError(AuthenticationError):
    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class TokenExpiredError(AuthenticationError):
    def __init__(self, message: str = "Token has expired", token_type: str = "access") -> None:
        self.token_type = token_type
        super().__init__(message)


class AuthorizationError(ServiceError):
    pass


class PermissionDeniedError(AuthorizationError):
    """
    Raised when a resource belongs to another company.

    Attributes:
        resource_type: Type of resource accessed
        resource_id: Identifier of the resource
    """

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"Access to {resource_type} {resource_id} is not allowed")


__all__ = [
    "ServiceError",
    "ValidationError",
    "MissingFilesError",
    "InvalidFileTypeError",
    "FileTooLargeError",
    "PeriodLockedError",
    "IncompleteBatchError",
    "ExportNotAvailableError",
    "NotFoundError",
    "ClientNotFoundError",
    "CompanyNotFoundError",
    "PeriodNotFoundError",
    "ConflictError",
    "PeriodOverlapError",
    "PeriodStateConflictError",
    "StorageError",
    "EtlTriggerError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "TokenExpiredError",
    "AuthorizationError",
    "PermissionDeniedError",
]
