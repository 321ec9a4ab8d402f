"""Centralized exception classes for the spreadsheet engine.

This module provides a hierarchy of custom exceptions with error codes,
HTTP status code mapping, and structured error details for consistent
error handling throughout the application.

Exception Hierarchy:
    SpreadsheetError (base)
    ├── AddressError
    │   ├── InvalidCellReferenceError
    │   └── OutOfBoundsError
    ├── FileFormatError
    │   ├── InvalidFileFormatError
    │   ├── UnsupportedFileVersionError
    │   └── FileTooLargeError
    ├── PersistenceError
    └── ValidationError

Formula evaluation failures have no exception class: they are represented
in-band by the ``#ERROR`` display value and never raised.

Error Codes:
    All errors have a unique error code (e.g., "E1002") that can be used
    for programmatic error handling and documentation.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used in the application.

    Error codes are grouped by category:
    - E1xxx: Cell addressing errors
    - E2xxx: Export file errors
    - E3xxx: Persistence errors
    - E9xxx: Internal/unexpected errors
    """

    # Addressing errors (E1xxx)
    INVALID_CELL_REFERENCE = "E1001"
    OUT_OF_BOUNDS = "E1002"

    # File errors (E2xxx)
    INVALID_FILE_FORMAT = "E2001"
    UNSUPPORTED_FILE_VERSION = "E2002"
    FILE_TOO_LARGE = "E2003"
    FILE_WRITE_ERROR = "E2004"

    # Persistence errors (E3xxx)
    PERSISTENCE_SAVE_FAILED = "E3001"
    PERSISTENCE_LOAD_FAILED = "E3002"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"
    VALIDATION_FAILED = "E9003"


class HTTPStatusMixin:
    """Mixin that provides HTTP status code for exceptions.

    Subclasses set the `http_status` class attribute so the API layer can
    translate engine errors into responses without a lookup table.
    """

    http_status: int = 500

    def get_http_status(self) -> int:
        """Get the HTTP status code for this exception.

        Returns:
            HTTP status code appropriate for this error.
        """
        return self.http_status


class SpreadsheetError(Exception, HTTPStatusMixin):
    """Base exception for all spreadsheet engine errors.

    It provides:
    - Unique error codes for programmatic handling
    - HTTP status code mapping for API responses
    - Structured error details for logging and debugging

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Optional dictionary with additional error details.
        http_status: HTTP status code for API responses (default 500).
    """

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for API responses.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# Addressing Errors (E1xxx)
# =============================================================================


class AddressError(SpreadsheetError):
    """Base class for cell addressing errors."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_CELL_REFERENCE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code, details)


class InvalidCellReferenceError(AddressError):
    """Raised when an A1-style reference cannot be parsed."""

    def __init__(
        self,
        reference: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the offending reference.

        Args:
            reference: The text that failed to parse.
            details: Additional details.
        """
        details = details or {}
        details["reference"] = reference
        super().__init__(
            message=f"Invalid cell reference: {reference!r}",
            error_code=ErrorCode.INVALID_CELL_REFERENCE,
            details=details,
        )
        self.reference = reference


class OutOfBoundsError(AddressError):
    """Raised when an address lies outside the current grid dimensions."""

    http_status: int = 404

    def __init__(
        self,
        row: int,
        column: int,
        row_count: int,
        column_count: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the address and the grid dimensions.

        Args:
            row: Requested zero-based row.
            column: Requested zero-based column.
            row_count: Current number of rows.
            column_count: Current number of columns.
            details: Additional details.
        """
        details = details or {}
        details.update(
            {
                "row": row,
                "column": column,
                "row_count": row_count,
                "column_count": column_count,
            }
        )
        super().__init__(
            message=(
                f"Cell ({row}, {column}) is outside the grid "
                f"({row_count} rows x {column_count} columns)"
            ),
            error_code=ErrorCode.OUT_OF_BOUNDS,
            details=details,
        )
        self.row = row
        self.column = column


# =============================================================================
# File Errors (E2xxx)
# =============================================================================


class FileFormatError(SpreadsheetError):
    """Base class for export file errors."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_FILE_FORMAT,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with file path information.

        Args:
            message: Error message.
            error_code: Error code.
            file_path: Path to the problematic file.
            details: Additional details.
        """
        details = details or {}
        if file_path:
            details["file_path"] = file_path
        super().__init__(message, error_code, details)
        self.file_path = file_path


class InvalidFileFormatError(FileFormatError):
    """Raised when an export file is not valid JSON or has the wrong shape."""

    def __init__(
        self,
        message: str = "Invalid file format",
        file_path: str | None = None,
        errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if errors:
            details["validation_errors"] = errors
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_FILE_FORMAT,
            file_path=file_path,
            details=details,
        )
        self.errors = errors or []


class UnsupportedFileVersionError(FileFormatError):
    """Raised when an export file declares a version this engine cannot read."""

    def __init__(
        self,
        version: Any,
        supported_version: int,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with version information.

        Args:
            version: Version found in the file.
            supported_version: The only version this engine reads.
            file_path: Optional file path.
            details: Additional details.
        """
        details = details or {}
        details["version"] = version
        details["supported_version"] = supported_version
        super().__init__(
            message=f"Unsupported file version: {version}",
            error_code=ErrorCode.UNSUPPORTED_FILE_VERSION,
            file_path=file_path,
            details=details,
        )
        self.version = version


class FileTooLargeError(FileFormatError):
    """Raised when an uploaded file exceeds the maximum allowed size."""

    http_status: int = 413

    def __init__(
        self,
        file_size: int,
        max_size: int,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["file_size_bytes"] = file_size
        details["max_size_bytes"] = max_size
        super().__init__(
            message=(
                f"File size ({file_size} bytes) exceeds maximum "
                f"allowed size ({max_size} bytes)"
            ),
            error_code=ErrorCode.FILE_TOO_LARGE,
            file_path=file_path,
            details=details,
        )
        self.file_size = file_size
        self.max_size = max_size


# =============================================================================
# Persistence Errors (E3xxx)
# =============================================================================


class PersistenceError(SpreadsheetError):
    """Raised when the persistent store fails.

    For saves this is raised after the transaction has been rolled back, so
    the previously persisted rows are intact. The in-memory grid is left as
    it was; the caller decides whether to retry.
    """

    http_status: int = 503

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.PERSISTENCE_SAVE_FAILED,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the failing operation.

        Args:
            message: Error message.
            error_code: Error code.
            operation: Store operation that failed ("save" or "load").
            details: Additional details.
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, error_code, details)
        self.operation = operation


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(SpreadsheetError):
    """General validation error for caller input."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_FAILED,
            details=details,
        )
