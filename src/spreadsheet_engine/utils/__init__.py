"""Utilities package for the spreadsheet engine.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from spreadsheet_engine.utils.exceptions import (
    AddressError,
    ErrorCode,
    FileFormatError,
    FileTooLargeError,
    HTTPStatusMixin,
    InvalidCellReferenceError,
    InvalidFileFormatError,
    OutOfBoundsError,
    PersistenceError,
    SpreadsheetError,
    UnsupportedFileVersionError,
    ValidationError,
)
from spreadsheet_engine.utils.logging import (
    LogContext,
    StructuredLogger,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Exceptions
    "AddressError",
    "ErrorCode",
    "FileFormatError",
    "FileTooLargeError",
    "HTTPStatusMixin",
    "InvalidCellReferenceError",
    "InvalidFileFormatError",
    "OutOfBoundsError",
    "PersistenceError",
    "SpreadsheetError",
    "UnsupportedFileVersionError",
    "ValidationError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
