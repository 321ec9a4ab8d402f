"""Export and import of the grid as a versioned JSON file.

Export files look like::

    {
      "version": 1,
      "saveDate": "2026-01-31T12:00:00Z",
      "cells": [
        {"rowIndex": 0, "columnIndex": 1, "displayValue": "8",
         "formula": "=A1+3", "isBold": true, "isItalic": false,
         "isUnderlined": false}
      ]
    }

Only cells with content or formatting are written. ``formula`` may be omitted on load.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from spreadsheet_engine.cells import PersistedRow
from spreadsheet_engine.models import EXPORT_FORMAT_VERSION, ExportDocument
from spreadsheet_engine.utils.exceptions import (
    ErrorCode,
    FileFormatError,
    InvalidFileFormatError,
    UnsupportedFileVersionError,
)
from spreadsheet_engine.utils.logging import get_logger, timed_operation

logger = get_logger(__name__)


def serialize_rows(rows: list[PersistedRow]) -> str:
    """Render rows as an indented export document."""
    document = ExportDocument.from_rows(rows)
    return document.model_dump_json(by_alias=True, indent=2)


def parse_export(
    content: str | bytes, file_path: str | None = None
) -> list[PersistedRow]:
    """Parse export file content into persisted rows.

    Args:
        content: Raw file content.
        file_path: Source path, used only for error details.

    Returns:
        The rows in file order.

    Raises:
        InvalidFileFormatError: If the content is not JSON or has the wrong shape.
        UnsupportedFileVersionError: If the declared version is not supported.
    """
    try:
        data: Any = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidFileFormatError(file_path=file_path, errors=[str(e)]) from e

    if not isinstance(data, dict) or "version" not in data:
        raise InvalidFileFormatError(
            file_path=file_path, errors=["Expected an object with a 'version' field"]
        )

    version = data["version"]
    if isinstance(version, bool) or version != EXPORT_FORMAT_VERSION:
        raise UnsupportedFileVersionError(
            version=version,
            supported_version=EXPORT_FORMAT_VERSION,
            file_path=file_path,
        )

    try:
        document = ExportDocument.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise InvalidFileFormatError(file_path=file_path, errors=errors) from e

    return document.to_rows()


class FileOperations:
    """Reads and writes export files on the local filesystem."""

    def save_to_file(self, path: str | Path, rows: list[PersistedRow]) -> int:
        """Write ``rows`` to ``path`` as an export document.

        Returns:
            Number of cells written.

        Raises:
            FileFormatError: If the file cannot be written.
        """
        path = Path(path)
        with timed_operation(logger, "file_export") as metrics:
            try:
                path.write_text(serialize_rows(rows), encoding="utf-8")
            except OSError as e:
                raise FileFormatError(
                    f"Failed to write export file: {e}",
                    error_code=ErrorCode.FILE_WRITE_ERROR,
                    file_path=str(path),
                ) from e
            metrics.cells_processed = len(rows)

        logger.info("Grid exported", path=str(path), cells=len(rows))
        return len(rows)

    def load_from_file(self, path: str | Path) -> list[PersistedRow]:
        """Read and validate an export document from ``path``.

        Raises:
            InvalidFileFormatError: If the file is missing, unreadable or malformed.
            UnsupportedFileVersionError: If the declared version is not supported.
        """
        path = Path(path)
        with timed_operation(logger, "file_import") as metrics:
            try:
                content = path.read_bytes()
            except OSError as e:
                raise InvalidFileFormatError(
                    f"Cannot read export file: {e.strerror or e}",
                    file_path=str(path),
                ) from e
            rows = parse_export(content, file_path=str(path))
            metrics.cells_processed = len(rows)

        logger.info("Export file read", path=str(path), cells=len(rows))
        return rows
