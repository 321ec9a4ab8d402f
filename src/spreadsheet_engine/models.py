"""Pydantic models for the export file format and the HTTP API."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from spreadsheet_engine.cells import (
    Cell,
    CellAddress,
    CellChange,
    CellFormatting,
    CellValue,
    PersistedRow,
)
from spreadsheet_engine.services.grid import MAX_COLUMNS
from spreadsheet_engine.utils.exceptions import ErrorCode

EXPORT_FORMAT_VERSION = 1
# Upper bound on rows an imported file may address
MAX_IMPORT_ROWS = 10_000


# =============================================================================
# Export File Format
# =============================================================================


class ExportCell(BaseModel):
    """One cell with content or formatting in an export file (camelCase on disk)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    row_index: int = Field(
        ..., ge=0, lt=MAX_IMPORT_ROWS, description="Zero-based row index"
    )
    column_index: int = Field(
        ..., ge=0, lt=MAX_COLUMNS, description="Zero-based column index"
    )
    display_value: str | None = Field(
        default=None, description="Rendered value (formula result for formulas)"
    )
    formula: str | None = Field(
        default=None, description="Formula source including the leading '='"
    )
    is_bold: bool = False
    is_italic: bool = False
    is_underlined: bool = False

    @classmethod
    def from_row(cls, row: PersistedRow) -> "ExportCell":
        return cls(
            row_index=row.row,
            column_index=row.column,
            display_value=row.display_value,
            formula=row.formula,
            is_bold=row.bold,
            is_italic=row.italic,
            is_underlined=row.underlined,
        )

    def to_row(self) -> PersistedRow:
        return PersistedRow(
            row=self.row_index,
            column=self.column_index,
            display_value=self.display_value,
            formula=self.formula,
            bold=self.is_bold,
            italic=self.is_italic,
            underlined=self.is_underlined,
        )


class ExportDocument(BaseModel):
    """Top-level export file: ``{"version", "saveDate", "cells"}``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: int = EXPORT_FORMAT_VERSION
    save_date: datetime | None = Field(
        default_factory=lambda: datetime.now(UTC),
        description="UTC time the file was written",
    )
    cells: list[ExportCell] = Field(default_factory=list)

    @classmethod
    def from_rows(cls, rows: list[PersistedRow]) -> "ExportDocument":
        return cls(cells=[ExportCell.from_row(row) for row in rows])

    def to_rows(self) -> list[PersistedRow]:
        return [cell.to_row() for cell in self.cells]


# =============================================================================
# API Models
# =============================================================================


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: str
    version: str


class CellValueRequest(BaseModel):
    """Raw user input for a cell; a leading '=' makes it a formula."""

    value: str = Field(..., description="Text, formula ('=A1+1') or blank to clear")


class FormattingModel(BaseModel):
    """Formatting flags of a cell."""

    bold: bool = False
    italic: bool = False
    underlined: bool = False

    @classmethod
    def from_formatting(cls, formatting: CellFormatting) -> "FormattingModel":
        return cls(
            bold=formatting.bold,
            italic=formatting.italic,
            underlined=formatting.underlined,
        )

    def to_formatting(self) -> CellFormatting:
        return CellFormatting(
            bold=self.bold, italic=self.italic, underlined=self.underlined
        )


class FormattingAttribute(str, Enum):
    """Formatting flag addressed by the toggle endpoint."""

    BOLD = "bold"
    ITALIC = "italic"
    UNDERLINE = "underline"


class CellResponse(BaseModel):
    """Current state of one cell."""

    reference: str = Field(..., description="A1-style reference, e.g. 'B3'")
    row: int = Field(..., description="Zero-based row index")
    column: int = Field(..., description="Zero-based column index")
    type: str = Field(..., description="empty, text or formula")
    display_value: str | None = None
    formula: str | None = None
    formatting: FormattingModel

    @classmethod
    def from_cell(cls, cell: Cell) -> "CellResponse":
        return cls.from_value(cell.address, cell.value)

    @classmethod
    def from_change(cls, change: CellChange) -> "CellResponse":
        return cls.from_value(change.address, change.value)

    @classmethod
    def from_value(cls, address: CellAddress, value: CellValue) -> "CellResponse":
        return cls(
            reference=address.reference,
            row=address.row,
            column=address.column,
            type=value.type.value,
            display_value=value.display_value,
            formula=value.formula,
            formatting=FormattingModel.from_formatting(value.formatting),
        )


class DimensionsResponse(BaseModel):
    """Grid size after a structural edit."""

    row_count: int
    column_count: int
    changed_cells: int = Field(
        default=0, description="Number of change notifications emitted"
    )


class SheetResponse(BaseModel):
    """Grid dimensions plus every cell with content or formatting."""

    row_count: int
    column_count: int
    cells: list[CellResponse]


class SaveResponse(BaseModel):
    """Result of committing the grid to the cell store."""

    saved_cells: int
    message: str


class SearchResponse(BaseModel):
    """Cells whose display value contains the query."""

    query: str
    count: int
    matches: list[str] = Field(..., description="A1 references in row-major order")

    @classmethod
    def from_addresses(
        cls, query: str, addresses: list[CellAddress]
    ) -> "SearchResponse":
        return cls(
            query=query,
            count=len(addresses),
            matches=[address.reference for address in addresses],
        )


class ErrorDetail(BaseModel):
    """Error detail model for API error responses.

    This model provides structured error responses with:
    - Human-readable error message
    - Machine-readable error code
    - Optional additional details for debugging
    - Optional request ID for correlation
    """

    detail: str = Field(..., description="Human-readable error message")
    error_code: str | None = Field(
        default=None,
        description="Machine-readable error code (e.g., 'E1002')",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details for debugging",
    )
    request_id: str | None = Field(
        default=None,
        description="Request ID for error correlation",
    )

    @classmethod
    def from_error_code(
        cls,
        error_code: ErrorCode,
        detail: str,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> "ErrorDetail":
        """Create an ErrorDetail from an ErrorCode enum value."""
        return cls(
            detail=detail,
            error_code=error_code.value,
            details=details,
            request_id=request_id,
        )
