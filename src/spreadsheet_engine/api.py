"""FastAPI application exposing the spreadsheet engine."""

import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import (
    FastAPI,
    File,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from spreadsheet_engine.cells import CellAddress, CellChange
from spreadsheet_engine.config import settings, validate_settings_on_startup
from spreadsheet_engine.models import (
    CellResponse,
    CellValueRequest,
    DimensionsResponse,
    ErrorDetail,
    FormattingAttribute,
    FormattingModel,
    HealthResponse,
    SaveResponse,
    SearchResponse,
    SheetResponse,
)
from spreadsheet_engine.services.persistence import PersistenceGateway
from spreadsheet_engine.services.spreadsheet_service import SpreadsheetService
from spreadsheet_engine.utils.exceptions import (
    ErrorCode,
    FileTooLargeError,
    SpreadsheetError,
)
from spreadsheet_engine.utils.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)

# Configure structured logging using settings
configure_logging(
    level=settings.log_level_int,
    use_structured_formatter=True,
)
logger = get_logger(__name__)

EXPORT_FILENAME = "spreadsheet.json"


def _service(request: Request) -> SpreadsheetService:
    service: SpreadsheetService = request.app.state.spreadsheet
    return service


def _dimensions(
    service: SpreadsheetService, changes: list[CellChange]
) -> dict[str, Any]:
    return {
        "row_count": service.row_count,
        "column_count": service.column_count,
        "changed_cells": len(changes),
    }


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        gateway = PersistenceGateway.from_url(
            settings.database_url, echo=settings.database_echo
        )
        service = SpreadsheetService(gateway)
        await service.initialize()
        app.state.spreadsheet = service
        try:
            yield
        finally:
            app.state.spreadsheet = None
            gateway.dispose()

    app = FastAPI(
        title="Spreadsheet Engine API",
        description=(
            "Grid of addressable cells with arithmetic formulas, formatting, "
            "transactional persistence and JSON export."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Configure CORS using settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Validate settings on startup
    validate_settings_on_startup(settings)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Any:
        """Assign a request ID, expose it in the response and the log context."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        set_request_id(request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()

    @app.exception_handler(SpreadsheetError)
    async def spreadsheet_exception_handler(
        request: Request, exc: SpreadsheetError
    ) -> JSONResponse:
        """Translate engine errors into structured error responses."""
        request_id = getattr(request.state, "request_id", get_request_id())
        http_status = exc.get_http_status()
        logger.error(
            f"Spreadsheet Error: {exc.message}",
            error_code=exc.error_code.value,
            http_status=http_status,
        )
        return JSONResponse(
            status_code=http_status,
            content=ErrorDetail.from_error_code(
                exc.error_code,
                exc.message,
                details=exc.details or None,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        """Custom exception handler for HTTP exceptions."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.warning(
            f"HTTP Error: {exc.detail}",
            status_code=exc.status_code,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                detail=str(exc.detail),
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all exception handler for unexpected errors.

        Logs the full exception and returns a generic error response
        to avoid leaking internal details.
        """
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.exception(
            f"Unexpected error: {type(exc).__name__}",
            error_type=type(exc).__name__,
        )
        if settings.debug:
            detail = f"Internal server error: {type(exc).__name__}: {exc}"
        else:
            detail = "Internal server error. Please try again later."

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorDetail.from_error_code(
                ErrorCode.INTERNAL_ERROR, detail, request_id=request_id
            ).model_dump(exclude_none=True),
        )

    # =========================================================================
    # Health
    # =========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request) -> dict[str, Any]:
        """Check the health status of the service.

        Returns:
            HealthResponse: Service status information including status,
                timestamp, and version.
        """
        request_id = getattr(request.state, "request_id", None)
        logger.debug("Health check requested", request_id=request_id)
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": "0.1.0",
        }

    # =========================================================================
    # Sheet
    # =========================================================================

    @app.get("/sheet", response_model=SheetResponse, tags=["Sheet"])
    async def get_sheet(request: Request) -> dict[str, Any]:
        """Grid dimensions and every cell with content or formatting, row-major."""
        service = _service(request)
        cells = await service.get_cells()
        return {
            "row_count": service.row_count,
            "column_count": service.column_count,
            "cells": [
                CellResponse.from_cell(cell)
                for cell in cells
                if not cell.value.is_default
            ],
        }

    @app.post("/sheet/clear", response_model=DimensionsResponse, tags=["Sheet"])
    async def clear_sheet(request: Request) -> dict[str, Any]:
        """Start a new sheet at the default size."""
        service = _service(request)
        changes = await service.clear()
        return _dimensions(service, changes)

    @app.post(
        "/sheet/save",
        response_model=SaveResponse,
        tags=["Sheet"],
        responses={503: {"model": ErrorDetail, "description": "Store failure"}},
    )
    async def save_sheet(request: Request) -> dict[str, Any]:
        """Commit the grid to the cell store, replacing the previous save."""
        saved = await _service(request).save_changes()
        return {"saved_cells": saved, "message": f"Saved {saved} cells"}

    @app.post(
        "/sheet/reload",
        response_model=DimensionsResponse,
        tags=["Sheet"],
        responses={503: {"model": ErrorDetail, "description": "Store failure"}},
    )
    async def reload_sheet(request: Request) -> dict[str, Any]:
        """Discard unsaved edits and reload the grid from the cell store."""
        service = _service(request)
        changes = await service.reload_from_store()
        return _dimensions(service, changes)

    @app.get("/sheet/export", tags=["Sheet"])
    async def export_sheet(request: Request) -> Response:
        """Download the grid as a versioned JSON export file."""
        content = await _service(request).export_content()
        return Response(
            content=content,
            media_type="application/json",
            headers={
                "Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'
            },
        )

    @app.post(
        "/sheet/import",
        response_model=DimensionsResponse,
        tags=["Sheet"],
        responses={
            400: {"model": ErrorDetail, "description": "Invalid export file"},
            413: {"model": ErrorDetail, "description": "File too large"},
        },
    )
    async def import_sheet(
        request: Request,
        file: Annotated[UploadFile, File(description="Export file to load")],
    ) -> dict[str, Any]:
        """Replace the grid with the contents of an uploaded export file.

        The cell store is not touched; call ``/sheet/save`` to persist.

        Raises:
            FileTooLargeError: 413 if the upload exceeds the import limit
            InvalidFileFormatError: 400 if the file is not a valid export
            UnsupportedFileVersionError: 400 if the file version is unknown
        """
        content = await file.read()
        if len(content) > settings.max_import_size_bytes:
            logger.warning(
                "Import file too large",
                file_size=len(content),
                max_size=settings.max_import_size_bytes,
            )
            raise FileTooLargeError(
                file_size=len(content),
                max_size=settings.max_import_size_bytes,
                file_path=file.filename,
            )

        service = _service(request)
        changes = await service.import_content(content, filename=file.filename)
        return _dimensions(service, changes)

    @app.get(
        "/search",
        response_model=SearchResponse,
        tags=["Sheet"],
        responses={400: {"model": ErrorDetail, "description": "Blank query"}},
    )
    async def search_cells(
        request: Request,
        q: Annotated[str, Query(description="Text to look for, case-insensitive")],
    ) -> SearchResponse:
        """Find cells whose display value contains ``q``."""
        matches = await _service(request).search(q)
        return SearchResponse.from_addresses(q, matches)

    # =========================================================================
    # Cells
    # =========================================================================

    cell_errors: dict[int | str, dict[str, Any]] = {
        400: {"model": ErrorDetail, "description": "Invalid cell reference"},
        404: {"model": ErrorDetail, "description": "Cell outside the grid"},
    }

    @app.get(
        "/cells/{ref}",
        response_model=CellResponse,
        tags=["Cells"],
        responses=cell_errors,
    )
    async def get_cell(request: Request, ref: str) -> CellResponse:
        """Current value and formatting of the cell at ``ref`` (e.g. ``B3``)."""
        cell = await _service(request).get_cell(CellAddress.from_reference(ref))
        return CellResponse.from_cell(cell)

    @app.put(
        "/cells/{ref}",
        response_model=CellResponse,
        tags=["Cells"],
        responses=cell_errors,
    )
    async def set_cell(
        request: Request, ref: str, body: CellValueRequest
    ) -> CellResponse:
        """Assign text, a formula, or blank input (which empties the cell)."""
        address = CellAddress.from_reference(ref)
        changes = await _service(request).set_cell_value(address, body.value)
        return CellResponse.from_change(changes[0])

    @app.put(
        "/cells/{ref}/formatting",
        response_model=CellResponse,
        tags=["Cells"],
        responses=cell_errors,
    )
    async def set_cell_formatting(
        request: Request, ref: str, body: FormattingModel
    ) -> CellResponse:
        """Replace the formatting flags of a cell, keeping its content."""
        address = CellAddress.from_reference(ref)
        changes = await _service(request).update_cell_formatting(
            address, body.to_formatting()
        )
        return CellResponse.from_change(changes[0])

    @app.post(
        "/cells/{ref}/formatting/{attribute}/toggle",
        response_model=CellResponse,
        tags=["Cells"],
        responses=cell_errors,
    )
    async def toggle_cell_formatting(
        request: Request, ref: str, attribute: FormattingAttribute
    ) -> CellResponse:
        """Flip one formatting flag of a cell."""
        address = CellAddress.from_reference(ref)
        service = _service(request)
        toggles = {
            FormattingAttribute.BOLD: service.toggle_bold,
            FormattingAttribute.ITALIC: service.toggle_italic,
            FormattingAttribute.UNDERLINE: service.toggle_underline,
        }
        changes = await toggles[attribute](address)
        return CellResponse.from_change(changes[0])

    # =========================================================================
    # Structure
    # =========================================================================

    @app.post("/rows", response_model=DimensionsResponse, tags=["Structure"])
    async def add_row(request: Request) -> dict[str, Any]:
        """Append an empty row."""
        service = _service(request)
        return _dimensions(service, await service.add_row())

    @app.delete("/rows/last", response_model=DimensionsResponse, tags=["Structure"])
    async def remove_last_row(request: Request) -> dict[str, Any]:
        """Drop the last row; no-op when only two rows remain."""
        service = _service(request)
        return _dimensions(service, await service.remove_last_row())

    @app.post("/columns", response_model=DimensionsResponse, tags=["Structure"])
    async def add_column(request: Request) -> dict[str, Any]:
        """Append an empty column; no-op at column Z."""
        service = _service(request)
        return _dimensions(service, await service.add_column())

    @app.delete(
        "/columns/last", response_model=DimensionsResponse, tags=["Structure"]
    )
    async def remove_last_column(request: Request) -> dict[str, Any]:
        """Drop the last column; no-op when only one column remains."""
        service = _service(request)
        return _dimensions(service, await service.remove_last_column())

    return app


# Create the application instance
app = create_app()
