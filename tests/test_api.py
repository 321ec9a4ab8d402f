"""Tests for the FastAPI application."""

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from fastapi import status

from spreadsheet_engine.api import create_app
from spreadsheet_engine.models import ErrorDetail
from spreadsheet_engine.services.persistence import PersistenceGateway
from spreadsheet_engine.utils.exceptions import (
    ErrorCode,
    OutOfBoundsError,
    PersistenceError,
)


@asynccontextmanager
async def create_test_client(
    patches: dict[str, Any] | None = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Create an async test client with proper lifespan handling.

    Args:
        patches: Optional dictionary of patch targets and values.
    """
    patch_targets = {
        "spreadsheet_engine.api.settings.database_url": "sqlite://",
        **(patches or {}),
    }

    for target, value in patch_targets.items():
        patch(target, value).start()
    try:
        app = create_app()
        async with (
            app.router.lifespan_context(app),
            httpx.AsyncClient(
                transport=httpx.ASGITransport(app=app),
                base_url="http://test",
            ) as client,
        ):
            yield client
    finally:
        patch.stopall()


@pytest.fixture
async def client() -> AsyncIterator[httpx.AsyncClient]:
    """Create an async test client backed by a fresh in-memory store."""
    async with create_test_client() as ac:
        yield ac


def export_document(cells: list[dict[str, Any]], version: int = 1) -> bytes:
    return json.dumps({"version": version, "cells": cells}).encode()


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    async def test_health_check(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data

    async def test_request_id_generated(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")
        assert response.headers["X-Request-ID"]

    async def test_request_id_echoed(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestSheetEndpoint:
    """Tests for GET /sheet."""

    async def test_empty_sheet(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/sheet")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"row_count": 10, "column_count": 10, "cells": []}

    async def test_lists_non_empty_cells(self, client: httpx.AsyncClient) -> None:
        await client.put("/cells/B2", json={"value": "x"})
        await client.put("/cells/A1", json={"value": "y"})

        cells = (await client.get("/sheet")).json()["cells"]

        assert [cell["reference"] for cell in cells] == ["A1", "B2"]


class TestCellEndpoints:
    """Tests for /cells/{ref}."""

    async def test_get_empty_cell(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/cells/C3")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "reference": "C3",
            "row": 2,
            "column": 2,
            "type": "empty",
            "display_value": None,
            "formula": None,
            "formatting": {"bold": False, "italic": False, "underlined": False},
        }

    async def test_set_formula(self, client: httpx.AsyncClient) -> None:
        await client.put("/cells/A1", json={"value": "5"})
        response = await client.put("/cells/B1", json={"value": "=A1+3"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["type"] == "formula"
        assert data["display_value"] == "8"
        assert data["formula"] == "=A1+3"

    async def test_formula_error_is_a_value(self, client: httpx.AsyncClient) -> None:
        response = await client.put("/cells/A1", json={"value": "=1/0"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["display_value"] == "#ERROR"

    async def test_lowercase_reference(self, client: httpx.AsyncClient) -> None:
        response = await client.put("/cells/b2", json={"value": "x"})
        assert response.json()["reference"] == "B2"

    async def test_invalid_reference(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/cells/2B")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["error_code"] == "E1001"
        assert data["details"]["reference"] == "2B"
        assert data["request_id"] == response.headers["X-Request-ID"]

    async def test_out_of_bounds(self, client: httpx.AsyncClient) -> None:
        response = await client.put("/cells/K1", json={"value": "x"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "E1002"

    async def test_missing_body(self, client: httpx.AsyncClient) -> None:
        response = await client.put("/cells/A1", json={})
        assert response.status_code == 422

    async def test_set_formatting(self, client: httpx.AsyncClient) -> None:
        await client.put("/cells/A1", json={"value": "x"})
        response = await client.put(
            "/cells/A1/formatting", json={"bold": True, "underlined": True}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["formatting"] == {"bold": True, "italic": False, "underlined": True}
        assert data["display_value"] == "x"

    @pytest.mark.parametrize(
        ("attribute", "flag"),
        [("bold", "bold"), ("italic", "italic"), ("underline", "underlined")],
    )
    async def test_toggle(
        self, client: httpx.AsyncClient, attribute: str, flag: str
    ) -> None:
        url = f"/cells/A1/formatting/{attribute}/toggle"

        first = await client.post(url)
        second = await client.post(url)

        assert first.json()["formatting"][flag] is True
        assert second.json()["formatting"][flag] is False

    async def test_toggle_unknown_attribute(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/cells/A1/formatting/strike/toggle")
        assert response.status_code == 422


class TestStructureEndpoints:
    """Tests for row and column edits."""

    async def test_add_and_remove_row(self, client: httpx.AsyncClient) -> None:
        added = await client.post("/rows")
        assert added.json() == {
            "row_count": 11,
            "column_count": 10,
            "changed_cells": 10,
        }

        removed = await client.delete("/rows/last")
        assert removed.json()["row_count"] == 10

    async def test_add_and_remove_column(self, client: httpx.AsyncClient) -> None:
        added = await client.post("/columns")
        assert added.json()["column_count"] == 11
        assert added.json()["changed_cells"] == 110

        removed = await client.delete("/columns/last")
        assert removed.json()["column_count"] == 10

    async def test_column_cap_is_a_no_op(self, client: httpx.AsyncClient) -> None:
        for _ in range(16):
            await client.post("/columns")

        response = await client.post("/columns")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["column_count"] == 26
        assert response.json()["changed_cells"] == 0

    async def test_row_floor_is_a_no_op(self, client: httpx.AsyncClient) -> None:
        for _ in range(8):
            await client.delete("/rows/last")

        response = await client.delete("/rows/last")

        assert response.json() == {
            "row_count": 2,
            "column_count": 10,
            "changed_cells": 0,
        }

    async def test_clear(self, client: httpx.AsyncClient) -> None:
        await client.put("/cells/A1", json={"value": "x"})
        await client.post("/rows")

        response = await client.post("/sheet/clear")

        assert response.json()["row_count"] == 10
        assert (await client.get("/sheet")).json()["cells"] == []


class TestPersistenceEndpoints:
    """Tests for save and reload."""

    async def test_save_and_reload(self, client: httpx.AsyncClient) -> None:
        await client.put("/cells/A1", json={"value": "5"})
        saved = await client.post("/sheet/save")
        assert saved.json()["saved_cells"] == 1

        await client.put("/cells/A1", json={"value": "changed"})
        await client.post("/sheet/reload")

        assert (await client.get("/cells/A1")).json()["display_value"] == "5"

    async def test_blank_cell_formatting_saved(self, client: httpx.AsyncClient) -> None:
        await client.post("/cells/C3/formatting/bold/toggle")
        saved = await client.post("/sheet/save")
        assert saved.json()["saved_cells"] == 1

        await client.post("/sheet/clear")
        await client.post("/sheet/reload")

        data = (await client.get("/cells/C3")).json()
        assert data["type"] == "empty"
        assert data["formatting"]["bold"] is True
        cells = (await client.get("/sheet")).json()["cells"]
        assert [cell["reference"] for cell in cells] == ["C3"]

    async def test_save_failure(self, client: httpx.AsyncClient) -> None:
        await client.put("/cells/A1", json={"value": "edit"})

        with patch.object(
            PersistenceGateway,
            "save",
            side_effect=PersistenceError("store unavailable", operation="save"),
        ):
            response = await client.post("/sheet/save")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["error_code"] == "E3001"
        assert (await client.get("/cells/A1")).json()["display_value"] == "edit"


class TestExportImportEndpoints:
    """Tests for export and import."""

    async def test_export(self, client: httpx.AsyncClient) -> None:
        await client.put("/cells/A1", json={"value": "5"})
        await client.put("/cells/B1", json={"value": "=A1*2"})

        response = await client.get("/sheet/export")

        assert response.status_code == status.HTTP_200_OK
        assert "attachment" in response.headers["content-disposition"]
        data = response.json()
        assert data["version"] == 1
        assert data["cells"][1]["formula"] == "=A1*2"
        assert data["cells"][1]["displayValue"] == "10"

    async def test_export_then_import(self, client: httpx.AsyncClient) -> None:
        await client.put("/cells/C5", json={"value": "kept"})
        exported = (await client.get("/sheet/export")).content
        await client.post("/sheet/clear")

        response = await client.post(
            "/sheet/import", files={"file": ("sheet.json", exported)}
        )

        assert response.status_code == status.HTTP_200_OK
        assert (await client.get("/cells/C5")).json()["display_value"] == "kept"

    async def test_import_grows_grid(self, client: httpx.AsyncClient) -> None:
        content = export_document(
            [{"rowIndex": 14, "columnIndex": 0, "displayValue": "far"}]
        )

        response = await client.post(
            "/sheet/import", files={"file": ("sheet.json", content)}
        )

        assert response.json()["row_count"] == 15

    async def test_import_unsupported_version(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/sheet/import",
            files={"file": ("sheet.json", export_document([], version=2))},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "E2002"

    async def test_import_invalid_json(self, client: httpx.AsyncClient) -> None:
        await client.put("/cells/A1", json={"value": "keep"})

        response = await client.post(
            "/sheet/import", files={"file": ("sheet.json", b"{nope")}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "E2001"
        assert (await client.get("/cells/A1")).json()["display_value"] == "keep"

    async def test_import_too_large(self) -> None:
        async with create_test_client(
            {"spreadsheet_engine.api.settings.max_import_size_mb": 1}
        ) as client:
            content = b" " * (1024 * 1024 + 1)
            response = await client.post(
                "/sheet/import", files={"file": ("sheet.json", content)}
            )

        assert response.status_code == 413
        assert response.json()["error_code"] == "E2003"


class TestSearchEndpoint:
    """Tests for GET /search."""

    async def test_search(self, client: httpx.AsyncClient) -> None:
        await client.put("/cells/A1", json={"value": "Revenue"})
        await client.put("/cells/B3", json={"value": "net revenue"})

        response = await client.get("/search", params={"q": "REVENUE"})

        assert response.json() == {
            "query": "REVENUE",
            "count": 2,
            "matches": ["A1", "B3"],
        }

    async def test_blank_query(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/search", params={"q": "  "})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "E9003"

    async def test_missing_query(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/search")
        assert response.status_code == 422


class TestStartupRehydration:
    """Tests for loading the saved grid when the app starts."""

    async def test_saved_grid_loaded_on_startup(self, tmp_path: Any) -> None:
        database_url = f"sqlite:///{tmp_path / 'sheet.db'}"
        patches = {"spreadsheet_engine.api.settings.database_url": database_url}

        async with create_test_client(patches) as client:
            await client.put("/cells/D4", json={"value": "persisted"})
            await client.post("/sheet/save")

        async with create_test_client(patches) as client:
            response = await client.get("/cells/D4")

        assert response.json()["display_value"] == "persisted"


class TestErrorDetail:
    """Tests for the structured error body."""

    def test_from_error_code(self) -> None:
        error = OutOfBoundsError(12, 0, 10, 10)

        body = ErrorDetail.from_error_code(
            error.error_code, error.message, details=error.details, request_id="r1"
        ).model_dump(exclude_none=True)

        assert body["error_code"] == "E1002"
        assert body["details"]["row"] == 12
        assert body["request_id"] == "r1"

    def test_from_error_code_without_details(self) -> None:
        body = ErrorDetail.from_error_code(ErrorCode.INTERNAL_ERROR, "boom")
        assert body.model_dump(exclude_none=True) == {
            "detail": "boom",
            "error_code": "E9001",
        }

    async def test_out_of_bounds_status_from_error(
        self, client: httpx.AsyncClient
    ) -> None:
        response = await client.get("/cells/A11")

        assert response.status_code == OutOfBoundsError(0, 0, 0, 0).get_http_status()
        assert response.json()["detail"].startswith("Cell")
