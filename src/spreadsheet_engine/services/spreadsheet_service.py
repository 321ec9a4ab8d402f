"""Async facade over the grid, the cell store and export files.

Every operation that reads or mutates the grid runs inside the
:class:`ConcurrencyGuard`, so callers never observe a grid that is halfway
through a resize or a reload. Store and file I/O is pushed to a worker
thread with :func:`asyncio.to_thread` while the guard is held.

Mutating operations return the :class:`CellChange` entries they emitted;
the same entries are also published to ``service.notifier``.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path

from spreadsheet_engine.cells import (
    Cell,
    CellAddress,
    CellChange,
    CellFormatting,
    PersistedRow,
)
from spreadsheet_engine.services.change_notifier import ChangeNotifier
from spreadsheet_engine.services.concurrency import ConcurrencyGuard
from spreadsheet_engine.services.file_operations import (
    FileOperations,
    parse_export,
    serialize_rows,
)
from spreadsheet_engine.services.grid import Grid
from spreadsheet_engine.services.persistence import PersistenceGateway
from spreadsheet_engine.utils.exceptions import ValidationError
from spreadsheet_engine.utils.logging import get_logger

logger = get_logger(__name__)

FormattingToggle = Callable[[CellFormatting], CellFormatting]


class SpreadsheetService:
    """Serialized access to one spreadsheet and its persistent store."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        grid: Grid | None = None,
        guard: ConcurrencyGuard | None = None,
        file_operations: FileOperations | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            gateway: Store used by save and reload.
            grid: Grid to operate on; a default 10x10 grid when omitted.
            guard: Exclusive section shared by all operations.
            file_operations: Export file reader/writer.
        """
        self._gateway = gateway
        self._grid = grid or Grid()
        self._guard = guard or ConcurrencyGuard()
        self._files = file_operations or FileOperations()

    @property
    def notifier(self) -> ChangeNotifier:
        return self._grid.notifier

    @property
    def guard(self) -> ConcurrencyGuard:
        return self._guard

    @property
    def row_count(self) -> int:
        return self._grid.row_count

    @property
    def column_count(self) -> int:
        return self._grid.column_count

    async def initialize(self) -> list[CellChange]:
        """Create the store schema and load whatever was saved before."""
        async with self._guard.exclusive("initialize"):
            await asyncio.to_thread(self._gateway.create_schema)
            rows = await asyncio.to_thread(self._gateway.load)
            changes = self._grid.load_from(rows)
        logger.info(
            "Spreadsheet initialized from store",
            cells=len(rows),
            rows=self.row_count,
            columns=self.column_count,
        )
        return changes

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_cell(self, address: CellAddress) -> Cell:
        async with self._guard.exclusive("get_cell"):
            return self._grid.get(address)

    async def get_cells(self) -> list[Cell]:
        """All cells, row-major."""
        async with self._guard.exclusive("get_cells"):
            return list(self._grid)

    async def snapshot(self) -> list[PersistedRow]:
        async with self._guard.exclusive("snapshot"):
            return self._grid.snapshot()

    async def search(self, text: str) -> list[CellAddress]:
        """Find cells whose display value contains ``text`` (case-insensitive).

        Raises:
            ValidationError: If ``text`` is blank.
        """
        if not text or text.isspace():
            raise ValidationError("Search text must not be blank", field="q")
        async with self._guard.exclusive("search"):
            matches = self._grid.find(text)
        logger.debug("Search completed", query=text, matches=len(matches))
        return matches

    # =========================================================================
    # Cell edits
    # =========================================================================

    async def set_cell_value(
        self, address: CellAddress, raw_input: str
    ) -> list[CellChange]:
        async with self._guard.exclusive("set_cell_value"):
            return self._grid.set_value(address, raw_input)

    async def update_cell_formatting(
        self, address: CellAddress, formatting: CellFormatting
    ) -> list[CellChange]:
        async with self._guard.exclusive("update_cell_formatting"):
            return self._grid.set_formatting(address, formatting)

    async def toggle_bold(self, address: CellAddress) -> list[CellChange]:
        return await self._toggle(
            "toggle_bold", address, lambda f: f.with_bold(not f.bold)
        )

    async def toggle_italic(self, address: CellAddress) -> list[CellChange]:
        return await self._toggle(
            "toggle_italic", address, lambda f: f.with_italic(not f.italic)
        )

    async def toggle_underline(self, address: CellAddress) -> list[CellChange]:
        return await self._toggle(
            "toggle_underline", address, lambda f: f.with_underline(not f.underlined)
        )

    async def _toggle(
        self, name: str, address: CellAddress, flip: FormattingToggle
    ) -> list[CellChange]:
        # read and write under one admission so concurrent toggles cannot cancel
        async with self._guard.exclusive(name):
            current = self._grid.get(address).value.formatting
            return self._grid.set_formatting(address, flip(current))

    # =========================================================================
    # Structural edits
    # =========================================================================

    async def add_row(self) -> list[CellChange]:
        return await self._guard.run_exclusive(self._grid.add_row, name="add_row")

    async def add_column(self) -> list[CellChange]:
        return await self._guard.run_exclusive(
            self._grid.add_column, name="add_column"
        )

    async def remove_last_row(self) -> list[CellChange]:
        return await self._guard.run_exclusive(
            self._grid.remove_last_row, name="remove_last_row"
        )

    async def remove_last_column(self) -> list[CellChange]:
        return await self._guard.run_exclusive(
            self._grid.remove_last_column, name="remove_last_column"
        )

    async def clear(self) -> list[CellChange]:
        """Start a new sheet: default size, every cell empty."""
        return await self._guard.run_exclusive(self._grid.clear, name="clear")

    async def load_cells(self, rows: list[PersistedRow]) -> list[CellChange]:
        """Replace the grid with ``rows`` without touching the store."""
        return await self._guard.run_exclusive(
            self._grid.load_from, rows, name="load_cells"
        )

    # =========================================================================
    # Store
    # =========================================================================

    async def save_changes(self) -> int:
        """Commit the grid snapshot to the store, replacing what was there.

        The grid is left as it is when the store raises.

        Raises:
            PersistenceError: If the store transaction failed.
        """
        async with self._guard.exclusive("save_changes"):
            rows = self._grid.snapshot()
            return await asyncio.to_thread(self._gateway.save, rows)

    async def reload_from_store(self) -> list[CellChange]:
        """Discard unsaved edits and rebuild the grid from the store.

        Raises:
            PersistenceError: If the store cannot be read; the grid is unchanged.
        """
        async with self._guard.exclusive("reload_from_store"):
            rows = await asyncio.to_thread(self._gateway.load)
            return self._grid.load_from(rows)

    # =========================================================================
    # Export files
    # =========================================================================

    async def export_to_file(self, path: str | Path) -> int:
        async with self._guard.exclusive("export_to_file"):
            rows = self._grid.snapshot()
            return await asyncio.to_thread(self._files.save_to_file, path, rows)

    async def import_from_file(self, path: str | Path) -> list[CellChange]:
        """Replace the grid with the contents of an export file.

        Raises:
            FileFormatError: If the file is unreadable, malformed or of an
                unsupported version; the grid is unchanged.
        """
        async with self._guard.exclusive("import_from_file"):
            rows = await asyncio.to_thread(self._files.load_from_file, path)
            return self._grid.load_from(rows)

    async def export_content(self) -> str:
        """Export document for the current grid, as a string."""
        async with self._guard.exclusive("export_content"):
            return serialize_rows(self._grid.snapshot())

    async def import_content(
        self, content: bytes, filename: str | None = None
    ) -> list[CellChange]:
        """Like :meth:`import_from_file` for content already in memory."""
        rows = parse_export(content, file_path=filename)
        async with self._guard.exclusive("import_content"):
            changes = self._grid.load_from(rows)
        logger.info("Export content imported", cells=len(rows), filename=filename)
        return changes
