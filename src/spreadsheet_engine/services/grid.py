"""Rectangular cell grid with structural edits.

Cells are stored in one flat, row-major list of fixed stride
(``rows * columns``). Every resize builds a new list at the new size and
moves surviving cells across, so no code path can leave the grid jagged.

Every mutating method returns the :class:`CellChange` entries it emitted,
in addition to publishing them to the grid's :class:`ChangeNotifier`.
Changes are emitted after the grid's internal state has been updated.
"""

from collections.abc import Iterable, Iterator

from spreadsheet_engine.cells import (
    FORMULA_SIGIL,
    Cell,
    CellAddress,
    CellChange,
    CellFormatting,
    CellValue,
    PersistedRow,
)
from spreadsheet_engine.services.change_notifier import ChangeNotifier
from spreadsheet_engine.services.formula_evaluator import FormulaEvaluator
from spreadsheet_engine.utils.exceptions import OutOfBoundsError
from spreadsheet_engine.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ROWS = 10
DEFAULT_COLUMNS = 10
MAX_COLUMNS = 26
MIN_ROWS = 2
MIN_COLUMNS = 1


class Grid:
    """The rectangular collection of cells.

    Invariants:
    - every row has ``column_count`` cells
    - shrinking never goes below ``MIN_ROWS`` rows or ``MIN_COLUMNS`` columns
    - growing never goes above ``MAX_COLUMNS`` columns
    """

    def __init__(
        self,
        notifier: ChangeNotifier | None = None,
        evaluator: FormulaEvaluator | None = None,
    ) -> None:
        self.notifier = notifier or ChangeNotifier(buffer_changes=False)
        self._evaluator = evaluator or FormulaEvaluator()
        self._row_count = 0
        self._column_count = 0
        self._cells: list[Cell] = []
        self._rebuild(DEFAULT_ROWS, DEFAULT_COLUMNS, keep_cells=False)

    # =========================================================================
    # Reads
    # =========================================================================

    @property
    def row_count(self) -> int:
        return self._row_count

    @property
    def column_count(self) -> int:
        return self._column_count

    def get(self, address: CellAddress) -> Cell:
        """Return the cell at ``address``.

        Raises:
            OutOfBoundsError: If the address is outside the current grid.
        """
        if address.row >= self._row_count or address.column >= self._column_count:
            raise OutOfBoundsError(
                address.row, address.column, self._row_count, self._column_count
            )
        return self._cells[address.row * self._column_count + address.column]

    def __iter__(self) -> Iterator[Cell]:
        """Iterate over all cells in row-major order."""
        return iter(list(self._cells))

    def rows(self) -> list[list[Cell]]:
        stride = self._column_count
        return [
            self._cells[start : start + stride]
            for start in range(0, len(self._cells), stride)
        ]

    def snapshot(self) -> list[PersistedRow]:
        """Return every cell with content or formatting, row-major."""
        return [
            PersistedRow.from_cell(cell)
            for cell in self._cells
            if not cell.value.is_default
        ]

    def find(self, text: str) -> list[CellAddress]:
        """Addresses whose display value contains ``text``, case-insensitively."""
        needle = text.casefold()
        return [
            cell.address
            for cell in self._cells
            if cell.display_value and needle in cell.display_value.casefold()
        ]

    # =========================================================================
    # Cell edits
    # =========================================================================

    def set_value(self, address: CellAddress, raw_input: str) -> list[CellChange]:
        """Classify and assign user input to a cell, keeping its formatting.

        Blank input empties the cell, input starting with ``=`` is evaluated
        as a formula, anything else is stored as text.
        """
        cell = self.get(address)
        formatting = cell.value.formatting

        if not raw_input or raw_input.isspace():
            value = CellValue.empty(formatting)
        elif raw_input.startswith(FORMULA_SIGIL):
            result = self._evaluator.evaluate(raw_input[len(FORMULA_SIGIL) :], self)
            value = CellValue.from_formula(raw_input, result, formatting)
        else:
            value = CellValue.from_text(raw_input, formatting)

        return self._emit([self._assign(cell, value)])

    def set_formatting(
        self, address: CellAddress, formatting: CellFormatting
    ) -> list[CellChange]:
        """Replace a cell's formatting, keeping its display and formula."""
        cell = self.get(address)
        return self._emit([self._assign(cell, cell.value.with_formatting(formatting))])

    # =========================================================================
    # Structural edits
    # =========================================================================

    def add_row(self) -> list[CellChange]:
        """Append an empty row; notifies each new cell."""
        first_new = len(self._cells)
        self._rebuild(self._row_count + 1, self._column_count)
        return self._emit([self._change(cell) for cell in self._cells[first_new:]])

    def add_column(self) -> list[CellChange]:
        """Append an empty column unless the column cap is reached.

        Notifies every cell, as column headers shift for the presentation.
        """
        if self._column_count >= MAX_COLUMNS:
            logger.debug("Column cap reached", column_count=self._column_count)
            return []
        self._rebuild(self._row_count, self._column_count + 1)
        return self._emit_all()

    def remove_last_row(self) -> list[CellChange]:
        """Drop the last row unless only ``MIN_ROWS`` remain."""
        if self._row_count <= MIN_ROWS:
            logger.debug("Row floor reached", row_count=self._row_count)
            return []
        self._rebuild(self._row_count - 1, self._column_count)
        return self._emit_all()

    def remove_last_column(self) -> list[CellChange]:
        """Drop the last column unless only ``MIN_COLUMNS`` remain."""
        if self._column_count <= MIN_COLUMNS:
            logger.debug("Column floor reached", column_count=self._column_count)
            return []
        self._rebuild(self._row_count, self._column_count - 1)
        return self._emit_all()

    def clear(self) -> list[CellChange]:
        """Reset to the default dimensions with every cell empty."""
        self._rebuild(DEFAULT_ROWS, DEFAULT_COLUMNS, keep_cells=False)
        return self._emit_all()

    def load_from(self, rows: Iterable[PersistedRow]) -> list[CellChange]:
        """Replace the whole grid with persisted rows.

        The grid is sized to cover every row and at least the default
        dimensions. Cells without a persisted row are empty. When two rows
        share an address the later one wins.
        """
        placed = [(CellAddress(r.row, r.column), r.to_value()) for r in rows]
        row_count = max([DEFAULT_ROWS, *(a.row + 1 for a, _ in placed)])
        column_count = max([DEFAULT_COLUMNS, *(a.column + 1 for a, _ in placed)])

        self._rebuild(row_count, column_count, keep_cells=False)
        for address, value in placed:
            self._assign(self.get(address), value)

        logger.debug(
            "Grid loaded",
            cells=len(placed),
            rows=self._row_count,
            columns=self._column_count,
        )
        return self._emit_all()

    # =========================================================================
    # Internals
    # =========================================================================

    def _rebuild(
        self, row_count: int, column_count: int, keep_cells: bool = True
    ) -> None:
        old_cells = self._cells
        old_columns = self._column_count
        old_rows = self._row_count

        cells: list[Cell] = []
        for row in range(row_count):
            for column in range(column_count):
                if keep_cells and row < old_rows and column < old_columns:
                    cells.append(old_cells[row * old_columns + column])
                else:
                    cells.append(Cell(CellAddress(row, column)))

        self._cells = cells
        self._row_count = row_count
        self._column_count = column_count

    @staticmethod
    def _assign(cell: Cell, value: CellValue) -> CellChange:
        cell._value = value
        return CellChange(cell.address, value)

    @staticmethod
    def _change(cell: Cell) -> CellChange:
        return CellChange(cell.address, cell.value)

    def _emit_all(self) -> list[CellChange]:
        return self._emit([self._change(cell) for cell in self._cells])

    def _emit(self, changes: list[CellChange]) -> list[CellChange]:
        self.notifier.publish_all(changes)
        return changes
