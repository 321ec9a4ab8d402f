"""Value types describing cells, their contents and their persisted form."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum

from spreadsheet_engine.utils.exceptions import InvalidCellReferenceError

FORMULA_SIGIL = "="
ERROR_DISPLAY = "#ERROR"

_REFERENCE_PATTERN = re.compile(r"^([A-Za-z]+)([0-9]+)$")


def column_label(index: int) -> str:
    """Return the spreadsheet label of a zero-based column index.

    Bijective base-26 with digits A-Z and no zero digit:
    0 -> "A", 25 -> "Z", 26 -> "AA", 701 -> "ZZ".
    """
    if index < 0:
        raise ValueError(f"Column index must be non-negative, got {index}")
    label = ""
    dividend = index + 1
    while dividend > 0:
        dividend, remainder = divmod(dividend - 1, 26)
        label = chr(ord("A") + remainder) + label
    return label


def column_index(label: str) -> int:
    """Inverse of :func:`column_label`; letters are case-insensitive."""
    if not label or not label.isascii() or not label.isalpha():
        raise ValueError(f"Invalid column label: {label!r}")
    index = 0
    for char in label.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


@dataclass(frozen=True, order=True)
class CellAddress:
    """Zero-based (row, column) position of a cell."""

    row: int
    column: int

    def __post_init__(self) -> None:
        if self.row < 0 or self.column < 0:
            raise ValueError(
                f"Cell address must be non-negative, got ({self.row}, {self.column})"
            )

    @property
    def column_label(self) -> str:
        return column_label(self.column)

    @property
    def reference(self) -> str:
        """A1-style reference, e.g. row 2 column 1 -> "B3"."""
        return f"{self.column_label}{self.row + 1}"

    @classmethod
    def from_reference(cls, reference: str) -> CellAddress:
        """Parse an A1-style reference such as ``"B3"``.

        Raises:
            InvalidCellReferenceError: If the text is not letters followed by
                a 1-based row number.
        """
        match = _REFERENCE_PATTERN.match(reference.strip())
        if match is None or int(match.group(2)) < 1:
            raise InvalidCellReferenceError(reference)
        return cls(int(match.group(2)) - 1, column_index(match.group(1)))

    def __str__(self) -> str:
        return self.reference


@dataclass(frozen=True)
class CellFormatting:
    """Text formatting flags attached to a cell value."""

    bold: bool = False
    italic: bool = False
    underlined: bool = False

    def with_bold(self, bold: bool) -> CellFormatting:
        return replace(self, bold=bold)

    def with_italic(self, italic: bool) -> CellFormatting:
        return replace(self, italic=italic)

    def with_underline(self, underlined: bool) -> CellFormatting:
        return replace(self, underlined=underlined)


class CellValueType(str, Enum):
    """Kind of content held by a cell."""

    EMPTY = "empty"
    TEXT = "text"
    FORMULA = "formula"


@dataclass(frozen=True)
class CellValue:
    """Immutable content of a cell.

    A formula value always carries the display string produced when it was
    assigned (the evaluated result or ``#ERROR``); it is never recomputed
    lazily. Build instances through :meth:`empty`, :meth:`from_text` and
    :meth:`from_formula` rather than the constructor.
    """

    type: CellValueType = CellValueType.EMPTY
    display_value: str | None = None
    formula: str | None = None
    formatting: CellFormatting = field(default_factory=CellFormatting)

    @classmethod
    def empty(cls, formatting: CellFormatting | None = None) -> CellValue:
        return cls(formatting=formatting or CellFormatting())

    @classmethod
    def from_text(
        cls, text: str, formatting: CellFormatting | None = None
    ) -> CellValue:
        return cls(
            type=CellValueType.TEXT,
            display_value=text,
            formatting=formatting or CellFormatting(),
        )

    @classmethod
    def from_formula(
        cls,
        source: str,
        result: str,
        formatting: CellFormatting | None = None,
    ) -> CellValue:
        """Formula value; ``source`` keeps the leading sigil as typed."""
        return cls(
            type=CellValueType.FORMULA,
            display_value=result,
            formula=source,
            formatting=formatting or CellFormatting(),
        )

    @property
    def is_empty(self) -> bool:
        return self.type is CellValueType.EMPTY

    @property
    def is_default(self) -> bool:
        """True for an empty value with default formatting; nothing to persist."""
        return self == CellValue()

    def with_formatting(self, formatting: CellFormatting) -> CellValue:
        return replace(self, formatting=formatting)


class Cell:
    """Binding of a fixed address to its current value.

    Cells are owned by a :class:`~spreadsheet_engine.services.grid.Grid`;
    only the grid replaces values, so every replacement is notified.
    """

    __slots__ = ("_address", "_value")

    def __init__(self, address: CellAddress, value: CellValue | None = None) -> None:
        self._address = address
        self._value = value or CellValue.empty()

    @property
    def address(self) -> CellAddress:
        return self._address

    @property
    def value(self) -> CellValue:
        return self._value

    @property
    def display_value(self) -> str | None:
        return self._value.display_value

    def __repr__(self) -> str:
        return f"Cell({self._address.reference}, {self._value!r})"


@dataclass(frozen=True)
class CellChange:
    """A cell's new state, delivered to change subscribers."""

    address: CellAddress
    value: CellValue


@dataclass(frozen=True)
class PersistedRow:
    """Durable projection of a cell with content or formatting."""

    row: int
    column: int
    display_value: str | None
    formula: str | None = None
    bold: bool = False
    italic: bool = False
    underlined: bool = False

    @classmethod
    def from_cell(cls, cell: Cell) -> PersistedRow:
        value = cell.value
        return cls(
            row=cell.address.row,
            column=cell.address.column,
            display_value=value.display_value,
            formula=value.formula,
            bold=value.formatting.bold,
            italic=value.formatting.italic,
            underlined=value.formatting.underlined,
        )

    @property
    def formatting(self) -> CellFormatting:
        return CellFormatting(
            bold=self.bold, italic=self.italic, underlined=self.underlined
        )

    def to_value(self) -> CellValue:
        """Rebuild the cell value; the cached formula result is trusted.

        A row without display or formula is a formatted blank cell.
        """
        if self.formula is None and self.display_value is None:
            return CellValue.empty(self.formatting)
        if self.formula is not None:
            return CellValue.from_formula(
                self.formula, self.display_value or "", self.formatting
            )
        return CellValue.from_text(self.display_value or "", self.formatting)
