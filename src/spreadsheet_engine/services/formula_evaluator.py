"""Formula evaluation against the current grid.

A formula body (the text after the leading ``=``) is tokenized into
numbers, cell references, operators and parentheses, then evaluated by a
recursive-descent parser in floating point:

    expression := term (("+" | "-") term)*
    term       := factor (("*" | "/") factor)*
    factor     := ("+" | "-") factor | NUMBER | REFERENCE | "(" expression ")"

Cell references resolve to the referenced cell's cached display value when
it is numeric and the address is inside the grid, and to 0 otherwise.
Reference letters are case-insensitive: ``=b2`` reads the same cell as
``=B2``.
References are resolved exactly once: a referenced formula contributes its
cached result, never its source, so cycles cannot recurse.

Evaluation is total. Every failure (syntax error, division by zero,
overflow, nesting too deep to parse) yields the ``#ERROR`` display value
instead of an exception.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from spreadsheet_engine.cells import ERROR_DISPLAY, CellAddress, column_index
from spreadsheet_engine.utils.logging import get_logger

if TYPE_CHECKING:
    from spreadsheet_engine.services.grid import Grid

logger = get_logger(__name__)

_NUMERIC_DISPLAY = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*$")
_OPERATORS = frozenset("+-*/")
_INTEGRAL_DISPLAY_LIMIT = 1e15


class TokenType(str, Enum):
    """Lexical category of a formula token."""

    NUMBER = "number"
    REFERENCE = "reference"
    OPERATOR = "operator"
    LPAREN = "lparen"
    RPAREN = "rparen"
    END = "end"


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str
    position: int


class FormulaSyntaxError(Exception):
    """Raised internally for malformed formulas; never escapes evaluate()."""


def tokenize(body: str) -> list[Token]:
    """Split a formula body into tokens, ending with an END token.

    Reference tokens keep the letter case they were written in;
    :func:`column_index` ignores their case when resolving.

    Raises:
        FormulaSyntaxError: On any character that cannot start a token.
    """
    tokens: list[Token] = []
    pos = 0
    length = len(body)

    while pos < length:
        char = body[pos]

        if char.isspace():
            pos += 1
            continue

        if char.isascii() and char.isalpha():
            start = pos
            while pos < length and body[pos].isascii() and body[pos].isalpha():
                pos += 1
            letters_end = pos
            while pos < length and body[pos].isascii() and body[pos].isdigit():
                pos += 1
            if pos == letters_end:
                raise FormulaSyntaxError(
                    f"Expected row number after {body[start:pos]!r} at {start}"
                )
            tokens.append(Token(TokenType.REFERENCE, body[start:pos], start))
            continue

        if (char.isascii() and char.isdigit()) or char == ".":
            start = pos
            seen_point = False
            while pos < length and (
                (body[pos].isascii() and body[pos].isdigit())
                or (body[pos] == "." and not seen_point)
            ):
                seen_point = seen_point or body[pos] == "."
                pos += 1
            text = body[start:pos]
            if text == ".":
                raise FormulaSyntaxError(f"Lone decimal point at {start}")
            tokens.append(Token(TokenType.NUMBER, text, start))
            continue

        if char in _OPERATORS:
            tokens.append(Token(TokenType.OPERATOR, char, pos))
        elif char == "(":
            tokens.append(Token(TokenType.LPAREN, char, pos))
        elif char == ")":
            tokens.append(Token(TokenType.RPAREN, char, pos))
        else:
            raise FormulaSyntaxError(f"Unexpected character {char!r} at {pos}")
        pos += 1

    tokens.append(Token(TokenType.END, "", length))
    return tokens


def format_result(value: float) -> str:
    """Render a numeric result the way cells display it.

    Integral values drop the fractional part (``8`` rather than ``8.0``);
    other values keep up to 15 significant digits.
    """
    if value == int(value) and abs(value) < _INTEGRAL_DISPLAY_LIMIT:
        return str(int(value))
    return format(value, ".15g")


def parse_numeric_display(display: str | None) -> float | None:
    """Return the number shown by a display value, or None if it is not one."""
    if display is None or not _NUMERIC_DISPLAY.match(display):
        return None
    return float(display)


class _Parser:
    """Recursive-descent evaluator over a token list."""

    def __init__(self, tokens: list[Token], grid: Grid) -> None:
        self._tokens = tokens
        self._index = 0
        self._grid = grid

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def parse(self) -> float:
        value = self._expression()
        token = self._peek()
        if token.type is not TokenType.END:
            raise FormulaSyntaxError(
                f"Unexpected {token.text!r} at {token.position}"
            )
        return value

    def _expression(self) -> float:
        value = self._term()
        while self._peek().type is TokenType.OPERATOR and self._peek().text in "+-":
            operator = self._advance().text
            right = self._term()
            value = value + right if operator == "+" else value - right
        return value

    def _term(self) -> float:
        value = self._factor()
        while self._peek().type is TokenType.OPERATOR and self._peek().text in "*/":
            operator = self._advance().text
            right = self._factor()
            if operator == "*":
                value = value * right
            elif right == 0:
                raise ZeroDivisionError("division by zero")
            else:
                value = value / right
        return value

    def _factor(self) -> float:
        token = self._advance()

        if token.type is TokenType.OPERATOR and token.text in "+-":
            operand = self._factor()
            return -operand if token.text == "-" else operand

        if token.type is TokenType.NUMBER:
            return float(token.text)

        if token.type is TokenType.REFERENCE:
            return self._resolve(token.text)

        if token.type is TokenType.LPAREN:
            value = self._expression()
            closing = self._advance()
            if closing.type is not TokenType.RPAREN:
                raise FormulaSyntaxError(
                    f"Expected ')' at {closing.position}, found {closing.text!r}"
                )
            return value

        raise FormulaSyntaxError(
            f"Unexpected {token.text or 'end of formula'!r} at {token.position}"
        )

    def _resolve(self, reference: str) -> float:
        split = len(reference.rstrip("0123456789"))
        column = column_index(reference[:split])
        row = int(reference[split:]) - 1

        if not (
            0 <= row < self._grid.row_count and 0 <= column < self._grid.column_count
        ):
            return 0.0

        display = self._grid.get(CellAddress(row, column)).display_value
        number = parse_numeric_display(display)
        return number if number is not None else 0.0


class FormulaEvaluator:
    """Turns formula bodies into display strings."""

    def evaluate(self, body: str, grid: Grid) -> str:
        """Evaluate ``body`` (without the ``=`` sigil) against ``grid``.

        Never raises; all failures produce ``#ERROR``.
        """
        try:
            result = _Parser(tokenize(body), grid).parse()
            if not math.isfinite(result):
                raise OverflowError("non-finite result")
            return format_result(result)
        except (FormulaSyntaxError, ArithmeticError, RecursionError, ValueError) as e:
            logger.debug("Formula evaluated to error", formula=body, error=str(e))
            return ERROR_DISPLAY
