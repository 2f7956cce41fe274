#!/usr/bin/env python3
"""Character-grid renderer for the simulated 16x2 LCD.

The renderer behaves like an HD44780-style controller fed with cursor moves
and text writes: every frame starts from a blank grid, each placement writes
left to right from its origin, and anything past the last column is dropped.
Nothing ever wraps to the next row.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

LCD_ROWS = 2
LCD_COLS = 16
BLANK_GLYPH = " "
# largest rows or cols a render request may ask for
MAX_GRID_DIM = 256

Matrix = List[List[str]]


class InvalidGridSize(ValueError):
    """Raised when a render request asks for a grid that cannot exist."""


@dataclass(frozen=True)
class Placement:
    """A text fragment anchored at ``(row, col)``."""

    row: int
    col: int
    text: str


def _is_index(value: Any) -> bool:
    # bool is an int subclass but never a meaningful cursor position
    return isinstance(value, int) and not isinstance(value, bool)


def blank_matrix(rows: int = LCD_ROWS, cols: int = LCD_COLS) -> Matrix:
    return [[BLANK_GLYPH] * cols for _ in range(rows)]


def render_grid(
    placements: Iterable[Placement],
    rows: int = LCD_ROWS,
    cols: int = LCD_COLS,
) -> Matrix:
    """Apply ``placements`` in order onto a fresh ``rows`` x ``cols`` grid.

    A placement whose origin falls outside the grid (negative, too large or
    not an integer) is skipped as a whole. Later placements overwrite earlier
    ones cell by cell.
    """
    screen = blank_matrix(rows, cols)
    for placement in placements:
        row, col = placement.row, placement.col
        if not (_is_index(row) and _is_index(col)):
            continue
        if row < 0 or col < 0 or row >= rows or col >= cols:
            continue
        cursor = col
        for char in str(placement.text):
            if cursor >= cols:
                break
            screen[row][cursor] = char
            cursor += 1
    return screen


def matrix_lines(matrix: Sequence[Sequence[str]]) -> List[str]:
    return ["".join(row) for row in matrix]


def placement_from_dict(data: Mapping[str, Any]) -> Optional[Placement]:
    """Read ``{row, col, text}`` or ``{cursor: {x, y}, text}``; None if unusable."""
    if not isinstance(data, Mapping):
        return None
    text = data.get("text")
    if text is None:
        return None
    cursor = data.get("cursor")
    if isinstance(cursor, Mapping):
        row, col = cursor.get("y"), cursor.get("x")
    else:
        row, col = data.get("row"), data.get("col")
    return Placement(row=row, col=col, text=str(text))


def _grid_dimension(value: Any, default: int, label: str) -> int:
    if value is None:
        return default
    if not _is_index(value) or value <= 0:
        raise InvalidGridSize(f"{label} must be a positive integer")
    if value > MAX_GRID_DIM:
        raise InvalidGridSize(f"{label} must be at most {MAX_GRID_DIM}")
    return value


def render_payload(payload: Mapping[str, Any]) -> Dict[str, Matrix]:
    """Render a ``{rows, cols, placements}`` request into ``{matrix}``."""
    rows = _grid_dimension(payload.get("rows"), LCD_ROWS, "rows")
    cols = _grid_dimension(payload.get("cols"), LCD_COLS, "cols")
    entries = payload.get("placements") or []
    if not isinstance(entries, (list, tuple)):
        entries = []
    placements = []
    for entry in entries:
        placement = placement_from_dict(entry)
        if placement is not None:
            placements.append(placement)
    return {"matrix": render_grid(placements, rows, cols)}


__all__ = [
    "BLANK_GLYPH",
    "InvalidGridSize",
    "LCD_COLS",
    "LCD_ROWS",
    "MAX_GRID_DIM",
    "Matrix",
    "Placement",
    "blank_matrix",
    "matrix_lines",
    "placement_from_dict",
    "render_grid",
    "render_payload",
]
