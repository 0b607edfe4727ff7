"""
Tabular dataset model for a selected spreadsheet range.

Raw cell values are tagged once, when the dataset is built, so the analysis
engines never re-inspect Python types at the point of use:

- int / float / numpy numbers -> NUMBER (NaN stays NUMBER, excluded from samples)
- bool                         -> TEXT (a checkbox is not a quantity)
- str                          -> TEXT ('' counts as missing)
- date / datetime              -> DATE
- None                         -> EMPTY

Numeric-column detection looks at the first data row only. A column that is
blank in row 1 but numeric further down is treated as non-numeric.
"""
import json
import logging
import math
import numbers
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from sheet_analyst.core.error_taxonomy import ErrorCategory, InputShapeError

logger = logging.getLogger(__name__)


class CellKind(Enum):
    NUMBER = "number"
    TEXT = "text"
    DATE = "date"
    EMPTY = "empty"


@dataclass(frozen=True)
class Cell:
    """A single tagged spreadsheet value."""
    kind: CellKind
    value: Any = None

    @classmethod
    def from_raw(cls, raw: Any) -> "Cell":
        if raw is None:
            return cls(CellKind.EMPTY, None)
        if isinstance(raw, bool):
            return cls(CellKind.TEXT, raw)
        if isinstance(raw, numbers.Integral):
            return cls(CellKind.NUMBER, int(raw))
        if isinstance(raw, numbers.Real):
            return cls(CellKind.NUMBER, float(raw))
        if isinstance(raw, str):
            return cls(CellKind.TEXT, raw)
        if isinstance(raw, (date, datetime)):
            return cls(CellKind.DATE, raw)
        raise InputShapeError(
            f"Unsupported cell value of type {type(raw).__name__}",
            category=ErrorCategory.UNSUPPORTED_CELL_TYPE,
            context={"type": type(raw).__name__},
        )

    @property
    def is_number(self) -> bool:
        return self.kind == CellKind.NUMBER

    @property
    def is_missing(self) -> bool:
        """Empty cells and empty strings both count as missing."""
        return self.kind == CellKind.EMPTY or (self.kind == CellKind.TEXT and self.value == "")

    @property
    def numeric_value(self) -> Optional[float]:
        """The number held by the cell, or None for non-numeric and NaN cells."""
        if self.kind != CellKind.NUMBER:
            return None
        if isinstance(self.value, float) and math.isnan(self.value):
            return None
        return self.value

    def serialize(self) -> Any:
        """JSON-ready representation used for duplicate-row detection and output."""
        if self.kind == CellKind.EMPTY:
            return None
        if self.kind == CellKind.DATE:
            return self.value.isoformat()
        if self.kind == CellKind.NUMBER:
            value = self.value
            if isinstance(value, float):
                if math.isnan(value):
                    return None
                if value.is_integer():
                    return int(value)
            return value
        return self.value


@dataclass(frozen=True)
class TabularDataset:
    """
    Immutable row/column grid of tagged cells.

    Attributes:
        address: Opaque range label (e.g. "Sheet1!A1:B5"), passed through for display
        rows: Tagged cells, all rows the same length
        row_count: Number of rows
        column_count: Number of columns
    """
    address: str
    rows: Tuple[Tuple[Cell, ...], ...]
    row_count: int
    column_count: int

    @classmethod
    def from_values(
        cls,
        values: Sequence[Sequence[Any]],
        address: str = "",
        row_count: Optional[int] = None,
        column_count: Optional[int] = None,
    ) -> "TabularDataset":
        """
        Build a dataset from a raw grid.

        Raises:
            InputShapeError: when values is missing, rows are ragged, the declared
                counts disagree with the grid, or a cell has an unsupported type.
        """
        if values is None:
            raise InputShapeError("Selected data is required", category=ErrorCategory.MISSING_DATASET)

        rows: List[Tuple[Cell, ...]] = []
        width = None
        for row_index, raw_row in enumerate(values):
            if isinstance(raw_row, (str, bytes)) or not isinstance(raw_row, Sequence):
                raise InputShapeError(
                    f"Row {row_index} is not a list of cells",
                    category=ErrorCategory.RAGGED_ROWS,
                    context={"row": row_index},
                )
            if width is None:
                width = len(raw_row)
            elif len(raw_row) != width:
                raise InputShapeError(
                    f"Row {row_index} has {len(raw_row)} cells, expected {width}",
                    category=ErrorCategory.RAGGED_ROWS,
                    context={"row": row_index, "expected": width, "actual": len(raw_row)},
                )
            rows.append(tuple(Cell.from_raw(raw) for raw in raw_row))

        actual_rows = len(rows)
        actual_columns = width or 0
        if row_count is not None and row_count != actual_rows:
            raise InputShapeError(
                f"rowCount {row_count} does not match {actual_rows} rows in values",
                category=ErrorCategory.RAGGED_ROWS,
            )
        if column_count is not None and column_count != actual_columns:
            raise InputShapeError(
                f"columnCount {column_count} does not match {actual_columns} columns in values",
                category=ErrorCategory.RAGGED_ROWS,
            )

        return cls(
            address=address or "",
            rows=tuple(rows),
            row_count=actual_rows,
            column_count=actual_columns,
        )

    # ===================
    # SHAPE
    # ===================

    @property
    def is_empty(self) -> bool:
        return self.row_count == 0 or self.column_count == 0

    @property
    def total_cells(self) -> int:
        return self.row_count * self.column_count

    def has_headers(self) -> bool:
        """Row 0 is a header when it is all text and row 1 holds at least one number."""
        if self.row_count < 2:
            return False
        first, second = self.rows[0], self.rows[1]
        return all(cell.kind == CellKind.TEXT for cell in first) and any(cell.is_number for cell in second)

    def header_labels(self) -> List[str]:
        """Header text when detected, otherwise spreadsheet letters (A, B, ...)."""
        if self.has_headers():
            return [str(cell.value) for cell in self.rows[0]]
        return [column_letter(i) for i in range(self.column_count)]

    # ===================
    # COLUMN ACCESS
    # ===================

    def numeric_columns(self) -> List[int]:
        """Indices of columns whose row-1 cell is a number."""
        if self.row_count < 2:
            return []
        return [i for i, cell in enumerate(self.rows[1]) if cell.is_number]

    def text_columns(self) -> List[int]:
        if self.row_count < 2:
            return []
        return [i for i, cell in enumerate(self.rows[1]) if cell.kind == CellKind.TEXT]

    def column_cells(self, column_index: int, skip_header: bool = True) -> List[Cell]:
        start = 1 if skip_header else 0
        return [row[column_index] for row in self.rows[start:]]

    def numeric_column_values(self, column_index: int, skip_header: bool = True) -> List[float]:
        """Numeric, non-NaN values of one column in row order."""
        values = []
        for cell in self.column_cells(column_index, skip_header=skip_header):
            number = cell.numeric_value
            if number is not None:
                values.append(number)
        return values

    def cell_kinds(self) -> List[str]:
        """Distinct cell kinds present, in first-seen order."""
        seen: List[str] = []
        for row in self.rows:
            for cell in row:
                if cell.kind.value not in seen:
                    seen.append(cell.kind.value)
        return seen

    def missing_count(self) -> int:
        return sum(1 for row in self.rows for cell in row if cell.is_missing)

    def serialized_rows(self) -> List[str]:
        """Stable text form of each row, used for full-row equality."""
        return [
            json.dumps([cell.serialize() for cell in row], separators=(",", ":"))
            for row in self.rows
        ]

    def to_values(self) -> List[List[Any]]:
        return [[cell.serialize() for cell in row] for row in self.rows]

    def to_frame(self) -> pd.DataFrame:
        """DataFrame view; header row becomes the column labels when detected."""
        values = self.to_values()
        if self.has_headers():
            return pd.DataFrame(values[1:], columns=self.header_labels())
        return pd.DataFrame(values, columns=self.header_labels() if self.column_count else None)

    def with_column_factors(self, factors: Dict[int, float], skip_header: bool = True) -> "TabularDataset":
        """Copy of the dataset with numeric data cells of the given columns multiplied."""
        start = 1 if skip_header else 0
        new_rows = []
        for row_index, row in enumerate(self.rows):
            if row_index < start:
                new_rows.append(row)
                continue
            new_row = []
            for col_index, cell in enumerate(row):
                factor = factors.get(col_index)
                if factor is not None and cell.numeric_value is not None:
                    new_row.append(Cell(CellKind.NUMBER, cell.value * factor))
                else:
                    new_row.append(cell)
            new_rows.append(tuple(new_row))
        return TabularDataset(
            address=self.address,
            rows=tuple(new_rows),
            row_count=self.row_count,
            column_count=self.column_count,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "values": self.to_values(),
            "rowCount": self.row_count,
            "columnCount": self.column_count,
        }


def column_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA."""
    letters = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


def column_index(letters: str) -> int:
    """A -> 0, Z -> 25, AA -> 26."""
    result = 0
    for char in letters.upper():
        result = result * 26 + (ord(char) - 64)
    return result - 1
