"""
Data layer module: tagged cells and the tabular dataset built from a selected range.
"""
from sheet_analyst.data.dataset import (
    Cell,
    CellKind,
    TabularDataset,
    column_letter,
    column_index,
)

__all__ = [
    "Cell",
    "CellKind",
    "TabularDataset",
    "column_letter",
    "column_index",
]
