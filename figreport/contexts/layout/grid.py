"""
Figure Grid Layout

Pure functions that place N figures into rows of a fixed column count.
Rows are filled left-to-right, top-to-bottom; the last row takes whatever
is left over when the figure count does not divide evenly.
"""

from dataclasses import dataclass
from string import ascii_uppercase
from typing import Iterator, List, Tuple


@dataclass(frozen=True)
class GridPlacement:
    """
    Position of one figure in a grid.

    Attributes:
        index: Figure index in the input sequence
        row: Zero-based row
        column: Zero-based column
        label: Caption label (A, B, ..., Z, AA, AB, ...)
    """

    index: int
    row: int
    column: int
    label: str


def _check_grid_args(num_figures: int, num_columns: int) -> None:
    if num_figures < 0:
        raise ValueError(f"num_figures must be >= 0, got {num_figures}")
    if num_columns < 1:
        raise ValueError(f"num_columns must be >= 1, got {num_columns}")


def numrows(num_figures: int, num_columns: int) -> Tuple[int, int]:
    """
    Number of grid rows and size of the partial last row.

    Args:
        num_figures: Number of figures to place (>= 0)
        num_columns: Figures per full row (>= 1)

    Returns:
        Tuple of (rows, remainder); remainder is 0 when every row is full

    Examples:
        >>> numrows(10, 3)
        (4, 1)
        >>> numrows(9, 3)
        (3, 0)
    """
    _check_grid_args(num_figures, num_columns)
    full_rows, remainder = divmod(num_figures, num_columns)
    if remainder == 0:
        return full_rows, 0
    return full_rows + 1, remainder


def row_spans(num_figures: int, num_columns: int) -> Iterator[Tuple[int, int]]:
    """
    Yield the half-open figure index span [start, end) of each row.

    Args:
        num_figures: Number of figures to place
        num_columns: Figures per full row

    Yields:
        (start, end) per row, top to bottom
    """
    nrows, remainder = numrows(num_figures, num_columns)
    start = 0
    for row in range(nrows):
        width = remainder if (row == nrows - 1 and remainder != 0) else num_columns
        yield start, start + width
        start += width


def caption_label(index: int) -> str:
    """
    Caption label for the figure at a zero-based index.

    A..Z cover the first 26 figures; after that labels continue the way
    spreadsheet columns do (AA, AB, ..., AZ, BA, ...).

    Examples:
        >>> caption_label(0)
        'A'
        >>> caption_label(26)
        'AA'
    """
    if index < 0:
        raise ValueError(f"index must be >= 0, got {index}")

    label = ""
    n = index + 1
    while n > 0:
        n, offset = divmod(n - 1, len(ascii_uppercase))
        label = ascii_uppercase[offset] + label
    return label


def grid_placements(num_figures: int, num_columns: int) -> List[GridPlacement]:
    """Row-major placement of every figure in the grid."""
    placements = []
    for row, (start, end) in enumerate(row_spans(num_figures, num_columns)):
        for index in range(start, end):
            placements.append(
                GridPlacement(
                    index=index,
                    row=row,
                    column=index - start,
                    label=caption_label(index),
                )
            )
    return placements


def column_width(num_columns: int) -> float:
    """Fraction of the text width given to each figure in a row."""
    if num_columns < 1:
        raise ValueError(f"num_columns must be >= 1, got {num_columns}")
    return 1.0 / num_columns
