"""
Layout Context

Responsibilities:
- Computes row/column decomposition of a figure grid
- Assigns caption labels to figures in row-major order

Owns: Grid geometry
Never: Produces markup or touches the filesystem
"""

from figreport.contexts.layout.grid import (
    GridPlacement,
    caption_label,
    column_width,
    grid_placements,
    numrows,
    row_spans,
)

__all__ = [
    "GridPlacement",
    "caption_label",
    "column_width",
    "grid_placements",
    "numrows",
    "row_spans",
]
