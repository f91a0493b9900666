"""Parquet tiling: interlocking landscape and portrait cells.

The layout works on a *unit* grid (the gcd of the landscape cell's sides)
padded on the top and left so that the diagonal row offsets never produce
negative indices. Each tiling row starts one portrait width further left
than the previous one and walks the repeating landscape/portrait sequence,
claiming free unit rectangles in an occupancy grid. After every portrait
the row's baseline drops by ``portrait_h - landscape_h`` units so the next
landscape lines up with the portrait's bottom edge.

:meth:`ParquetLayout.cells` is the single source of truth for the layout:
the plan counts its visible cells and the placement builder samples them,
so both always see the same tiling.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np

from photo_mosaic.models import (
    GridDimensions,
    PatternInfo,
    PhotoOrientation,
)
from photo_mosaic.patterns import build_parquet_sequence


def _ceil_div(a: int, b: int) -> int:
    return (a + b - 1) // b


class OccupancyGrid:
    """Flat boolean grid of claimed unit cells, indexed ``row * columns + col``."""

    def __init__(self, rows: int, columns: int) -> None:
        if rows < 1 or columns < 1:
            msg = f"Occupancy grid needs at least 1x1 cells, got {rows}x{columns}"
            raise ValueError(msg)
        self.rows = rows
        self.columns = columns
        self._cells = np.zeros(rows * columns, dtype=bool)

    def index(self, row: int, col: int) -> int:
        return row * self.columns + col

    def in_bounds(self, col: int, row: int, width: int, height: int) -> bool:
        return (
            col >= 0 and row >= 0
            and col + width <= self.columns
            and row + height <= self.rows
        )

    def _view(self, col: int, row: int, width: int, height: int) -> np.ndarray:
        return self._cells.reshape(self.rows, self.columns)[
            row:row + height, col:col + width
        ]

    def is_occupied(self, col: int, row: int) -> bool:
        return bool(self._cells[self.index(row, col)])

    def can_place(self, col: int, row: int, width: int, height: int) -> bool:
        """True when the rectangle is inside the grid and entirely free."""
        if not self.in_bounds(col, row, width, height):
            return False
        return not self._view(col, row, width, height).any()

    def mark(self, col: int, row: int, width: int, height: int) -> None:
        if not self.can_place(col, row, width, height):
            msg = f"Cannot claim {width}x{height} units at ({col}, {row})"
            raise ValueError(msg)
        self._view(col, row, width, height)[:] = True

    @property
    def occupied_count(self) -> int:
        return int(self._cells.sum())


@dataclass(frozen=True)
class ParquetCell:
    """One claimed footprint; unit coordinates are occupancy-grid indices."""

    unit_col: int
    unit_row: int
    width_units: int
    height_units: int
    orientation: PhotoOrientation
    x: int
    y: int
    width: int
    height: int
    visible: bool


@dataclass(frozen=True)
class ParquetLayout:
    unit: int
    canvas_width: int
    canvas_height: int
    landscape_units: tuple[int, int]
    portrait_units: tuple[int, int]
    sequence: tuple[PhotoOrientation, ...]
    delta_units: int
    cycle_width_units: int
    top_padding: int
    left_padding: int
    row_count: int
    total_columns: int
    total_rows: int

    @classmethod
    def from_grid(cls, grid: GridDimensions, pattern: PatternInfo) -> ParquetLayout:
        unit = grid.base_cell_pixels
        lw = max(1, grid.landscape_cell_width // unit)
        lh = max(1, grid.landscape_cell_height // unit)
        pw = max(1, grid.portrait_cell_width // unit)
        ph = max(1, grid.portrait_cell_height // unit)

        delta = max(0, ph - lh)
        cycle_width = max(
            1, pattern.landscape_count * lw + pattern.portrait_count * pw,
        )
        cycles_across = max(1, _ceil_div(grid.unit_columns, cycle_width)) + 1
        top_padding = delta * max(0, pattern.portrait_count * cycles_across)
        row_count = max(1, _ceil_div(grid.unit_rows + top_padding, lh))
        left_padding = pw * row_count

        return cls(
            unit=unit,
            canvas_width=grid.width,
            canvas_height=grid.height,
            landscape_units=(lw, lh),
            portrait_units=(pw, ph),
            sequence=tuple(build_parquet_sequence(pattern)),
            delta_units=delta,
            cycle_width_units=cycle_width,
            top_padding=top_padding,
            left_padding=left_padding,
            row_count=row_count,
            total_columns=grid.unit_columns + left_padding + cycle_width,
            total_rows=grid.unit_rows + top_padding + ph,
        )

    def new_occupancy(self) -> OccupancyGrid:
        return OccupancyGrid(self.total_rows, self.total_columns)

    def footprint(self, orientation: PhotoOrientation) -> tuple[int, int]:
        if orientation is PhotoOrientation.PORTRAIT:
            return self.portrait_units
        return self.landscape_units

    def cells(self, occupancy: OccupancyGrid | None = None) -> Iterator[ParquetCell]:
        """Walk the tiling, yielding every claimed footprint in order.

        Off-canvas padding cells are yielded with ``visible=False``; callers
        must ignore them for anything but the occupancy bookkeeping.
        """
        if occupancy is None:
            occupancy = self.new_occupancy()
        lh = self.landscape_units[1]
        pw = self.portrait_units[0]

        row_index = 0
        while row_index * lh < self.total_rows:
            y_unit = row_index * lh - self.top_padding
            x_unit = self.left_padding - row_index * pw
            pattern_index = 0

            while x_unit < self.total_columns:
                occ_row = y_unit + self.top_padding
                if occ_row >= self.total_rows or x_unit < 0:
                    x_unit += 1
                    continue

                orientation = self.sequence[pattern_index]
                width_units, height_units = self.footprint(orientation)
                if not occupancy.can_place(x_unit, occ_row, width_units, height_units):
                    x_unit += 1
                    continue
                occupancy.mark(x_unit, occ_row, width_units, height_units)

                x = (x_unit - self.left_padding) * self.unit
                y = y_unit * self.unit
                w = width_units * self.unit
                h = height_units * self.unit
                yield ParquetCell(
                    unit_col=x_unit,
                    unit_row=occ_row,
                    width_units=width_units,
                    height_units=height_units,
                    orientation=orientation,
                    x=x,
                    y=y,
                    width=w,
                    height=h,
                    visible=(
                        x + w > 0 and y + h > 0
                        and x < self.canvas_width and y < self.canvas_height
                    ),
                )

                if orientation is PhotoOrientation.PORTRAIT:
                    y_unit += self.delta_units
                pattern_index = (pattern_index + 1) % len(self.sequence)
                x_unit += width_units

            row_index += 1

    def visible_cells(self) -> Iterator[ParquetCell]:
        return (cell for cell in self.cells() if cell.visible)
