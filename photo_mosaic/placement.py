"""Target placements: where each cell goes and what colour it should match."""

from __future__ import annotations

import logging

import numpy as np

from photo_mosaic.color_utils import quadrant_colors, region_average
from photo_mosaic.models import (
    GridDimensions,
    MosaicPlacement,
    PatternInfo,
    PatternKind,
)
from photo_mosaic.parquet import ParquetLayout
from photo_mosaic.progress import CancellationCheck

logger = logging.getLogger(__name__)


def standard_placements(
    primary: np.ndarray,
    grid: GridDimensions,
    pattern: PatternInfo,
    check_cancelled: CancellationCheck | None = None,
) -> list[MosaicPlacement]:
    """Row-major placements for the square / landscape / portrait patterns."""
    check_cancelled = check_cancelled or CancellationCheck()
    orientation = pattern.required_orientation
    w, h = grid.cell_width, grid.cell_height

    placements = []
    for row in range(grid.rows):
        check_cancelled()
        for col in range(grid.columns):
            x, y = col * w, row * h
            placements.append(MosaicPlacement(
                row=row,
                col=col,
                x=x,
                y=y,
                width=w,
                height=h,
                orientation=orientation,
                target_color=region_average(primary, x, y, w, h),
                target_quadrants=quadrant_colors(primary, x, y, w, h, clamp=False),
            ))
    return placements


def parquet_placements(
    primary: np.ndarray,
    layout: ParquetLayout,
    check_cancelled: CancellationCheck | None = None,
) -> list[MosaicPlacement]:
    """Visible parquet cells, keyed by their occupancy-grid unit coordinates.

    Edge cells are sampled with clamping since only part of them is on the
    canvas.
    """
    check_cancelled = check_cancelled or CancellationCheck()
    placements = []
    for cell in layout.cells():
        if not cell.visible:
            continue
        check_cancelled()
        placements.append(MosaicPlacement(
            row=cell.unit_row,
            col=cell.unit_col,
            x=cell.x,
            y=cell.y,
            width=cell.width,
            height=cell.height,
            orientation=cell.orientation,
            target_color=region_average(primary, cell.x, cell.y, cell.width, cell.height),
            target_quadrants=quadrant_colors(
                primary, cell.x, cell.y, cell.width, cell.height, clamp=True,
            ),
        ))
    return placements


def build_placements(
    primary: np.ndarray,
    grid: GridDimensions,
    pattern: PatternInfo,
    check_cancelled: CancellationCheck | None = None,
) -> list[MosaicPlacement]:
    if pattern.kind is PatternKind.PARQUET:
        placements = parquet_placements(
            primary, ParquetLayout.from_grid(grid, pattern), check_cancelled,
        )
    else:
        placements = standard_placements(primary, grid, pattern, check_cancelled)
    logger.info("Placement map ready: %d cells", len(placements))
    return placements
