"""Grid sizing: print size + resolution + cell settings → pixel layout."""

from __future__ import annotations

import logging
import math

from photo_mosaic.config import MM_PER_INCH
from photo_mosaic.models import (
    CellShape,
    GridDimensions,
    PatternInfo,
    PatternKind,
    PhotoOrientation,
    PrimarySizingMode,
    photo_orientation,
)

logger = logging.getLogger(__name__)


def cell_dimensions(base_cell_pixels: int, shape: CellShape) -> tuple[int, int]:
    """(long, short) side in pixels of a landscape cell of *shape*."""
    if shape is CellShape.RECTANGLE_4X3:
        return base_cell_pixels, max(1, int(base_cell_pixels * 3.0 / 4.0))
    if shape is CellShape.RECTANGLE_3X2:
        return base_cell_pixels, max(1, int(base_cell_pixels * 2.0 / 3.0))
    return base_cell_pixels, base_cell_pixels


def oriented_print_size(
    print_width: float,
    print_height: float,
    primary_width: int,
    primary_height: int,
    sizing_mode: PrimarySizingMode,
) -> tuple[float, float]:
    """Rotate the print to the primary's orientation, then fit its aspect.

    With :attr:`PrimarySizingMode.KEEP_ASPECT_RATIO` one side of the print
    shrinks so the print has the primary's aspect ratio; otherwise the
    primary is later cropped to fill the print.
    """
    long_side = max(print_width, print_height)
    short_side = min(print_width, print_height)

    orientation = photo_orientation(primary_width, primary_height)
    if orientation is PhotoOrientation.LANDSCAPE:
        print_width, print_height = long_side, short_side
    elif orientation is PhotoOrientation.PORTRAIT:
        print_width, print_height = short_side, long_side

    if sizing_mode is PrimarySizingMode.KEEP_ASPECT_RATIO:
        primary_aspect = primary_width / primary_height
        print_aspect = print_width / print_height
        if primary_aspect >= print_aspect:
            print_height = print_width / primary_aspect
        else:
            print_width = print_height * primary_aspect

    return print_width, print_height


def calculate_grid(
    print_width_in: float,
    print_height_in: float,
    resolution_ppi: int,
    cell_size_mm: float,
    primary_width: int,
    primary_height: int,
    pattern: PatternInfo,
    cell_shape: CellShape = CellShape.SQUARE,
    sizing_mode: PrimarySizingMode = PrimarySizingMode.KEEP_ASPECT_RATIO,
) -> GridDimensions:
    """Derive the pixel grid for a print.

    All divisions floor and every dimension is clamped to at least 1. The
    base unit is the gcd of the landscape cell's sides, the coarsest grid
    both cell orientations align to; parquet layouts are measured in it.
    """
    width_in, height_in = oriented_print_size(
        print_width_in, print_height_in, primary_width, primary_height, sizing_mode,
    )
    pixel_width = max(1, int(width_in * resolution_ppi))
    pixel_height = max(1, int(height_in * resolution_ppi))

    base_cell_pixels = max(1, int(cell_size_mm / MM_PER_INCH * resolution_ppi))

    # Parquet needs landscape and portrait footprints that differ
    if pattern.kind is PatternKind.PARQUET and cell_shape is CellShape.SQUARE:
        cell_shape = CellShape.RECTANGLE_4X3
    if pattern.kind is PatternKind.SQUARE:
        cell_shape = CellShape.SQUARE

    landscape_w, landscape_h = cell_dimensions(base_cell_pixels, cell_shape)
    portrait_w, portrait_h = landscape_h, landscape_w

    if pattern.kind is PatternKind.PORTRAIT:
        cell_w, cell_h = portrait_w, portrait_h
    else:
        cell_w, cell_h = landscape_w, landscape_h

    unit = max(1, math.gcd(landscape_w, landscape_h))
    unit_columns = max(1, pixel_width // unit)
    unit_rows = max(1, pixel_height // unit)
    columns = max(1, pixel_width // cell_w)
    rows = max(1, pixel_height // cell_h)

    parquet = pattern.kind is PatternKind.PARQUET
    grid = GridDimensions(
        width=unit_columns * unit if parquet else columns * cell_w,
        height=unit_rows * unit if parquet else rows * cell_h,
        base_cell_pixels=unit,
        cell_width=cell_w,
        cell_height=cell_h,
        landscape_cell_width=landscape_w,
        landscape_cell_height=landscape_h,
        portrait_cell_width=portrait_w,
        portrait_cell_height=portrait_h,
        rows=unit_rows if parquet else rows,
        columns=unit_columns if parquet else columns,
        unit_rows=unit_rows,
        unit_columns=unit_columns,
    )
    logger.debug(
        "Grid %dx%d px, %d rows x %d cols, cell %dx%d, unit %d",
        grid.width, grid.height, grid.rows, grid.columns, cell_w, cell_h, unit,
    )
    return grid
