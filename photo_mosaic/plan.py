"""Cell demand vs. photo supply, and the recommended per-photo use limit."""

from __future__ import annotations

from collections.abc import Iterable

from photo_mosaic.models import (
    CellCounts,
    GridDimensions,
    MosaicPlan,
    PatternInfo,
    PatternKind,
    PhotoCounts,
    PhotoOrientation,
)
from photo_mosaic.parquet import ParquetLayout


def _ceil_div(a: int, b: int) -> int:
    return (a + b - 1) // b


def count_parquet_cells(grid: GridDimensions, pattern: PatternInfo) -> CellCounts:
    landscape = portrait = 0
    for cell in ParquetLayout.from_grid(grid, pattern).visible_cells():
        if cell.orientation is PhotoOrientation.PORTRAIT:
            portrait += 1
        else:
            landscape += 1
    return CellCounts(landscape + portrait, landscape, portrait)


def count_cells(grid: GridDimensions, pattern: PatternInfo) -> CellCounts:
    if pattern.kind is PatternKind.PARQUET:
        return count_parquet_cells(grid, pattern)
    total = max(0, grid.rows * grid.columns)
    if pattern.kind is PatternKind.LANDSCAPE:
        return CellCounts(total, total, 0)
    if pattern.kind is PatternKind.PORTRAIT:
        return CellCounts(total, 0, total)
    return CellCounts(total, 0, 0)


def count_available_photos(
    orientations: Iterable[PhotoOrientation],
    pattern: PatternInfo,
) -> PhotoCounts:
    """Photos that can serve each footprint; square photos count for both."""
    orientations = list(orientations)
    landscape = sum(o is not PhotoOrientation.PORTRAIT for o in orientations)
    portrait = sum(o is not PhotoOrientation.LANDSCAPE for o in orientations)

    if pattern.kind is PatternKind.LANDSCAPE:
        total = landscape
    elif pattern.kind is PatternKind.PORTRAIT:
        total = portrait
    else:
        total = len(orientations)
    return PhotoCounts(total, landscape, portrait)


def _parquet_required_uses(cells: CellCounts, photos: PhotoCounts) -> int | None:
    if cells.landscape > 0 and photos.landscape == 0:
        return None
    if cells.portrait > 0 and photos.portrait == 0:
        return None
    landscape_uses = (
        _ceil_div(cells.landscape, max(1, photos.landscape)) if cells.landscape else 0
    )
    portrait_uses = (
        _ceil_div(cells.portrait, max(1, photos.portrait)) if cells.portrait else 0
    )
    return max(landscape_uses, portrait_uses)


def recommended_max_uses(
    cells: CellCounts,
    photos: PhotoCounts,
    pattern: PatternInfo,
) -> int | None:
    """Twice the uses an even spread would need; ``None`` means unlimited."""
    if cells.total <= 0 or photos.total <= 0:
        return None
    if pattern.kind is PatternKind.PARQUET:
        required = _parquet_required_uses(cells, photos)
        if required is None:
            return None
    else:
        required = _ceil_div(cells.total, photos.total)
    return max(1, required * 2)


def build_plan(
    grid: GridDimensions,
    pattern: PatternInfo,
    orientations: Iterable[PhotoOrientation],
) -> MosaicPlan:
    """Plan from photo orientations (a photo list or a built cache)."""
    cells = count_cells(grid, pattern)
    photos = count_available_photos(orientations, pattern)
    return MosaicPlan(
        total_cells=cells.total,
        available_photos=photos.total,
        max_photo_uses=recommended_max_uses(cells, photos, pattern),
        landscape_cells=cells.landscape,
        portrait_cells=cells.portrait,
        available_landscape_photos=photos.landscape,
        available_portrait_photos=photos.portrait,
    )
