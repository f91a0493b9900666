"""Value types shared by the planner, the cache builder and the matcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

import numpy as np


class PhotoOrientation(Enum):
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    SQUARE = "square"


class CellShape(Enum):
    SQUARE = "square"
    RECTANGLE_4X3 = "4x3"
    RECTANGLE_3X2 = "3x2"


class CellFitMode(Enum):
    STRETCH_TO_FIT = "stretch"
    CROP_CENTER = "crop"


class PrimarySizingMode(Enum):
    KEEP_ASPECT_RATIO = "keep"
    CROP_TO_PRINT_SIZE = "crop"


class PatternKind(Enum):
    SQUARE = "square"
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    PARQUET = "parquet"


class Outcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


def photo_orientation(width: int, height: int) -> PhotoOrientation:
    """Classify pixel dimensions; equal sides count as square."""
    if width > height:
        return PhotoOrientation.LANDSCAPE
    if height > width:
        return PhotoOrientation.PORTRAIT
    return PhotoOrientation.SQUARE


def is_orientation_compatible(
    photo: PhotoOrientation,
    required: PhotoOrientation | None,
) -> bool:
    """Square photos serve either orientation; ``None`` accepts anything."""
    if required is None or required is PhotoOrientation.SQUARE:
        return True
    return photo is required or photo is PhotoOrientation.SQUARE


# -- Colours -----------------------------------------------------------

class RgbColor(NamedTuple):
    r: int
    g: int
    b: int


GRAY = RgbColor(128, 128, 128)


class QuadrantColors(NamedTuple):
    """Average colour of each quarter of a cell, TL / TR / BL / BR."""

    top_left: RgbColor
    top_right: RgbColor
    bottom_left: RgbColor
    bottom_right: RgbColor

    @classmethod
    def uniform(cls, color: RgbColor) -> QuadrantColors:
        return cls(color, color, color, color)


GRAY_QUADRANTS = QuadrantColors.uniform(GRAY)


# -- Grid & pattern ----------------------------------------------------

@dataclass(frozen=True)
class GridDimensions:
    """Pixel layout of the output mosaic.

    For the parquet pattern ``rows`` / ``columns`` report the unit grid,
    for every other pattern the cell grid.
    """

    width: int
    height: int
    base_cell_pixels: int
    cell_width: int
    cell_height: int
    landscape_cell_width: int
    landscape_cell_height: int
    portrait_cell_width: int
    portrait_cell_height: int
    rows: int
    columns: int
    unit_rows: int
    unit_columns: int


@dataclass(frozen=True)
class PatternInfo:
    kind: PatternKind
    landscape_count: int = 0
    portrait_count: int = 0
    explicit_ratio: bool = True

    @property
    def required_orientation(self) -> PhotoOrientation | None:
        """Orientation every cell must have, or ``None`` when mixed / any."""
        if self.kind is PatternKind.LANDSCAPE:
            return PhotoOrientation.LANDSCAPE
        if self.kind is PatternKind.PORTRAIT:
            return PhotoOrientation.PORTRAIT
        return None


# -- Photos & cache ----------------------------------------------------

@dataclass(frozen=True)
class CellPhoto:
    path: str
    orientation: PhotoOrientation


@dataclass(eq=False)
class CellPhotoCache:
    """A candidate photo after analysis, ready for placement.

    ``landscape_image`` / ``portrait_image`` hold the fitted (H, W, 3)
    uint8 pixels for each footprint the photo can serve; they are dropped
    by :meth:`release` at the end of a run.
    """

    path: str
    orientation: PhotoOrientation
    average_color: RgbColor
    landscape_quadrants: QuadrantColors
    portrait_quadrants: QuadrantColors
    landscape_image: np.ndarray | None = field(default=None, repr=False)
    portrait_image: np.ndarray | None = field(default=None, repr=False)
    use_count: int = 0

    def quadrants_for(self, orientation: PhotoOrientation | None) -> QuadrantColors:
        if orientation is None:
            orientation = self.orientation
        if orientation is PhotoOrientation.PORTRAIT:
            return self.portrait_quadrants
        return self.landscape_quadrants

    def image_for(self, orientation: PhotoOrientation | None) -> np.ndarray | None:
        if orientation is None:
            orientation = self.orientation
        if orientation is PhotoOrientation.PORTRAIT:
            return (
                self.portrait_image if self.portrait_image is not None
                else self.landscape_image
            )
        return (
            self.landscape_image if self.landscape_image is not None
            else self.portrait_image
        )

    @property
    def is_released(self) -> bool:
        return self.landscape_image is None and self.portrait_image is None

    def release(self) -> None:
        self.landscape_image = None
        self.portrait_image = None


# -- Placement & usage -------------------------------------------------

@dataclass(frozen=True)
class MosaicPlacement:
    """One target cell: where it goes and what colour it should be.

    ``row`` / ``col`` are grid coordinates for the standard patterns and
    occupancy-grid unit coordinates for parquet.
    """

    row: int
    col: int
    x: int
    y: int
    width: int
    height: int
    orientation: PhotoOrientation | None
    target_color: RgbColor
    target_quadrants: QuadrantColors


@dataclass(frozen=True)
class CellUsage:
    path: str
    x: int
    y: int


@dataclass(frozen=True)
class CellCounts:
    total: int
    landscape: int
    portrait: int


@dataclass(frozen=True)
class PhotoCounts:
    total: int
    landscape: int
    portrait: int


@dataclass(frozen=True)
class MosaicPlan:
    """Cell demand vs. photo supply, with a recommended use limit.

    ``max_photo_uses`` is ``None`` when no finite limit can be derived.
    """

    total_cells: int
    available_photos: int
    max_photo_uses: int | None
    landscape_cells: int
    portrait_cells: int
    available_landscape_photos: int
    available_portrait_photos: int


@dataclass(frozen=True)
class PlanResult:
    plan: MosaicPlan | None = None
    grid: GridDimensions | None = None
    error_message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.error_message is None


@dataclass(frozen=True)
class MosaicResult:
    """Outcome of one generation run.

    A missing ``error_message`` means success; file paths are only
    guaranteed on success.
    """

    outcome: Outcome
    grid_rows: int = 0
    grid_columns: int = 0
    output_width: int = 0
    output_height: int = 0
    mosaic_path: str | None = None
    overlay_path: str | None = None
    usage_report_path: str | None = None
    total_cell_photos: int = 0
    used_cell_photos: int = 0
    usage: tuple[CellUsage, ...] = ()
    generation_seconds: float = 0.0
    error_message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.error_message is None

    @property
    def unused_cell_photos(self) -> int:
        return max(0, self.total_cell_photos - self.used_cell_photos)
