"""Centralised configuration via a frozen dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from photo_mosaic.models import (
    CellFitMode,
    CellPhoto,
    CellShape,
    PrimarySizingMode,
)

# Working resolution cap for the primary image (longest side, pixels).
MAX_MOSAIC_DIMENSION = 2048
MAX_RANDOM_CANDIDATES = 20
JPEG_QUALITY = 95
MM_PER_INCH = 25.4

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
    {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp", ".jfif"}
)


@dataclass(frozen=True)
class MosaicProject:
    """Everything a generation run needs to know.

    Attributes:
        primary_image_path:  Target image the mosaic approximates.
        cell_photos:         Candidate photos with their orientation.
        print_width_in:      Print width in inches (swapped to match the primary).
        print_height_in:     Print height in inches.
        resolution_ppi:      Output pixels per inch.
        cell_size_mm:        Long side of one cell, in millimetres.
        cell_shape:          Square, 4:3 or 3:2 cells.
        cell_fit_mode:       Stretch photos into cells, or crop their centre.
        sizing_mode:         Shrink the print to the primary's aspect, or crop to fill.
        pattern:             Pattern descriptor, e.g. "Square" or "Parquet 2L 1P".
        color_change_percent: Blend each cell toward its target colour (0-100).
        duplicate_spacing:   Minimum distance between repeats of a photo (None = off).
        random_candidates:   Shortlist size for the random pick (clamped to 1-20).
        use_all_images:      Place every photo once before the main pass.
        use_all_solver:      "greedy" (photo by photo) or "hungarian" (optimal).
        create_report:       Write the usage CSV.
        color_space:         Signature distance metric - "rgb" or "lab".
        overlay_blur_radius: Blur radius for the reference overlay (0 = none).
        output_dir:          Folder for the mosaic, overlay and report.
        seed:                Random seed for shuffling and picks (None = non-deterministic).
    """

    primary_image_path: str | None = None
    cell_photos: tuple[CellPhoto, ...] = ()

    # Print geometry
    print_width_in: float | None = None
    print_height_in: float | None = None
    resolution_ppi: int | None = None
    cell_size_mm: float | None = None
    cell_shape: CellShape = CellShape.SQUARE
    cell_fit_mode: CellFitMode = CellFitMode.CROP_CENTER
    sizing_mode: PrimarySizingMode = PrimarySizingMode.KEEP_ASPECT_RATIO
    pattern: str = "Square"

    # Matching
    color_change_percent: int = 0
    duplicate_spacing: int | None = None
    random_candidates: int = 5
    use_all_images: bool = False
    use_all_solver: str = "greedy"  # "greedy" | "hungarian"
    color_space: str = "rgb"  # "rgb" | "lab"
    seed: int | None = None

    # Output
    create_report: bool = True
    overlay_blur_radius: int = 2
    output_dir: Path = field(default_factory=lambda: Path("output"))

    @property
    def clamped_candidates(self) -> int:
        return min(max(self.random_candidates, 1), MAX_RANDOM_CANDIDATES)

    @property
    def clamped_color_change(self) -> int:
        return min(max(self.color_change_percent, 0), 100)
