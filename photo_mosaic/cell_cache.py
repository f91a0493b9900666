"""Pre-analysis of candidate photos into colour signatures.

Each photo is decoded once, fitted to every cell footprint it may fill
and summarised as an average colour plus one quadrant signature per
footprint. Placement then works purely from this cache.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

import numpy as np

from photo_mosaic.color_utils import average_color_fast, quadrant_colors
from photo_mosaic.image_io import fit_cell_image, load_image
from photo_mosaic.models import (
    GRAY_QUADRANTS,
    CellFitMode,
    CellPhoto,
    CellPhotoCache,
    GridDimensions,
    PatternInfo,
    PhotoOrientation,
    QuadrantColors,
    is_orientation_compatible,
)
from photo_mosaic.progress import (
    CELL_CACHE_RANGE,
    CancellationCheck,
    ProgressReporter,
    Stage,
)

logger = logging.getLogger(__name__)


def serves_landscape(orientation: PhotoOrientation) -> bool:
    return orientation is not PhotoOrientation.PORTRAIT


def serves_portrait(orientation: PhotoOrientation) -> bool:
    return orientation is not PhotoOrientation.LANDSCAPE


class CellCacheBuilder:
    """Builds and owns the per-run list of :class:`CellPhotoCache` entries.

    The builder keeps every entry it created in :attr:`entries` so the
    fitted images can be released however the run ends.
    """

    def __init__(
        self,
        grid: GridDimensions,
        fit_mode: CellFitMode,
        pattern: PatternInfo,
        progress: ProgressReporter | None = None,
        check_cancelled: CancellationCheck | None = None,
    ) -> None:
        self.grid = grid
        self.fit_mode = fit_mode
        self.pattern = pattern
        self.entries: list[CellPhotoCache] = []
        self._progress = progress or ProgressReporter()
        self._check_cancelled = check_cancelled or CancellationCheck()

    def build(self, photos: Sequence[CellPhoto]) -> list[CellPhotoCache]:
        """Analyse *photos*, skipping repeated paths and ineligible or unreadable photos.

        Raises:
            GenerationCancelled: after releasing everything built so far.
        """
        required = self.pattern.required_orientation
        total = len(photos)
        skipped = failed = duplicates = 0
        seen: set[str] = set()
        t0 = time.perf_counter()

        self._progress.stage(Stage.BUILD_CELL_CACHE)
        try:
            for done, photo in enumerate(photos, 1):
                self._check_cancelled()
                if photo.path in seen:
                    duplicates += 1
                elif not is_orientation_compatible(photo.orientation, required):
                    skipped += 1
                else:
                    entry = self._analyse(photo)
                    if entry is None:
                        failed += 1
                    else:
                        seen.add(photo.path)
                        self.entries.append(entry)
                self._progress.step(Stage.BUILD_CELL_CACHE, CELL_CACHE_RANGE, done, total)
        except BaseException:
            self.release()
            raise

        logger.info(
            "Cell cache ready: %d cached, %d skipped, %d failed, %d duplicates  (%.1f s)",
            len(self.entries), skipped, failed, duplicates, time.perf_counter() - t0,
        )
        return self.entries

    def _analyse(self, photo: CellPhoto) -> CellPhotoCache | None:
        grid = self.grid
        try:
            image = load_image(
                photo.path,
                max(grid.landscape_cell_width, grid.portrait_cell_width),
                max(grid.landscape_cell_height, grid.portrait_cell_height),
            )
            average = average_color_fast(image)

            landscape_image = portrait_image = None
            landscape_quads = portrait_quads = GRAY_QUADRANTS
            if serves_landscape(photo.orientation):
                landscape_image = fit_cell_image(
                    image, grid.landscape_cell_width, grid.landscape_cell_height,
                    self.fit_mode,
                )
                landscape_quads = _signature(landscape_image)
            if serves_portrait(photo.orientation):
                portrait_image = fit_cell_image(
                    image, grid.portrait_cell_width, grid.portrait_cell_height,
                    self.fit_mode,
                )
                portrait_quads = _signature(portrait_image)
        except Exception as exc:  # a bad photo only drops itself
            logger.warning("Failed to cache cell photo %s: %s", photo.path, exc)
            return None

        return CellPhotoCache(
            path=photo.path,
            orientation=photo.orientation,
            average_color=average,
            landscape_quadrants=landscape_quads,
            portrait_quadrants=portrait_quads,
            landscape_image=landscape_image,
            portrait_image=portrait_image,
        )

    def release(self) -> None:
        for entry in self.entries:
            entry.release()


def _signature(image: np.ndarray) -> QuadrantColors:
    h, w = image.shape[:2]
    return quadrant_colors(image, 0, 0, w, h, clamp=False)
