"""
Photo Mosaic Generator
======================

Rebuild a primary image out of a library of smaller photos, sized for
print. Cells can be square, landscape, portrait, or an interlocking
parquet of both; each cell takes one of the closest-matching photos,
subject to per-photo use limits and duplicate spacing.
"""

__version__ = "1.0.0"

from photo_mosaic.config import MosaicProject
from photo_mosaic.engine import generate_mosaic, plan_mosaic
from photo_mosaic.grid import calculate_grid
from photo_mosaic.image_io import collect_cell_photos
from photo_mosaic.matcher import Matcher, find_best_match
from photo_mosaic.models import (
    CellFitMode,
    CellPhoto,
    CellShape,
    MosaicPlan,
    MosaicResult,
    Outcome,
    PlanResult,
    PrimarySizingMode,
)
from photo_mosaic.patterns import parse_pattern
from photo_mosaic.progress import MosaicProgress, ProgressThrottle

__all__ = [
    "CellFitMode",
    "CellPhoto",
    "CellShape",
    "Matcher",
    "MosaicPlan",
    "MosaicProgress",
    "MosaicProject",
    "MosaicResult",
    "Outcome",
    "PlanResult",
    "PrimarySizingMode",
    "ProgressThrottle",
    "calculate_grid",
    "collect_cell_photos",
    "find_best_match",
    "generate_mosaic",
    "parse_pattern",
    "plan_mosaic",
]
