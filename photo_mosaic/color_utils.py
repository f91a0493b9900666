"""Colour sampling, quadrant signatures and signature distances."""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np
from skimage.color import rgb2lab

from photo_mosaic.models import GRAY, QuadrantColors, RgbColor

# Largest possible Euclidean distance between two RGB colours.
MAX_COLOR_DISTANCE = 255.0 * math.sqrt(3.0)
MAX_QUADRANT_DISTANCE = 4.0 * MAX_COLOR_DISTANCE

COLOR_SPACES = ("rgb", "lab")


def rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert flat (N, 3) uint8 RGB → (N, 3) float64 CIELAB."""
    return rgb2lab(rgb.astype(np.float64).reshape(1, -1, 3) / 255.0).reshape(-1, 3)


# -- Sampling ----------------------------------------------------------

def _sampled_mean(pixels: np.ndarray) -> RgbColor:
    flat = pixels.reshape(-1, 3)
    if len(flat) == 0:
        return GRAY
    sums = flat.sum(axis=0, dtype=np.int64) // len(flat)
    return RgbColor(int(sums[0]), int(sums[1]), int(sums[2]))


def average_color_fast(image: np.ndarray) -> RgbColor:
    """Whole-image average from a sparse sample (every ~50th column/row)."""
    h, w = image.shape[:2]
    if h == 0 or w == 0:
        return GRAY
    step = max(1, w // 50)
    return _sampled_mean(image[::step, ::step])


def region_average(
    image: np.ndarray, x: int, y: int, width: int, height: int,
) -> RgbColor:
    """Average colour of a rectangle, clipped to the image.

    Samples every ``max(1, w // 10)``-th pixel in both directions; an
    empty intersection yields grey.
    """
    img_h, img_w = image.shape[:2]
    x1, y1 = max(0, x), max(0, y)
    x2, y2 = min(img_w, x + width), min(img_h, y + height)
    w, h = x2 - x1, y2 - y1
    if w <= 0 or h <= 0:
        return GRAY
    step = max(1, w // 10)
    return _sampled_mean(image[y1:y2:step, x1:x2:step])


def region_average_clamped(
    image: np.ndarray, x: int, y: int, width: int, height: int,
) -> RgbColor:
    """Average of the central half of the on-image part of a rectangle.

    Used for parquet cells that hang over the canvas edge, where the
    visible sliver would otherwise be dominated by its border pixels.
    """
    img_h, img_w = image.shape[:2]
    x1, y1 = max(0, x), max(0, y)
    x2, y2 = min(img_w, x + width), min(img_h, y + height)
    w, h = x2 - x1, y2 - y1
    if w <= 0 or h <= 0:
        return GRAY
    return region_average(
        image,
        x1 + max(1, w // 4),
        y1 + max(1, h // 4),
        max(1, w // 2),
        max(1, h // 2),
    )


def quadrant_colors(
    image: np.ndarray,
    x: int,
    y: int,
    width: int,
    height: int,
    clamp: bool = False,
) -> QuadrantColors:
    """Split a rectangle into quarters and average each one."""
    half_w = max(1, width // 2)
    half_h = max(1, height // 2)
    rest_w = max(1, width - half_w)
    rest_h = max(1, height - half_h)
    sample = region_average_clamped if clamp else region_average

    return QuadrantColors(
        sample(image, x, y, half_w, half_h),
        sample(image, x + half_w, y, rest_w, half_h),
        sample(image, x, y + half_h, half_w, rest_h),
        sample(image, x + half_w, y + half_h, rest_w, rest_h),
    )


# -- Distances ---------------------------------------------------------

def color_distance(a: RgbColor, b: RgbColor) -> float:
    """Euclidean RGB distance, in ``[0, 255 * sqrt(3)]``."""
    dr, dg, db = a.r - b.r, a.g - b.g, a.b - b.b
    return math.sqrt(dr * dr + dg * dg + db * db)


def quadrant_distance(source: QuadrantColors, target: QuadrantColors) -> float:
    """Sum of the four per-quadrant colour distances."""
    return sum(color_distance(s, t) for s, t in zip(source, target, strict=True))


def signature_array(
    signatures: Sequence[QuadrantColors],
    color_space: str = "rgb",
) -> np.ndarray:
    """Stack quadrant signatures into an (N, 4, 3) float array.

    With ``color_space="lab"`` the colours are converted to CIELAB so the
    same Euclidean sum becomes a perceptual distance.
    """
    if color_space not in COLOR_SPACES:
        msg = f"Unknown colour space '{color_space}'. Available: {', '.join(COLOR_SPACES)}"
        raise ValueError(msg)
    rgb = np.asarray(signatures, dtype=np.uint8).reshape(-1, 4, 3)
    if color_space == "lab":
        return rgb_to_lab(rgb.reshape(-1, 3)).reshape(-1, 4, 3)
    return rgb.astype(np.float64)


def quadrant_distances(candidates: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Distances from one (4, 3) target to every (N, 4, 3) candidate."""
    diff = candidates - target[np.newaxis, :, :]
    return np.sqrt(np.sum(diff ** 2, axis=2)).sum(axis=1)


def compute_cost_matrix(
    photos: np.ndarray,
    targets: np.ndarray,
    chunk_size: int = 512,
) -> np.ndarray:
    """Pairwise quadrant distances between photo and target signatures.

    Args:
        photos:  (N, 4, 3) signature array.
        targets: (M, 4, 3) signature array.
        chunk_size: Photo rows computed per batch (controls peak RAM).

    Returns:
        (N, M) float32 cost matrix.
    """
    n, m = len(photos), len(targets)
    cost = np.empty((n, m), dtype=np.float32)
    for i in range(0, n, chunk_size):
        j = min(i + chunk_size, n)
        diff = photos[i:j, np.newaxis, :, :] - targets[np.newaxis, :, :, :]
        cost[i:j] = np.sqrt(np.sum(diff ** 2, axis=3)).sum(axis=2)
    return cost
