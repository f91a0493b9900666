"""Image loading, fitting, compositing and saving.

Images travel through the engine as (H, W, 3) uint8 NumPy arrays; Pillow
is only used at the edges for decoding, resampling and encoding.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import numpy as np
from PIL import Image, ImageFilter, ImageOps

from photo_mosaic.config import JPEG_QUALITY, SUPPORTED_EXTENSIONS
from photo_mosaic.models import (
    CellFitMode,
    CellPhoto,
    PrimarySizingMode,
    RgbColor,
    photo_orientation,
)

logger = logging.getLogger(__name__)

MAX_BLUR_DIMENSION = 1024


def read_image_size(path: str | Path) -> tuple[int, int]:
    """(width, height) from the file header, without decoding pixels."""
    with Image.open(path) as img:
        return img.width, img.height


def compute_sample_size(
    width: int, height: int, max_width: int, max_height: int,
) -> int:
    """Smallest power-of-two reduction that fits within the maximum size."""
    sample = 1
    while width // sample > max_width or height // sample > max_height:
        sample *= 2
    return sample


def load_image(
    path: str | Path,
    max_width: int | None = None,
    max_height: int | None = None,
) -> np.ndarray:
    """Decode an image as RGB, reduced by a power of two to fit the bounds.

    Returns:
        (H, W, 3) uint8 array.
    """
    with Image.open(path) as img:
        if max_width is not None and max_height is not None:
            bounds = (max(1, max_width), max(1, max_height))
            sample = compute_sample_size(img.width, img.height, *bounds)
            if sample > 1:
                # JPEG decoders can downscale while decoding; finish the rest
                img.draft("RGB", (img.width // sample, img.height // sample))
                remaining = compute_sample_size(img.width, img.height, *bounds)
                if remaining > 1:
                    img = img.reduce(remaining)
        return np.array(img.convert("RGB"), dtype=np.uint8)


def resize(image: np.ndarray, width: int, height: int) -> np.ndarray:
    h, w = image.shape[:2]
    if (w, h) == (width, height):
        return image.copy()
    img = Image.fromarray(image).resize((width, height), Image.Resampling.LANCZOS)
    return np.array(img, dtype=np.uint8)


def crop_center(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Centred crop; a side shorter than requested is kept whole."""
    h, w = image.shape[:2]
    x = max(0, (w - width) // 2)
    y = max(0, (h - height) // 2)
    return image[y:y + min(height, h - y), x:x + min(width, w - x)].copy()


def fit_cell_image(
    image: np.ndarray, width: int, height: int, fit_mode: CellFitMode,
) -> np.ndarray:
    """Produce a cell-sized variant of a photo."""
    if fit_mode is CellFitMode.STRETCH_TO_FIT:
        return resize(image, width, height)
    fitted = ImageOps.fit(
        Image.fromarray(image), (width, height), Image.Resampling.LANCZOS,
    )
    return np.array(fitted, dtype=np.uint8)


def prepare_primary_image(
    image: np.ndarray,
    width: int,
    height: int,
    sizing_mode: PrimarySizingMode,
) -> np.ndarray:
    """Bring the primary to exactly the output size.

    Keep-aspect mode resizes directly (the grid already matches the
    aspect); crop mode scales to cover and trims the centre.
    """
    h, w = image.shape[:2]
    if (w, h) == (width, height):
        return image.copy()
    if sizing_mode is PrimarySizingMode.KEEP_ASPECT_RATIO:
        return resize(image, width, height)

    scale = max(width / w, height / h)
    scaled = resize(image, max(1, int(w * scale)), max(1, int(h * scale)))
    cropped = crop_center(scaled, width, height)
    if cropped.shape[:2] != (height, width):
        # Float truncation can leave the cover scale a pixel short
        cropped = resize(cropped, width, height)
    return cropped


def blend_toward(
    image: np.ndarray, color: RgbColor, percent: int,
) -> np.ndarray:
    """Mix every pixel *percent* % of the way toward *color*."""
    if percent <= 0:
        return image
    factor = min(percent, 100) / 100.0
    mixed = image.astype(np.float32) * (1.0 - factor) + np.asarray(
        color, dtype=np.float32,
    ) * factor
    return np.clip(mixed, 0, 255).astype(np.uint8)


def paste_cell(canvas: np.ndarray, cell: np.ndarray, x: int, y: int) -> None:
    """Copy *cell* onto *canvas* at (x, y), clipping at the canvas edges."""
    canvas_h, canvas_w = canvas.shape[:2]
    cell_h, cell_w = cell.shape[:2]
    x1, y1 = max(0, x), max(0, y)
    x2, y2 = min(canvas_w, x + cell_w), min(canvas_h, y + cell_h)
    if x2 <= x1 or y2 <= y1:
        return
    canvas[y1:y2, x1:x2] = cell[y1 - y:y2 - y, x1 - x:x2 - x]


def blur_image(image: np.ndarray, radius: int) -> np.ndarray:
    """Gaussian blur on a working copy capped at 1024 px on its long side."""
    if radius <= 0:
        return image.copy()
    img = Image.fromarray(image)
    longest = max(img.width, img.height)
    if longest > MAX_BLUR_DIMENSION:
        scale = MAX_BLUR_DIMENSION / longest
        img = img.resize(
            (max(1, round(img.width * scale)), max(1, round(img.height * scale))),
            Image.Resampling.LANCZOS,
        )
    sigma = max(0.5, radius / 3.0)
    return np.array(img.filter(ImageFilter.GaussianBlur(sigma)), dtype=np.uint8)


def save_jpeg(image: np.ndarray, output_dir: str | Path, prefix: str) -> str:
    """Write a uniquely named JPEG into *output_dir* and return its path."""
    fd, path = tempfile.mkstemp(prefix=prefix, suffix=".jpg", dir=output_dir)
    os.close(fd)
    Image.fromarray(image.astype(np.uint8)).save(path, "JPEG", quality=JPEG_QUALITY)
    return path


def collect_images(
    folder: Path, extensions: frozenset[str] = SUPPORTED_EXTENSIONS,
) -> list[Path]:
    if not folder.exists():
        return []
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in extensions
    )


def collect_cell_photos(
    folder: Path, extensions: frozenset[str] = SUPPORTED_EXTENSIONS,
) -> list[CellPhoto]:
    """Candidate photos in *folder*, oriented from their header dimensions.

    Unreadable files are logged and left out.
    """
    photos = []
    for path in collect_images(folder, extensions):
        try:
            width, height = read_image_size(path)
        except OSError as exc:
            logger.warning("Skipping unreadable photo %s: %s", path, exc)
            continue
        photos.append(CellPhoto(str(path), photo_orientation(width, height)))
    return photos
