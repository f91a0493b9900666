"""Generation pipeline: validation → grid → cache → placement → output.

:func:`generate_mosaic` and :func:`plan_mosaic` are the engine boundary.
Neither raises: configuration problems, unusable photo libraries,
cancellation and unexpected failures all come back as a result whose
``error_message`` is set.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

import numpy as np

from photo_mosaic.cell_cache import CellCacheBuilder
from photo_mosaic.config import MAX_MOSAIC_DIMENSION, MosaicProject
from photo_mosaic.errors import (
    ConfigurationError,
    GenerationCancelled,
    MosaicError,
    NoUsablePhotosError,
)
from photo_mosaic.grid import calculate_grid
from photo_mosaic.image_io import (
    blend_toward,
    blur_image,
    load_image,
    paste_cell,
    prepare_primary_image,
    read_image_size,
    save_jpeg,
)
from photo_mosaic.matcher import Matcher
from photo_mosaic.models import (
    CellPhotoCache,
    CellUsage,
    GridDimensions,
    MosaicPlacement,
    MosaicResult,
    Outcome,
    PatternInfo,
    PatternKind,
    PlanResult,
)
from photo_mosaic.parquet import ParquetLayout
from photo_mosaic.patterns import format_pattern, parse_pattern, resolve_pattern
from photo_mosaic.placement import build_placements
from photo_mosaic.plan import build_plan
from photo_mosaic.progress import (
    CREATE_MOSAIC_RANGE,
    CancelCheck,
    CancellationCheck,
    ProgressCallback,
    ProgressReporter,
    Stage,
)
from photo_mosaic.report import write_usage_report

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Mosaic generation cancelled"
FAILED_PREFIX = "Mosaic generation failed: "


# -- Validation & geometry ---------------------------------------------

def validate_project(project: MosaicProject) -> None:
    """Reject projects missing anything the grid or cache needs."""
    if not project.primary_image_path or not project.primary_image_path.strip():
        raise ConfigurationError("Primary image is not selected")
    if not project.cell_photos:
        raise ConfigurationError("No cell photos have been added")
    if project.print_width_in is None or project.print_height_in is None:
        raise ConfigurationError("Print size is not selected")
    if project.resolution_ppi is None:
        raise ConfigurationError("Resolution is not selected")
    if project.cell_size_mm is None:
        raise ConfigurationError("Cell size is not selected")
    if project.print_width_in <= 0 or project.print_height_in <= 0:
        raise ConfigurationError("Print size must be positive")
    if project.resolution_ppi <= 0:
        raise ConfigurationError("Resolution must be positive")
    if project.cell_size_mm <= 0:
        raise ConfigurationError("Cell size must be positive")


def verify_primary_image(project: MosaicProject) -> tuple[str, int, int]:
    """Path and pixel size of the primary image."""
    path = project.primary_image_path or ""
    if not Path(path).is_file():
        raise ConfigurationError(f"Primary image file not found: {path}")
    try:
        width, height = read_image_size(path)
    except OSError as exc:
        raise ConfigurationError(f"Unable to read primary image: {path}") from exc
    return path, width, height


def project_grid(
    project: MosaicProject,
    pattern: PatternInfo,
    primary_width: int,
    primary_height: int,
) -> GridDimensions:
    return calculate_grid(
        project.print_width_in,
        project.print_height_in,
        project.resolution_ppi,
        project.cell_size_mm,
        primary_width,
        primary_height,
        pattern,
        cell_shape=project.cell_shape,
        sizing_mode=project.sizing_mode,
    )


def working_size(
    grid: GridDimensions, primary_width: int, primary_height: int,
) -> tuple[int, int]:
    """Decode bounds for the primary: output size, capped, never upscaled."""
    width, height = max(1, grid.width), max(1, grid.height)
    longest = max(width, height)
    if longest > MAX_MOSAIC_DIMENSION:
        scale = MAX_MOSAIC_DIMENSION / longest
        width = max(1, int(width * scale))
        height = max(1, int(height * scale))
    return min(width, primary_width), min(height, primary_height)


def _resolved_pattern(project: MosaicProject) -> PatternInfo:
    return resolve_pattern(
        parse_pattern(project.pattern),
        (photo.orientation for photo in project.cell_photos),
    )


# -- Plan --------------------------------------------------------------

def plan_mosaic(project: MosaicProject) -> PlanResult:
    """Cell and photo counts for a project, without generating anything."""
    try:
        validate_project(project)
        pattern = _resolved_pattern(project)
        _, width, height = verify_primary_image(project)
        grid = project_grid(project, pattern, width, height)
        plan = build_plan(
            grid, pattern, (photo.orientation for photo in project.cell_photos),
        )
    except MosaicError as exc:
        return PlanResult(error_message=f"{FAILED_PREFIX}{exc}")
    except Exception as exc:
        logger.exception("Unexpected error while planning the mosaic")
        return PlanResult(error_message=f"{FAILED_PREFIX}{exc}")
    return PlanResult(plan=plan, grid=grid)


# -- Composition -------------------------------------------------------

def compose_mosaic(
    primary: np.ndarray,
    cache: list[CellPhotoCache],
    grid: GridDimensions,
    pattern: PatternInfo,
    project: MosaicProject,
    max_uses: int | None,
    progress: ProgressReporter | None = None,
    check_cancelled: CancellationCheck | None = None,
    rng: np.random.Generator | None = None,
) -> tuple[np.ndarray, list[CellUsage]]:
    """Fill every placement the constraints allow and return the canvas.

    Cells with no allowed photo stay black. Parquet placements are
    tracked on their own occupancy grid so no two accepted cells overlap,
    and duplicate spacing is measured in pixels scaled by the largest
    cell footprint.
    """
    progress = progress or ProgressReporter()
    check_cancelled = check_cancelled or CancellationCheck()
    rng = rng if rng is not None else np.random.default_rng()
    parquet = pattern.kind is PatternKind.PARQUET
    spacing = project.duplicate_spacing or 0

    placements = build_placements(primary, grid, pattern, check_cancelled)
    if parquet:
        occupancy = ParquetLayout.from_grid(grid, pattern).new_occupancy()
        row_spacing = spacing * max(grid.landscape_cell_height, grid.portrait_cell_height)
        col_spacing = spacing * max(grid.landscape_cell_width, grid.portrait_cell_width)
    else:
        occupancy = None
        row_spacing = col_spacing = spacing
    logger.info(
        "Placing %d cells (%s, max uses %s)",
        len(placements), format_pattern(pattern),
        "unlimited" if max_uses is None else max_uses,
    )

    matcher = Matcher(
        cache,
        max_uses=max_uses,
        row_spacing=row_spacing,
        col_spacing=col_spacing,
        candidate_count=project.clamped_candidates,
        pixel_keys=parquet,
        color_space=project.color_space,
        rng=rng,
    )
    canvas = np.zeros((grid.height, grid.width, 3), dtype=np.uint8)
    blend = project.clamped_color_change

    def units(placement: MosaicPlacement) -> tuple[int, int, int, int]:
        unit = grid.base_cell_pixels
        return (
            placement.col, placement.row,
            max(1, placement.width // unit), max(1, placement.height // unit),
        )

    def fits(placement: MosaicPlacement) -> bool:
        return occupancy is None or occupancy.can_place(*units(placement))

    def place(photo: CellPhotoCache, placement: MosaicPlacement) -> None:
        cell = photo.image_for(placement.orientation)
        if cell is not None:
            paste_cell(
                canvas,
                blend_toward(cell, placement.target_color, blend),
                placement.x, placement.y,
            )
        if occupancy is not None:
            occupancy.mark(*units(placement))
        matcher.record_use(photo, placement)

    total = len(placements)
    done = 0
    remaining = placements
    if project.use_all_images:
        pairs, remaining = matcher.assign_all(
            placements, project.use_all_solver, check_cancelled,
        )
        for photo, placement in pairs:
            check_cancelled()
            if fits(placement):
                place(photo, placement)
            done += 1
            progress.step(Stage.CREATE_MOSAIC, CREATE_MOSAIC_RANGE, done, total)

    remaining = list(remaining)
    rng.shuffle(remaining)
    empty = 0
    for placement in remaining:
        check_cancelled()
        if fits(placement):
            photo = matcher.match(placement)
            if photo is None:
                empty += 1
            else:
                place(photo, placement)
        done += 1
        progress.step(Stage.CREATE_MOSAIC, CREATE_MOSAIC_RANGE, done, total)

    if empty:
        logger.warning("%d of %d cells left empty (use limits or spacing)", empty, total)
    return canvas, matcher.usage


# -- Generation --------------------------------------------------------

def _unsuccessful(
    outcome: Outcome,
    message: str,
    grid: GridDimensions | None,
    started: float,
) -> MosaicResult:
    return MosaicResult(
        outcome=outcome,
        grid_rows=grid.rows if grid else 0,
        grid_columns=grid.columns if grid else 0,
        output_width=grid.width if grid else 0,
        output_height=grid.height if grid else 0,
        generation_seconds=time.perf_counter() - started,
        error_message=message,
    )


def generate_mosaic(
    project: MosaicProject,
    max_uses_override: int | None = None,
    on_progress: ProgressCallback | None = None,
    is_cancelled: CancelCheck | None = None,
) -> MosaicResult:
    """Run the whole pipeline for *project*.

    Args:
        project:           What to build and how.
        max_uses_override: Per-photo use limit; ``None`` uses the plan's
                           recommendation.
        on_progress:       Receives a :class:`MosaicProgress` whenever the
                           percent or stage label changes.
        is_cancelled:      Polled between photos and between cells; return
                           ``True`` to stop the run.

    Returns:
        A :class:`MosaicResult`; never raises.
    """
    started = time.perf_counter()
    progress = ProgressReporter(on_progress)
    check_cancelled = CancellationCheck(is_cancelled)
    builder: CellCacheBuilder | None = None
    grid: GridDimensions | None = None

    try:
        progress.stage(Stage.VALIDATING)
        validate_project(project)

        progress.stage(Stage.RESOLVE_PATTERN)
        pattern = _resolved_pattern(project)

        progress.stage(Stage.VERIFY_PRIMARY_IMAGE)
        primary_path, primary_width, primary_height = verify_primary_image(project)

        progress.stage(Stage.CALCULATE_GRID)
        grid = project_grid(project, pattern, primary_width, primary_height)

        progress.stage(Stage.LOAD_PRIMARY_IMAGE)
        primary = load_image(primary_path, *working_size(grid, primary_width, primary_height))
        logger.info(
            "Primary %dx%d → mosaic %dx%d px (%d rows x %d cols, %s)",
            primary_width, primary_height, grid.width, grid.height,
            grid.rows, grid.columns, format_pattern(pattern),
        )

        builder = CellCacheBuilder(
            grid, project.cell_fit_mode, pattern, progress, check_cancelled,
        )
        cache = builder.build(project.cell_photos)
        if not cache:
            raise NoUsablePhotosError("No valid cell photos were loaded")

        progress.stage(Stage.BUILD_PLAN)
        plan = build_plan(grid, pattern, (item.orientation for item in cache))
        max_uses = max_uses_override if max_uses_override is not None else plan.max_photo_uses

        progress.stage(Stage.PREPARE_PRIMARY_IMAGE)
        prepared = prepare_primary_image(primary, grid.width, grid.height, project.sizing_mode)

        progress.stage(Stage.CREATE_MOSAIC)
        mosaic, usage = compose_mosaic(
            prepared, cache, grid, pattern, project, max_uses,
            progress, check_cancelled, np.random.default_rng(project.seed),
        )

        progress.stage(Stage.SAVE_RESULTS)
        output_dir = Path(project.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        mosaic_path = save_jpeg(mosaic, output_dir, "mosaic_")
        overlay_path = save_jpeg(
            blur_image(prepared, project.overlay_blur_radius), output_dir, "mosaic_overlay_",
        )

        progress.stage(Stage.WRITE_REPORT)
        report_path = (
            write_usage_report(usage, cache, output_dir) if project.create_report else None
        )

        used = len({entry.path for entry in usage})
        elapsed = time.perf_counter() - started
        progress.stage(Stage.COMPLETE)
        logger.info(
            "Mosaic saved: %s  (%d/%d photos used, %.1f s)",
            mosaic_path, used, len(cache), elapsed,
        )
        return MosaicResult(
            outcome=Outcome.SUCCESS,
            grid_rows=grid.rows,
            grid_columns=grid.columns,
            output_width=grid.width,
            output_height=grid.height,
            mosaic_path=mosaic_path,
            overlay_path=overlay_path,
            usage_report_path=report_path,
            total_cell_photos=len(cache),
            used_cell_photos=used,
            usage=tuple(usage),
            generation_seconds=elapsed,
        )
    except GenerationCancelled:
        logger.info("Mosaic generation cancelled")
        return _unsuccessful(Outcome.CANCELLED, CANCELLED_MESSAGE, grid, started)
    except MosaicError as exc:
        logger.error("%s%s", FAILED_PREFIX, exc)
        return _unsuccessful(Outcome.FAILURE, f"{FAILED_PREFIX}{exc}", grid, started)
    except Exception as exc:
        logger.exception("Unexpected mosaic generation error")
        return _unsuccessful(Outcome.FAILURE, f"{FAILED_PREFIX}{exc}", grid, started)
    finally:
        if builder is not None:
            builder.release()
