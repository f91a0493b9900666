"""Tests for the photo_mosaic building blocks."""

from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from photo_mosaic.cell_cache import CellCacheBuilder
from photo_mosaic.color_utils import (
    MAX_QUADRANT_DISTANCE,
    compute_cost_matrix,
    quadrant_colors,
    quadrant_distance,
    region_average,
    rgb_to_lab,
    signature_array,
)
from photo_mosaic.config import MosaicProject
from photo_mosaic.errors import GenerationCancelled
from photo_mosaic.grid import calculate_grid
from photo_mosaic.image_io import (
    blend_toward,
    blur_image,
    collect_cell_photos,
    compute_sample_size,
    load_image,
    paste_cell,
)
from photo_mosaic.matcher import Matcher, find_best_match
from photo_mosaic.models import (
    CellCounts,
    CellFitMode,
    CellPhoto,
    CellPhotoCache,
    CellShape,
    CellUsage,
    GridDimensions,
    MosaicPlacement,
    PatternInfo,
    PatternKind,
    PhotoCounts,
    PhotoOrientation,
    PrimarySizingMode,
    QuadrantColors,
    RgbColor,
)
from photo_mosaic.parquet import OccupancyGrid, ParquetLayout
from photo_mosaic.patterns import format_pattern, parse_pattern, resolve_pattern
from photo_mosaic.plan import build_plan, count_cells, recommended_max_uses
from photo_mosaic.progress import (
    CancellationCheck,
    MosaicProgress,
    ProgressReporter,
    ProgressThrottle,
    Stage,
    interpolate,
)
from photo_mosaic.report import REPORT_HEADER, usage_rows, write_usage_report

# -- Fixtures ----------------------------------------------------------

RED = RgbColor(255, 0, 0)
GREEN = RgbColor(0, 255, 0)
BLUE = RgbColor(0, 0, 255)
WHITE = RgbColor(255, 255, 255)
BLACK = RgbColor(0, 0, 0)

SQUARE = PatternInfo(PatternKind.SQUARE)
LANDSCAPE = PatternInfo(PatternKind.LANDSCAPE, 1, 0)
PORTRAIT = PatternInfo(PatternKind.PORTRAIT, 0, 1)


def solid(width: int, height: int, color: RgbColor) -> np.ndarray:
    return np.full((height, width, 3), color, dtype=np.uint8)


def write_photo(path: Path, width: int, height: int, color: RgbColor) -> CellPhoto:
    Image.fromarray(solid(width, height, color)).save(path)
    orientation = (
        PhotoOrientation.LANDSCAPE if width > height
        else PhotoOrientation.PORTRAIT if height > width
        else PhotoOrientation.SQUARE
    )
    return CellPhoto(str(path), orientation)


def cached(
    path: str,
    color: RgbColor,
    orientation: PhotoOrientation = PhotoOrientation.SQUARE,
) -> CellPhotoCache:
    quads = QuadrantColors.uniform(color)
    return CellPhotoCache(
        path=path,
        orientation=orientation,
        average_color=color,
        landscape_quadrants=quads,
        portrait_quadrants=quads,
    )


def placement(
    row: int,
    col: int,
    color: RgbColor,
    orientation: PhotoOrientation | None = None,
) -> MosaicPlacement:
    return MosaicPlacement(
        row=row, col=col, x=col * 10, y=row * 10, width=10, height=10,
        orientation=orientation,
        target_color=color,
        target_quadrants=QuadrantColors.uniform(color),
    )


def parquet_grid(unit_columns: int, unit_rows: int) -> GridDimensions:
    """4x3 cells of 100x75 px on a 25 px unit grid."""
    return GridDimensions(
        width=unit_columns * 25,
        height=unit_rows * 25,
        base_cell_pixels=25,
        cell_width=100,
        cell_height=75,
        landscape_cell_width=100,
        landscape_cell_height=75,
        portrait_cell_width=75,
        portrait_cell_height=100,
        rows=unit_rows,
        columns=unit_columns,
        unit_rows=unit_rows,
        unit_columns=unit_columns,
    )


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        project = MosaicProject()
        assert project.pattern == "Square"
        assert project.random_candidates == 5
        assert project.cell_fit_mode is CellFitMode.CROP_CENTER

    def test_frozen(self) -> None:
        project = MosaicProject()
        with pytest.raises(AttributeError):
            project.pattern = "Parquet"  # type: ignore[misc]

    def test_clamped_settings(self) -> None:
        project = MosaicProject(random_candidates=50, color_change_percent=-5)
        assert project.clamped_candidates == 20
        assert project.clamped_color_change == 0
        assert MosaicProject(random_candidates=0).clamped_candidates == 1


# -- Patterns ----------------------------------------------------------

class TestPatterns:
    @pytest.mark.parametrize(
        ("descriptor", "kind", "landscape", "portrait"),
        [
            ("Square", PatternKind.SQUARE, 0, 0),
            ("landscape", PatternKind.LANDSCAPE, 1, 0),
            ("  PORTRAIT ", PatternKind.PORTRAIT, 0, 1),
            ("Parquet 2L 1P", PatternKind.PARQUET, 2, 1),
            ("parquet3l2p", PatternKind.PARQUET, 3, 2),
            ("Parquet 0L 0P", PatternKind.PARQUET, 1, 1),
            ("hexagon", PatternKind.SQUARE, 0, 0),
            ("", PatternKind.SQUARE, 0, 0),
        ],
    )
    def test_parse(
        self, descriptor: str, kind: PatternKind, landscape: int, portrait: int,
    ) -> None:
        info = parse_pattern(descriptor)
        assert info.kind is kind
        assert (info.landscape_count, info.portrait_count) == (landscape, portrait)

    def test_none_is_square(self) -> None:
        assert parse_pattern(None).kind is PatternKind.SQUARE

    def test_bare_parquet_is_not_explicit(self) -> None:
        info = parse_pattern("Parquet")
        assert info == PatternInfo(PatternKind.PARQUET, 1, 1, explicit_ratio=False)

    def test_resolve_from_library(self) -> None:
        orientations = [PhotoOrientation.LANDSCAPE] * 4 + [PhotoOrientation.PORTRAIT] * 2
        info = resolve_pattern(parse_pattern("Parquet"), orientations)
        assert (info.landscape_count, info.portrait_count) == (2, 1)

    def test_resolve_keeps_explicit_ratio(self) -> None:
        info = parse_pattern("Parquet 1L 3P")
        assert resolve_pattern(info, [PhotoOrientation.LANDSCAPE] * 9) == info

    def test_format(self) -> None:
        assert format_pattern(parse_pattern("parquet 2l 1p")) == "Parquet 2L 1P"
        assert format_pattern(LANDSCAPE) == "Landscape"


# -- Grid --------------------------------------------------------------

class TestGrid:
    """Primary 1600x800, 10x8 in print, 100 ppi, 25.4 mm cells."""

    def grid(self, pattern: PatternInfo, **kwargs: object) -> GridDimensions:
        return calculate_grid(10, 8, 100, 25.4, 1600, 800, pattern, **kwargs)

    def test_square(self) -> None:
        grid = self.grid(SQUARE)
        assert (grid.columns, grid.rows) == (10, 5)
        assert (grid.width, grid.height) == (1000, 500)

    def test_square_pattern_forces_square_cells(self) -> None:
        grid = self.grid(SQUARE, cell_shape=CellShape.RECTANGLE_4X3)
        assert (grid.cell_width, grid.cell_height) == (100, 100)

    def test_landscape_4x3(self) -> None:
        grid = self.grid(LANDSCAPE, cell_shape=CellShape.RECTANGLE_4X3)
        assert (grid.cell_width, grid.cell_height) == (100, 75)
        assert (grid.width, grid.height) == (1000, 450)

    def test_portrait_4x3(self) -> None:
        grid = self.grid(PORTRAIT, cell_shape=CellShape.RECTANGLE_4X3)
        assert (grid.cell_width, grid.cell_height) == (75, 100)
        assert (grid.width, grid.height) == (975, 500)

    def test_parquet_uses_unit_grid(self) -> None:
        grid = self.grid(parse_pattern("Parquet 2L 1P"))
        assert grid.base_cell_pixels == 25
        assert (grid.columns, grid.rows) == (40, 20)
        assert (grid.width, grid.height) == (1000, 500)

    def test_crop_mode_fills_print(self) -> None:
        grid = self.grid(SQUARE, sizing_mode=PrimarySizingMode.CROP_TO_PRINT_SIZE)
        assert (grid.width, grid.height) == (1000, 800)

    def test_print_follows_primary_orientation(self) -> None:
        grid = calculate_grid(10, 8, 100, 25.4, 800, 1600, SQUARE)
        assert (grid.width, grid.height) == (500, 1000)

    def test_tiny_inputs_clamp_to_one(self) -> None:
        grid = calculate_grid(0.01, 0.01, 10, 0.1, 50, 50, SQUARE)
        for value in (grid.width, grid.height, grid.rows, grid.columns, grid.cell_width):
            assert value >= 1

    @pytest.mark.parametrize("shape", list(CellShape))
    def test_output_is_whole_cells(self, shape: CellShape) -> None:
        grid = calculate_grid(7.5, 5, 150, 12, 3000, 2000, LANDSCAPE, cell_shape=shape)
        assert grid.width == grid.columns * grid.cell_width
        assert grid.height == grid.rows * grid.cell_height


# -- Colour utilities --------------------------------------------------

class TestColorUtils:
    def test_identical_signatures(self) -> None:
        quads = QuadrantColors.uniform(RgbColor(12, 34, 56))
        assert quadrant_distance(quads, quads) == 0.0

    def test_max_distance(self) -> None:
        black, white = QuadrantColors.uniform(BLACK), QuadrantColors.uniform(WHITE)
        assert quadrant_distance(black, white) == pytest.approx(MAX_QUADRANT_DISTANCE)
        assert MAX_QUADRANT_DISTANCE == pytest.approx(4 * 255 * math.sqrt(3))

    def test_quadrant_colors(self) -> None:
        image = np.zeros((20, 20, 3), dtype=np.uint8)
        image[:10, :10] = RED
        image[:10, 10:] = GREEN
        image[10:, :10] = BLUE
        image[10:, 10:] = WHITE
        assert quadrant_colors(image, 0, 0, 20, 20) == QuadrantColors(RED, GREEN, BLUE, WHITE)

    def test_region_outside_image_is_gray(self) -> None:
        image = solid(10, 10, RED)
        assert region_average(image, 50, 50, 10, 10) == RgbColor(128, 128, 128)

    def test_region_clipped_to_image(self) -> None:
        image = solid(10, 10, BLUE)
        assert region_average(image, -5, -5, 10, 10) == BLUE

    def test_lab_signatures(self) -> None:
        sigs = signature_array([QuadrantColors.uniform(RED)], "lab")
        assert sigs.shape == (1, 4, 3)
        np.testing.assert_allclose(sigs[0, 0], rgb_to_lab(np.array([RED]))[0])

    def test_unknown_color_space(self) -> None:
        with pytest.raises(ValueError):
            signature_array([QuadrantColors.uniform(RED)], "hsv")

    def test_cost_matrix(self) -> None:
        sigs = signature_array(
            [QuadrantColors.uniform(RED), QuadrantColors.uniform(BLUE)],
        )
        cost = compute_cost_matrix(sigs, sigs, chunk_size=1)
        assert cost.shape == (2, 2)
        assert cost.dtype == np.float32
        np.testing.assert_allclose(np.diag(cost), 0.0, atol=1e-5)


# -- Image I/O ---------------------------------------------------------

class TestImageIO:
    def test_sample_size_is_power_of_two(self) -> None:
        assert compute_sample_size(400, 300, 100, 100) == 4
        assert compute_sample_size(100, 100, 100, 100) == 1

    def test_load_reduces(self, tmp_path: Path) -> None:
        path = tmp_path / "big.png"
        Image.fromarray(solid(400, 300, GREEN)).save(path)
        image = load_image(path, 100, 100)
        assert image.shape == (75, 100, 3)
        assert tuple(image[0, 0]) == GREEN

    def test_blend(self) -> None:
        image = solid(4, 4, BLACK)
        assert blend_toward(image, WHITE, 0) is image
        np.testing.assert_array_equal(blend_toward(image, WHITE, 100), solid(4, 4, WHITE))

    def test_paste_clips(self) -> None:
        canvas = np.zeros((10, 10, 3), dtype=np.uint8)
        paste_cell(canvas, solid(6, 6, RED), -3, 7)
        assert tuple(canvas[9, 0]) == RED
        assert tuple(canvas[9, 3]) == BLACK
        assert tuple(canvas[6, 0]) == BLACK

    def test_blur_caps_size(self) -> None:
        image = solid(2048, 1024, RED)
        assert blur_image(image, 2).shape == (512, 1024, 3)

    def test_collect_cell_photos(self, tmp_path: Path) -> None:
        write_photo(tmp_path / "a.png", 40, 30, RED)
        write_photo(tmp_path / "b.png", 30, 40, BLUE)
        (tmp_path / "notes.txt").write_text("skip me")
        (tmp_path / "broken.jpg").write_bytes(b"not an image")
        photos = collect_cell_photos(tmp_path)
        assert [Path(p.path).name for p in photos] == ["a.png", "b.png"]
        assert [p.orientation for p in photos] == [
            PhotoOrientation.LANDSCAPE, PhotoOrientation.PORTRAIT,
        ]


# -- Parquet -----------------------------------------------------------

class TestOccupancy:
    def test_mark_and_query(self) -> None:
        occ = OccupancyGrid(4, 5)
        occ.mark(1, 1, 2, 2)
        assert occ.is_occupied(2, 2)
        assert not occ.can_place(2, 2, 1, 1)
        assert occ.can_place(3, 0, 2, 4)
        assert occ.occupied_count == 4

    def test_out_of_bounds(self) -> None:
        occ = OccupancyGrid(3, 3)
        assert not occ.can_place(2, 0, 2, 1)
        with pytest.raises(ValueError):
            occ.mark(-1, 0, 1, 1)

    def test_overlap_rejected(self) -> None:
        occ = OccupancyGrid(3, 3)
        occ.mark(0, 0, 2, 2)
        with pytest.raises(ValueError):
            occ.mark(1, 1, 2, 2)

    def test_empty_grid_rejected(self) -> None:
        with pytest.raises(ValueError):
            OccupancyGrid(0, 3)


class TestParquet:
    def test_two_to_one_ratio(self) -> None:
        grid = parquet_grid(40, 20)
        counts = count_cells(grid, parse_pattern("Parquet 2L 1P"))
        assert counts.landscape > 0
        assert counts.portrait > 0
        assert 1.2 < counts.landscape / counts.portrait < 3.0
        assert counts.total == counts.landscape + counts.portrait

    def test_cells_stay_in_bounds(self) -> None:
        layout = ParquetLayout.from_grid(parquet_grid(40, 20), parse_pattern("Parquet 2L 1P"))
        for cell in layout.cells():
            assert 0 <= cell.unit_col
            assert cell.unit_col + cell.width_units <= layout.total_columns
            assert 0 <= cell.unit_row
            assert cell.unit_row + cell.height_units <= layout.total_rows

    def test_visible_cells_intersect_canvas(self) -> None:
        grid = parquet_grid(16, 12)
        layout = ParquetLayout.from_grid(grid, parse_pattern("Parquet 1L 1P"))
        cells = list(layout.visible_cells())
        assert cells
        for cell in cells:
            assert cell.x < grid.width and cell.x + cell.width > 0
            assert cell.y < grid.height and cell.y + cell.height > 0

    @pytest.mark.parametrize("seed", range(6))
    def test_no_overlap_random_layouts(self, seed: int) -> None:
        rng = np.random.default_rng(seed)
        pattern = PatternInfo(
            PatternKind.PARQUET, int(rng.integers(1, 4)), int(rng.integers(1, 4)),
        )
        grid = parquet_grid(int(rng.integers(4, 40)), int(rng.integers(4, 30)))
        layout = ParquetLayout.from_grid(grid, pattern)

        coverage = np.zeros((layout.total_rows, layout.total_columns), dtype=np.int32)
        for cell in layout.cells():
            coverage[
                cell.unit_row:cell.unit_row + cell.height_units,
                cell.unit_col:cell.unit_col + cell.width_units,
            ] += 1
        assert coverage.max() <= 1

        canvas = np.zeros((grid.height, grid.width), dtype=np.int32)
        for cell in layout.visible_cells():
            x1, y1 = max(0, cell.x), max(0, cell.y)
            canvas[y1:cell.y + cell.height, x1:cell.x + cell.width] += 1
        assert canvas.max() <= 1


# -- Plan --------------------------------------------------------------

class TestPlan:
    def test_recommended_uses(self) -> None:
        assert recommended_max_uses(CellCounts(10, 0, 0), PhotoCounts(3, 3, 3), SQUARE) == 8
        assert recommended_max_uses(CellCounts(2, 0, 0), PhotoCounts(5, 5, 5), SQUARE) == 2

    def test_unlimited_without_cells_or_photos(self) -> None:
        assert recommended_max_uses(CellCounts(0, 0, 0), PhotoCounts(3, 3, 3), SQUARE) is None
        assert recommended_max_uses(CellCounts(4, 0, 0), PhotoCounts(0, 0, 0), SQUARE) is None

    def test_parquet_needs_both_orientations(self) -> None:
        pattern = parse_pattern("Parquet 2L 1P")
        cells = CellCounts(30, 20, 10)
        assert recommended_max_uses(cells, PhotoCounts(5, 5, 0), pattern) is None
        # ceil(20/5)=4 landscape, ceil(10/2)=5 portrait
        assert recommended_max_uses(cells, PhotoCounts(7, 5, 2), pattern) == 10

    def test_square_photos_serve_both(self) -> None:
        grid = calculate_grid(10, 8, 100, 25.4, 1600, 800, LANDSCAPE)
        plan = build_plan(grid, LANDSCAPE, [
            PhotoOrientation.LANDSCAPE,
            PhotoOrientation.SQUARE,
            PhotoOrientation.PORTRAIT,
        ])
        assert plan.total_cells == 50
        assert plan.landscape_cells == 50
        assert plan.available_photos == 2
        assert plan.available_portrait_photos == 2
        assert plan.max_photo_uses == 50


# -- Matcher -----------------------------------------------------------

class TestMatcher:
    def test_exact_nearest_with_one_candidate(self) -> None:
        """2x2 grid of four colours; each cell gets its own colour."""
        cache = [cached(name, color) for name, color in
                 [("red", RED), ("green", GREEN), ("blue", BLUE), ("white", WHITE)]]
        matcher = Matcher(cache, candidate_count=1, rng=np.random.default_rng(0))
        for (row, col), color, name in [
            ((0, 0), RED, "red"), ((0, 1), GREEN, "green"),
            ((1, 0), BLUE, "blue"), ((1, 1), WHITE, "white"),
        ]:
            assert matcher.match(placement(row, col, color)).path == name

    def test_max_uses_leaves_cell_unfilled(self) -> None:
        cache = [cached("a", RED), cached("b", BLUE)]
        matcher = Matcher(cache, max_uses=1, rng=np.random.default_rng(1))
        filled = 0
        for col in range(3):
            target = placement(0, col, RED)
            photo = matcher.match(target)
            if photo is not None:
                matcher.record_use(photo, target)
                filled += 1
        assert filled == 2
        assert all(c.use_count <= 1 for c in cache)

    def test_use_count_never_exceeds_limit(self) -> None:
        cache = [cached(str(i), RgbColor(i * 20, 0, 0)) for i in range(4)]
        matcher = Matcher(cache, max_uses=3, candidate_count=4, rng=np.random.default_rng(2))
        for i in range(20):
            target = placement(i // 5, i % 5, RED)
            photo = matcher.match(target)
            if photo is not None:
                matcher.record_use(photo, target)
        assert max(c.use_count for c in cache) <= 3
        assert len(matcher.usage) == 12

    def test_spacing(self) -> None:
        cache = [cached("only", RED)]
        matcher = Matcher(cache, row_spacing=1, col_spacing=1)
        matcher.record_use(cache[0], placement(0, 0, RED))
        assert matcher.match(placement(1, 1, RED)) is None
        assert matcher.match(placement(2, 0, RED)) is cache[0]

    def test_orientation_filter(self) -> None:
        portrait = cached("p", RED, PhotoOrientation.PORTRAIT)
        square = cached("s", BLUE, PhotoOrientation.SQUARE)
        matcher = Matcher([portrait, square], candidate_count=1)
        target = placement(0, 0, RED, PhotoOrientation.LANDSCAPE)
        assert matcher.match(target) is square
        assert Matcher([portrait]).match(target) is None

    def test_stateless_wrapper(self) -> None:
        cache = [cached("a", RED), cached("b", BLUE)]
        photo = find_best_match(
            cache, QuadrantColors.uniform(BLUE), max_uses=None,
            row_spacing=0, col_spacing=0, row=0, col=0, candidate_count=1,
            usage_history={}, required_orientation=None,
        )
        assert photo.path == "b"

    @pytest.mark.parametrize("solver", ["greedy", "hungarian"])
    def test_assign_all(self, solver: str) -> None:
        cache = [cached("r", RED), cached("g", GREEN), cached("b", BLUE)]
        dark_red = RgbColor(200, 0, 0)
        placements = [placement(0, i, c) for i, c in enumerate([BLUE, RED, GREEN, dark_red])]
        pairs, remaining = Matcher(cache).assign_all(placements, solver)
        assert {(photo.path, p.col) for photo, p in pairs} == {("b", 0), ("r", 1), ("g", 2)}
        assert [p.col for p in remaining] == [3]
        assert all(c.use_count == 0 for c in cache)

    def test_unknown_solver(self) -> None:
        with pytest.raises(ValueError):
            Matcher([cached("a", RED)]).assign_all([placement(0, 0, RED)], "magic")

    @pytest.mark.parametrize("solver", ["greedy", "hungarian"])
    def test_assign_all_polls_cancellation(self, solver: str) -> None:
        cache = [cached(str(i), RgbColor(i * 40, 0, 0)) for i in range(5)]
        placements = [placement(0, i, RED) for i in range(5)]
        polls: list[int] = []

        def is_cancelled() -> bool:
            polls.append(1)
            return len(polls) > 1

        with pytest.raises(GenerationCancelled):
            Matcher(cache).assign_all(placements, solver, CancellationCheck(is_cancelled))
        assert len(polls) == 2


# -- Cell cache --------------------------------------------------------

class TestCellCache:
    @pytest.fixture
    def photos(self, tmp_path: Path) -> list[CellPhoto]:
        colors = [RED, GREEN, BLUE, WHITE, BLACK]
        return [
            write_photo(tmp_path / f"p{i}.png", 60, 40, color)
            for i, color in enumerate(colors)
        ]

    def grid(self, pattern: PatternInfo = SQUARE) -> GridDimensions:
        return calculate_grid(2, 2, 20, 25.4, 100, 100, pattern)

    def test_build(self, photos: list[CellPhoto]) -> None:
        cache = CellCacheBuilder(self.grid(), CellFitMode.CROP_CENTER, SQUARE).build(photos)
        assert len(cache) == 5
        assert cache[0].landscape_image.shape == (20, 20, 3)
        assert cache[0].portrait_image is None
        assert cache[1].average_color == GREEN

    def test_wrong_orientation_skipped(self, tmp_path: Path) -> None:
        photos = [
            write_photo(tmp_path / "l.png", 60, 40, RED),
            write_photo(tmp_path / "p.png", 40, 60, RED),
            write_photo(tmp_path / "s.png", 40, 40, RED),
        ]
        cache = CellCacheBuilder(
            self.grid(LANDSCAPE), CellFitMode.STRETCH_TO_FIT, LANDSCAPE,
        ).build(photos)
        assert [Path(c.path).name for c in cache] == ["l.png", "s.png"]

    def test_unreadable_photo_dropped(self, tmp_path: Path, photos: list[CellPhoto]) -> None:
        broken = tmp_path / "broken.png"
        broken.write_bytes(b"garbage")
        bad = CellPhoto(str(broken), PhotoOrientation.LANDSCAPE)
        cache = CellCacheBuilder(self.grid(), CellFitMode.CROP_CENTER, SQUARE).build(
            [bad, *photos[:2]],
        )
        assert len(cache) == 2

    def test_repeated_path_cached_once(self, photos: list[CellPhoto]) -> None:
        cache = CellCacheBuilder(self.grid(), CellFitMode.CROP_CENTER, SQUARE).build(
            [photos[0], photos[1], photos[0]],
        )
        assert [c.path for c in cache] == [photos[0].path, photos[1].path]

    def test_cancel_releases_everything(self, photos: list[CellPhoto]) -> None:
        polls: list[int] = []

        def is_cancelled() -> bool:
            polls.append(1)
            return len(polls) > 2

        builder = CellCacheBuilder(
            self.grid(), CellFitMode.CROP_CENTER, SQUARE,
            check_cancelled=CancellationCheck(is_cancelled),
        )
        with pytest.raises(GenerationCancelled):
            builder.build(photos)
        assert len(builder.entries) == 2
        assert all(entry.is_released for entry in builder.entries)


# -- Progress ----------------------------------------------------------

class TestProgress:
    def test_interpolate(self) -> None:
        assert interpolate((10, 95), 0, 100) == 10
        assert interpolate((10, 95), 50, 100) == 52
        assert interpolate((10, 95), 100, 100) == 95
        assert interpolate((5, 10), 0, 0) == 10

    def test_percent_bounds(self) -> None:
        with pytest.raises(ValueError):
            MosaicProgress(101, "Too far")

    def test_reporter_drops_repeats(self) -> None:
        events: list[MosaicProgress] = []
        reporter = ProgressReporter(events.append)
        reporter.stage(Stage.BUILD_PLAN)
        reporter.stage(Stage.BUILD_PLAN)
        reporter.stage(Stage.PREPARE_PRIMARY_IMAGE)
        assert events == [
            MosaicProgress(10, "Building Mosaic Plan"),
            MosaicProgress(10, "Preparing Primary Image"),
        ]

    def test_throttle(self) -> None:
        now = [0.0]
        seen: list[MosaicProgress] = []
        throttle = ProgressThrottle(seen.append, min_interval=1.0, clock=lambda: now[0])
        throttle(MosaicProgress(10, "Creating Mosaic"))
        now[0] = 0.5
        throttle(MosaicProgress(20, "Creating Mosaic"))
        now[0] = 1.2
        throttle(MosaicProgress(30, "Creating Mosaic"))
        now[0] = 1.3
        throttle(MosaicProgress(95, "Saving Results"))
        throttle(MosaicProgress(100, "Complete"))
        assert [e.percent for e in seen] == [10, 30, 95, 100]

    def test_cancellation_check(self) -> None:
        CancellationCheck()()
        CancellationCheck(lambda: False)()
        with pytest.raises(GenerationCancelled, match="cancelled"):
            CancellationCheck(lambda: True)()


# -- Report ------------------------------------------------------------

class TestReport:
    def test_rows_cover_every_photo(self) -> None:
        used, unused = cached("/photos/a.jpg", RED), cached("/photos/b.jpg", BLUE)
        used.use_count = 2
        usage = [CellUsage(used.path, 0, 0), CellUsage(used.path, 100, 0)]
        assert usage_rows(usage, [used, unused]) == [
            ("a.jpg", 2, 0, 0),
            ("a.jpg", 2, 100, 0),
            ("b.jpg", 0, "", ""),
        ]

    def test_write(self, tmp_path: Path) -> None:
        photo = cached("/photos/a.jpg", RED)
        path = Path(write_usage_report([], [photo], tmp_path))
        assert path.name.startswith("mosaic_usage_")
        assert path.read_text(encoding="utf-8").splitlines() == [
            ",".join(REPORT_HEADER),
            "a.jpg,0,,",
        ]
