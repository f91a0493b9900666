"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from photo_mosaic.config import MosaicProject
from photo_mosaic.engine import generate_mosaic, plan_mosaic
from photo_mosaic.image_io import collect_cell_photos
from photo_mosaic.models import (
    CellFitMode,
    CellShape,
    MosaicResult,
    Outcome,
    PrimarySizingMode,
)
from photo_mosaic.patterns import format_pattern, parse_pattern
from photo_mosaic.progress import MosaicProgress, ProgressThrottle

app = typer.Typer(
    name="photo-mosaic",
    help="Build print-ready photo mosaics from a library of cell photos.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()

# Defaults come from MosaicProject - single source of truth
_DEFAULTS = MosaicProject()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def parse_print_size(text: str) -> tuple[float, float]:
    """``"10x8"`` → (10.0, 8.0) inches."""
    parts = text.lower().replace(" ", "").split("x")
    try:
        width, height = (float(p) for p in parts)
    except ValueError:
        msg = f"Print size must look like WIDTHxHEIGHT, got '{text}'"
        raise typer.BadParameter(msg) from None
    if width <= 0 or height <= 0:
        msg = f"Print size must be positive, got '{text}'"
        raise typer.BadParameter(msg)
    return width, height


def _build_project(
    primary: Path,
    photos_dir: Path,
    print_size: str,
    **options: object,
) -> MosaicProject:
    photos = collect_cell_photos(photos_dir)
    if not photos:
        console.print(f"\n[yellow]No photos found in {photos_dir}/[/yellow]\n")
        raise typer.Exit(1)
    width, height = parse_print_size(print_size)
    return MosaicProject(
        primary_image_path=str(primary),
        cell_photos=tuple(photos),
        print_width_in=width,
        print_height_in=height,
        **options,
    )


def _run_with_progress(project: MosaicProject, max_uses: int | None) -> MosaicResult:
    """Generate on a worker thread; Ctrl-C asks the run to stop."""
    cancel = threading.Event()
    columns = (
        TextColumn("{task.description:<24}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
    )
    with Progress(*columns, console=console) as bar, \
            concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        task = bar.add_task("Starting", total=100)

        def on_progress(event: MosaicProgress) -> None:
            bar.update(task, completed=event.percent, description=event.stage)

        future = pool.submit(
            generate_mosaic, project, max_uses, ProgressThrottle(on_progress), cancel.is_set,
        )
        while True:
            try:
                return future.result(timeout=0.2)
            except concurrent.futures.TimeoutError:
                continue
            except KeyboardInterrupt:
                if not cancel.is_set():
                    console.print("[yellow]Cancelling - finishing the current step ...[/yellow]")
                cancel.set()


# -- generate command --------------------------------------------------

@app.command()
def generate(
    primary: Path = typer.Argument(..., help="Image the mosaic should reproduce"),
    photos_dir: Path = typer.Argument(..., help="Folder with cell photos"),
    print_size: str = typer.Option(
        "10x8", "--print-size", help="Print size in inches, WIDTHxHEIGHT",
    ),
    ppi: int = typer.Option(300, "--ppi", help="Output resolution (pixels per inch)"),
    cell_mm: float = typer.Option(25.4, "--cell-mm", help="Cell size in millimetres"),
    shape: CellShape = typer.Option(_DEFAULTS.cell_shape, "--shape", help="Cell shape"),
    fit: CellFitMode = typer.Option(
        _DEFAULTS.cell_fit_mode, "--fit", help="Fit photos by stretching or cropping",
    ),
    sizing: PrimarySizingMode = typer.Option(
        _DEFAULTS.sizing_mode, "--sizing",
        help="Keep the primary's aspect ratio or crop it to the print size",
    ),
    pattern: str = typer.Option(
        _DEFAULTS.pattern, "--pattern", "-p",
        help="Square, Landscape, Portrait, Parquet or e.g. 'Parquet 2L 1P'",
    ),
    color_change: int = typer.Option(
        _DEFAULTS.color_change_percent, "--color-change",
        help="Blend cells toward their target colour (0-100 %)",
    ),
    spacing: int | None = typer.Option(
        _DEFAULTS.duplicate_spacing, "--spacing",
        help="Minimum distance between repeats of a photo",
    ),
    candidates: int = typer.Option(
        _DEFAULTS.random_candidates, "--candidates", "-c",
        help="Random pick among the N closest photos (1-20)",
    ),
    use_all: bool = typer.Option(
        _DEFAULTS.use_all_images, "--use-all/--no-use-all",
        help="Place every photo at least once",
    ),
    solver: str = typer.Option(
        _DEFAULTS.use_all_solver, "--solver", help="Use-all pre-pass: 'greedy' or 'hungarian'",
    ),
    color_space: str = typer.Option(
        _DEFAULTS.color_space, "--color-space", help="'rgb' or 'lab'",
    ),
    max_uses: int | None = typer.Option(
        None, "--max-uses", help="Per-photo limit (default: from the plan)",
    ),
    report: bool = typer.Option(
        _DEFAULTS.create_report, "--report/--no-report", help="Write the usage CSV",
    ),
    blur: int = typer.Option(
        _DEFAULTS.overlay_blur_radius, "--blur", help="Overlay blur radius (0 = none)",
    ),
    seed: int | None = typer.Option(_DEFAULTS.seed, "--seed", "-s", help="Random seed"),
    output_dir: Path = typer.Option(
        _DEFAULTS.output_dir, "--output", "-o", help="Results folder",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Build a mosaic of PRIMARY from the photos in PHOTOS_DIR."""
    _setup_logging(verbose)

    project = _build_project(
        primary, photos_dir, print_size,
        resolution_ppi=ppi,
        cell_size_mm=cell_mm,
        cell_shape=shape,
        cell_fit_mode=fit,
        sizing_mode=sizing,
        pattern=pattern,
        color_change_percent=color_change,
        duplicate_spacing=spacing,
        random_candidates=candidates,
        use_all_images=use_all,
        use_all_solver=solver,
        color_space=color_space,
        create_report=report,
        overlay_blur_radius=blur,
        output_dir=output_dir,
        seed=seed,
    )

    console.print(Panel.fit(
        f"[bold]PHOTO MOSAIC[/bold]\n"
        f"Print: {project.print_width_in:g}x{project.print_height_in:g} in @ {ppi} ppi"
        f"  |  Cell: {cell_mm:g} mm {shape.value}\n"
        f"Pattern: {format_pattern(parse_pattern(pattern))}"
        f"  |  Photos: {len(project.cell_photos)}",
        border_style="cyan",
    ))

    result = _run_with_progress(project, max_uses)

    if result.outcome is Outcome.CANCELLED:
        console.print(f"[yellow]{result.error_message}[/yellow]")
        raise typer.Exit(130)
    if not result.is_success:
        console.print(f"[red]{result.error_message}[/red]")
        raise typer.Exit(1)

    lines = [
        f"[bold green]DONE[/bold green] - {result.output_width}x{result.output_height} px, "
        f"{result.grid_rows} rows x {result.grid_columns} cols",
        f"Mosaic:  {result.mosaic_path}",
        f"Overlay: {result.overlay_path}",
    ]
    if result.usage_report_path:
        lines.append(f"Report:  {result.usage_report_path}")
    lines.append(
        f"[dim]{result.used_cell_photos}/{result.total_cell_photos} photos used, "
        f"{result.unused_cell_photos} unused  time={result.generation_seconds:.1f}s[/dim]"
    )
    console.print(Panel.fit("\n".join(lines), border_style="green"))


# -- plan command ------------------------------------------------------

@app.command()
def plan(
    primary: Path = typer.Argument(..., help="Image the mosaic should reproduce"),
    photos_dir: Path = typer.Argument(..., help="Folder with cell photos"),
    print_size: str = typer.Option("10x8", "--print-size"),
    ppi: int = typer.Option(300, "--ppi"),
    cell_mm: float = typer.Option(25.4, "--cell-mm"),
    shape: CellShape = typer.Option(_DEFAULTS.cell_shape, "--shape"),
    sizing: PrimarySizingMode = typer.Option(_DEFAULTS.sizing_mode, "--sizing"),
    pattern: str = typer.Option(_DEFAULTS.pattern, "--pattern", "-p"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Show cell counts and the recommended per-photo use limit."""
    _setup_logging(verbose)

    project = _build_project(
        primary, photos_dir, print_size,
        resolution_ppi=ppi,
        cell_size_mm=cell_mm,
        cell_shape=shape,
        sizing_mode=sizing,
        pattern=pattern,
    )
    result = plan_mosaic(project)
    if not result.is_success:
        console.print(f"[red]{result.error_message}[/red]")
        raise typer.Exit(1)

    grid, mosaic_plan = result.grid, result.plan
    table = Table(title="Mosaic plan", show_header=False, border_style="cyan")
    table.add_row("Output", f"{grid.width}x{grid.height} px")
    table.add_row("Grid", f"{grid.rows} rows x {grid.columns} cols")
    table.add_row("Cell", f"{grid.cell_width}x{grid.cell_height} px")
    table.add_row(
        "Cells",
        f"{mosaic_plan.total_cells} ({mosaic_plan.landscape_cells} landscape, "
        f"{mosaic_plan.portrait_cells} portrait)",
    )
    table.add_row(
        "Photos",
        f"{mosaic_plan.available_photos} ({mosaic_plan.available_landscape_photos} landscape, "
        f"{mosaic_plan.available_portrait_photos} portrait)",
    )
    table.add_row(
        "Max uses",
        "unlimited" if mosaic_plan.max_photo_uses is None else str(mosaic_plan.max_photo_uses),
    )
    console.print(table)


if __name__ == "__main__":
    app()
