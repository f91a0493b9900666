"""Per-photo usage report (CSV)."""

from __future__ import annotations

import csv
import os
import tempfile
from collections import defaultdict
from collections.abc import Sequence
from pathlib import Path

from photo_mosaic.models import CellPhotoCache, CellUsage

REPORT_HEADER = ("Name", "UseCount", "X", "Y")


def usage_rows(
    usage: Sequence[CellUsage],
    cache: Sequence[CellPhotoCache],
) -> list[tuple[str, int, int | str, int | str]]:
    """One row per placement of each cached photo, in cache order.

    A photo that was never placed still gets a single row with empty
    coordinates.
    """
    by_path: dict[str, list[CellUsage]] = defaultdict(list)
    for entry in usage:
        by_path[entry.path].append(entry)

    rows = []
    for item in cache:
        name = Path(item.path).name
        entries = by_path.get(item.path)
        if not entries:
            rows.append((name, item.use_count, "", ""))
            continue
        rows.extend((name, item.use_count, e.x, e.y) for e in entries)
    return rows


def write_usage_report(
    usage: Sequence[CellUsage],
    cache: Sequence[CellPhotoCache],
    output_dir: str | Path,
) -> str:
    """Write the usage CSV under a unique name and return its path."""
    fd, path = tempfile.mkstemp(prefix="mosaic_usage_", suffix=".csv", dir=output_dir)
    with os.fdopen(fd, "w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(REPORT_HEADER)
        writer.writerows(usage_rows(usage, cache))
    return path
