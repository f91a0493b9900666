"""Pattern descriptor parsing.

Grammar (case-insensitive, whitespace-tolerant)::

    "Square" | "Landscape" | "Portrait" | "Parquet" | "Parquet <N>L <M>P"

Anything unrecognised falls back to the square pattern. A bare
``"Parquet"`` means a 1:1 ratio that may later be re-derived from the
photo library (see :func:`resolve_pattern`).
"""

from __future__ import annotations

from collections.abc import Iterable

from photo_mosaic.models import (
    PatternInfo,
    PatternKind,
    PhotoOrientation,
)


def _read_count(text: str, pos: int, suffix: str) -> tuple[int, int] | None:
    """Read ``<digits> [spaces] <suffix>`` starting at *pos*.

    Returns ``(value, next_pos)`` or ``None`` when the text does not match.
    """
    while pos < len(text) and text[pos].isspace():
        pos += 1
    start = pos
    while pos < len(text) and text[pos].isdigit():
        pos += 1
    if pos == start:
        return None
    value = int(text[start:pos])
    while pos < len(text) and text[pos].isspace():
        pos += 1
    if pos >= len(text) or text[pos] != suffix:
        return None
    return value, pos + 1


def _parse_ratio(text: str) -> tuple[int, int] | None:
    """Find the first ``<N>L <M>P`` group anywhere in *text*."""
    for start in range(len(text)):
        if not text[start].isdigit() or (start > 0 and text[start - 1].isdigit()):
            continue
        landscape = _read_count(text, start, "l")
        if landscape is None:
            continue
        portrait = _read_count(text, landscape[1], "p")
        if portrait is None:
            continue
        return landscape[0], portrait[0]
    return None


def parse_pattern(descriptor: str | None) -> PatternInfo:
    """Turn a pattern descriptor into a :class:`PatternInfo`."""
    name = (descriptor or "Square").strip().lower()

    if name == "landscape":
        return PatternInfo(PatternKind.LANDSCAPE, 1, 0)
    if name == "portrait":
        return PatternInfo(PatternKind.PORTRAIT, 0, 1)
    if name.startswith("parquet"):
        ratio = _parse_ratio(name[len("parquet"):])
        if ratio is None:
            return PatternInfo(PatternKind.PARQUET, 1, 1, explicit_ratio=False)
        landscape, portrait = ratio
        return PatternInfo(PatternKind.PARQUET, max(1, landscape), max(1, portrait))
    return PatternInfo(PatternKind.SQUARE, 0, 0)


def format_pattern(pattern: PatternInfo) -> str:
    if pattern.kind is PatternKind.PARQUET:
        return f"Parquet {pattern.landscape_count}L {pattern.portrait_count}P"
    return pattern.kind.value.capitalize()


def resolve_pattern(
    pattern: PatternInfo,
    orientations: Iterable[PhotoOrientation],
) -> PatternInfo:
    """Derive a bare parquet pattern's ratio from the photo library.

    With more landscape-capable photos than portrait-capable ones the
    sequence repeats ``landscape // portrait`` landscapes per portrait, and
    vice versa. Explicit ratios and the other patterns pass through.
    """
    if pattern.kind is not PatternKind.PARQUET or pattern.explicit_ratio:
        return pattern

    landscape = portrait = 0
    for orientation in orientations:
        if orientation is not PhotoOrientation.PORTRAIT:
            landscape += 1
        if orientation is not PhotoOrientation.LANDSCAPE:
            portrait += 1

    if landscape <= 0 or portrait <= 0:
        return pattern
    if landscape >= portrait:
        return PatternInfo(PatternKind.PARQUET, max(1, landscape // portrait), 1, False)
    return PatternInfo(PatternKind.PARQUET, 1, max(1, portrait // landscape), False)


def build_parquet_sequence(pattern: PatternInfo) -> list[PhotoOrientation]:
    """One repeat of the parquet row: N landscapes followed by M portraits."""
    return (
        [PhotoOrientation.LANDSCAPE] * max(1, pattern.landscape_count)
        + [PhotoOrientation.PORTRAIT] * max(1, pattern.portrait_count)
    )
