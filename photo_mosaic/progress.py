"""Generation stages, progress events and cooperative cancellation."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from photo_mosaic.errors import GenerationCancelled


class Stage(Enum):
    """Pipeline stages with the percent at which each one starts."""

    VALIDATING = (0, "Validating")
    RESOLVE_PATTERN = (1, "Resolving Pattern")
    VERIFY_PRIMARY_IMAGE = (2, "Verifying Primary Image")
    CALCULATE_GRID = (3, "Calculating Grid")
    LOAD_PRIMARY_IMAGE = (4, "Loading Primary Image")
    BUILD_CELL_CACHE = (5, "Building Cell Cache")
    BUILD_PLAN = (10, "Building Mosaic Plan")
    PREPARE_PRIMARY_IMAGE = (10, "Preparing Primary Image")
    CREATE_MOSAIC = (10, "Creating Mosaic")
    SAVE_RESULTS = (95, "Saving Results")
    WRITE_REPORT = (98, "Writing Report")
    COMPLETE = (100, "Complete")

    @property
    def percent(self) -> int:
        return self.value[0]

    @property
    def label(self) -> str:
        return self.value[1]


# Linear ranges for the two long-running stages.
CELL_CACHE_RANGE = (5, 10)
CREATE_MOSAIC_RANGE = (10, 95)


@dataclass(frozen=True)
class MosaicProgress:
    percent: int
    stage: str

    def __post_init__(self) -> None:
        if not 0 <= self.percent <= 100:
            msg = f"Progress must be 0-100, got {self.percent}"
            raise ValueError(msg)


ProgressCallback = Callable[[MosaicProgress], None]
CancelCheck = Callable[[], bool]


def interpolate(span: tuple[int, int], done: int, total: int) -> int:
    """Map *done* of *total* linearly into the percent range *span*."""
    start, end = span
    if total <= 0:
        return end
    done = min(max(done, 0), total)
    return start + (done * (end - start)) // total


class ProgressReporter:
    """Forwards progress to an optional callback, dropping repeats."""

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self._callback = callback
        self._last: MosaicProgress | None = None

    def report(self, percent: int, stage: str) -> None:
        if self._callback is None:
            return
        event = MosaicProgress(min(max(percent, 0), 100), stage)
        if event == self._last:
            return
        self._last = event
        self._callback(event)

    def stage(self, stage: Stage) -> None:
        self.report(stage.percent, stage.label)

    def step(self, stage: Stage, span: tuple[int, int], done: int, total: int) -> None:
        self.report(interpolate(span, done, total), stage.label)


class CancellationCheck:
    """Polls the caller's ``is_cancelled`` at loop boundaries."""

    def __init__(self, is_cancelled: CancelCheck | None = None) -> None:
        self._is_cancelled = is_cancelled

    def __call__(self) -> None:
        if self._is_cancelled is not None and self._is_cancelled():
            raise GenerationCancelled("Mosaic generation cancelled")


class ProgressThrottle:
    """Rate-limits progress rendering for interactive callers.

    Always lets through the first event, stage changes and 100 %.
    """

    def __init__(
        self,
        callback: ProgressCallback,
        min_interval: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._min_interval = min_interval
        self._clock = clock
        self._last_time: float | None = None
        self._last_stage: str | None = None

    def __call__(self, event: MosaicProgress) -> None:
        now = self._clock()
        if (
            self._last_time is None
            or event.stage != self._last_stage
            or event.percent >= 100
            or now - self._last_time >= self._min_interval
        ):
            self._last_time = now
            self._last_stage = event.stage
            self._callback(event)
