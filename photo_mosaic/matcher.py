"""Tile selection under use-limit and spacing constraints.

Matching is greedy: every placement takes a random pick among the few
closest photos that are still allowed there.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Sequence

import numpy as np
from scipy.optimize import linear_sum_assignment

from photo_mosaic.color_utils import (
    compute_cost_matrix,
    quadrant_distances,
    signature_array,
)
from photo_mosaic.config import MAX_RANDOM_CANDIDATES
from photo_mosaic.models import (
    CellPhotoCache,
    CellUsage,
    MosaicPlacement,
    PhotoOrientation,
    QuadrantColors,
)
from photo_mosaic.progress import CancellationCheck

logger = logging.getLogger(__name__)

UsageHistory = dict[str, list[tuple[int, int]]]

USE_ALL_SOLVERS = ("greedy", "hungarian")

# Orientation codes used to pick a photo's signature per placement
_LANDSCAPE, _PORTRAIT, _ANY = 0, 1, 2
_INCOMPATIBLE = 1e9


def _orientation_code(orientation: PhotoOrientation | None) -> int:
    if orientation is PhotoOrientation.PORTRAIT:
        return _PORTRAIT
    if orientation is PhotoOrientation.LANDSCAPE:
        return _LANDSCAPE
    return _ANY


class Matcher:
    """Per-run matching state: signatures, use history and usage log.

    Args:
        cache:         Cached photos; their ``use_count`` is updated in place.
        max_uses:      Per-photo limit (``None`` = unlimited).
        row_spacing:   Minimum row distance between repeats of a photo.
        col_spacing:   Minimum column distance between repeats of a photo.
        candidate_count: Shortlist size for the random pick (clamped to 1-20).
        pixel_keys:    Track positions as pixel (y, x) instead of grid (row, col).
        color_space:   ``"rgb"`` or ``"lab"``.
        rng:           Source of randomness (shortlist picks).
    """

    def __init__(
        self,
        cache: Sequence[CellPhotoCache],
        max_uses: int | None = None,
        row_spacing: int = 0,
        col_spacing: int = 0,
        candidate_count: int = 5,
        pixel_keys: bool = False,
        color_space: str = "rgb",
        rng: np.random.Generator | None = None,
    ) -> None:
        self.cache = list(cache)
        self.max_uses = max_uses
        self.row_spacing = max(0, row_spacing)
        self.col_spacing = max(0, col_spacing)
        self.candidate_count = min(max(candidate_count, 1), MAX_RANDOM_CANDIDATES)
        self.pixel_keys = pixel_keys
        self.color_space = color_space
        self.rng = rng if rng is not None else np.random.default_rng()

        self.history: UsageHistory = defaultdict(list)
        self.usage: list[CellUsage] = []

        self._index_by_path: dict[str, list[int]] = defaultdict(list)
        for i, item in enumerate(self.cache):
            self._index_by_path[item.path].append(i)

        orientations = [item.orientation for item in self.cache]
        self._serves = np.array([
            [o is not PhotoOrientation.PORTRAIT for o in orientations],
            [o is not PhotoOrientation.LANDSCAPE for o in orientations],
            [True] * len(orientations),
        ], dtype=bool).reshape(3, len(self.cache))
        # (3, N, 4, 3): landscape, portrait and native signatures
        self._signatures = np.stack([
            signature_array([c.landscape_quadrants for c in self.cache], color_space),
            signature_array([c.portrait_quadrants for c in self.cache], color_space),
            signature_array([c.quadrants_for(None) for c in self.cache], color_space),
        ])

    # -- Single placement ----------------------------------------------

    def find_best_match(
        self,
        target: QuadrantColors,
        row: int,
        col: int,
        required_orientation: PhotoOrientation | None = None,
        max_uses: int | None = None,
        row_spacing: int | None = None,
        col_spacing: int | None = None,
        candidate_count: int | None = None,
        usage_history: UsageHistory | None = None,
    ) -> CellPhotoCache | None:
        """Random pick among the closest photos still allowed at (row, col).

        Unset arguments fall back to the matcher's configuration. Returns
        ``None`` when no photo survives filtering; the cell stays empty.
        """
        max_uses = self.max_uses if max_uses is None else max_uses
        row_spacing = self.row_spacing if row_spacing is None else row_spacing
        col_spacing = self.col_spacing if col_spacing is None else col_spacing
        count = self.candidate_count if candidate_count is None else candidate_count
        count = min(max(count, 1), MAX_RANDOM_CANDIDATES)
        history = self.history if usage_history is None else usage_history

        code = _orientation_code(required_orientation)
        allowed = self._serves[code].copy()
        if max_uses is not None:
            allowed &= np.array([c.use_count < max_uses for c in self.cache], dtype=bool)
        if row_spacing > 0 or col_spacing > 0:
            for path, positions in history.items():
                if any(
                    abs(r - row) <= row_spacing and abs(c - col) <= col_spacing
                    for r, c in positions
                ):
                    allowed[self._index_by_path.get(path, [])] = False

        candidates = np.flatnonzero(allowed)
        if len(candidates) == 0:
            return None

        target_sig = signature_array([target], self.color_space)[0]
        distances = quadrant_distances(self._signatures[code][candidates], target_sig)
        shortlist = candidates[np.argsort(distances, kind="stable")[:count]]
        return self.cache[int(shortlist[self.rng.integers(len(shortlist))])]

    def spacing_key(self, placement: MosaicPlacement) -> tuple[int, int]:
        if self.pixel_keys:
            return placement.y, placement.x
        return placement.row, placement.col

    def match(self, placement: MosaicPlacement) -> CellPhotoCache | None:
        row, col = self.spacing_key(placement)
        return self.find_best_match(
            placement.target_quadrants, row, col, placement.orientation,
        )

    def record_use(self, photo: CellPhotoCache, placement: MosaicPlacement) -> None:
        photo.use_count += 1
        self.history[photo.path].append(self.spacing_key(placement))
        self.usage.append(CellUsage(photo.path, placement.x, placement.y))

    # -- "Use all images" pre-pass -------------------------------------

    def _usable_indices(self) -> list[int]:
        return [
            i for i, c in enumerate(self.cache)
            if self.max_uses is None or c.use_count < self.max_uses
        ]

    def assign_all(
        self,
        placements: Sequence[MosaicPlacement],
        solver: str = "greedy",
        check_cancelled: CancellationCheck | None = None,
    ) -> tuple[list[tuple[CellPhotoCache, MosaicPlacement]], list[MosaicPlacement]]:
        """Give every usable photo its best remaining placement, once.

        Returns the chosen (photo, placement) pairs and the placements left
        for the main pass. Nothing is recorded; the caller decides whether
        each pair is actually placed.

        Raises:
            GenerationCancelled: polled once per photo (greedy) or once per
                cost block (hungarian).
        """
        check_cancelled = check_cancelled or CancellationCheck()
        if solver not in USE_ALL_SOLVERS:
            msg = f"Unknown use-all solver '{solver}'. Available: {', '.join(USE_ALL_SOLVERS)}"
            raise ValueError(msg)
        if not placements or not self.cache:
            return [], list(placements)

        t0 = time.perf_counter()
        codes = np.array([_orientation_code(p.orientation) for p in placements])
        targets = signature_array(
            [p.target_quadrants for p in placements], self.color_space,
        )
        if solver == "hungarian":
            chosen = self._assign_hungarian(codes, targets, check_cancelled)
        else:
            chosen = self._assign_greedy(codes, targets, check_cancelled)

        taken = {j for _, j in chosen}
        pairs = [(self.cache[i], placements[j]) for i, j in chosen]
        remaining = [p for j, p in enumerate(placements) if j not in taken]
        logger.info(
            "Use-all pre-pass (%s): %d photos assigned  (%.1f s)",
            solver, len(pairs), time.perf_counter() - t0,
        )
        return pairs, remaining

    def _photo_costs(self, i: int, codes: np.ndarray, targets: np.ndarray) -> np.ndarray:
        sigs = self._signatures[:, i][codes]  # (M, 4, 3)
        cost = np.sqrt(np.sum((sigs - targets) ** 2, axis=2)).sum(axis=1)
        cost[~self._serves[codes, i]] = np.inf
        return cost

    def _assign_greedy(
        self, codes: np.ndarray, targets: np.ndarray, check_cancelled: CancellationCheck,
    ) -> list[tuple[int, int]]:
        free = np.ones(len(codes), dtype=bool)
        chosen = []
        for i in self._usable_indices():
            check_cancelled()
            if not free.any():
                break
            cost = self._photo_costs(i, codes, targets)
            cost[~free] = np.inf
            j = int(np.argmin(cost))
            if np.isinf(cost[j]):
                continue
            free[j] = False
            chosen.append((i, j))
        return chosen

    def _assign_hungarian(
        self, codes: np.ndarray, targets: np.ndarray, check_cancelled: CancellationCheck,
    ) -> list[tuple[int, int]]:
        usable = self._usable_indices()
        if not usable:
            return []
        cost = np.full((len(usable), len(codes)), _INCOMPATIBLE, dtype=np.float32)
        for code in (_LANDSCAPE, _PORTRAIT, _ANY):
            check_cancelled()
            cols = np.flatnonzero(codes == code)
            if len(cols) == 0:
                continue
            block = compute_cost_matrix(self._signatures[code][usable], targets[cols])
            block[~self._serves[code][usable]] = _INCOMPATIBLE
            cost[:, cols] = block

        check_cancelled()
        rows, cols = linear_sum_assignment(cost)
        return [
            (usable[r], int(c))
            for r, c in zip(rows, cols, strict=True)
            if cost[r, c] < _INCOMPATIBLE
        ]


def find_best_match(
    cache: Sequence[CellPhotoCache],
    target: QuadrantColors,
    max_uses: int | None,
    row_spacing: int,
    col_spacing: int,
    row: int,
    col: int,
    candidate_count: int,
    usage_history: UsageHistory,
    required_orientation: PhotoOrientation | None,
    rng: np.random.Generator | None = None,
) -> CellPhotoCache | None:
    """Stateless form of :meth:`Matcher.find_best_match`."""
    matcher = Matcher(cache, rng=rng)
    return matcher.find_best_match(
        target, row, col, required_orientation,
        max_uses=max_uses,
        row_spacing=row_spacing,
        col_spacing=col_spacing,
        candidate_count=candidate_count,
        usage_history=usage_history,
    )
