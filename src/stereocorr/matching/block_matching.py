from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

from stereocorr.core.correspondence import Correspondences, WindowSize, as_points, odd_window_size
from stereocorr.core.cost import CostFunction, CostName, cost_function, supported_encoding, window_intensity
from stereocorr.core.preconditions import require
from stereocorr.core.pyramid import build_pyramid
from stereocorr.matching.subpixel import refine_subpixel


logger = logging.getLogger(__name__)


def _cdiv(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _cmod(a: int, b: int) -> int:
    """Remainder with the sign of the dividend, paired with `_cdiv`."""
    return a - b * _cdiv(a, b)


@dataclass(frozen=True)
class LevelSearch:
    level: int
    lo: int  # level-local disparity bounds actually scanned (inclusive)
    hi: int
    evaluated: int
    winner: int | None  # level-local disparity
    best_score: float
    second_best: float


@dataclass(frozen=True)
class DisparitySearch:
    """Coarse-to-fine search trace for one point; `levels` is ordered coarsest first."""

    winner: int | None  # full-resolution disparity found at level 0
    best_score: float
    evaluated: int  # candidates evaluated at level 0
    levels: list[LevelSearch] = field(default_factory=list)


def recenter_disparity_range(
    winner: int,
    level: int,
    min_disparity: int,
    max_disparity: int,
) -> tuple[int, int]:
    """
    Disparity bounds for the next finer level around a level-local winner.

    The range spans one level unit on each side of the winner, scaled back to full resolution,
    nudged by the remainder modulo the level index and clamped to the global bounds.
    """
    scale = 1 << level
    new_max = (winner + 1) * scale
    new_max += _cmod(new_max, level)
    new_min = (winner - 1) * scale
    new_min -= _cmod(new_min, level)
    return max(new_min, min_disparity), min(new_max, max_disparity)


def _is_textured(window: np.ndarray) -> bool:
    w = window_intensity(window)
    return bool(np.max(w) > np.min(w))


def search_disparity(
    left_pyramid: Sequence[np.ndarray],
    right_pyramid: Sequence[np.ndarray],
    pt: Sequence[float],
    *,
    win_size: WindowSize,
    cost_fn: CostFunction,
    min_disparity: int,
    max_disparity: int,
) -> DisparitySearch:
    """
    Integer disparity search for one left point, from the coarsest level down to level 0.

    Disparity d is positive when the match lies to the left: right.x = left.x - d.
    Windows and the level-local range are kept inside the image; at level 0 one extra column
    of margin is kept on each side for the sub-pixel step.
    """
    win_w, win_h = odd_window_size(win_size)
    half_w, half_h = (win_w - 1) // 2, (win_h - 1) // 2

    tmp_min, tmp_max = min_disparity, max_disparity
    winner: int | None = None
    best = -1.0
    evaluated = 0
    trace: list[LevelSearch] = []

    for level in range(len(left_pyramid) - 1, -1, -1):
        scale = 1 << level
        img_l = left_pyramid[level]
        img_r = right_pyramid[level]
        rows, cols = img_l.shape[:2]
        cx = int(pt[0] / float(scale))
        cy = int(pt[1] / float(scale))
        margin = 1 if level == 0 else 0

        winner = None
        best = -1.0
        second = -1.0
        evaluated = 0
        lo = _cdiv(tmp_min, scale)
        hi = _cdiv(tmp_max, scale)

        fits = (
            cx - half_w - margin >= 0
            and cx + half_w + margin < cols
            and cy - half_h >= 0
            and cy + half_h < rows
        )
        if not fits:
            trace.append(LevelSearch(level, lo, hi, 0, None, best, second))
            continue

        rows_sl = slice(cy - half_h, cy + half_h + 1)
        window_left = img_l[rows_sl, cx - half_w : cx + half_w + 1]
        hi = min(hi, cx - half_w - 1)
        lo = max(lo, cx + half_w + 1 - (cols - 1))

        textured: bool | None = None
        for d in range(lo, hi + 1):
            evaluated += 1
            x0 = cx - d - half_w
            s = cost_fn(window_left, img_r[rows_sl, x0 : x0 + win_w])
            if s > 0.0 and (best < 0.0 or s < best):
                second, best, winner = best, s, d
            elif s == 0.0 and best != 0.0:
                # Exact match; only meaningful when the left window is not flat.
                if textured is None:
                    textured = _is_textured(window_left)
                if textured:
                    second, best, winner = best, s, d

        trace.append(LevelSearch(level, lo, hi, evaluated, winner, best, second))

        if winner is not None and level > 0:
            tmp_min, tmp_max = recenter_disparity_range(winner, level, min_disparity, max_disparity)

    return DisparitySearch(winner=winner, best_score=best, evaluated=evaluated, levels=trace)


def build_correspondences(
    left_image: np.ndarray,
    right_image: np.ndarray,
    left_xy: Any,
    *,
    win_size: WindowSize = (6, 3),
    max_level: int = 3,
    iterations: int = 5,
    min_disparity: int = 0,
    max_disparity: int = 64,
    cost: CostName = "ssd",
) -> Correspondences:
    """
    Find the right-image match of every left point on the same row of a rectified pair.

    Pipeline per point: coarse-to-fine integer block matching with adaptive range narrowing
    (`search_disparity`), then sub-pixel refinement of the level-0 winner
    (`refine_subpixel`). The refinement budget is the number of candidates evaluated at level 0,
    capped by `iterations` when positive.

    Supported encodings: uint8 (H,W), float32 (H,W), int16 (H,W,2) half-intensity.
    """
    left_image = np.asarray(left_image)
    right_image = np.asarray(right_image)
    require(supported_encoding(left_image), f"unsupported image: dtype={left_image.dtype} shape={left_image.shape}")
    require(
        left_image.shape == right_image.shape and left_image.dtype == right_image.dtype,
        f"left/right images differ: {left_image.shape}/{left_image.dtype} vs {right_image.shape}/{right_image.dtype}",
    )
    require(max_level >= 0, f"max_level must be >= 0, got {max_level}")
    require(min_disparity >= 0, f"min_disparity must be >= 0, got {min_disparity}")
    require(max_disparity >= min_disparity, f"max_disparity ({max_disparity}) < min_disparity ({min_disparity})")
    win = odd_window_size(win_size)
    require(win[0] >= 1 and win[1] >= 1, f"invalid window size: {win_size}")
    cost_fn = cost_function(cost)

    logger.debug(
        "win_size=%s max_level=%d disparity=[%d,%d] iterations=%d cost=%s",
        win, max_level, min_disparity, max_disparity, iterations, cost,
    )

    left_xy = as_points(left_xy, "left_xy")
    n = left_xy.shape[0]
    right_xy = np.zeros((n, 2), dtype=np.float32)
    status = np.zeros((n,), dtype=bool)
    if n == 0:
        return Correspondences(left_xy=left_xy, right_xy=right_xy, status=status)

    left_pyr = build_pyramid(left_image, win, max_level)
    right_pyr = build_pyramid(right_image, win, max_level)
    levels = min(len(left_pyr), len(right_pyr))
    left_pyr, right_pyr = left_pyr[:levels], right_pyr[:levels]

    total_evaluated = 0
    moved = 0
    for i in range(n):
        pt = left_xy[i]
        search = search_disparity(
            left_pyr,
            right_pyr,
            pt,
            win_size=win,
            cost_fn=cost_fn,
            min_disparity=min_disparity,
            max_disparity=max_disparity,
        )
        total_evaluated += sum(lvl.evaluated for lvl in search.levels)
        if search.winner is None:
            continue

        budget = search.evaluated if iterations <= 0 else min(search.evaluated, iterations)
        refined = refine_subpixel(
            left_pyr[0],
            right_pyr[0],
            pt,
            search.winner,
            win_size=win,
            cost=cost,
            iterations=budget,
            best_score=search.best_score,
        )
        right_xy[i] = (refined.x, pt[1])
        status[i] = refined.accepted
        if refined.accepted and refined.moved:
            moved += 1

    logger.debug("sub-pixel moved %d/%d accepted points (total=%d)", moved, int(np.count_nonzero(status)), n)
    logger.debug("candidates evaluated=%d", total_evaluated)
    return Correspondences(left_xy=left_xy, right_xy=right_xy, status=status)
