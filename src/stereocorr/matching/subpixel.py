from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from stereocorr.core.correspondence import WindowSize, window_size
from stereocorr.core.cost import CostName, cost_function
from stereocorr.core.pyramid import sample_rect


@dataclass(frozen=True)
class SubpixelResult:
    x: float  # refined right-image x
    score: float
    accepted: bool
    moved: bool


def within_trust_region(x: float, winner: float) -> bool:
    """True if x is strictly within one pixel of the integer winner (closed rejection boundary)."""
    return winner - 1.0 < x < winner + 1.0


def refine_subpixel(
    left_image: np.ndarray,
    right_image: np.ndarray,
    left_pt: Sequence[float],
    disparity: int,
    *,
    win_size: WindowSize,
    cost: CostName = "ssd",
    iterations: int,
    best_score: float | None = None,
) -> SubpixelResult:
    """
    Refine an integer disparity winner along the row with a step-halving local search.

    Starting half a pixel away on each side, the search moves to the neighbour that strictly
    improves the cost, otherwise halves the step. Costs of abandoned positions are cached for
    the duration of the call; a cached 0.0 means "not computed". The result is rejected as
    soon as the running position leaves the open interval (winner-1, winner+1).

    `best_score` is the cost of the integer winner from the search; it is recomputed when the
    left point is not on an integer column.
    """
    cost_fn = cost_function(cost)
    win = window_size(win_size)
    lx, ly = float(left_pt[0]), float(left_pt[1])
    winner = lx - float(disparity)

    window_left = sample_rect(left_image, win, (lx, ly))

    def score_at(x: float) -> float:
        return cost_fn(window_left, sample_rect(right_image, win, (x, ly)))

    if best_score is None or lx != float(int(lx)):
        best_score = score_at(winner)

    xc = winner
    vc = float(best_score)
    step = 0.5
    cache: dict[float, float] = {}
    for _ in range(max(int(iterations), 0)):
        x1 = xc - step
        x2 = xc + step
        v1 = cache.get(x1, 0.0)
        v2 = cache.get(x2, 0.0)
        if v1 == 0.0:
            v1 = score_at(x1)
        if v2 == 0.0:
            v2 = score_at(x2)

        prev_x, prev_v = xc, vc
        if v1 < vc and v1 < v2:
            xc, vc = x1, v1
        elif v2 < vc and v2 < v1:
            xc, vc = x2, v2

        if prev_x == xc:
            step /= 2.0
        else:
            cache[prev_x] = prev_v

        if not within_trust_region(xc, winner):
            return SubpixelResult(x=xc, score=vc, accepted=False, moved=True)

    return SubpixelResult(x=xc, score=vc, accepted=True, moved=xc != winner)
