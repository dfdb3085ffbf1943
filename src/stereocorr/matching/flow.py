from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Literal, Sequence

import cv2
import numpy as np

from stereocorr.core.correspondence import Correspondences, WindowSize, as_points, window_size
from stereocorr.core.fixed_point import (
    FLT_EPSILON,
    FLT_SCALE,
    INTENSITY_FRAC_BITS,
    W_BITS,
    accumulate_f32,
    bilinear_weights,
    interpolate,
)
from stereocorr.core.preconditions import require
from stereocorr.core.pyramid import build_pyramid, pyramid_levels, scharr_derivatives


logger = logging.getLogger(__name__)

ErrorMetric = Literal["residual", "min_eig"]
PyramidOrImage = np.ndarray | Sequence[np.ndarray]

_F32_ONE = np.float32(1.0)
_F32_HALF = np.float32(0.5)
_OSCILLATION_TOL = 0.01


@dataclass(frozen=True)
class TermCriteria:
    """Iteration stopping rule; None selects the default for that field."""

    max_count: int | None = 30
    epsilon: float | None = 0.01

    def resolved(self) -> tuple[int, float]:
        """(max_count clamped to [0,100], squared epsilon clamped to [0,10] before squaring)."""
        max_count = 30 if self.max_count is None else min(max(int(self.max_count), 0), 100)
        eps = 0.01 if self.epsilon is None else min(max(float(self.epsilon), 0.0), 10.0)
        return max_count, eps * eps


@dataclass(frozen=True)
class _Level:
    prev: np.ndarray  # padded uint8
    deriv: np.ndarray  # padded int16 (H,W,2)
    next: np.ndarray  # padded uint8
    rows: int
    cols: int


def _prepare(src: PyramidOrImage, win: tuple[int, int], max_level: int, with_derivatives: bool, name: str):
    if isinstance(src, np.ndarray):
        require(src.ndim == 2 and src.dtype == np.uint8, f"{name} must be a uint8 (H,W) image, got {src.dtype} {src.shape}")
        pyr = build_pyramid(src, win, max_level, with_derivatives=with_derivatives)
    else:
        pyr = list(src)
    images, derivs = pyramid_levels(pyr)
    require(
        images[0].ndim == 2 and images[0].dtype == np.uint8,
        f"{name} pyramid levels must be uint8 (H,W), got {images[0].dtype} {images[0].shape}",
    )
    return images, derivs


def _outside(ix: int, iy: int, win: tuple[int, int], rows: int, cols: int, strict: bool) -> bool:
    """Window corner test: inside the image at the finest level, inside the padding elsewhere."""
    win_w, win_h = win
    if strict:
        return ix < 0 or iy < 0 or ix + win_w >= cols or iy + win_h >= rows
    return ix < -win_w or ix >= cols or iy < -win_h or iy >= rows


def _block(padded: np.ndarray, ix: int, iy: int, win: tuple[int, int]) -> np.ndarray:
    # Padding equals the window size on every side.
    win_w, win_h = win
    y0 = iy + win_h
    x0 = ix + win_w
    return padded[y0 : y0 + win_h + 1, x0 : x0 + win_w + 1]


def _build_levels(prev_images, prev_derivs, next_images, win, max_level) -> list[_Level]:
    win_w, win_h = win
    levels: list[_Level] = []
    for level in range(max_level + 1):
        prev = prev_images[level]
        nxt = next_images[level]
        require(prev.shape == nxt.shape, f"level {level}: prev/next sizes differ: {prev.shape} vs {nxt.shape}")
        require(prev.dtype == nxt.dtype, f"level {level}: prev/next dtypes differ: {prev.dtype} vs {nxt.dtype}")
        deriv = prev_derivs[level] if prev_derivs is not None else scharr_derivatives(prev)
        require(deriv.shape == prev.shape + (2,), f"level {level}: derivative shape {deriv.shape} does not match")
        border = (win_h, win_h, win_w, win_w)
        levels.append(
            _Level(
                prev=cv2.copyMakeBorder(prev, *border, cv2.BORDER_REFLECT_101),
                deriv=cv2.copyMakeBorder(deriv, *border, cv2.BORDER_CONSTANT, value=0),
                next=cv2.copyMakeBorder(nxt, *border, cv2.BORDER_REFLECT_101),
                rows=prev.shape[0],
                cols=prev.shape[1],
            )
        )
    return levels


def _residual(level: _Level, i_win: np.ndarray, nx: np.float32, ny: np.float32, win: tuple[int, int]) -> np.ndarray:
    inx, iny = math.floor(nx), math.floor(ny)
    weights = bilinear_weights(nx - np.float32(inx), ny - np.float32(iny))
    j_win = interpolate(_block(level.next, inx, iny, win), weights, W_BITS - INTENSITY_FRAC_BITS)
    return j_win - i_win


def _track_point(
    levels: list[_Level],
    prev_pt: np.ndarray,
    guess: np.ndarray | None,
    win: tuple[int, int],
    max_count: int,
    eps2: float,
    min_eig_threshold: float,
    error_metric: ErrorMetric | None,
) -> tuple[np.float32, np.float32, bool, np.float32]:
    """Track one point through all levels; returns (x, y, status, error)."""
    win_w, win_h = win
    half_x = np.float32((win_w - 1) * 0.5)
    half_y = np.float32((win_h - 1) * 0.5)
    area = np.float32(2 * win_w * win_h)
    max_level = len(levels) - 1

    status = True
    err = np.float32(0.0)
    next_x = next_y = np.float32(0.0)

    for level in range(max_level, -1, -1):
        lvl = levels[level]
        strict = level == 0
        scale = np.float32(1.0 / (1 << level))
        px = np.float32(prev_pt[0]) * scale
        py = np.float32(prev_pt[1]) * scale
        if level == max_level:
            if guess is not None:
                next_x, next_y = np.float32(guess[0]) * scale, np.float32(guess[1]) * scale
            else:
                next_x, next_y = px, py
        else:
            next_x, next_y = next_x * np.float32(2.0), next_y * np.float32(2.0)

        px -= half_x
        py -= half_y
        ipx, ipy = math.floor(px), math.floor(py)
        if _outside(ipx, ipy, win, lvl.rows, lvl.cols, strict):
            if strict:
                status = False
                err = np.float32(0.0)
            continue

        weights = bilinear_weights(px - np.float32(ipx), py - np.float32(ipy))
        i_win = interpolate(_block(lvl.prev, ipx, ipy, win), weights, W_BITS - INTENSITY_FRAC_BITS)
        d_win = interpolate(_block(lvl.deriv, ipx, ipy, win), weights, W_BITS)
        ix = d_win[..., 0]
        iy = d_win[..., 1]

        a11 = accumulate_f32(ix * ix) * FLT_SCALE
        a12 = accumulate_f32(ix * iy) * FLT_SCALE
        a22 = accumulate_f32(iy * iy) * FLT_SCALE

        det = a11 * a22 - a12 * a12
        min_eig = (a22 + a11 - np.sqrt((a11 - a22) * (a11 - a22) + np.float32(4.0) * a12 * a12)) / area
        if error_metric == "min_eig":
            err = min_eig
        if float(min_eig) < min_eig_threshold or float(det) < FLT_EPSILON:
            if strict:
                status = False
            continue
        inv_det = _F32_ONE / det

        # Only x moves; the row stays at its scaled initial value.
        nx = next_x - half_x
        ny = next_y - half_y
        prev_delta = np.float32(0.0)
        for j in range(max_count):
            inx, iny = math.floor(nx), math.floor(ny)
            if _outside(inx, iny, win, lvl.rows, lvl.cols, strict):
                if strict:
                    status = False
                break

            diff = _residual(lvl, i_win, nx, ny, win)
            b1 = accumulate_f32(diff * ix) * FLT_SCALE
            b2 = accumulate_f32(diff * iy) * FLT_SCALE
            delta = (a12 * b2 - a22 * b1) * inv_det

            nx = nx + delta
            next_x = nx + half_x

            if float(delta) * float(delta) <= eps2:
                break
            if j > 0 and abs(float(delta + prev_delta)) < _OSCILLATION_TOL:
                next_x = next_x - delta * _F32_HALF
                break
            prev_delta = delta

        if strict and status and error_metric == "residual":
            nx = next_x - half_x
            ny = next_y - half_y
            if _outside(math.floor(nx), math.floor(ny), win, lvl.rows, lvl.cols, strict):
                status = False
                err = np.float32(0.0)
                continue
            diff = _residual(lvl, i_win, nx, ny, win)
            err = accumulate_f32(np.abs(diff)) / np.float32(32 * win_w * win_h)

    return next_x, next_y, status, err


def track_horizontal_flow(
    prev_img: PyramidOrImage,
    next_img: PyramidOrImage,
    prev_xy: Any,
    initial_xy: Any | None = None,
    *,
    win_size: WindowSize = (21, 21),
    max_level: int = 3,
    criteria: TermCriteria = TermCriteria(),
    min_eig_threshold: float = 1e-4,
    want_error: bool = False,
    error_metric: ErrorMetric = "residual",
) -> Correspondences:
    """
    Pyramidal Lucas-Kanade tracking restricted to horizontal displacement.

    `prev_img` and `next_img` are uint8 (H,W) images or pyramids from `build_pyramid`. The 2x2 normal
    equations are accumulated from 14-bit fixed-point interpolated patches as in the classic
    tracker, but only the x component of each update is applied: rectified stereo pairs have
    no vertical motion, so the vertical coordinate of every estimate keeps its pyramid-scaled
    initial value.

    Per-point failures (window outside the image at level 0, textureless patch) clear the
    point's status. With `want_error`, `error` holds the mean absolute residual at level 0
    ("residual") or the minimum eigenvalue of the structure matrix ("min_eig").
    """
    win = window_size(win_size)
    require(win[0] > 2 and win[1] > 2, f"window sides must be > 2, got {win}")
    require(max_level >= 0, f"max_level must be >= 0, got {max_level}")
    if error_metric not in ("residual", "min_eig"):
        raise ValueError(f"unknown error metric: {error_metric}")

    prev_xy = as_points(prev_xy, "prev_xy")
    n = prev_xy.shape[0]
    guesses = None
    if initial_xy is not None:
        guesses = as_points(initial_xy, "initial_xy")
        require(guesses.shape[0] == n, f"initial_xy has {guesses.shape[0]} points, expected {n}")

    next_xy = np.zeros((n, 2), dtype=np.float32)
    status = np.ones((n,), dtype=bool)
    error = np.zeros((n,), dtype=np.float32) if want_error else None
    if n == 0:
        return Correspondences(left_xy=prev_xy, right_xy=next_xy, status=np.zeros((0,), dtype=bool), error=error)

    prev_images, prev_derivs = _prepare(prev_img, win, max_level, True, "prev_img")
    next_images, _ = _prepare(next_img, win, max_level, False, "next_img")
    max_level = min(max_level, len(prev_images) - 1, len(next_images) - 1)
    logger.debug("tracking %d points over %d levels, win=%s", n, max_level + 1, win)

    levels = _build_levels(prev_images, prev_derivs, next_images, win, max_level)
    max_count, eps2 = criteria.resolved()
    metric = error_metric if want_error else None

    for i in range(n):
        x, y, ok, err = _track_point(
            levels,
            prev_xy[i],
            guesses[i] if guesses is not None else None,
            win,
            max_count,
            eps2,
            float(min_eig_threshold),
            metric,
        )
        next_xy[i] = (x, y)
        status[i] = ok
        if error is not None:
            error[i] = err

    return Correspondences(left_xy=prev_xy, right_xy=next_xy, status=status, error=error)
