from __future__ import annotations

from typing import Sequence

import cv2
import numpy as np

from stereocorr.core.correspondence import WindowSize, window_size
from stereocorr.core.cost import window_intensity
from stereocorr.core.preconditions import require


def scharr_derivatives(image: np.ndarray) -> np.ndarray:
    """
    Unscaled Scharr derivatives of a single-channel image as int16 (H,W,2): (dI/dx, dI/dy).

    Kernels are [-1 0 1] x [3 10 3]^T and its transpose, reflect-101 borders.
    """
    image = np.asarray(image)
    require(image.ndim == 2, f"derivatives need a single-channel image, got {image.shape}")
    dx = cv2.Scharr(image, cv2.CV_16S, 1, 0, borderType=cv2.BORDER_REFLECT_101)
    dy = cv2.Scharr(image, cv2.CV_16S, 0, 1, borderType=cv2.BORDER_REFLECT_101)
    return np.dstack([dx, dy]).astype(np.int16, copy=False)


def build_pyramid(
    image: np.ndarray,
    win_size: WindowSize,
    max_level: int,
    with_derivatives: bool = False,
) -> list[np.ndarray]:
    """
    Multi-resolution pyramid, level 0 first, each level half the size of the previous one.

    Level sizes are ((w+1)//2, (h+1)//2). Building stops early when a level would not be larger
    than the window in both dimensions, so the returned pyramid may have fewer than
    max_level+1 levels. With derivatives, every image level is directly followed by its
    `scharr_derivatives` level.
    """
    image = np.asarray(image)
    require(image.ndim in (2, 3) and image.size > 0, f"invalid image shape: {image.shape}")
    require(max_level >= 0, f"max_level must be >= 0, got {max_level}")
    win_w, win_h = window_size(win_size)

    levels = [image]
    for _ in range(max_level):
        prev = levels[-1]
        h, w = prev.shape[:2]
        nw, nh = (w + 1) // 2, (h + 1) // 2
        if nw <= win_w or nh <= win_h:
            break
        levels.append(cv2.pyrDown(prev, dstsize=(nw, nh), borderType=cv2.BORDER_REFLECT_101))

    if not with_derivatives:
        return levels
    out: list[np.ndarray] = []
    for lvl in levels:
        out.append(lvl)
        out.append(scharr_derivatives(lvl))
    return out


def _is_derivative_level(image: np.ndarray, deriv: np.ndarray) -> bool:
    cn = 1 if image.ndim == 2 else image.shape[2]
    deriv_cn = 1 if deriv.ndim == 2 else deriv.shape[2]
    return deriv.dtype == np.int16 and deriv_cn == 2 * cn and deriv.shape[:2] == image.shape[:2]


def pyramid_levels(pyramid: Sequence[np.ndarray]) -> tuple[list[np.ndarray], list[np.ndarray] | None]:
    """
    Split a pyramid into (images, derivatives).

    A pyramid is interleaved (image, derivative, image, derivative, ...) when it has an even
    number of entries and its second entry is an int16 level with twice the channels of the
    first. Otherwise all entries are images and derivatives is None.
    """
    levels = [np.asarray(p) for p in pyramid]
    require(len(levels) > 0, "empty pyramid")
    if len(levels) % 2 == 0 and _is_derivative_level(levels[0], levels[1]):
        return levels[0::2], levels[1::2]
    return levels, None


def sample_rect(image: np.ndarray, size: WindowSize, center: Sequence[float]) -> np.ndarray:
    """
    Sample a (h, w) float32 window centred at a sub-pixel position.

    Bilinear interpolation with replicated borders; int16 2-channel images are sampled through
    their half-intensity.
    """
    image = np.asarray(image)
    if image.ndim == 3 and image.shape[2] == 2:
        image = window_intensity(image)
    w, h = window_size(size)
    return cv2.getRectSubPix(image, (w, h), (float(center[0]), float(center[1])), patchType=cv2.CV_32F)
