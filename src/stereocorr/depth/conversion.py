from __future__ import annotations

import logging
from typing import Any, Literal

import cv2
import numpy as np

from stereocorr.core.correspondence import as_points
from stereocorr.core.preconditions import require


logger = logging.getLogger(__name__)

MAX_DEPTH_MM = 65535
DisparityType = Literal["float32", "int16"]
DepthType = Literal["float32", "uint16"]


def disparity_from_stereo_images(
    left_image: np.ndarray,
    right_image: np.ndarray,
    *,
    dtype: DisparityType = "float32",
) -> np.ndarray:
    """
    Dense disparity map from OpenCV block matching (StereoBM).

    The left image may be BGR (converted to gray); the right image must be uint8 gray.
    `dtype="int16"` returns the raw fixed-point output (disparity * 16), `"float32"` pixels.
    """
    left_image = np.asarray(left_image)
    right_image = np.asarray(right_image)
    require(left_image.size > 0 and right_image.size > 0, "empty image")
    require(left_image.shape[:2] == right_image.shape[:2], "left/right sizes differ")
    require(
        left_image.dtype == np.uint8 and (left_image.ndim == 2 or left_image.shape[2] == 3),
        "left image must be uint8 gray or BGR",
    )
    require(right_image.dtype == np.uint8 and right_image.ndim == 2, "right image must be uint8 gray")
    if dtype not in ("float32", "int16"):
        raise ValueError(f"unknown disparity dtype: {dtype}")

    left_mono = cv2.cvtColor(left_image, cv2.COLOR_BGR2GRAY) if left_image.ndim == 3 else left_image

    stereo = cv2.StereoBM_create(numDisparities=64, blockSize=15)
    stereo.setMinDisparity(0)
    stereo.setPreFilterSize(9)
    stereo.setPreFilterCap(31)
    stereo.setUniquenessRatio(15)
    stereo.setTextureThreshold(10)
    stereo.setSpeckleWindowSize(100)
    stereo.setSpeckleRange(4)
    disparity = stereo.compute(left_mono, right_image)

    if dtype == "int16":
        return disparity.astype(np.int16, copy=False)
    return disparity.astype(np.float32) / np.float32(16.0)


def depth_from_disparity(
    disparity: np.ndarray,
    fx: float,
    baseline: float,
    *,
    dtype: DepthType = "float32",
) -> np.ndarray:
    """
    Depth = baseline * fx / disparity for positive disparities, 0 elsewhere.

    int16 disparities are fixed-point (x16). `dtype="uint16"` stores millimetres; values above
    65535 mm are dropped (left at 0) and counted in a warning.
    """
    disparity = np.asarray(disparity)
    require(disparity.ndim == 2 and disparity.size > 0, f"disparity must be (H,W), got {disparity.shape}")
    require(disparity.dtype in (np.float32, np.int16), f"disparity must be float32 or int16, got {disparity.dtype}")
    if dtype not in ("float32", "uint16"):
        raise ValueError(f"unknown depth dtype: {dtype}")

    disp = disparity.astype(np.float32) / np.float32(16.0) if disparity.dtype == np.int16 else disparity
    valid = disp > 0.0
    depth = np.zeros(disp.shape, dtype=np.float32)
    with np.errstate(divide="ignore"):
        depth[valid] = np.float32(baseline * fx) / disp[valid]
    valid &= depth > 0.0

    if dtype == "float32":
        return np.where(valid, depth, np.float32(0.0)).astype(np.float32)

    mm = depth * np.float32(1000.0)
    over = valid & (mm > MAX_DEPTH_MM)
    if np.any(over):
        logger.warning(
            "Depth conversion error, %d depth values ignored because they are over the maximum depth allowed (65535 mm).",
            int(np.count_nonzero(over)),
        )
    keep = valid & ~over
    out = np.zeros(disp.shape, dtype=np.uint16)
    out[keep] = mm[keep].astype(np.uint16)
    return out


def _rounded_pixel(xy: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    u = (xy[:, 0] + np.float32(0.5)).astype(np.int64)
    v = (xy[:, 1] + np.float32(0.5)).astype(np.int64)
    return u, v


def _selection(n: int, mask: Any | None) -> np.ndarray:
    if mask is None:
        return np.ones((n,), dtype=bool)
    mask = np.asarray(mask).reshape(-1)
    require(mask.size == 0 or mask.size == n, f"mask has {mask.size} entries, expected {n}")
    if mask.size == 0:
        return np.ones((n,), dtype=bool)
    return mask.astype(bool)


def disparity_from_stereo_correspondences(
    shape: tuple[int, int],
    left_xy: Any,
    right_xy: Any,
    mask: Any | None = None,
) -> np.ndarray:
    """Sparse float32 disparity map (left.x - right.x) written at the rounded left points."""
    left_xy = as_points(left_xy, "left_xy")
    right_xy = as_points(right_xy, "right_xy")
    require(left_xy.shape == right_xy.shape, "left_xy and right_xy must have the same length")
    sel = _selection(left_xy.shape[0], mask)
    h, w = int(shape[0]), int(shape[1])

    disparity = np.zeros((h, w), dtype=np.float32)
    u, v = _rounded_pixel(left_xy)
    require(
        bool(np.all((u[sel] >= 0) & (u[sel] < w) & (v[sel] >= 0) & (v[sel] < h))),
        "selected left points must lie inside the disparity map",
    )
    disparity[v[sel], u[sel]] = left_xy[sel, 0] - right_xy[sel, 0]
    return disparity


def depth_from_stereo_correspondences(
    shape: tuple[int, int],
    left_xy: Any,
    right_xy: Any,
    mask: Any | None,
    fx: float,
    baseline: float,
) -> np.ndarray:
    """Sparse float32 depth map (metres if baseline is in metres) for positive disparities."""
    left_xy = as_points(left_xy, "left_xy")
    right_xy = as_points(right_xy, "right_xy")
    require(left_xy.shape == right_xy.shape, "left_xy and right_xy must have the same length")
    require(fx > 0.0 and baseline > 0.0, f"fx and baseline must be > 0, got {fx}, {baseline}")
    h, w = int(shape[0]), int(shape[1])

    disparity = left_xy[:, 0] - right_xy[:, 0]
    u, v = _rounded_pixel(left_xy)
    sel = _selection(left_xy.shape[0], mask) & (disparity > 0.0)
    sel &= (u >= 0) & (u < w) & (v >= 0) & (v < h)

    depth = np.zeros((h, w), dtype=np.float32)
    depth[v[sel], u[sel]] = np.float32(baseline * fx) / disparity[sel]
    return depth


def cvt_depth_from_float(depth_m: np.ndarray) -> np.ndarray:
    """float32 metres -> uint16 millimetres; values above 65535 mm become 0 (counted, logged)."""
    depth_m = np.asarray(depth_m)
    require(depth_m.dtype == np.float32 and depth_m.ndim == 2, f"depth must be float32 (H,W), got {depth_m.dtype}")
    mm = depth_m * np.float32(1000.0)
    keep = (mm > 0) & (mm <= MAX_DEPTH_MM)
    over = mm > MAX_DEPTH_MM
    if np.any(over):
        logger.warning(
            "Depth conversion error, %d depth values ignored because they are over the maximum "
            "depth allowed (65535 mm). Is the depth image really in meters? 32 bits images "
            "should be in meters, and 16 bits should be in mm.",
            int(np.count_nonzero(over)),
        )
    out = np.zeros(depth_m.shape, dtype=np.uint16)
    out[keep] = mm[keep].astype(np.uint16)
    return out


def cvt_depth_to_float(depth_mm: np.ndarray) -> np.ndarray:
    """uint16 millimetres -> float32 metres."""
    depth_mm = np.asarray(depth_mm)
    require(depth_mm.dtype == np.uint16 and depth_mm.ndim == 2, f"depth must be uint16 (H,W), got {depth_mm.dtype}")
    return depth_mm.astype(np.float32) / np.float32(1000.0)


def _depth_at(depth: np.ndarray, v: int, u: int) -> float:
    if depth.dtype == np.uint16:
        return float(depth[v, u]) * 0.001
    return float(depth[v, u])


def get_depth(
    depth: np.ndarray,
    x: float,
    y: float,
    *,
    smoothing: bool = False,
    max_z_error: float = 0.02,
) -> float:
    """
    Depth in metres at the pixel nearest to (x, y); 0 when outside the image or invalid.

    With smoothing, neighbours within `max_z_error` of the centre depth are averaged with
    the 3x3 weights [1 2 1; 2 4 2; 1 2 1].
    """
    depth = np.asarray(depth)
    require(depth.ndim == 2 and depth.size > 0, "depth must be a non-empty (H,W) image")
    require(depth.dtype in (np.uint16, np.float32), f"depth must be uint16 or float32, got {depth.dtype}")

    u = int(x + 0.5)
    v = int(y + 0.5)
    rows, cols = depth.shape
    if not (0 <= u < cols and 0 <= v < rows):
        logger.debug("(%f, %f) -> (%d, %d) is outside a %dx%d depth image", x, y, u, v, cols, rows)
        return 0.0

    d0 = _depth_at(depth, v, u)
    if d0 == 0.0 or not np.isfinite(d0):
        return 0.0
    if not smoothing:
        return d0

    sum_w = 4.0
    sum_d = 4.0 * d0
    for uu in range(max(u - 1, 0), min(u + 1, cols - 1) + 1):
        for vv in range(max(v - 1, 0), min(v + 1, rows - 1) + 1):
            if uu == u and vv == v:
                continue
            d = _depth_at(depth, vv, uu)
            if d != 0.0 and np.isfinite(d) and abs(d - d0) < max_z_error:
                weight = 2.0 if (uu == u or vv == v) else 1.0
                sum_w += weight
                sum_d += weight * d
    return sum_d / sum_w


def decimate(image: np.ndarray, decimation: int) -> np.ndarray:
    """
    Reduce resolution by an integer factor.

    Depth images (float32 or uint16 single channel) are sub-sampled exactly and must have
    dimensions divisible by the factor; other images are resized with area interpolation.
    """
    require(decimation >= 1, f"decimation must be >= 1, got {decimation}")
    image = np.asarray(image)
    if image.size == 0 or decimation == 1:
        return image
    if image.ndim == 2 and image.dtype in (np.float32, np.uint16):
        require(
            image.shape[0] % decimation == 0 and image.shape[1] % decimation == 0,
            "Decimation of depth images should be exact!",
        )
        return image[::decimation, ::decimation].copy()
    f = 1.0 / float(decimation)
    return cv2.resize(image, None, fx=f, fy=f, interpolation=cv2.INTER_AREA)
