from __future__ import annotations

import enum

import numpy as np

from stereocorr.core.preconditions import require


class HoleFill(enum.Flag):
    """Directions (and double-hole mode) used by `fill_registered_depth_holes`."""

    NONE = 0
    VERTICAL = enum.auto()
    HORIZONTAL = enum.auto()
    DOUBLE = enum.auto()


def rigid_transform(rotvec: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """4x4 homogeneous transform from a rotation vector (rad) and a translation."""
    from scipy.spatial.transform import Rotation as R  # type: ignore

    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = R.from_rotvec(np.asarray(rotvec, dtype=np.float64).reshape(3)).as_matrix()
    T[:3, 3] = np.asarray(translation, dtype=np.float64).reshape(3)
    return T


def _intrinsics(K: np.ndarray, name: str) -> tuple[float, float, float, float]:
    K = np.asarray(K, dtype=np.float64)
    require(K.shape == (3, 3), f"{name} must be 3x3, got {K.shape}")
    return float(K[0, 0]), float(K[1, 1]), float(K[0, 2]), float(K[1, 2])


def register_depth(
    depth_mm: np.ndarray,
    depth_K: np.ndarray,
    color_K: np.ndarray,
    transform: np.ndarray,
) -> np.ndarray:
    """
    Re-project a uint16 (mm) depth image into another camera.

    Each depth pixel is back-projected with `depth_K`, moved by the 4x4 rigid `transform`
    (depth camera -> colour camera) and projected with `color_K`. When several pixels land on
    the same target pixel the nearest depth wins. The output has the input's size.
    """
    depth_mm = np.asarray(depth_mm)
    require(depth_mm.dtype == np.uint16 and depth_mm.ndim == 2 and depth_mm.size > 0, "depth must be uint16 (H,W) in mm")
    T = np.asarray(transform, dtype=np.float64)
    require(T.shape == (4, 4) and np.all(np.isfinite(T)), f"transform must be a finite 4x4 matrix, got {T.shape}")
    fx, fy, cx, cy = _intrinsics(depth_K, "depth_K")
    rfx, rfy, rcx, rcy = _intrinsics(color_K, "color_K")

    rows, cols = depth_mm.shape
    vv, uu = np.nonzero(depth_mm)
    dz = depth_mm[vv, uu].astype(np.float64) * 0.001
    pts = np.stack([(uu - cx) * dz / fx, (vv - cy) * dz / fy, dz], axis=-1)
    pts = pts @ T[:3, :3].T + T[:3, 3]

    z = pts[:, 2]
    front = z > 0
    pts, z = pts[front], z[front]
    dx = (rfx * pts[:, 0] / z + rcx).astype(np.int64)
    dy = (rfy * pts[:, 1] / z + rcy).astype(np.int64)
    z16 = (z * 1000.0).astype(np.int64)
    inside = (dx >= 0) & (dx < cols) & (dy >= 0) & (dy < rows) & (z16 > 0) & (z16 <= 65535)
    dx, dy, z16 = dx[inside], dy[inside], z16[inside]

    empty = np.iinfo(np.int64).max
    nearest = np.full((rows, cols), empty, dtype=np.int64)
    np.minimum.at(nearest, (dy, dx), z16)
    return np.where(nearest == empty, 0, nearest).astype(np.uint16)


def _agree(a: int, c: int, error: int) -> bool:
    return (a - c if a > c else c - a) <= error


def _fill_single(a: int, b: int, c: int) -> int | None:
    """Value for b between a and c, or None when b should be left as is."""
    if not (a and c):
        return None
    error = int(0.01 * ((a + c) // 2))
    if ((b == 0) or (b > a + error and b > c + error)) and _agree(a, c, error):
        return (a + c) // 2
    return None


def _fill_double(a: int, b: int, c: int, d: int) -> tuple[int, int] | None:
    """Values for b, c between a and d, or None when they should be left as is."""
    if not (a and d and (b == 0 or c == 0)):
        return None
    error = int(0.01 * ((a + d) // 2))
    if (
        ((b == 0) or (b > a + error and b > d + error))
        and ((c == 0) or (c > a + error and c > d + error))
        and _agree(a, d, error)
    ):
        lo, hi = (d, a) if a > d else (a, d)
        step = (hi - lo) // 4
        return lo + step, lo + 3 * step
    return None


def fill_registered_depth_holes(depth_mm: np.ndarray, fill: HoleFill) -> np.ndarray:
    """
    Fill one- and two-pixel holes left by `register_depth`, in place.

    A hole (or a pixel clearly behind both neighbours) is interpolated from its neighbours
    along a column (VERTICAL) and/or row (HORIZONTAL) when they agree within 1 %. With DOUBLE,
    two consecutive holes are filled at 1/4 and 3/4 between the outer neighbours. When only
    VERTICAL is set, a filled pixel's successor in the column is skipped.
    Returns the same array.
    """
    require(
        isinstance(depth_mm, np.ndarray) and depth_mm.dtype == np.uint16 and depth_mm.ndim == 2,
        "depth must be a uint16 (H,W) array",
    )
    vertical = bool(fill & HoleFill.VERTICAL)
    horizontal = bool(fill & HoleFill.HORIZONTAL)
    double = bool(fill & HoleFill.DOUBLE)
    margin = 2 if double else 1
    rows, cols = depth_mm.shape
    img = depth_mm

    for x in range(1, cols - margin):
        y = 1
        while y < rows - margin:
            done = False
            if vertical:
                a, b, c = int(img[y - 1, x]), int(img[y, x]), int(img[y + 1, x])
                v = _fill_single(a, b, c)
                if v is not None:
                    img[y, x] = v
                    done = True
                    if not horizontal:
                        y += 1
                if not done and double:
                    vals = _fill_double(a, b, c, int(img[y + 2, x]))
                    if vals is not None:
                        img[y, x], img[y + 1, x] = vals
                        done = True
                        if not horizontal:
                            y += 2
            if not done and horizontal:
                a, b, c = int(img[y, x - 1]), int(img[y, x]), int(img[y, x + 1])
                v = _fill_single(a, b, c)
                if v is not None:
                    img[y, x] = v
                    done = True
                if not done and double:
                    vals = _fill_double(a, b, c, int(img[y, x + 2]))
                    if vals is not None:
                        img[y, x], img[y, x + 1] = vals
            y += 1
    return depth_mm
