from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from stereocorr.core.preconditions import require


WindowSize = int | Sequence[int]


def window_size(win: WindowSize) -> tuple[int, int]:
    """Normalize an int or (w, h) pair to a (w, h) tuple of ints."""
    if isinstance(win, (int, np.integer)):
        return int(win), int(win)
    w, h = (int(v) for v in win)
    return w, h


def odd_window_size(win: WindowSize) -> tuple[int, int]:
    """Window size with even sides rounded up to the next odd value."""
    w, h = window_size(win)
    if w % 2 == 0:
        w += 1
    if h % 2 == 0:
        h += 1
    return w, h


def as_points(xy: Any, name: str = "points") -> np.ndarray:
    """Accepts (N,2), (N,1,2) or an empty sequence; returns a contiguous (N,2) float32 copy."""
    arr = np.asarray(xy, dtype=np.float32)
    if arr.size == 0:
        return np.zeros((0, 2), dtype=np.float32)
    require(arr.shape[-1] == 2 and arr.size % 2 == 0, f"{name} must be (N,2), got {arr.shape}")
    return np.ascontiguousarray(arr.reshape(-1, 2)).copy()


@dataclass(frozen=True)
class Correspondences:
    """
    Matches between left-image points and right-image points.

    Arrays are index-aligned with the input points. `status` is the only source of truth for
    validity: right coordinates of invalid points carry no meaning.
    """

    left_xy: np.ndarray  # (N,2) float32
    right_xy: np.ndarray  # (N,2) float32
    status: np.ndarray  # (N,) bool
    error: np.ndarray | None = None  # (N,) float32

    def __post_init__(self) -> None:
        n = self.left_xy.shape[0]
        require(self.right_xy.shape == (n, 2), "right_xy must match left_xy")
        require(self.status.shape == (n,), "status must have one flag per point")
        if self.error is not None:
            require(self.error.shape == (n,), "error must have one value per point")

    def __len__(self) -> int:
        return int(self.left_xy.shape[0])

    @property
    def valid_count(self) -> int:
        return int(np.count_nonzero(self.status))

    @property
    def disparity(self) -> np.ndarray:
        """left.x - right.x per point, NaN where status is False."""
        d = (self.left_xy[:, 0] - self.right_xy[:, 0]).astype(np.float32)
        return np.where(self.status, d, np.float32(np.nan)).astype(np.float32)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "left_xy": self.left_xy.astype(np.float64).tolist(),
            "right_xy": self.right_xy.astype(np.float64).tolist(),
            "status": [bool(s) for s in self.status.tolist()],
        }
        if self.error is not None:
            out["error"] = self.error.astype(np.float64).tolist()
        return out
