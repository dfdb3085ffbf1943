from __future__ import annotations

from typing import Any, Literal

import numpy as np

from stereocorr.core.correspondence import Correspondences
from stereocorr.core.preconditions import require
from stereocorr.depth.conversion import depth_from_stereo_correspondences
from stereocorr.matching.block_matching import build_correspondences
from stereocorr.matching.flow import TermCriteria, track_horizontal_flow


MatchMethod = Literal["block", "flow"]


def correspond(
    left_image: np.ndarray,
    right_image: np.ndarray,
    left_xy: Any,
    *,
    method: MatchMethod = "block",
    **params: Any,
) -> Correspondences:
    """
    Match left points in the right image with one of the two engines.

    - "block": `build_correspondences` (block matching + sub-pixel refinement)
    - "flow": `track_horizontal_flow` (horizontal-only pyramidal Lucas-Kanade)

    Extra keyword arguments are forwarded to the engine.
    """
    if method == "block":
        return build_correspondences(left_image, right_image, left_xy, **params)
    if method == "flow":
        return track_horizontal_flow(left_image, right_image, left_xy, **params)
    raise ValueError(f"unknown method: {method}")


def depth_from_stereo_images(
    left_image: np.ndarray,
    right_image: np.ndarray,
    left_xy: Any,
    fx: float,
    baseline: float,
    *,
    win_size: int = 21,
    max_level: int = 3,
    iterations: int = 30,
    epsilon: float = 0.01,
) -> np.ndarray:
    """
    Sparse float32 depth map of a rectified uint8 pair at the given left points.

    Points are tracked with the horizontal flow solver; depth is written at the rounded left
    point for tracked points with positive disparity.
    """
    left_image = np.asarray(left_image)
    right_image = np.asarray(right_image)
    require(
        left_image.ndim == 2 and left_image.dtype == np.uint8 and left_image.shape == right_image.shape
        and right_image.dtype == np.uint8,
        "left/right must be uint8 (H,W) images of the same size",
    )
    require(fx > 0.0 and baseline > 0.0, f"fx and baseline must be > 0, got {fx}, {baseline}")

    matches = track_horizontal_flow(
        left_image,
        right_image,
        left_xy,
        win_size=(win_size, win_size),
        max_level=max_level,
        criteria=TermCriteria(max_count=iterations, epsilon=epsilon),
        min_eig_threshold=1e-4,
        want_error=True,
        error_metric="min_eig",
    )
    return depth_from_stereo_correspondences(
        left_image.shape, matches.left_xy, matches.right_xy, matches.status, fx, baseline
    )
