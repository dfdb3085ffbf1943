from __future__ import annotations

import cv2
import numpy as np
import pytest

from stereocorr.core.preconditions import PreconditionError
from stereocorr.core.pyramid import build_pyramid
from stereocorr.matching.flow import TermCriteria, track_horizontal_flow


def _texture(h: int = 240, w: int = 320, seed: int = 0, sigma: float = 2.0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    img = cv2.GaussianBlur(rng.uniform(0.0, 255.0, size=(h, w)).astype(np.float32), (0, 0), sigma)
    img = (img - img.min()) / (img.max() - img.min()) * 255.0
    return np.clip(img + 0.5, 0, 255).astype(np.uint8)


def _shifted(left: np.ndarray, shift: int) -> np.ndarray:
    right = left.copy()
    right[:, :-shift] = left[:, shift:]
    return right


def _grid() -> np.ndarray:
    xs, ys = np.meshgrid(np.arange(80, 241, 40), np.arange(80, 161, 40))
    pts = np.stack([xs.ravel(), ys.ravel()], axis=-1).astype(np.float32)
    pts[:, 1] += 0.3
    return pts


def test_term_criteria_resolution():
    assert TermCriteria().resolved() == (30, pytest.approx(1e-4))
    assert TermCriteria(max_count=500, epsilon=20.0).resolved() == (100, 100.0)
    assert TermCriteria(max_count=-3, epsilon=-1.0).resolved() == (0, 0.0)
    assert TermCriteria(max_count=None, epsilon=None).resolved() == (30, pytest.approx(1e-4))


@pytest.mark.integration
def test_horizontal_shift_is_recovered():
    left = _texture(seed=1)
    right = _shifted(left, 3)
    pts = _grid()
    m = track_horizontal_flow(left, right, pts)

    assert bool(np.all(m.status))
    dx = m.right_xy[:, 0] - m.left_xy[:, 0]
    assert np.max(np.abs(dx + 3.0)) < 0.1


def test_vertical_coordinate_is_never_updated():
    left = _texture(seed=2)
    right = _shifted(left, 3)
    pts = _grid()

    m = track_horizontal_flow(left, right, pts)
    np.testing.assert_array_equal(m.right_xy[:, 1], pts[:, 1])

    guess = pts + np.array([-2.0, 0.7], dtype=np.float32)
    g = track_horizontal_flow(left, right, pts, guess)
    np.testing.assert_array_equal(g.right_xy[:, 1], guess[:, 1])


def test_flat_patches_fail():
    img = np.full((240, 320), 100, dtype=np.uint8)
    pts = _grid()
    assert not bool(np.any(track_horizontal_flow(img, img, pts).status))
    assert not bool(np.any(track_horizontal_flow(img, img, pts, min_eig_threshold=0.0).status))


def test_points_near_the_border_fail():
    img = _texture(seed=3)
    pts = np.array([[0.0, 0.0], [2.0, 120.0], [160.0, 120.0]], dtype=np.float32)
    m = track_horizontal_flow(img, img, pts)
    assert m.status.tolist() == [False, False, True]


def test_error_output():
    left = _texture(seed=4)
    right = _shifted(left, 3)
    pts = _grid()

    plain = track_horizontal_flow(left, right, pts)
    assert plain.error is None

    res = track_horizontal_flow(left, right, pts, want_error=True)
    assert res.error is not None and res.error.shape == (pts.shape[0],)
    assert bool(np.all(res.error[res.status] < 5.0))

    eig = track_horizontal_flow(left, right, pts, want_error=True, error_metric="min_eig")
    assert bool(np.all(eig.error[eig.status] > 1e-4))

    with pytest.raises(ValueError):
        track_horizontal_flow(left, right, pts, error_metric="ncc")  # type: ignore[arg-type]


def test_prebuilt_pyramids_match_images():
    left = _texture(seed=5)
    right = _shifted(left, 2)
    pts = _grid()
    win = (21, 21)

    a = track_horizontal_flow(left, right, pts, win_size=win, max_level=3)
    b = track_horizontal_flow(
        build_pyramid(left, win, 3, with_derivatives=True),
        build_pyramid(right, win, 3),
        pts,
        win_size=win,
        max_level=3,
    )
    np.testing.assert_array_equal(a.right_xy, b.right_xy)
    np.testing.assert_array_equal(a.status, b.status)


def test_empty_points_and_preconditions():
    img = _texture(seed=6)
    m = track_horizontal_flow(img, img, np.zeros((0, 2), dtype=np.float32), want_error=True)
    assert len(m) == 0
    assert m.error is not None and m.error.shape == (0,)

    pts = _grid()
    with pytest.raises(PreconditionError):
        track_horizontal_flow(img, img, pts, win_size=(2, 21))
    with pytest.raises(PreconditionError):
        track_horizontal_flow(img, img, pts, pts[:2])
    with pytest.raises(PreconditionError):
        track_horizontal_flow(img, img.astype(np.float32), pts)
