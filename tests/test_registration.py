import numpy as np

from stereocorr.depth.registration import HoleFill, fill_registered_depth_holes, register_depth, rigid_transform


def _K(f=512.0, cx=4.0, cy=3.0):
    return np.array([[f, 0.0, cx], [0.0, f, cy], [0.0, 0.0, 1.0]])


def test_identity_registration_keeps_depth():
    rng = np.random.default_rng(0)
    depth = rng.choice(np.array([0, 500, 1000, 2000, 4000], dtype=np.uint16), size=(8, 10))
    out = register_depth(depth, _K(), _K(), np.eye(4))
    assert out.dtype == np.uint16
    np.testing.assert_array_equal(out, depth)


def test_translation_shifts_columns():
    depth = np.full((6, 12), 1000, dtype=np.uint16)
    T = rigid_transform(np.zeros(3), [5.0 / 512.0, 0.0, 0.0])
    out = register_depth(depth, _K(), _K(), T)
    assert np.all(out[:, :5] == 0)
    assert np.all(out[:, 5:] == 1000)


def test_nearest_depth_wins():
    depth = np.zeros((6, 12), dtype=np.uint16)
    depth[2, 4] = 1000
    depth[2, 5] = 2000
    # A 2/512 m shift moves column 4 at 1 m and column 5 at 2 m onto column 6.
    out = register_depth(depth, _K(), _K(), rigid_transform(np.zeros(3), [2.0 / 512.0, 0.0, 0.0]))
    assert out[2, 6] == 1000
    assert np.count_nonzero(out) == 1


def test_rigid_transform():
    T = rigid_transform([0.0, 0.0, np.pi / 2.0], [1.0, 2.0, 3.0])
    np.testing.assert_allclose(T[:3, :3] @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(T[:3, 3], [1.0, 2.0, 3.0])
    np.testing.assert_allclose(T[3], [0.0, 0.0, 0.0, 1.0])


def test_fill_single_holes():
    depth = np.full((5, 5), 1000, dtype=np.uint16)
    depth[2, 2] = 0
    depth[3, 2] = 1010
    out = fill_registered_depth_holes(depth, HoleFill.VERTICAL)
    assert out is depth
    assert depth[2, 2] == 1005

    depth = np.full((5, 5), 1000, dtype=np.uint16)
    depth[2, 2] = 0
    depth[2, 3] = 1010
    fill_registered_depth_holes(depth, HoleFill.HORIZONTAL)
    assert depth[2, 2] == 1005


def test_fill_leaves_disagreeing_neighbours_and_none():
    depth = np.full((5, 5), 1000, dtype=np.uint16)
    depth[2, 2] = 0
    depth[3, 2] = 1100
    fill_registered_depth_holes(depth, HoleFill.VERTICAL)
    assert depth[2, 2] == 0

    depth[3, 2] = 1000
    before = depth.copy()
    fill_registered_depth_holes(depth, HoleFill.NONE)
    np.testing.assert_array_equal(depth, before)


def test_fill_double_holes():
    depth = np.full((6, 6), 1000, dtype=np.uint16)
    depth[2, 2] = 0
    depth[3, 2] = 0
    depth[4, 2] = 1008
    fill_registered_depth_holes(depth, HoleFill.VERTICAL | HoleFill.DOUBLE)
    assert depth[2, 2] == 1002
    assert depth[3, 2] == 1006
