import numpy as np

from stereocorr.core.fixed_point import W_BITS, accumulate_f32, bilinear_weights, descale, interpolate


def test_bilinear_weights_sum_to_one():
    assert bilinear_weights(0.0, 0.0) == (1 << W_BITS, 0, 0, 0)
    assert bilinear_weights(0.5, 0.5) == (4096, 4096, 4096, 4096)
    rng = np.random.default_rng(0)
    for a, b in rng.uniform(0.0, 1.0, size=(200, 2)):
        assert sum(bilinear_weights(a, b)) == 1 << W_BITS


def test_descale_rounds_to_nearest():
    x = np.array([255 << 9, 255, 256, -257], dtype=np.int32)
    np.testing.assert_array_equal(descale(x, 9), [255, 0, 1, -1])


def test_interpolate_integer_offset_keeps_pixels():
    src = np.arange(20, dtype=np.uint8).reshape(4, 5)
    out = interpolate(src, bilinear_weights(0.0, 0.0), W_BITS - 5)
    np.testing.assert_array_equal(out, src[:-1, :-1].astype(np.int32) * 32)


def test_interpolate_half_offset_averages():
    src = np.array([[0, 64], [64, 128]], dtype=np.uint8)
    out = interpolate(src, bilinear_weights(0.5, 0.5), W_BITS)
    assert out.shape == (1, 1)
    assert int(out[0, 0]) == 64


def test_accumulate_f32_is_sequential():
    # A pairwise or float64 sum would give 1.0.
    vals = np.array([1e8, 1.0, -1e8], dtype=np.float32)
    assert accumulate_f32(vals) == np.float32(0.0)
    assert accumulate_f32(np.zeros((0,))) == np.float32(0.0)
