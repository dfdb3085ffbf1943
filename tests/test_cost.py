import numpy as np
import pytest

from stereocorr.core.cost import cost_function, sad, ssd, window_intensity
from stereocorr.core.preconditions import PreconditionError


def test_ssd_sad_uint8_do_not_wrap():
    a = np.full((3, 5), 10, dtype=np.uint8)
    b = np.full((3, 5), 250, dtype=np.uint8)
    assert sad(a, b) == pytest.approx(240.0 * 15)
    assert ssd(a, b) == pytest.approx(240.0 * 240.0 * 15)
    assert ssd(a, a) == 0.0


def test_float32_windows():
    a = np.array([[0.0, 1.0], [2.0, 3.0]], dtype=np.float32)
    b = np.array([[0.5, 1.0], [2.0, 1.0]], dtype=np.float32)
    assert ssd(a, b) == pytest.approx(0.25 + 4.0)
    assert sad(a, b) == pytest.approx(0.5 + 2.0)


def test_half_intensity_encoding():
    a = np.zeros((2, 2, 2), dtype=np.int16)
    a[..., 0] = 10
    a[..., 1] = 30
    b = np.full((2, 2, 2), 20, dtype=np.int16)
    np.testing.assert_allclose(window_intensity(a), 20.0)
    assert ssd(a, b) == 0.0
    b[0, 0] = (0, 0)
    assert sad(a, b) == pytest.approx(20.0)


def test_mismatched_windows_are_rejected():
    a = np.zeros((3, 3), dtype=np.uint8)
    with pytest.raises(PreconditionError):
        ssd(a, np.zeros((3, 4), dtype=np.uint8))
    with pytest.raises(PreconditionError):
        sad(a, np.zeros((3, 3), dtype=np.float32))
    with pytest.raises(PreconditionError):
        ssd(np.zeros((3, 3), dtype=np.float64), np.zeros((3, 3), dtype=np.float64))


def test_cost_function_lookup():
    assert cost_function("ssd") is ssd
    assert cost_function("sad") is sad
    with pytest.raises(ValueError):
        cost_function("ncc")  # type: ignore[arg-type]
