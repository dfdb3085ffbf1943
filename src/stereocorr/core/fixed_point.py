from __future__ import annotations

import numpy as np


# Bilinear weights are integers summing to 2^W_BITS.
W_BITS = 14
# Interpolated intensities keep 5 fractional bits (descale by W_BITS - 5).
INTENSITY_FRAC_BITS = 5
# Products of two 5-bit-scaled values carry 2^10; A and b entries are rescaled by 2^-20.
FLT_SCALE = np.float32(1.0 / (1 << 20))
FLT_EPSILON = float(np.finfo(np.float32).eps)

_ONE = np.float32(1.0)
_W_ONE = np.float32(1 << W_BITS)


def bilinear_weights(ax: float, ay: float) -> tuple[int, int, int, int]:
    """
    Fixed-point bilinear weights (iw00, iw01, iw10, iw11) for fractional offsets (ax, ay).

    Products are formed in float32 and rounded half-to-even; iw11 absorbs the rounding so the
    four weights always sum to exactly 2^W_BITS.
    """
    a = np.float32(ax)
    b = np.float32(ay)
    iw00 = int(np.rint((_ONE - a) * (_ONE - b) * _W_ONE))
    iw01 = int(np.rint(a * (_ONE - b) * _W_ONE))
    iw10 = int(np.rint((_ONE - a) * b * _W_ONE))
    iw11 = (1 << W_BITS) - iw00 - iw01 - iw10
    return iw00, iw01, iw10, iw11


def descale(x: np.ndarray, n: int) -> np.ndarray:
    """Round-to-nearest right shift by n bits: (x + 2^(n-1)) >> n."""
    return (x + (1 << (n - 1))) >> n


def interpolate(src: np.ndarray, weights: tuple[int, int, int, int], shift: int) -> np.ndarray:
    """
    Interpolate a (h+1, w+1[, c]) integer block to (h, w[, c]) with fixed-point weights.

    Every output pixel combines the 2x2 neighbourhood starting at the same index, then is
    descaled by `shift` bits.
    """
    iw00, iw01, iw10, iw11 = weights
    s = src.astype(np.int32, copy=False)
    acc = s[:-1, :-1] * iw00 + s[:-1, 1:] * iw01 + s[1:, :-1] * iw10 + s[1:, 1:] * iw11
    return descale(acc, shift)


def accumulate_f32(values: np.ndarray) -> np.float32:
    """Sum values in row-major order with a single float32 accumulator."""
    flat = np.asarray(values).reshape(-1).astype(np.float32)
    if flat.size == 0:
        return np.float32(0.0)
    return np.cumsum(flat, dtype=np.float32)[-1]
