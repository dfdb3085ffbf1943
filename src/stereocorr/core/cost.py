from __future__ import annotations

from typing import Callable, Literal

import numpy as np

from stereocorr.core.preconditions import require


CostName = Literal["ssd", "sad"]
CostFunction = Callable[[np.ndarray, np.ndarray], float]


def _encoding(window: np.ndarray) -> str:
    if window.ndim == 2 and window.dtype == np.uint8:
        return "u8"
    if window.ndim == 2 and window.dtype == np.float32:
        return "f32"
    if window.ndim == 3 and window.shape[2] == 2 and window.dtype == np.int16:
        return "s16x2"
    return ""


def supported_encoding(window: np.ndarray) -> bool:
    return _encoding(np.asarray(window)) != ""


def window_intensity(window: np.ndarray) -> np.ndarray:
    """
    Effective per-pixel intensity of a window as float32.

    Supported encodings:
    - uint8 (H,W)
    - float32 (H,W)
    - int16 (H,W,2), "half-intensity": 0.5*c0 + 0.5*c1
    """
    window = np.asarray(window)
    enc = _encoding(window)
    require(enc != "", f"unsupported window encoding: dtype={window.dtype} shape={window.shape}")
    if enc == "s16x2":
        w = window.astype(np.float32)
        return w[..., 0] * np.float32(0.5) + w[..., 1] * np.float32(0.5)
    return window.astype(np.float32, copy=False)


def _check_pair(left: np.ndarray, right: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    left = np.asarray(left)
    right = np.asarray(right)
    enc = _encoding(left)
    require(enc != "", f"unsupported window encoding: dtype={left.dtype} shape={left.shape}")
    require(left.dtype == right.dtype, f"window dtypes differ: {left.dtype} vs {right.dtype}")
    require(left.shape == right.shape, f"window shapes differ: {left.shape} vs {right.shape}")
    return window_intensity(left), window_intensity(right)


def ssd(left: np.ndarray, right: np.ndarray) -> float:
    """Sum of squared intensity differences between two equal windows."""
    a, b = _check_pair(left, right)
    d = a - b
    return float(np.sum(d * d, dtype=np.float64))


def sad(left: np.ndarray, right: np.ndarray) -> float:
    """Sum of absolute intensity differences between two equal windows."""
    a, b = _check_pair(left, right)
    return float(np.sum(np.abs(a - b), dtype=np.float64))


_COSTS: dict[str, CostFunction] = {"ssd": ssd, "sad": sad}


def cost_function(name: CostName) -> CostFunction:
    fn = _COSTS.get(name)
    if fn is None:
        raise ValueError(f"unknown cost: {name}")
    return fn
