from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
from PIL import Image


def load_gray_u8(path: str | Path) -> np.ndarray:
    """
    Load an image as grayscale uint8.

    OpenCV decodes first; Pillow is tried when OpenCV returns nothing (codecs missing from
    some OpenCV builds, e.g. webp).
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Missing {p}")

    img = cv2.imread(str(p), cv2.IMREAD_GRAYSCALE)
    if img is not None:
        if img.dtype != np.uint8:
            img = np.clip(img, 0, 255).astype(np.uint8)
        return img

    with Image.open(p) as im:
        im = im.convert("L")
        arr = np.asarray(im, dtype=np.uint8)
    return arr


def save_depth_png(path: str | Path, depth_mm: np.ndarray) -> Path:
    """Write a uint16 millimetre depth map as a 16-bit PNG."""
    depth_mm = np.asarray(depth_mm)
    if depth_mm.dtype != np.uint16 or depth_mm.ndim != 2:
        raise ValueError(f"depth must be uint16 (H,W), got {depth_mm.dtype} {depth_mm.shape}")
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(depth_mm).save(p)
    return p


def load_depth_png(path: str | Path) -> np.ndarray:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Missing {p}")
    with Image.open(p) as im:
        arr = np.asarray(im)
    return arr.astype(np.uint16)
