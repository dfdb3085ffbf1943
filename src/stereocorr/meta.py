from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np


SCHEMA_VERSION = "stereocorr.rig.v0"


class MetaValidationError(ValueError):
    pass


@dataclass(frozen=True)
class CameraMeta:
    fx_px: float
    fy_px: float
    cx_px: float
    cy_px: float


@dataclass(frozen=True)
class ImageMeta:
    width_px: int
    height_px: int


@dataclass(frozen=True)
class RigMeta:
    """Rectified stereo rig: shared intrinsics of the left camera and the baseline."""

    schema_version: str
    camera: CameraMeta
    baseline_m: float
    image: ImageMeta

    def camera_matrix(self) -> np.ndarray:
        return np.array(
            [
                [self.camera.fx_px, 0.0, self.camera.cx_px],
                [0.0, self.camera.fy_px, self.camera.cy_px],
                [0.0, 0.0, 1.0],
            ],
            dtype=np.float64,
        )


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise MetaValidationError(msg)


def load_rig_meta(path: Path) -> RigMeta:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_rig_meta(data)


def parse_rig_meta(data: dict[str, Any]) -> RigMeta:
    schema_version = data.get("schema_version")
    _require(schema_version == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    camera = data.get("camera", {})
    stereo = data.get("stereo", {})
    image = data.get("image", {})

    w_raw = image.get("width_px")
    h_raw = image.get("height_px")
    _require(w_raw is not None and h_raw is not None, "image.width_px and image.height_px are required")
    w, h = int(w_raw), int(h_raw)
    _require(w > 0 and h > 0, "image.width_px and image.height_px must be > 0")

    fx_raw = camera.get("fx_px")
    _require(fx_raw is not None, "camera.fx_px is required")
    fx = float(fx_raw)
    _require(fx > 0.0, "camera.fx_px must be > 0")
    fy = float(camera.get("fy_px", fx))
    _require(fy > 0.0, "camera.fy_px must be > 0")
    cx = float(camera.get("cx_px", (w - 1) / 2.0))
    cy = float(camera.get("cy_px", (h - 1) / 2.0))

    baseline_raw = stereo.get("baseline_m")
    _require(baseline_raw is not None, "stereo.baseline_m is required")
    baseline = float(baseline_raw)
    _require(baseline > 0.0, "stereo.baseline_m must be > 0")

    return RigMeta(
        schema_version=schema_version,
        camera=CameraMeta(fx_px=fx, fy_px=fy, cx_px=cx, cy_px=cy),
        baseline_m=baseline,
        image=ImageMeta(width_px=w, height_px=h),
    )
