from __future__ import annotations

import json
from pathlib import Path

import cv2
import numpy as np
import pytest
from PIL import Image

from stereocorr.cli.main import main
from stereocorr.core.image_io import load_depth_png


def _write_pair(tmp_path: Path, h: int, w: int, shift: int) -> tuple[Path, Path]:
    rng = np.random.default_rng(7)
    img = cv2.GaussianBlur(rng.uniform(0.0, 255.0, size=(h, w)).astype(np.float32), (0, 0), 1.5)
    img = (img - img.min()) / (img.max() - img.min()) * 255.0
    left = np.clip(img + 0.5, 0, 255).astype(np.uint8)
    right = left.copy()
    right[:, :-shift] = left[:, shift:]
    p_left = tmp_path / "left.png"
    p_right = tmp_path / "right.png"
    Image.fromarray(left).save(p_left)
    Image.fromarray(right).save(p_right)
    return p_left, p_right


def _write_rig(path: Path, w: int, h: int) -> Path:
    path.write_text(
        json.dumps(
            {
                "schema_version": "stereocorr.rig.v0",
                "camera": {"fx_px": 300.0},
                "stereo": {"baseline_m": 0.1},
                "image": {"width_px": w, "height_px": h},
            }
        ),
        encoding="utf-8",
    )
    return path


def test_cli_match_writes_report(tmp_path: Path, capsys) -> None:
    p_left, p_right = _write_pair(tmp_path, 120, 160, 3)
    out = tmp_path / "out" / "matches.json"

    assert main(["match", str(p_left), str(p_right), "--out-json", str(out)]) == 0
    assert "Wrote" in capsys.readouterr().out

    report = json.loads(out.read_text(encoding="utf-8"))
    assert report["schema_version"] == "stereocorr.correspondences.v0"
    assert report["method"] == "block"
    assert report["num_points"] == len(report["left_xy"]) == len(report["status"])
    assert report["num_points"] > 0
    assert 0 < report["num_valid"] <= report["num_points"]


def test_cli_sparse_depth(tmp_path: Path) -> None:
    p_left, p_right = _write_pair(tmp_path, 120, 160, 3)
    rig = _write_rig(tmp_path / "rig.json", 160, 120)
    out = tmp_path / "depth.png"

    assert main(["depth", str(p_left), str(p_right), "--rig", str(rig), "--out", str(out)]) == 0
    depth = load_depth_png(out)
    assert depth.shape == (120, 160)
    assert np.count_nonzero(depth) > 0
    # 0.1 m * 300 px / 3 px
    assert int(np.median(depth[depth > 0])) == 10000


@pytest.mark.integration
def test_cli_dense_depth(tmp_path: Path) -> None:
    p_left, p_right = _write_pair(tmp_path, 240, 320, 8)
    rig = _write_rig(tmp_path / "rig.json", 320, 240)
    out = tmp_path / "dense.png"

    assert main(["depth", str(p_left), str(p_right), "--rig", str(rig), "--out", str(out), "--dense"]) == 0
    depth = load_depth_png(out)
    assert depth.shape == (240, 320)
    assert np.count_nonzero(depth) > 0
