from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

import cv2
import numpy as np

from stereocorr.api.stereo_depth import correspond
from stereocorr.core.correspondence import Correspondences
from stereocorr.core.image_io import load_gray_u8, save_depth_png
from stereocorr.depth.conversion import (
    cvt_depth_from_float,
    depth_from_disparity,
    depth_from_stereo_correspondences,
    disparity_from_stereo_images,
)
from stereocorr.matching.flow import TermCriteria
from stereocorr.meta import load_rig_meta


def detect_points(image: np.ndarray, *, max_corners: int, quality_level: float, min_distance: float) -> np.ndarray:
    """Shi-Tomasi corners of a uint8 image as (N,2) float32."""
    pts = cv2.goodFeaturesToTrack(image, maxCorners=int(max_corners), qualityLevel=float(quality_level), minDistance=float(min_distance))
    if pts is None:
        return np.zeros((0, 2), dtype=np.float32)
    return np.asarray(pts, dtype=np.float32).reshape(-1, 2)


def _engine_params(args: argparse.Namespace) -> dict[str, Any]:
    if args.method == "block":
        return {
            "win_size": tuple(args.win),
            "max_level": args.max_level,
            "iterations": args.iterations,
            "min_disparity": args.min_disparity,
            "max_disparity": args.max_disparity,
            "cost": args.cost,
        }
    return {
        "win_size": tuple(args.win),
        "max_level": args.max_level,
        "criteria": TermCriteria(max_count=args.iterations, epsilon=args.epsilon),
        "min_eig_threshold": args.min_eig,
        "want_error": True,
    }


def run_match(args: argparse.Namespace) -> Correspondences:
    left = load_gray_u8(args.left)
    right = load_gray_u8(args.right)
    pts = detect_points(left, max_corners=args.max_corners, quality_level=args.quality_level, min_distance=args.min_distance)
    return correspond(left, right, pts, method=args.method, **_engine_params(args))


def write_report(path: Path, matches: Correspondences, *, method: str, left: Path, right: Path) -> Path:
    report: dict[str, Any] = {
        "schema_version": "stereocorr.correspondences.v0",
        "method": method,
        "left": str(left),
        "right": str(right),
        "num_points": len(matches),
        "num_valid": matches.valid_count,
        **matches.to_dict(),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2), encoding="utf-8")
    return path


def _add_engine_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("left", type=Path)
    p.add_argument("right", type=Path)
    p.add_argument("--method", type=str, default="block", choices=["block", "flow"])
    p.add_argument("--cost", type=str, default="ssd", choices=["ssd", "sad"], help="Block matching cost.")
    p.add_argument("--win", type=int, nargs=2, default=None, metavar=("W", "H"), help="Window size (default: 7 3 block, 21 21 flow).")
    p.add_argument("--max-level", type=int, default=3)
    p.add_argument("--iterations", type=int, default=None, help="Sub-pixel budget cap (block) or max iterations (flow).")
    p.add_argument("--epsilon", type=float, default=0.01, help="Flow convergence threshold (pixels).")
    p.add_argument("--min-eig", type=float, default=1e-4, help="Flow minimum eigenvalue threshold.")
    p.add_argument("--min-disparity", type=int, default=0)
    p.add_argument("--max-disparity", type=int, default=64)
    p.add_argument("--max-corners", type=int, default=1000)
    p.add_argument("--quality-level", type=float, default=0.01)
    p.add_argument("--min-distance", type=float, default=7.0)


def _fill_defaults(args: argparse.Namespace) -> None:
    if args.win is None:
        args.win = [7, 3] if args.method == "block" else [21, 21]
    if args.iterations is None:
        args.iterations = 5 if args.method == "block" else 30


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="stereocorr")
    parser.add_argument("--log-level", type=str, default="warning", choices=["debug", "info", "warning", "error"])
    sub = parser.add_subparsers(dest="cmd", required=True)

    match = sub.add_parser("match", help="Detect corners in the left image and match them in the right image.")
    _add_engine_args(match)
    match.add_argument("--out-json", type=Path, required=True)

    depth = sub.add_parser("depth", help="Depth map (uint16 mm PNG) from a rectified stereo pair.")
    _add_engine_args(depth)
    depth.add_argument("--rig", type=Path, required=True, help="Rig description (stereocorr.rig.v0 JSON).")
    depth.add_argument("--out", type=Path, required=True)
    depth.add_argument("--dense", action="store_true", help="Use OpenCV StereoBM for a dense disparity map.")

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper()), format="%(levelname)s: %(message)s")

    if args.cmd == "match":
        _fill_defaults(args)
        matches = run_match(args)
        write_report(args.out_json, matches, method=args.method, left=args.left, right=args.right)
        print(f"Wrote {args.out_json}")
        return 0

    if args.cmd == "depth":
        _fill_defaults(args)
        rig = load_rig_meta(args.rig)
        if args.dense:
            disparity = disparity_from_stereo_images(load_gray_u8(args.left), load_gray_u8(args.right))
            depth_mm = depth_from_disparity(disparity, rig.camera.fx_px, rig.baseline_m, dtype="uint16")
        else:
            matches = run_match(args)
            depth_m = depth_from_stereo_correspondences(
                (rig.image.height_px, rig.image.width_px),
                matches.left_xy,
                matches.right_xy,
                matches.status,
                rig.camera.fx_px,
                rig.baseline_m,
            )
            depth_mm = cvt_depth_from_float(depth_m)
        save_depth_png(args.out, depth_mm)
        print(f"Wrote {args.out}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
