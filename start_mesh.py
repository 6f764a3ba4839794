"""
MeshFlow — Launcher
===================
Runs the face landmarks detector on one image file and prints the
result as JSON.

Usage:
  python start_mesh.py --image face.jpg
  python start_mesh.py --image group.jpg --rect 0.3,0.4,0.2,0.3 --rect 0.7,0.4,0.2,0.3
  python start_mesh.py --image face.jpg --model models/face_landmarks_detector.onnx --gpu

With no --rect the whole image is used as the face region. Each --rect
is "x_center,y_center,width,height[,rotation]", normalized to [0, 1],
rotation in radians.

Part 13 of 13 — Command Line
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

import cv2

# Add root
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from mesh_detector import FaceLandmarksDetector
from mesh_logger import MeshJSONEncoder, MeshResultLog
from mesh_types import NormalizedRect
from mesh_utils import load_config, setup_logger


def parse_rect(text: str) -> NormalizedRect:
    """Parse "x_center,y_center,width,height[,rotation]"."""
    try:
        values = [float(v) for v in text.split(",")]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid rect {text!r}: values must be numbers")
    if len(values) not in (4, 5):
        raise argparse.ArgumentTypeError(
            f"Invalid rect {text!r}: expected x_center,y_center,width,height[,rotation]"
        )
    return NormalizedRect(*values)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MeshFlow face landmarks detector")
    parser.add_argument("--image", type=str, required=True, help="Path to input image")
    parser.add_argument("--model", type=str, default=None, help="Path to ONNX model (overrides config)")
    parser.add_argument("--config", type=str, default=None, help="Path to config YAML")
    parser.add_argument("--rect", type=parse_rect, action="append", default=None,
                        help="Face region x_center,y_center,width,height[,rotation]; repeatable")
    parser.add_argument("--threshold", type=float, default=None, help="Presence threshold in [0, 1]")
    parser.add_argument("--gpu", action="store_true", help="Prefer GPU execution providers")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads for multiple rects")
    parser.add_argument("--log", action="store_true", help="Append results to the configured JSONL log")
    parser.add_argument("--log-dir", type=str, default=None, help="Append results to a JSONL log here")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Configure
    config = load_config(args.config)
    if args.model:
        config["model"]["path"] = os.path.abspath(args.model)
    if args.threshold is not None:
        config["detector"]["min_detection_confidence"] = args.threshold
    if args.workers is not None:
        config["detector"]["num_workers"] = args.workers
    if args.gpu:
        config["acceleration"]["delegate"] = "gpu"

    level = getattr(logging, str(config["logging"].get("level", "INFO")).upper(), logging.INFO)
    log = setup_logger("MeshFlow", level)

    frame = cv2.imread(args.image)
    if frame is None:
        log.error("Could not read image: %s", args.image)
        return 1

    log_dir = args.log_dir or (config["logging"].get("log_dir") if args.log else None)
    result_log = MeshResultLog(log_dir) if log_dir else None
    try:
        with FaceLandmarksDetector.from_config(config) as detector:
            if args.rect:
                result = detector.detect_batch(frame, args.rect)
            else:
                result = detector.detect(frame)
        if result_log is not None:
            result_log.log_result(result, source=args.image)
    finally:
        if result_log is not None:
            result_log.close()

    print(json.dumps(result.to_dict(), cls=MeshJSONEncoder))
    return 0


if __name__ == "__main__":
    sys.exit(main())
