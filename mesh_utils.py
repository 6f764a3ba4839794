"""
MeshFlow — Configuration & Logging Helpers
===========================================
  - DEFAULT_CONFIG: built-in defaults, same shape as config.yaml
  - load_config(): YAML file merged over the defaults
  - setup_logger(): console logger shared by all MeshFlow modules

Part 11 of 13 — Configuration & Logging
"""

from __future__ import annotations

import copy
import logging
import os
from typing import Optional

import yaml

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_config_path = os.path.join(_SCRIPT_DIR, "config.yaml")


# ===================================================================
# Configuration
# ===================================================================

DEFAULT_CONFIG = {
    "model": {
        "path": "models/face_landmarks_detector.onnx",
    },
    "detector": {
        "min_detection_confidence": 0.5,
        "num_workers": 1,
    },
    "acceleration": {
        "delegate": "cpu",
        "providers": None,
    },
    "rotation": {
        "start_keypoint": 33,   # left eye outer corner
        "end_keypoint": 263,    # right eye outer corner
        "target_angle_degrees": 0.0,
    },
    "rect_transformation": {
        "scale_x": 1.5,
        "scale_y": 1.5,
        "square_long": True,
        "square_short": False,
        "shift_x": 0.0,
        "shift_y": 0.0,
        "rotation_degrees": None,
    },
    "logging": {
        "level": "INFO",
        "log_dir": "logs",
    },
}


def _merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(path: Optional[str] = None) -> dict:
    """Load config.yaml (or `path`) merged over DEFAULT_CONFIG.

    An explicit path must exist; the default config.yaml is optional.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    target = path or _config_path
    if path is None and not os.path.exists(target):
        return config
    with open(target, "r", encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"{target}: top level must be a mapping")
    return _merge(config, loaded)


def resolve_model_path(config: dict, base_dir: Optional[str] = None) -> Optional[str]:
    """Return the configured model path, relative paths resolved against base_dir."""
    path = (config.get("model") or {}).get("path")
    if not path or os.path.isabs(path):
        return path
    return os.path.join(base_dir or _SCRIPT_DIR, path)


# ===================================================================
# Logging Setup
# ===================================================================

def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Create a configured logger for MeshFlow modules."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "[%(asctime)s] %(name)-18s %(levelname)-7s %(message)s",
            datefmt="%H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
