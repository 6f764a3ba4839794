"""
MeshFlow — Configuration & Options Tests
=========================================
config.yaml loading, default merging and option validation.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest
import yaml

# Project root
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from mesh_graph import ConfigurationError
from mesh_options import (
    FaceLandmarksDetectorGraphOptions,
    RectTransformationOptions,
    sanity_check_options,
)
from mesh_utils import DEFAULT_CONFIG, load_config, resolve_model_path, setup_logger


# ═══════════════════════════════════════════════════════════════
# load_config
# ═══════════════════════════════════════════════════════════════

def test_load_config_merges_over_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"detector": {"min_detection_confidence": 0.8}}))
    config = load_config(str(path))
    assert config["detector"]["min_detection_confidence"] == 0.8
    assert config["detector"]["num_workers"] == DEFAULT_CONFIG["detector"]["num_workers"]
    assert config["rotation"] == DEFAULT_CONFIG["rotation"]


def test_load_config_does_not_mutate_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"rect_transformation": {"scale_x": 2.0}}))
    load_config(str(path))
    assert DEFAULT_CONFIG["rect_transformation"]["scale_x"] == 1.5


def test_load_config_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(str(path)) == DEFAULT_CONFIG


def test_load_config_explicit_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_load_config_rejects_non_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError, match="mapping"):
        load_config(str(path))


def test_shipped_config_matches_defaults():
    assert load_config() == DEFAULT_CONFIG


def test_resolve_model_path():
    config = {"model": {"path": "models/face.onnx"}}
    assert resolve_model_path(config, "/srv") == os.path.join("/srv", "models/face.onnx")
    absolute = os.path.abspath("face.onnx")
    assert resolve_model_path({"model": {"path": absolute}}) == absolute
    assert resolve_model_path({}) is None


def test_setup_logger_is_idempotent():
    logger = setup_logger("MeshFlowTest", logging.DEBUG)
    again = setup_logger("MeshFlowTest", logging.DEBUG)
    assert logger is again
    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG


# ═══════════════════════════════════════════════════════════════
# Options
# ═══════════════════════════════════════════════════════════════

def test_options_from_default_config():
    options = FaceLandmarksDetectorGraphOptions.from_config(DEFAULT_CONFIG)
    assert options.min_detection_confidence == 0.5
    assert options.rotation_start_keypoint == 33
    assert options.rotation_end_keypoint == 263
    assert options.rect_transformation == RectTransformationOptions()
    assert options.base_options.acceleration.delegate == "cpu"
    assert options.base_options.acceleration.providers is None
    sanity_check_options(options)


def test_options_from_config_providers():
    config = {"acceleration": {"delegate": "GPU", "providers": ["CUDAExecutionProvider"]}}
    options = FaceLandmarksDetectorGraphOptions.from_config(config)
    assert options.base_options.acceleration.delegate == "gpu"
    assert options.base_options.acceleration.providers == ("CUDAExecutionProvider",)


@pytest.mark.parametrize("threshold", [0.0, 0.5, 1.0])
def test_valid_thresholds(threshold):
    sanity_check_options(FaceLandmarksDetectorGraphOptions(min_detection_confidence=threshold))


@pytest.mark.parametrize("threshold", [-0.01, 1.01, float("nan")])
def test_invalid_thresholds(threshold):
    with pytest.raises(ConfigurationError, match="min_detection_confidence"):
        sanity_check_options(FaceLandmarksDetectorGraphOptions(min_detection_confidence=threshold))


@pytest.mark.parametrize("rect", [
    RectTransformationOptions(scale_x=0.0),
    RectTransformationOptions(scale_y=-1.0),
    RectTransformationOptions(square_long=True, square_short=True),
    RectTransformationOptions(shift_x=float("inf")),
    RectTransformationOptions(rotation_degrees=float("nan")),
    RectTransformationOptions(rotation_degrees=float("-inf")),
])
def test_invalid_rect_transformation(rect):
    with pytest.raises(ConfigurationError):
        sanity_check_options(FaceLandmarksDetectorGraphOptions(rect_transformation=rect))


def test_options_from_config_rotation_degrees():
    options = FaceLandmarksDetectorGraphOptions.from_config(
        {"rect_transformation": {"rotation_degrees": "15"}}
    )
    assert options.rect_transformation.rotation_degrees == 15.0
    assert isinstance(options.rect_transformation.rotation_degrees, float)
    sanity_check_options(options)

    unset = FaceLandmarksDetectorGraphOptions.from_config({})
    assert unset.rect_transformation.rotation_degrees is None

    with pytest.raises(ValueError):
        FaceLandmarksDetectorGraphOptions.from_config(
            {"rect_transformation": {"rotation_degrees": "quarter"}}
        )


def test_invalid_workers_and_keypoints():
    with pytest.raises(ConfigurationError):
        sanity_check_options(FaceLandmarksDetectorGraphOptions(num_workers=0))
    with pytest.raises(ConfigurationError):
        sanity_check_options(FaceLandmarksDetectorGraphOptions(rotation_start_keypoint=-1))
