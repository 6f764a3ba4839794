"""
MeshFlow — Detector Options
============================
Immutable configuration records for the face landmarks graphs.

Only min_detection_confidence and the rect/rotation settings shape the
graph itself; the acceleration block is passed through untouched to
the inference stage.

Part 5 of 13 — Detector Options
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

from mesh_graph import ConfigurationError

SUPPORTED_DELEGATES = ("cpu", "gpu")

# Outer corner of each eye in the face mesh.
LEFT_EYE_OUTER_KEYPOINT = 33
RIGHT_EYE_OUTER_KEYPOINT = 263


@dataclass(frozen=True)
class Acceleration:
    delegate: str = "cpu"
    # Explicit ONNX Runtime providers; overrides the delegate mapping.
    providers: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class BaseOptions:
    model_asset_path: Optional[str] = None
    acceleration: Acceleration = field(default_factory=Acceleration)


@dataclass(frozen=True)
class RectTransformationOptions:
    scale_x: float = 1.5
    scale_y: float = 1.5
    square_long: bool = True
    square_short: bool = False
    shift_x: float = 0.0
    shift_y: float = 0.0
    rotation_degrees: Optional[float] = None


@dataclass(frozen=True)
class FaceLandmarksDetectorGraphOptions:
    base_options: BaseOptions = field(default_factory=BaseOptions)
    min_detection_confidence: float = 0.5
    rotation_start_keypoint: int = LEFT_EYE_OUTER_KEYPOINT
    rotation_end_keypoint: int = RIGHT_EYE_OUTER_KEYPOINT
    rotation_target_angle_degrees: float = 0.0
    rect_transformation: RectTransformationOptions = field(
        default_factory=RectTransformationOptions
    )
    num_workers: int = 1

    @classmethod
    def from_config(cls, config: dict) -> "FaceLandmarksDetectorGraphOptions":
        """Build options from a config dict shaped like config.yaml."""
        model = config.get("model", {}) or {}
        detector = config.get("detector", {}) or {}
        accel = config.get("acceleration", {}) or {}
        rotation = config.get("rotation", {}) or {}
        rect = config.get("rect_transformation", {}) or {}

        providers = accel.get("providers")
        rect_defaults = RectTransformationOptions()
        rotation_degrees = rect.get("rotation_degrees")
        return cls(
            base_options=BaseOptions(
                model_asset_path=model.get("path"),
                acceleration=Acceleration(
                    delegate=str(accel.get("delegate", "cpu")).lower(),
                    providers=tuple(providers) if providers else None,
                ),
            ),
            min_detection_confidence=float(
                detector.get("min_detection_confidence", 0.5)
            ),
            rotation_start_keypoint=int(
                rotation.get("start_keypoint", LEFT_EYE_OUTER_KEYPOINT)
            ),
            rotation_end_keypoint=int(
                rotation.get("end_keypoint", RIGHT_EYE_OUTER_KEYPOINT)
            ),
            rotation_target_angle_degrees=float(
                rotation.get("target_angle_degrees", 0.0)
            ),
            rect_transformation=RectTransformationOptions(
                scale_x=float(rect.get("scale_x", rect_defaults.scale_x)),
                scale_y=float(rect.get("scale_y", rect_defaults.scale_y)),
                square_long=bool(rect.get("square_long", rect_defaults.square_long)),
                square_short=bool(rect.get("square_short", rect_defaults.square_short)),
                shift_x=float(rect.get("shift_x", 0.0)),
                shift_y=float(rect.get("shift_y", 0.0)),
                rotation_degrees=(
                    float(rotation_degrees) if rotation_degrees is not None else None
                ),
            ),
            num_workers=int(detector.get("num_workers", 1)),
        )


def sanity_check_options(options: FaceLandmarksDetectorGraphOptions) -> None:
    """Reject invalid options before any node is added to a graph."""
    confidence = options.min_detection_confidence
    if not (0.0 <= confidence <= 1.0):
        raise ConfigurationError(
            "Invalid `min_detection_confidence` option: "
            "value must be in the range [0.0, 1.0]"
        )

    delegate = options.base_options.acceleration.delegate
    if delegate not in SUPPORTED_DELEGATES:
        raise ConfigurationError(
            f"Invalid acceleration delegate {delegate!r}; "
            f"supported: {SUPPORTED_DELEGATES}"
        )

    rect = options.rect_transformation
    if not (rect.scale_x > 0.0 and rect.scale_y > 0.0):
        raise ConfigurationError("Rect transformation scale must be positive")
    if rect.square_long and rect.square_short:
        raise ConfigurationError(
            "Rect transformation cannot be both square_long and square_short"
        )
    values = [rect.shift_x, rect.shift_y, options.rotation_target_angle_degrees]
    if rect.rotation_degrees is not None:
        values.append(rect.rotation_degrees)
    for value in values:
        if not math.isfinite(value):
            raise ConfigurationError("Rect transformation values must be finite")

    if options.rotation_start_keypoint < 0 or options.rotation_end_keypoint < 0:
        raise ConfigurationError("Rotation keypoint indices must be non-negative")

    if options.num_workers < 1:
        raise ConfigurationError("num_workers must be at least 1")
