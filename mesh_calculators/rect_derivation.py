"""
MeshFlow — Tracking Rect Derivation
====================================
Landmarks -> detection -> tight rect -> next-frame rect.

Rotation is measured in pixel space from a start keypoint to an end
keypoint (outer eye corners by default) so that this vector maps to
the target angle. The next-frame rect is squared on its long side in
pixel space and scaled up to tolerate motion between frames.
"""

from __future__ import annotations

import math
from typing import Dict

from mesh_graph import Port, Stage
from mesh_options import RectTransformationOptions
from mesh_types import Detection, ImageSize, NormalizedLandmarkList, NormalizedRect


def normalize_radians(angle: float) -> float:
    """Wrap an angle into [-pi, pi)."""
    return angle - 2 * math.pi * math.floor((angle + math.pi) / (2 * math.pi))


def landmarks_to_detection(landmarks: NormalizedLandmarkList) -> Detection:
    if landmarks.is_empty:
        raise ValueError("Cannot build a detection from zero landmarks")
    xs, ys = landmarks.x, landmarks.y
    xmin, ymin = float(xs.min()), float(ys.min())
    return Detection(
        xmin=xmin,
        ymin=ymin,
        width=float(xs.max()) - xmin,
        height=float(ys.max()) - ymin,
        keypoints=landmarks.landmarks[:, :2].copy(),
    )


def compute_rotation(
    detection: Detection,
    image_size: ImageSize,
    start_keypoint: int,
    end_keypoint: int,
    target_angle: float,
) -> float:
    count = detection.keypoints.shape[0]
    if max(start_keypoint, end_keypoint) >= count:
        raise ValueError(
            f"Rotation keypoints ({start_keypoint}, {end_keypoint}) out of "
            f"range for {count} landmarks"
        )
    x0 = detection.keypoints[start_keypoint, 0] * image_size.width
    y0 = detection.keypoints[start_keypoint, 1] * image_size.height
    x1 = detection.keypoints[end_keypoint, 0] * image_size.width
    y1 = detection.keypoints[end_keypoint, 1] * image_size.height
    return normalize_radians(target_angle - math.atan2(-(y1 - y0), x1 - x0))


def detection_to_rect(
    detection: Detection,
    image_size: ImageSize,
    start_keypoint: int,
    end_keypoint: int,
    target_angle: float = 0.0,
) -> NormalizedRect:
    return NormalizedRect(
        x_center=detection.xmin + detection.width / 2.0,
        y_center=detection.ymin + detection.height / 2.0,
        width=detection.width,
        height=detection.height,
        rotation=compute_rotation(
            detection, image_size, start_keypoint, end_keypoint, target_angle
        ),
    )


def transform_rect(
    rect: NormalizedRect,
    image_size: ImageSize,
    options: RectTransformationOptions,
) -> NormalizedRect:
    width, height = rect.width, rect.height
    rotation = rect.rotation
    if options.rotation_degrees is not None:
        rotation = normalize_radians(rotation + math.radians(options.rotation_degrees))

    img_w, img_h = image_size.width, image_size.height
    if rotation == 0.0:
        x_center = rect.x_center + width * options.shift_x
        y_center = rect.y_center + height * options.shift_y
    else:
        x_shift = (
            img_w * width * options.shift_x * math.cos(rotation)
            - img_h * height * options.shift_y * math.sin(rotation)
        ) / img_w
        y_shift = (
            img_w * width * options.shift_x * math.sin(rotation)
            + img_h * height * options.shift_y * math.cos(rotation)
        ) / img_h
        x_center = rect.x_center + x_shift
        y_center = rect.y_center + y_shift

    if options.square_long:
        long_side = max(width * img_w, height * img_h)
        width, height = long_side / img_w, long_side / img_h
    elif options.square_short:
        short_side = min(width * img_w, height * img_h)
        width, height = short_side / img_w, short_side / img_h

    return NormalizedRect(
        x_center=x_center,
        y_center=y_center,
        width=width * options.scale_x,
        height=height * options.scale_y,
        rotation=rotation,
    )


class LandmarksToDetectionStage(Stage):
    INPUTS = (Port("NORM_LANDMARKS", NormalizedLandmarkList),)
    OUTPUTS = (Port("DETECTION", Detection),)

    def process(self, NORM_LANDMARKS: NormalizedLandmarkList) -> Dict[str, Detection]:
        return {"DETECTION": landmarks_to_detection(NORM_LANDMARKS)}


class DetectionToRectStage(Stage):
    INPUTS = (
        Port("DETECTION", Detection),
        Port("IMAGE_SIZE", ImageSize),
    )
    OUTPUTS = (Port("NORM_RECT", NormalizedRect),)

    def __init__(
        self,
        start_keypoint: int,
        end_keypoint: int,
        target_angle_degrees: float = 0.0,
    ) -> None:
        self.start_keypoint = start_keypoint
        self.end_keypoint = end_keypoint
        self.target_angle = math.radians(target_angle_degrees)

    def process(self, DETECTION: Detection, IMAGE_SIZE: ImageSize) -> Dict[str, NormalizedRect]:
        return {
            "NORM_RECT": detection_to_rect(
                DETECTION, IMAGE_SIZE,
                self.start_keypoint, self.end_keypoint, self.target_angle,
            )
        }


class RectTransformationStage(Stage):
    INPUTS = (
        Port("NORM_RECT", NormalizedRect),
        Port("IMAGE_SIZE", ImageSize),
    )
    OUTPUTS = (Port("NORM_RECT", NormalizedRect),)

    def __init__(self, options: RectTransformationOptions) -> None:
        self.options = options

    def process(self, NORM_RECT: NormalizedRect, IMAGE_SIZE: ImageSize) -> Dict[str, NormalizedRect]:
        return {"NORM_RECT": transform_rect(NORM_RECT, IMAGE_SIZE, self.options)}
