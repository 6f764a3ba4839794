"""
MeshFlow — Landmark Coordinate Transforms
==========================================
  - Letterbox removal: crop-with-padding coords -> crop coords.
  - Projection: crop coords -> original image coords, through the
    (possibly rotated) region the crop was taken from.
z is scaled the same way as x in both steps.
"""

from __future__ import annotations

import math
from typing import Dict

import numpy as np

from mesh_graph import Port, Stage
from mesh_types import LetterboxPadding, NormalizedLandmarkList, NormalizedRect


def remove_letterbox(
    landmarks: NormalizedLandmarkList,
    padding: LetterboxPadding,
) -> NormalizedLandmarkList:
    left_and_right = padding.left + padding.right
    top_and_bottom = padding.top + padding.bottom
    points = landmarks.landmarks.copy()
    points[:, 0] = (points[:, 0] - padding.left) / (1.0 - left_and_right)
    points[:, 1] = (points[:, 1] - padding.top) / (1.0 - top_and_bottom)
    points[:, 2] = points[:, 2] / (1.0 - left_and_right)
    return NormalizedLandmarkList(points)


def project_landmarks(
    landmarks: NormalizedLandmarkList,
    rect: NormalizedRect,
) -> NormalizedLandmarkList:
    points = landmarks.landmarks
    x = points[:, 0] - 0.5
    y = points[:, 1] - 0.5
    cos_r, sin_r = math.cos(rect.rotation), math.sin(rect.rotation)
    projected = np.empty_like(points)
    projected[:, 0] = (cos_r * x - sin_r * y) * rect.width + rect.x_center
    projected[:, 1] = (sin_r * x + cos_r * y) * rect.height + rect.y_center
    projected[:, 2] = points[:, 2] * rect.width
    return NormalizedLandmarkList(projected)


class LandmarkLetterboxRemovalStage(Stage):
    INPUTS = (
        Port("LANDMARKS", NormalizedLandmarkList),
        Port("LETTERBOX_PADDING", LetterboxPadding),
    )
    OUTPUTS = (Port("LANDMARKS", NormalizedLandmarkList),)

    def process(
        self,
        LANDMARKS: NormalizedLandmarkList,
        LETTERBOX_PADDING: LetterboxPadding,
    ) -> Dict[str, NormalizedLandmarkList]:
        return {"LANDMARKS": remove_letterbox(LANDMARKS, LETTERBOX_PADDING)}


class LandmarkProjectionStage(Stage):
    INPUTS = (
        Port("NORM_LANDMARKS", NormalizedLandmarkList),
        Port("NORM_RECT", NormalizedRect),
    )
    OUTPUTS = (Port("NORM_LANDMARKS", NormalizedLandmarkList),)

    def process(
        self,
        NORM_LANDMARKS: NormalizedLandmarkList,
        NORM_RECT: NormalizedRect,
    ) -> Dict[str, NormalizedLandmarkList]:
        return {"NORM_LANDMARKS": project_landmarks(NORM_LANDMARKS, NORM_RECT)}
