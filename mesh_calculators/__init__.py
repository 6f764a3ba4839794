"""
MeshFlow — Calculator Stages
=============================
The closed set of stages the face landmarks graphs are built from.
Graphs instantiate these classes directly; there is no name-based
lookup.

Part 7 of 13 — Calculator Stages
"""
from .preprocessing import DefaultRectStage, ImagePreprocessingStage
from .inference import InferenceStage
from .tensors_to_landmarks import (
    TensorsToFaceLandmarksOptions,
    TensorsToFaceLandmarksStage,
)
from .tensors_to_floats import ThresholdingStage, TensorsToFloatsStage
from .landmark_transforms import (
    LandmarkLetterboxRemovalStage,
    LandmarkProjectionStage,
)
from .rect_derivation import (
    DetectionToRectStage,
    LandmarksToDetectionStage,
    RectTransformationStage,
)

__all__ = [
    "DefaultRectStage",
    "ImagePreprocessingStage",
    "InferenceStage",
    "TensorsToFaceLandmarksOptions",
    "TensorsToFaceLandmarksStage",
    "TensorsToFloatsStage",
    "ThresholdingStage",
    "LandmarkLetterboxRemovalStage",
    "LandmarkProjectionStage",
    "LandmarksToDetectionStage",
    "DetectionToRectStage",
    "RectTransformationStage",
]
