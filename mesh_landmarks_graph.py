"""
MeshFlow — Face Landmarks Detector Graphs
==========================================
SingleFaceLandmarksDetectorGraph
  Inputs:
    IMAGE - Image
    NORM_RECT - NormalizedRect (optional, whole image when absent)
  Outputs:
    NORM_LANDMARKS - NormalizedLandmarkList (absent when no face)
    FACE_RECT_NEXT_FRAME - NormalizedRect (absent when no face)
    PRESENCE - bool
    PRESENCE_SCORE - float (always reported)

  default rect -> preprocess -> infer -> split
      landmark tensors -> decode -> letterbox removal -> projection [gated]
          -> detection -> rect -> next-frame rect [gated]
      presence tensor -> sigmoid -> threshold -> PRESENCE

MultiFaceLandmarksDetectorGraph
  Inputs:
    IMAGE - Image
    NORM_RECT - list of NormalizedRect
  Outputs (index-aligned with NORM_RECT):
    LANDMARKS, FACE_RECTS_NEXT_FRAME, PRESENCE, PRESENCE_SCORE lists

All option and model checks happen in the constructors; nothing is
re-validated per frame.

Part 8 of 13 — Landmark Pipeline
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from mesh_batch import map_and_zip
from mesh_calculators import (
    DefaultRectStage,
    DetectionToRectStage,
    ImagePreprocessingStage,
    InferenceStage,
    LandmarkLetterboxRemovalStage,
    LandmarkProjectionStage,
    LandmarksToDetectionStage,
    RectTransformationStage,
    TensorsToFaceLandmarksOptions,
    TensorsToFaceLandmarksStage,
    TensorsToFloatsStage,
    ThresholdingStage,
)
from mesh_calculators.tensors_to_landmarks import (
    ATTENTION_MESH_LANDMARKS_NUM,
    MESH_LANDMARKS_NUM,
)
from mesh_gate import allow_if
from mesh_graph import ConfigurationError, Graph, Stream
from mesh_model import ModelResources
from mesh_options import FaceLandmarksDetectorGraphOptions, sanity_check_options
from mesh_split import SplitTensorsStage, resolve_split_config
from mesh_types import (
    FaceLandmarksResult,
    Image,
    MultiFaceLandmarksResult,
    NormalizedLandmarkList,
    NormalizedRect,
    as_rect_list,
)

_log = logging.getLogger("MeshFlow.LandmarksGraph")

IMAGE_TAG = "IMAGE"
NORM_RECT_TAG = "NORM_RECT"
NORM_LANDMARKS_TAG = "NORM_LANDMARKS"
LANDMARKS_TAG = "LANDMARKS"
FACE_RECT_NEXT_FRAME_TAG = "FACE_RECT_NEXT_FRAME"
FACE_RECTS_NEXT_FRAME_TAG = "FACE_RECTS_NEXT_FRAME"
PRESENCE_TAG = "PRESENCE"
PRESENCE_SCORE_TAG = "PRESENCE_SCORE"


@dataclass(frozen=True)
class SingleFaceLandmarksOutputs:
    landmarks: Stream
    rect_next_frame: Stream
    presence: Stream
    presence_score: Stream


def build_single_face_landmarks_detector_graph(
    options: FaceLandmarksDetectorGraphOptions,
    model_resources: ModelResources,
    image_in: Stream,
    face_rect_in: Stream,
    graph: Graph,
) -> SingleFaceLandmarksOutputs:
    """Add the single-face landmark pipeline to graph."""
    sanity_check_options(options)
    if model_resources.image_tensor_specs is None:
        raise ConfigurationError("Model resources are missing image tensor specs")
    specs = model_resources.image_tensor_specs

    face_rect = graph.add_node(DefaultRectStage(), NORM_RECT=face_rect_in).out("NORM_RECT")

    preprocessing = graph.add_node(
        ImagePreprocessingStage(specs), IMAGE=image_in, NORM_RECT=face_rect
    )
    image_size = preprocessing.out("IMAGE_SIZE")
    letterbox_padding = preprocessing.out("LETTERBOX_PADDING")

    inference = graph.add_node(
        InferenceStage(model_resources), TENSORS=preprocessing.out("TENSORS")
    )

    # Split model output tensors into landmark and presence groups.
    split_config = resolve_split_config(model_resources.output_tensor_count)
    split = graph.add_node(SplitTensorsStage(split_config), TENSORS=inference.out("TENSORS"))

    landmarks_num = (
        ATTENTION_MESH_LANDMARKS_NUM if split_config.is_attention_model
        else MESH_LANDMARKS_NUM
    )
    for keypoint in (options.rotation_start_keypoint, options.rotation_end_keypoint):
        if keypoint >= landmarks_num:
            raise ConfigurationError(
                f"Rotation keypoint {keypoint} out of range for a model "
                f"with {landmarks_num} landmarks"
            )

    # Landmarks normalized by the size of the model input image.
    tensors_to_landmarks = graph.add_node(
        TensorsToFaceLandmarksStage(
            TensorsToFaceLandmarksOptions(
                input_image_width=specs.image_width,
                input_image_height=specs.image_height,
                is_attention_model=split_config.is_attention_model,
            )
        ),
        TENSORS=split.out("LANDMARK_TENSORS"),
    )

    presence_score = graph.add_node(
        TensorsToFloatsStage(activation="sigmoid"),
        TENSORS=split.out("PRESENCE_TENSORS"),
    ).out("FLOAT")
    presence = graph.add_node(
        ThresholdingStage(options.min_detection_confidence), FLOAT=presence_score
    ).out("FLAG")

    # Letterboxed crop -> crop -> full image.
    letterbox_removed = graph.add_node(
        LandmarkLetterboxRemovalStage(),
        LANDMARKS=tensors_to_landmarks.out("NORM_LANDMARKS"),
        LETTERBOX_PADDING=letterbox_padding,
    ).out("LANDMARKS")
    projection = graph.add_node(
        LandmarkProjectionStage(), NORM_LANDMARKS=letterbox_removed, NORM_RECT=face_rect
    )
    projected_landmarks = allow_if(projection.out("NORM_LANDMARKS"), presence, graph)

    # Rect enclosing the face, normalized by image size.
    detection = graph.add_node(
        LandmarksToDetectionStage(), NORM_LANDMARKS=projected_landmarks
    ).out("DETECTION")
    face_landmarks_rect = graph.add_node(
        DetectionToRectStage(
            options.rotation_start_keypoint,
            options.rotation_end_keypoint,
            options.rotation_target_angle_degrees,
        ),
        DETECTION=detection,
        IMAGE_SIZE=image_size,
    ).out("NORM_RECT")

    # Expand so the face likely stays inside on the next frame.
    rect_transformation = graph.add_node(
        RectTransformationStage(options.rect_transformation),
        NORM_RECT=face_landmarks_rect,
        IMAGE_SIZE=image_size,
    )
    face_rect_next_frame = allow_if(rect_transformation.out("NORM_RECT"), presence, graph)

    _log.info(
        "Single face graph: attention=%s tensors=%d threshold=%.2f",
        split_config.is_attention_model,
        split_config.tensor_count,
        options.min_detection_confidence,
    )
    return SingleFaceLandmarksOutputs(
        landmarks=projected_landmarks,
        rect_next_frame=face_rect_next_frame,
        presence=presence,
        presence_score=presence_score,
    )


class SingleFaceLandmarksDetectorGraph:
    """Face landmarks for one region of one image."""

    def __init__(
        self,
        options: FaceLandmarksDetectorGraphOptions,
        model_resources: ModelResources,
    ) -> None:
        self.options = options
        graph = Graph("SingleFaceLandmarksDetectorGraph")
        outs = build_single_face_landmarks_detector_graph(
            options,
            model_resources,
            graph.input(IMAGE_TAG, Image),
            graph.input(NORM_RECT_TAG, NormalizedRect, optional=True),
            graph,
        )
        graph.output(NORM_LANDMARKS_TAG, outs.landmarks)
        graph.output(FACE_RECT_NEXT_FRAME_TAG, outs.rect_next_frame)
        graph.output(PRESENCE_TAG, outs.presence)
        graph.output(PRESENCE_SCORE_TAG, outs.presence_score)
        self.graph = graph

    def process(
        self,
        image: Image,
        norm_rect: Optional[NormalizedRect] = None,
    ) -> FaceLandmarksResult:
        outputs = self.graph.run(**{IMAGE_TAG: image, NORM_RECT_TAG: norm_rect})
        return FaceLandmarksResult(
            landmarks=outputs[NORM_LANDMARKS_TAG],
            rect_next_frame=outputs[FACE_RECT_NEXT_FRAME_TAG],
            presence=bool(outputs[PRESENCE_TAG]),
            presence_score=float(outputs[PRESENCE_SCORE_TAG]),
        )

    def process_outputs(
        self,
        image: Image,
        norm_rect: NormalizedRect,
    ) -> Tuple[Optional[NormalizedLandmarkList], Optional[NormalizedRect], bool, float]:
        result = self.process(image, norm_rect)
        return (
            result.landmarks,
            result.rect_next_frame,
            result.presence,
            result.presence_score,
        )


class MultiFaceLandmarksDetectorGraph:
    """Lifts the single-face graph over a list of face regions."""

    def __init__(
        self,
        options: FaceLandmarksDetectorGraphOptions,
        model_resources: ModelResources,
        executor: Optional[Executor] = None,
    ) -> None:
        self.single = SingleFaceLandmarksDetectorGraph(options, model_resources)
        self.executor = executor

    def process(
        self,
        image: Image,
        norm_rects: Sequence[NormalizedRect],
    ) -> MultiFaceLandmarksResult:
        if norm_rects is None:
            raise ValueError(f"{NORM_RECT_TAG} list is required")
        rects = as_rect_list(norm_rects)

        def per_face(rect: NormalizedRect):
            return self.single.process_outputs(image, rect)

        landmarks, rects_next_frame, presence, presence_score = map_and_zip(
            rects,
            per_face,
            arity=4,
            placeholders=(NormalizedLandmarkList.empty, NormalizedRect, None, None),
            executor=self.executor,
        )
        return MultiFaceLandmarksResult(
            landmarks=landmarks,
            rects_next_frame=rects_next_frame,
            presence=presence,
            presence_score=presence_score,
        )

    def outputs(self, image: Image, norm_rects: Sequence[NormalizedRect]) -> dict:
        """Batch outputs keyed by graph output tag."""
        result = self.process(image, norm_rects)
        return {
            LANDMARKS_TAG: result.landmarks,
            FACE_RECTS_NEXT_FRAME_TAG: result.rects_next_frame,
            PRESENCE_TAG: result.presence,
            PRESENCE_SCORE_TAG: result.presence_score,
        }
