"""
MeshFlow — Face Landmarks Detector
===================================
Caller-facing entry point. Owns the model resources, the single-face
and multi-face graphs, and (optionally) a worker pool for batches.

Features:
  - detect(): one image + optional region -> FaceLandmarksResult
  - detect_batch(): one image + list of regions -> index-aligned lists
  - accepts raw BGR/RGB numpy frames (OpenCV frames are BGR)
  - context manager releases the session and the worker pool

A frame with no face is a normal outcome: presence is False and the
landmarks / next-frame rect are absent. Errors from the model or the
image stages propagate to the caller unchanged.

Part 10 of 13 — Detector Facade
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence, Union

import numpy as np

from mesh_graph import ConfigurationError
from mesh_landmarks_graph import (
    MultiFaceLandmarksDetectorGraph,
    SingleFaceLandmarksDetectorGraph,
)
from mesh_model import ModelResources
from mesh_options import FaceLandmarksDetectorGraphOptions, sanity_check_options
from mesh_types import (
    FaceLandmarksResult,
    Image,
    MultiFaceLandmarksResult,
    NormalizedRect,
)
from mesh_utils import load_config, resolve_model_path

_log = logging.getLogger("MeshFlow.Detector")

ImageLike = Union[Image, np.ndarray]


class FaceLandmarksDetector:
    """Face landmark detection on one or many regions of an image."""

    def __init__(
        self,
        options: Optional[FaceLandmarksDetectorGraphOptions] = None,
        model_resources: Optional[ModelResources] = None,
        color_order: str = "bgr",
    ) -> None:
        """Initialize detector graphs.

        Args:
            options: Graph options; defaults to FaceLandmarksDetectorGraphOptions().
            model_resources: Preloaded model. Loaded from
                options.base_options.model_asset_path when omitted.
            color_order: Channel order of raw numpy frames passed to detect().
        """
        options = options or FaceLandmarksDetectorGraphOptions()
        sanity_check_options(options)

        if model_resources is None:
            path = options.base_options.model_asset_path
            if not path:
                raise ConfigurationError("No model_asset_path and no model resources given")
            model_resources = ModelResources.from_file(
                path, options.base_options.acceleration
            )

        self.options = options
        self._color_order = color_order
        self._model_resources = model_resources
        self._executor: Optional[ThreadPoolExecutor] = None
        if options.num_workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=options.num_workers, thread_name_prefix="mesh-face"
            )

        self._single = SingleFaceLandmarksDetectorGraph(options, model_resources)
        self._multi = MultiFaceLandmarksDetectorGraph(
            options, model_resources, executor=self._executor
        )

        _log.info(
            "FaceLandmarksDetector initialized: threshold=%.2f workers=%d",
            options.min_detection_confidence, options.num_workers,
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[dict] = None,
        config_path: Optional[str] = None,
        model_resources: Optional[ModelResources] = None,
    ) -> "FaceLandmarksDetector":
        """Build a detector from a config dict or a YAML file."""
        config = config if config is not None else load_config(config_path)
        config = dict(config)
        config["model"] = {
            **(config.get("model") or {}),
            "path": resolve_model_path(config),
        }
        options = FaceLandmarksDetectorGraphOptions.from_config(config)
        return cls(options=options, model_resources=model_resources)

    # ── Public API ────────────────────────────────────────────

    def detect(
        self,
        image: ImageLike,
        norm_rect: Optional[NormalizedRect] = None,
    ) -> FaceLandmarksResult:
        """Detect face landmarks inside norm_rect (whole image when None)."""
        self._check_open()
        return self._single.process(self._as_image(image), norm_rect)

    def detect_batch(
        self,
        image: ImageLike,
        norm_rects: Sequence[NormalizedRect],
    ) -> MultiFaceLandmarksResult:
        """Detect face landmarks for every region, keeping input order."""
        self._check_open()
        return self._multi.process(self._as_image(image), norm_rects)

    def release(self) -> None:
        """Release the worker pool and the model session."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        if self._model_resources is not None:
            self._model_resources.release()
            self._model_resources = None
        _log.info("FaceLandmarksDetector released")

    # ── Context manager ───────────────────────────────────────

    def __enter__(self) -> "FaceLandmarksDetector":
        return self

    def __exit__(self, *args) -> None:
        self.release()

    # ── Private Helpers ───────────────────────────────────────

    def _check_open(self) -> None:
        if self._model_resources is None:
            raise RuntimeError("FaceLandmarksDetector has been released")

    def _as_image(self, image: ImageLike) -> Image:
        if isinstance(image, Image):
            return image
        return Image(np.asarray(image), color_order=self._color_order)
