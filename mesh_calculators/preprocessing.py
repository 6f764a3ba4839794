"""
MeshFlow — Image Preprocessing Stages
======================================
Turns (image, region) into the model's input tensor.

Steps:
  1. Convert the region to pixels and pad it to the model's aspect
     ratio (letterbox), recording the padding.
  2. Warp the rotated region into a model-sized crop (cv2.warpAffine),
     pixels outside the image are black.
  3. BGR -> RGB if needed, scale to the model value range, lay out
     as NHWC or NCHW with a batch dimension.
"""

from __future__ import annotations

import math
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from mesh_graph import Port, Stage
from mesh_model import ImageTensorSpecs
from mesh_types import Image, ImageSize, LetterboxPadding, NormalizedRect, TensorList


class DefaultRectStage(Stage):
    """Resolves an optional region to the whole image when absent."""

    INPUTS = (Port("NORM_RECT", NormalizedRect, optional=True),)
    OUTPUTS = (Port("NORM_RECT", NormalizedRect),)

    def process(self, NORM_RECT: Optional[NormalizedRect] = None) -> Dict[str, NormalizedRect]:
        return {"NORM_RECT": NORM_RECT if NORM_RECT is not None else NormalizedRect.whole_image()}


def pad_roi(
    roi_width: float,
    roi_height: float,
    output_width: int,
    output_height: int,
) -> Tuple[float, float, LetterboxPadding]:
    """Grow a pixel ROI to the output aspect ratio.

    Returns the padded (width, height) and the normalized padding.
    """
    tensor_aspect = output_height / output_width
    roi_aspect = roi_height / roi_width
    if tensor_aspect > roi_aspect:
        new_height = roi_width * tensor_aspect
        vertical = (1.0 - roi_height / new_height) / 2.0
        return roi_width, new_height, LetterboxPadding(0.0, vertical, 0.0, vertical)
    new_width = roi_height / tensor_aspect
    horizontal = (1.0 - roi_width / new_width) / 2.0
    return new_width, roi_height, LetterboxPadding(horizontal, 0.0, horizontal, 0.0)


def crop_roi(
    pixels: np.ndarray,
    center: Tuple[float, float],
    size: Tuple[float, float],
    rotation: float,
    output_size: Tuple[int, int],
) -> np.ndarray:
    """Warp a rotated pixel-space rectangle into an output_size image."""
    cx, cy = center
    w, h = size
    cos_r, sin_r = math.cos(rotation), math.sin(rotation)

    def corner(dx: float, dy: float) -> Tuple[float, float]:
        return (cx + dx * cos_r - dy * sin_r, cy + dx * sin_r + dy * cos_r)

    out_w, out_h = output_size
    src = np.float32([
        corner(-w / 2, -h / 2),
        corner(w / 2, -h / 2),
        corner(-w / 2, h / 2),
    ])
    dst = np.float32([[0, 0], [out_w, 0], [0, out_h]])
    matrix = cv2.getAffineTransform(src, dst)
    return cv2.warpAffine(
        pixels,
        matrix,
        (out_w, out_h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(0, 0, 0),
    )


def image_to_tensor(
    image: Image,
    rect: NormalizedRect,
    specs: ImageTensorSpecs,
) -> Tuple[np.ndarray, LetterboxPadding]:
    """Crop, letterbox and normalize an image region into a model tensor."""
    roi_w = rect.width * image.width
    roi_h = rect.height * image.height
    if roi_w <= 0 or roi_h <= 0:
        raise ValueError(f"Region of interest is empty: {rect}")

    padded_w, padded_h, padding = pad_roi(
        roi_w, roi_h, specs.image_width, specs.image_height
    )
    crop = crop_roi(
        np.ascontiguousarray(image.pixels),
        (rect.x_center * image.width, rect.y_center * image.height),
        (padded_w, padded_h),
        rect.rotation,
        (specs.image_width, specs.image_height),
    )
    if image.color_order == "bgr":
        crop = cv2.cvtColor(crop, cv2.COLOR_BGR2RGB)

    low, high = specs.value_range
    tensor = crop.astype(np.float32) * ((high - low) / 255.0) + low
    if specs.layout == "NCHW":
        tensor = np.transpose(tensor, (2, 0, 1))
    return np.expand_dims(tensor, axis=0).astype(np.float32), padding


class ImagePreprocessingStage(Stage):
    INPUTS = (
        Port("IMAGE", Image),
        Port("NORM_RECT", NormalizedRect),
    )
    OUTPUTS = (
        Port("TENSORS", TensorList),
        Port("IMAGE_SIZE", ImageSize),
        Port("LETTERBOX_PADDING", LetterboxPadding),
    )

    def __init__(self, specs: ImageTensorSpecs) -> None:
        self.specs = specs

    def process(self, IMAGE: Image, NORM_RECT: NormalizedRect) -> Dict[str, object]:
        tensor, padding = image_to_tensor(IMAGE, NORM_RECT, self.specs)
        return {
            "TENSORS": TensorList((tensor,)),
            "IMAGE_SIZE": ImageSize(IMAGE.width, IMAGE.height),
            "LETTERBOX_PADDING": padding,
        }
