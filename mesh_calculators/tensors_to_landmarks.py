"""
MeshFlow — Tensors to Face Landmarks
=====================================
Decodes landmark tensors (model-input pixel units) into normalized
landmarks on the letterboxed crop.

Baseline mesh (1 tensor):
  468 points x (2 | 3) values.

Attention mesh (6 tensors, in this order):
  mesh        468 x 3
  lips         80 x 2
  left eye     71 x 2
  right eye    71 x 2
  left iris     5 x 2
  right iris    5 x 2
  Result has 478 points: the 468 mesh points followed by the 10 iris
  points. Iris depth is the mean mesh depth. Lip and eye contours
  overwrite mesh x/y only when their index maps are configured.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from mesh_graph import Port, Stage
from mesh_types import MalformedTensorsError, NormalizedLandmarkList, TensorList

MESH_LANDMARKS_NUM = 468
IRIS_LANDMARKS_NUM = 5
ATTENTION_MESH_LANDMARKS_NUM = MESH_LANDMARKS_NUM + 2 * IRIS_LANDMARKS_NUM  # 478

# (name, points) for each attention-model landmark tensor.
_ATTENTION_LAYOUT = (
    ("mesh", MESH_LANDMARKS_NUM),
    ("lips", 80),
    ("left_eye", 71),
    ("right_eye", 71),
    ("left_iris", IRIS_LANDMARKS_NUM),
    ("right_iris", IRIS_LANDMARKS_NUM),
)


@dataclass(frozen=True)
class TensorsToFaceLandmarksOptions:
    input_image_width: int
    input_image_height: int
    is_attention_model: bool = False
    # Mesh indices refined by the lips / eye contour tensors.
    lips_indices: Optional[Tuple[int, ...]] = None
    left_eye_indices: Optional[Tuple[int, ...]] = None
    right_eye_indices: Optional[Tuple[int, ...]] = None


def _points(tensor: np.ndarray, num_points: int, name: str) -> np.ndarray:
    values = np.asarray(tensor, dtype=np.float32).reshape(-1)
    if values.size == 0 or values.size % num_points != 0:
        raise MalformedTensorsError(
            f"{name} tensor has {values.size} values, "
            f"not a multiple of {num_points} landmarks"
        )
    dims = values.size // num_points
    if dims not in (2, 3):
        raise MalformedTensorsError(
            f"{name} tensor has {dims} values per landmark, expected 2 or 3"
        )
    points = values.reshape(num_points, dims)
    if dims == 2:
        points = np.hstack([points, np.zeros((num_points, 1), dtype=np.float32)])
    return points


def _refine(mesh: np.ndarray, contour: np.ndarray, indices: Optional[Sequence[int]]) -> None:
    if not indices:
        return
    if len(indices) != contour.shape[0]:
        raise MalformedTensorsError(
            f"Refinement map has {len(indices)} indices for "
            f"{contour.shape[0]} landmarks"
        )
    mesh[list(indices), :2] = contour[:, :2]


def decode_landmarks(
    tensors: TensorList,
    options: TensorsToFaceLandmarksOptions,
) -> NormalizedLandmarkList:
    """Decode landmark tensors and normalize them by the model input size."""
    if options.is_attention_model:
        if len(tensors) != len(_ATTENTION_LAYOUT):
            raise MalformedTensorsError(
                f"Attention mesh expects {len(_ATTENTION_LAYOUT)} landmark "
                f"tensors, got {len(tensors)}"
            )
        parts = {
            name: _points(tensor, num, name)
            for (name, num), tensor in zip(_ATTENTION_LAYOUT, tensors)
        }
        mesh = parts["mesh"].copy()
        _refine(mesh, parts["lips"], options.lips_indices)
        _refine(mesh, parts["left_eye"], options.left_eye_indices)
        _refine(mesh, parts["right_eye"], options.right_eye_indices)
        iris = np.vstack([parts["left_iris"], parts["right_iris"]])
        iris[:, 2] = float(mesh[:, 2].mean())
        points = np.vstack([mesh, iris])
    else:
        if len(tensors) != 1:
            raise MalformedTensorsError(
                f"Face mesh expects 1 landmark tensor, got {len(tensors)}"
            )
        points = _points(tensors[0], MESH_LANDMARKS_NUM, "mesh")

    scale = np.array(
        [
            options.input_image_width,
            options.input_image_height,
            options.input_image_width,
        ],
        dtype=np.float32,
    )
    return NormalizedLandmarkList(points / scale)


class TensorsToFaceLandmarksStage(Stage):
    INPUTS = (Port("TENSORS", TensorList),)
    OUTPUTS = (Port("NORM_LANDMARKS", NormalizedLandmarkList),)

    def __init__(self, options: TensorsToFaceLandmarksOptions) -> None:
        self.options = options

    def process(self, TENSORS: TensorList) -> Dict[str, NormalizedLandmarkList]:
        return {"NORM_LANDMARKS": decode_landmarks(TENSORS, self.options)}
