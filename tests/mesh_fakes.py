"""
MeshFlow — Test Fakes
======================
Stand-in inference sessions for graph tests. A fake session returns
tensors shaped like the real face landmark models, in 256x256
model-input pixel units:

  - mesh points fill the box [64, 192] x [64, 192]
  - keypoint 33 at (96, 112), keypoint 263 at (160, 112)  (level eyes)
  - presence logit ln(9) -> sigmoid score 0.9
"""

from __future__ import annotations

import itertools
import math
import threading
from types import SimpleNamespace
from typing import Iterable, List, Optional

import numpy as np

from mesh_model import ImageTensorSpecs, ModelResources

MODEL_SIZE = 256
PRESENT_LOGIT = math.log(9.0)    # sigmoid -> 0.9
ABSENT_LOGIT = -math.log(9.0)    # sigmoid -> 0.1


def logit(score: float) -> float:
    return math.log(score / (1.0 - score))


def make_mesh() -> np.ndarray:
    mesh = np.full((468, 3), 128.0, dtype=np.float32)
    mesh[:, 2] = 4.0
    mesh[0] = (64.0, 64.0, 0.0)
    mesh[1] = (192.0, 192.0, 8.0)
    mesh[33] = (96.0, 112.0, 4.0)
    mesh[263] = (160.0, 112.0, 4.0)
    return mesh


def face_mesh_outputs(presence_logit: float = PRESENT_LOGIT) -> List[np.ndarray]:
    """Baseline mesh model: landmarks tensor + presence tensor."""
    return [
        make_mesh().reshape(1, 1, 1, 468 * 3),
        np.array([[[[presence_logit]]]], dtype=np.float32),
    ]


def attention_mesh_outputs(presence_logit: float = PRESENT_LOGIT) -> List[np.ndarray]:
    """Attention mesh model: 6 landmark tensors + presence tensor."""
    def contour(n: int, x: float, y: float) -> np.ndarray:
        return np.tile(np.float32([x, y]), n).reshape(1, n * 2)

    return [
        make_mesh().reshape(1, 468 * 3),
        contour(80, 128.0, 160.0),
        contour(71, 96.0, 112.0),
        contour(71, 160.0, 112.0),
        contour(5, 96.0, 112.0),
        contour(5, 160.0, 112.0),
        np.array([[presence_logit]], dtype=np.float32),
    ]


class FakeSession:
    """Minimal ONNX Runtime session double.

    `outputs_fn(presence_logit)` builds the model outputs; presence
    logits are taken in turn from `presence_logits`.
    """

    def __init__(
        self,
        outputs_fn=attention_mesh_outputs,
        presence_logits: Optional[Iterable[float]] = None,
        input_name: str = "input_1",
    ) -> None:
        self._outputs_fn = outputs_fn
        self._logits = itertools.cycle(list(presence_logits or [PRESENT_LOGIT]))
        self._lock = threading.Lock()
        self._input_name = input_name
        self.feeds: List[dict] = []

    def get_inputs(self):
        return [SimpleNamespace(name=self._input_name)]

    def run(self, output_names, feed):
        with self._lock:
            self.feeds.append(feed)
            presence_logit = next(self._logits)
        return self._outputs_fn(presence_logit)


def make_resources(
    session: Optional[FakeSession] = None,
    output_tensor_count: int = 7,
    layout: str = "NHWC",
) -> ModelResources:
    return ModelResources(
        session=session or FakeSession(),
        output_tensor_count=output_tensor_count,
        image_tensor_specs=ImageTensorSpecs(MODEL_SIZE, MODEL_SIZE, layout=layout),
    )


def gray_image(width: int = MODEL_SIZE, height: int = MODEL_SIZE) -> np.ndarray:
    return np.full((height, width, 3), 128, dtype=np.uint8)
