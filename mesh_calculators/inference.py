"""Inference stage: runs the landmark model session on the input tensor."""

from __future__ import annotations

import logging
from typing import Dict

from mesh_graph import Port, Stage
from mesh_model import ModelResources
from mesh_types import MalformedTensorsError, TensorList

_log = logging.getLogger("MeshFlow.Inference")


class InferenceStage(Stage):
    INPUTS = (Port("TENSORS", TensorList),)
    OUTPUTS = (Port("TENSORS", TensorList),)

    def __init__(self, model_resources: ModelResources) -> None:
        self.model_resources = model_resources

    def process(self, TENSORS: TensorList) -> Dict[str, TensorList]:
        if len(TENSORS) != 1:
            raise MalformedTensorsError(
                f"Inference expects one input tensor, got {len(TENSORS)}"
            )
        session = self.model_resources.session
        if session is None:
            raise RuntimeError("Model resources were released")
        outputs = session.run(None, {self.model_resources.input_name: TENSORS[0]})
        _log.debug("Inference produced %d tensors", len(outputs))
        return {"TENSORS": TensorList(tuple(outputs))}
