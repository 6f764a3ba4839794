"""Presence score decoding and thresholding stages."""

from __future__ import annotations

import math
from typing import Dict

import numpy as np

from mesh_graph import Port, Stage
from mesh_types import MalformedTensorsError, TensorList


def sigmoid(x: float) -> float:
    # Split on sign to avoid overflow in exp for large |x|.
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)


class TensorsToFloatsStage(Stage):
    """Reads a single-value tensor and applies an activation."""

    INPUTS = (Port("TENSORS", TensorList),)
    OUTPUTS = (Port("FLOAT", float),)

    def __init__(self, activation: str = "sigmoid") -> None:
        if activation not in ("sigmoid", "none"):
            raise ValueError(f"Unknown activation: {activation!r}")
        self.activation = activation

    def process(self, TENSORS: TensorList) -> Dict[str, float]:
        if len(TENSORS) != 1:
            raise MalformedTensorsError(
                f"Expected one presence tensor, got {len(TENSORS)}"
            )
        values = np.asarray(TENSORS[0], dtype=np.float32).reshape(-1)
        if values.size != 1:
            raise MalformedTensorsError(
                f"Presence tensor must hold one value, got {values.size}"
            )
        value = float(values[0])
        if self.activation == "sigmoid":
            value = sigmoid(value)
        return {"FLOAT": value}


class ThresholdingStage(Stage):
    """flag = value >= threshold."""

    INPUTS = (Port("FLOAT", float),)
    OUTPUTS = (Port("FLAG", bool),)

    def __init__(self, threshold: float) -> None:
        self.threshold = float(threshold)

    def process(self, FLOAT: float) -> Dict[str, bool]:
        return {"FLAG": bool(FLOAT >= self.threshold)}
