"""
MeshFlow — Tensor Split Policy
===============================
Partitions the landmark model's output tensors into a landmark group
and a presence-score group.

Supported layouts:
  - 2 tensors: 1 landmark tensor + 1 presence tensor (baseline mesh)
  - 7 tensors: 6 landmark tensors + 1 presence tensor (attention mesh)

The split index is always `count - 1`. The variant is decided once,
from the model's declared output count, while the graph is built and
is stored in an immutable SplitConfig.

Part 4 of 13 — Tensor Split Policy
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from mesh_graph import ConfigurationError, Port, Stage
from mesh_types import MalformedTensorsError, TensorList

_log = logging.getLogger("MeshFlow.Split")

# a landmarks tensor and a scores tensor
FACE_LANDMARKS_OUTPUT_TENSORS_NUM = 2
# 6 landmarks tensors and a scores tensor
ATTENTION_MESH_OUTPUT_TENSORS_NUM = 7

SUPPORTED_OUTPUT_TENSORS_NUMS = (
    FACE_LANDMARKS_OUTPUT_TENSORS_NUM,
    ATTENTION_MESH_OUTPUT_TENSORS_NUM,
)


@dataclass(frozen=True)
class SplitConfig:
    is_attention_model: bool
    tensor_count: int

    @property
    def split_index(self) -> int:
        return self.tensor_count - 1

    @property
    def ranges(self) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        """Half-open [begin, end) ranges of the two output groups."""
        return (0, self.split_index), (self.split_index, self.tensor_count)


def is_attention_model(output_tensor_count: int) -> bool:
    """True when the primary subgraph declares the attention-mesh outputs."""
    return output_tensor_count == ATTENTION_MESH_OUTPUT_TENSORS_NUM


def resolve_split_config(output_tensor_count: int) -> SplitConfig:
    """Build the split configuration for a model, or fail construction."""
    if output_tensor_count not in SUPPORTED_OUTPUT_TENSORS_NUMS:
        raise ConfigurationError(
            f"Unsupported face landmarks model: {output_tensor_count} output "
            f"tensors (expected one of {SUPPORTED_OUTPUT_TENSORS_NUMS})"
        )
    config = SplitConfig(
        is_attention_model=is_attention_model(output_tensor_count),
        tensor_count=output_tensor_count,
    )
    _log.info(
        "Tensor split: attention=%s ranges=%s",
        config.is_attention_model, config.ranges,
    )
    return config


def split_tensors(tensors: TensorList, config: SplitConfig) -> Tuple[TensorList, TensorList]:
    """Split a model output into (landmark tensors, presence tensors)."""
    if len(tensors) != config.tensor_count:
        raise MalformedTensorsError(
            f"Model produced {len(tensors)} tensors, "
            f"expected {config.tensor_count}"
        )
    landmarks, presence = config.ranges
    return tensors[landmarks[0]:landmarks[1]], tensors[presence[0]:presence[1]]


class SplitTensorsStage(Stage):
    INPUTS = (Port("TENSORS", TensorList),)
    OUTPUTS = (
        Port("LANDMARK_TENSORS", TensorList),
        Port("PRESENCE_TENSORS", TensorList),
    )

    def __init__(self, config: SplitConfig) -> None:
        self.config = config

    def process(self, TENSORS: TensorList) -> Dict[str, TensorList]:
        landmark_tensors, presence_tensors = split_tensors(TENSORS, self.config)
        return {
            "LANDMARK_TENSORS": landmark_tensors,
            "PRESENCE_TENSORS": presence_tensors,
        }
