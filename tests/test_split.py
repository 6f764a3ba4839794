"""
MeshFlow — Tensor Split Policy Tests
=====================================
"""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from mesh_graph import ConfigurationError
from mesh_split import (
    SplitTensorsStage,
    is_attention_model,
    resolve_split_config,
    split_tensors,
)
from mesh_types import MalformedTensorsError, TensorList


def _tensors(n: int) -> TensorList:
    return TensorList(tuple(np.full((1,), i, dtype=np.float32) for i in range(n)))


def test_two_tensors_split_one_and_one():
    config = resolve_split_config(2)
    assert not config.is_attention_model
    assert config.split_index == 1
    landmarks, presence = split_tensors(_tensors(2), config)
    assert len(landmarks) == 1 and len(presence) == 1
    assert landmarks[0][0] == 0 and presence[0][0] == 1


def test_seven_tensors_split_six_and_one():
    config = resolve_split_config(7)
    assert config.is_attention_model
    assert config.ranges == ((0, 6), (6, 7))
    landmarks, presence = split_tensors(_tensors(7), config)
    assert [t[0] for t in landmarks] == [0, 1, 2, 3, 4, 5]
    assert [t[0] for t in presence] == [6]


@pytest.mark.parametrize("count", [0, 1, 3, 5, 6, 8])
def test_unsupported_output_count_fails_construction(count):
    with pytest.raises(ConfigurationError, match="Unsupported"):
        resolve_split_config(count)


def test_is_attention_model():
    assert is_attention_model(7)
    assert not is_attention_model(2)


def test_tensor_count_mismatch_at_invocation():
    config = resolve_split_config(2)
    with pytest.raises(MalformedTensorsError):
        split_tensors(_tensors(3), config)


def test_split_stage_outputs():
    stage = SplitTensorsStage(resolve_split_config(7))
    out = stage.process(TENSORS=_tensors(7))
    assert len(out["LANDMARK_TENSORS"]) == 6
    assert len(out["PRESENCE_TENSORS"]) == 1
