"""
MeshFlow — Model Resources Tests
=================================
Input tensor specs, provider selection and ONNX file inspection. The
ONNX Runtime session itself is mocked; the model file is a real
(tiny) ONNX graph written with onnx.helper.
"""

from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import onnx
import pytest
from onnx import TensorProto, helper

# Add project root to path
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from mesh_graph import ConfigurationError
from mesh_model import (
    ImageTensorSpecs,
    ModelResources,
    build_input_image_tensor_specs,
    select_providers,
)
from mesh_options import Acceleration


def _write_model(path: Path, num_outputs: int, input_shape=(1, 192, 192, 3)) -> str:
    image = helper.make_tensor_value_info("input_1", TensorProto.FLOAT, list(input_shape))
    outputs = [
        helper.make_tensor_value_info(f"output_{i}", TensorProto.FLOAT, None)
        for i in range(num_outputs)
    ]
    nodes = [
        helper.make_node("Identity", ["input_1"], [f"output_{i}"])
        for i in range(num_outputs)
    ]
    graph = helper.make_graph(nodes, "face_landmarks", [image], outputs)
    onnx.save(helper.make_model(graph), str(path))
    return str(path)


# ═══════════════════════════════════════════════════════════════
# Tensor specs
# ═══════════════════════════════════════════════════════════════

def test_specs_from_nhwc_shape():
    specs = build_input_image_tensor_specs([1, 192, 256, 3])
    assert (specs.image_width, specs.image_height, specs.layout) == (256, 192, "NHWC")


def test_specs_from_nchw_shape():
    specs = build_input_image_tensor_specs([1, 3, 192, 256])
    assert (specs.image_width, specs.image_height, specs.layout) == (256, 192, "NCHW")


@pytest.mark.parametrize("shape", [[1, 192, 192], [1, 192, 192, 1], [1, 0, 0, 3]])
def test_specs_reject_non_image_inputs(shape):
    with pytest.raises(ConfigurationError):
        build_input_image_tensor_specs(shape)


def test_specs_reject_unknown_layout():
    with pytest.raises(ConfigurationError):
        ImageTensorSpecs(256, 256, layout="HWC")


# ═══════════════════════════════════════════════════════════════
# Providers
# ═══════════════════════════════════════════════════════════════

def test_cpu_delegate():
    assert select_providers(Acceleration()) == ["CPUExecutionProvider"]


def test_explicit_providers_win():
    acceleration = Acceleration(delegate="gpu", providers=("DmlExecutionProvider",))
    assert select_providers(acceleration) == ["DmlExecutionProvider"]


def test_gpu_delegate_uses_available_providers():
    with patch("mesh_model.ort.get_available_providers",
               return_value=["CUDAExecutionProvider", "CPUExecutionProvider"]):
        providers = select_providers(Acceleration(delegate="gpu"))
    assert providers == ["CUDAExecutionProvider", "CPUExecutionProvider"]


def test_gpu_delegate_without_gpu_falls_back_to_cpu():
    with patch("mesh_model.ort.get_available_providers",
               return_value=["CPUExecutionProvider"]):
        providers = select_providers(Acceleration(delegate="gpu"))
    assert providers == ["CPUExecutionProvider"]


# ═══════════════════════════════════════════════════════════════
# Loading
# ═══════════════════════════════════════════════════════════════

def test_missing_model_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ModelResources.from_file(str(tmp_path / "missing.onnx"))


@pytest.mark.parametrize("num_outputs", [2, 7])
def test_from_file_reads_output_count_and_input_shape(tmp_path, num_outputs):
    path = _write_model(tmp_path / "face.onnx", num_outputs)
    with patch("mesh_model.ort.InferenceSession") as session_cls:
        resources = ModelResources.from_file(path)

    assert resources.output_tensor_count == num_outputs
    assert resources.image_tensor_specs == ImageTensorSpecs(192, 192)
    assert resources.input_name == "input_1"
    _, kwargs = session_cls.call_args
    assert kwargs["providers"] == ["CPUExecutionProvider"]


def test_from_file_retries_on_cpu(tmp_path):
    path = _write_model(tmp_path / "face.onnx", 2)
    fallback = MagicMock()
    with patch("mesh_model.ort.InferenceSession",
               side_effect=[RuntimeError("no CUDA"), fallback]) as session_cls:
        resources = ModelResources.from_file(
            path, Acceleration(providers=("CUDAExecutionProvider",))
        )
    assert resources.session is fallback
    assert session_cls.call_args.kwargs["providers"] == ["CPUExecutionProvider"]


def test_resources_need_runnable_session():
    with pytest.raises(ConfigurationError):
        ModelResources(object(), 2, ImageTensorSpecs(256, 256))


def test_input_name_read_from_session():
    session = MagicMock()
    session.get_inputs.return_value = [SimpleNamespace(name="pixels")]
    resources = ModelResources(session, 2, ImageTensorSpecs(256, 256))
    assert resources.input_name == "pixels"
    resources.release()
    assert resources.session is None
