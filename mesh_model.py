"""
MeshFlow — Model Resources
===========================
Loads a face landmarks ONNX model and exposes what graph assembly
needs from it:
  - the number of outputs declared by the primary graph
    (used once to pick the tensor split layout),
  - the input image tensor geometry (width, height, layout),
  - an inference session (anything with ONNX Runtime's `run()` API).

Provider selection mirrors the rest of the codebase: accelerated
providers first, CPU last, with a CPU-only retry if session creation
fails.

Part 6 of 13 — Model Resources
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import onnx
import onnxruntime as ort

from mesh_graph import ConfigurationError
from mesh_options import Acceleration

_log = logging.getLogger("MeshFlow.Model")

_GPU_PROVIDERS = ["CUDAExecutionProvider", "DmlExecutionProvider"]
_CPU_PROVIDER = "CPUExecutionProvider"


@dataclass(frozen=True)
class ImageTensorSpecs:
    """Geometry of the model's image input tensor."""
    image_width: int
    image_height: int
    layout: str = "NHWC"  # or "NCHW"
    value_range: Tuple[float, float] = (0.0, 1.0)

    def __post_init__(self) -> None:
        if self.image_width <= 0 or self.image_height <= 0:
            raise ConfigurationError(
                f"Invalid model input size {self.image_width}x{self.image_height}"
            )
        if self.layout not in ("NHWC", "NCHW"):
            raise ConfigurationError(f"Unsupported tensor layout {self.layout!r}")


def build_input_image_tensor_specs(shape: Sequence[int]) -> ImageTensorSpecs:
    """Derive image tensor specs from a 4-D model input shape."""
    dims = [int(d) if d else 0 for d in shape]
    if len(dims) != 4:
        raise ConfigurationError(f"Model input must be 4-D, got shape {dims}")
    if dims[3] == 3:
        return ImageTensorSpecs(image_width=dims[2], image_height=dims[1], layout="NHWC")
    if dims[1] == 3:
        return ImageTensorSpecs(image_width=dims[3], image_height=dims[2], layout="NCHW")
    raise ConfigurationError(f"Model input is not a 3-channel image: {dims}")


def select_providers(acceleration: Acceleration) -> List[str]:
    """Map the acceleration delegate onto ONNX Runtime providers."""
    if acceleration.providers:
        return list(acceleration.providers)
    if acceleration.delegate == "gpu":
        available = set(ort.get_available_providers())
        providers = [p for p in _GPU_PROVIDERS if p in available]
        if not providers:
            _log.warning("No GPU execution provider available; using CPU")
        return providers + [_CPU_PROVIDER]
    return [_CPU_PROVIDER]


class ModelResources:
    """Loaded landmark model plus the metadata graph assembly needs."""

    def __init__(
        self,
        session: Any,
        output_tensor_count: int,
        image_tensor_specs: ImageTensorSpecs,
        input_name: Optional[str] = None,
        model_path: Optional[str] = None,
    ) -> None:
        if session is None or not hasattr(session, "run"):
            raise ConfigurationError("Model resources need a session with run()")
        self.session = session
        self.output_tensor_count = int(output_tensor_count)
        self.image_tensor_specs = image_tensor_specs
        self.input_name = input_name or self._first_input_name(session)
        self.model_path = model_path

    @staticmethod
    def _first_input_name(session: Any) -> str:
        get_inputs = getattr(session, "get_inputs", None)
        if get_inputs is None:
            raise ConfigurationError(
                "Session exposes no inputs; pass input_name explicitly"
            )
        inputs = get_inputs()
        if not inputs:
            raise ConfigurationError("Model declares no inputs")
        return inputs[0].name

    @classmethod
    def from_file(
        cls,
        model_path: str,
        acceleration: Optional[Acceleration] = None,
    ) -> "ModelResources":
        """Inspect an ONNX model file and open an inference session."""
        if not os.path.exists(model_path):
            raise FileNotFoundError(f"Face landmarks model not found: {model_path}")

        model = onnx.load(model_path)
        graph = model.graph
        output_count = len(graph.output)
        initializers = {init.name for init in graph.initializer}
        image_inputs = [i for i in graph.input if i.name not in initializers]
        if not image_inputs:
            raise ConfigurationError(f"{model_path}: model declares no inputs")
        first = image_inputs[0]
        shape = [d.dim_value for d in first.type.tensor_type.shape.dim]
        specs = build_input_image_tensor_specs(shape)

        acceleration = acceleration or Acceleration()
        providers = select_providers(acceleration)
        session_options = ort.SessionOptions()
        session_options.graph_optimization_level = (
            ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        )
        try:
            session = ort.InferenceSession(
                model_path, sess_options=session_options, providers=providers
            )
        except Exception as e:
            if providers == [_CPU_PROVIDER]:
                raise
            _log.warning("Session init with %s failed: %s. Falling back to CPU.", providers, e)
            session = ort.InferenceSession(
                model_path, sess_options=session_options, providers=[_CPU_PROVIDER]
            )

        _log.info(
            "Model loaded: %s outputs=%d input=%s %dx%d providers=%s",
            os.path.basename(model_path), output_count, first.name,
            specs.image_width, specs.image_height, session.get_providers(),
        )
        return cls(
            session=session,
            output_tensor_count=output_count,
            image_tensor_specs=specs,
            input_name=first.name,
            model_path=model_path,
        )

    def release(self) -> None:
        self.session = None
