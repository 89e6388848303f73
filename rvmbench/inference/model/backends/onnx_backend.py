# inference/model/backends/onnx_backend.py

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import onnxruntime as ort

from rvmbench.errors import ComputeError, ConfigurationError, DeviceError
from rvmbench.utils import get_logger

from .base import (
    ForwardResult,
    HostDevice,
    HostTensorOps,
    Shape,
    TensorBackend,
    check_reshape,
    unpack_outputs,
)

logger = get_logger(__name__)


class OrtDeviceTensor:
    """An ``OrtValue`` kept in device memory between forward passes."""

    __slots__ = ("value",)

    def __init__(self, value: ort.OrtValue):
        self.value = value

    @property
    def shape(self):
        return tuple(self.value.shape())

    def device_name(self) -> str:
        return self.value.device_name()

    def numpy(self) -> np.ndarray:
        return self.value.numpy()


class OnnxBackend(HostTensorOps, TensorBackend):
    """
    ONNX Runtime backend for the recurrent matting model.

    One class covers three execution profiles:
        - CPU, sequential, single intra-op thread (reference CPU).
        - CPU, parallel execution mode, all cores (parallel CPU).
        - CUDAExecutionProvider (GPU).

    On CPU, tensors are host NumPy arrays passed to ``InferenceSession.run``.
    On CUDA, the recurrent state and the source frame are ``OrtValue``s in
    device memory and every forward pass goes through I/O binding, so the
    state never leaves the GPU between iterations.

    Example:
        >>> backend = OnnxBackend("rvm_mobilenetv3_fp32.onnx", "cpu", parallel=True)
        >>> device = backend.default_device()
        >>> session = backend.load_model(device)
    """

    def __init__(
        self,
        model_path: str,
        device: str = "cpu",
        *,
        parallel: bool = False,
        num_threads: Optional[int] = None,
        name: Optional[str] = None,
    ):
        """
        Args:
            model_path (str): Path to the exported ONNX model.
            device (str, optional): "cpu", "cuda" or "cuda:N". Defaults to "cpu".
            parallel (bool, optional): Use ORT parallel execution with
                ``num_threads`` intra-op threads (all cores when None).
                Ignored for CUDA. Defaults to False.
            num_threads (int | None, optional): Intra-op thread count for the
                parallel CPU profile.
            name (str | None, optional): Identifier used in reports.
        """
        self.model_path = Path(model_path)
        self.requested_device = device.lower()
        self.parallel = parallel
        self.num_threads = num_threads
        self.name = name or f"onnx-{self.requested_device}"
        self.session: Optional[ort.InferenceSession] = None
        self.device: Optional[HostDevice] = None
        self.input_names: List[str] = []
        self.output_names: List[str] = []

    def default_device(self) -> HostDevice:
        available = ort.get_available_providers()
        if self.requested_device.startswith("cuda"):
            if "CUDAExecutionProvider" not in available:
                raise DeviceError(
                    f"CUDAExecutionProvider not available (providers: {available})"
                )
            index = 0
            if ":" in self.requested_device:
                index = int(self.requested_device.split(":", 1)[1])
            return HostDevice("cuda", index)
        return HostDevice("cpu")

    def _providers(self, device: HostDevice):
        if device.kind == "cuda":
            # GPU execution: avoid hidden CPU fallback
            return [("CUDAExecutionProvider", {"device_id": device.index})]
        return ["CPUExecutionProvider"]

    def _session_options(self, device: HostDevice) -> ort.SessionOptions:
        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = (
            ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        )
        sess_options.enable_cpu_mem_arena = True

        if device.kind == "cuda":
            # Threads are irrelevant for GPU, keep minimal
            sess_options.intra_op_num_threads = 1
            sess_options.inter_op_num_threads = 1
        elif self.parallel:
            sess_options.execution_mode = ort.ExecutionMode.ORT_PARALLEL
            sess_options.intra_op_num_threads = self.num_threads or 0
        else:
            sess_options.execution_mode = ort.ExecutionMode.ORT_SEQUENTIAL
            sess_options.intra_op_num_threads = 1
            sess_options.inter_op_num_threads = 1
        return sess_options

    def load_model(self, device: HostDevice) -> ort.InferenceSession:
        if not self.model_path.exists():
            raise ConfigurationError(f"ONNX model not found: {self.model_path}")

        providers = self._providers(device)
        logger.info("Initializing ONNX Runtime with providers=%s", providers)
        try:
            session = ort.InferenceSession(
                str(self.model_path),
                sess_options=self._session_options(device),
                providers=providers,
            )
        except Exception as e:
            raise DeviceError(f"Failed to create ONNX Runtime session: {e}") from e

        active = session.get_providers()
        logger.info(f"ONNX Runtime providers: {active}")
        if device.kind == "cuda" and "CUDAExecutionProvider" not in active:
            raise DeviceError(f"CUDAExecutionProvider failed to initialize, got {active}")

        self.session = session
        self.device = device
        self.input_names = [inp.name for inp in session.get_inputs()]
        self.output_names = [out.name for out in session.get_outputs()]
        logger.debug("ONNX inputs=%s outputs=%s", self.input_names, self.output_names)
        return session

    def _to_device(self, array: np.ndarray, device: HostDevice) -> OrtDeviceTensor:
        try:
            value = ort.OrtValue.ortvalue_from_numpy(
                np.ascontiguousarray(array, dtype=np.float32), "cuda", device.index
            )
        except Exception as e:
            raise ComputeError(
                f"Failed to allocate CUDA tensor of shape {array.shape}: {e}"
            ) from e
        return OrtDeviceTensor(value)

    def zeros(self, shape: Shape, device: HostDevice):
        host = super().zeros(shape, device)
        if device.kind == "cuda":
            return self._to_device(host, device)
        return host

    def reshape(self, tensor, shape: Shape):
        if isinstance(tensor, OrtDeviceTensor):
            raise ComputeError("Device tensors are reshaped before upload")
        host = super().reshape(tensor, shape)
        # from_flat stages on the host; the shaped frame is uploaded once here
        if self.device is not None and self.device.kind == "cuda":
            return self._to_device(host, self.device)
        return host

    def to_host(self, tensor) -> np.ndarray:
        if isinstance(tensor, OrtDeviceTensor):
            return np.asarray(tensor.numpy(), dtype=np.float32).reshape(-1).copy()
        return super().to_host(tensor)

    def _forward_bound(self, model: ort.InferenceSession, inputs: Sequence) -> list:
        binding = model.io_binding()
        for name, value in zip(self.input_names, inputs):
            if isinstance(value, OrtDeviceTensor):
                binding.bind_ortvalue_input(name, value.value)
            else:
                # downsample_ratio stays a host input
                binding.bind_cpu_input(name, np.ascontiguousarray(value, dtype=np.float32))
        for name in self.output_names:
            binding.bind_output(name, "cuda", self.device.index)
        model.run_with_iobinding(binding)
        return [OrtDeviceTensor(v) for v in binding.get_outputs()]

    def forward(
        self, model: ort.InferenceSession, src, r1, r2, r3, r4, downsample_ratio
    ) -> ForwardResult:
        inputs = (src, r1, r2, r3, r4, downsample_ratio)
        try:
            if self.device is not None and self.device.kind == "cuda":
                outputs = self._forward_bound(model, inputs)
            else:
                outputs = model.run(self.output_names, dict(zip(self.input_names, inputs)))
        except Exception as e:
            raise ComputeError(f"ONNX Runtime forward failed: {e}") from e
        return unpack_outputs(outputs)

    def close(self) -> None:
        """Release the ONNX Runtime session."""
        self.session = None
        self.device = None
