# inference/model/backends/openvino_backend.py

"""
OpenVINO backend implementation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import numpy as np

from rvmbench.errors import ComputeError, ConfigurationError, DeviceError
from rvmbench.utils import get_logger

from .base import ForwardResult, HostDevice, HostTensorOps, TensorBackend, unpack_outputs

logger = get_logger(__name__)

try:
    import openvino as ov

    OPENVINO_AVAILABLE = True
except ImportError:
    OPENVINO_AVAILABLE = False


class OpenVinoBackend(HostTensorOps, TensorBackend):
    """Tensor backend based on OpenVINO Runtime."""

    def __init__(
        self,
        model_path: str,
        device: str = "CPU",
        *,
        num_threads: Optional[int] = None,
        name: Optional[str] = None,
    ):
        """Initialize OpenVINO backend for CPU/GPU inference.

        OpenVINO reads the exported ONNX model directly, or an IR ``.xml``
        file (or a directory holding one).

        Args:
            model_path (str): Path to the ``.onnx`` / ``.xml`` model or an
                IR directory.
            device (str, optional): OpenVINO device target ("CPU", "GPU",
                "AUTO"). Defaults to "CPU".
            num_threads (int | None, optional): Inference threads on CPU.
            name (str | None, optional): Identifier used in reports.
        """
        self.model_path = Path(model_path)
        self.device_name = device.upper()
        self.num_threads = num_threads
        self.name = name or "openvino"
        self.core = None
        self.compiled_model = None

    def default_device(self) -> HostDevice:
        if not OPENVINO_AVAILABLE:
            raise DeviceError(
                "OpenVINO is not installed. Install with: pip install openvino"
            )
        if self.core is None:
            self.core = ov.Core()
        if self.device_name != "AUTO" and self.device_name not in self.core.available_devices:
            raise DeviceError(
                f"OpenVINO device {self.device_name} not available "
                f"(devices: {self.core.available_devices})"
            )
        return HostDevice(self.device_name)

    def _model_file(self) -> Path:
        if self.model_path.is_dir():
            xml_files = list(self.model_path.glob("*.xml"))
            if not xml_files:
                raise ConfigurationError(f"No .xml model file found in {self.model_path}")
            return xml_files[0]
        if not self.model_path.exists():
            raise ConfigurationError(f"OpenVINO model not found: {self.model_path}")
        return self.model_path

    def load_model(self, device: HostDevice):
        model_file = self._model_file()
        logger.info("Initializing OpenVINO with device=%s", device.kind)

        if device.kind == "CPU" and self.num_threads:
            try:
                self.core.set_property("CPU", {"INFERENCE_NUM_THREADS": self.num_threads})
            except Exception as e:
                raise DeviceError(f"Cannot use {self.num_threads} CPU threads: {e}") from e

        try:
            model = self.core.read_model(model_file)
            self.compiled_model = self.core.compile_model(model, device.kind)
        except Exception as e:
            raise DeviceError(f"Failed to compile OpenVINO model: {e}") from e
        return self.compiled_model

    def forward(
        self, model, src, r1, r2, r3, r4, downsample_ratio
    ) -> ForwardResult:
        try:
            results = model([src, r1, r2, r3, r4, downsample_ratio])
        except Exception as e:
            raise ComputeError(f"OpenVINO forward failed: {e}") from e

        # Output buffers belong to the infer request and are reused on the next call
        outputs = [
            np.array(results[model.output(i)], dtype=np.float32, copy=True)
            for i in range(len(model.outputs))
        ]
        return unpack_outputs(outputs)

    def close(self) -> None:
        """Release OpenVINO runtime resources."""
        self.compiled_model = None
        self.core = None
