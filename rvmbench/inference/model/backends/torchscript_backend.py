# inference/model/backends/torchscript_backend.py

"""
TorchScript backend implementation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import torch

from rvmbench.errors import ComputeError, ConfigurationError, DeviceError
from rvmbench.utils import get_logger

from .base import ForwardResult, Shape, TensorBackend, check_reshape, unpack_outputs

logger = get_logger(__name__)


class TorchScriptBackend(TensorBackend):
    """Tensor backend running a TorchScript export of the matting model."""

    def __init__(
        self,
        model_path: str,
        device: str = "cpu",
        *,
        num_threads: Optional[int] = None,
        name: Optional[str] = None,
    ):
        """Initialize TorchScript backend.

        Args:
            model_path (str): Path to the TorchScript model file.
            device (str, optional): "cpu", "cuda" or "cuda:N". A CUDA request
                on a machine without CUDA is a DeviceError, not a silent CPU
                run. Defaults to "cpu".
            num_threads (int | None, optional): Sets torch's intra-op thread
                pool size when the model is loaded.
            name (str | None, optional): Identifier used in reports.

        Example:
            >>> backend = TorchScriptBackend("rvm_mobilenetv3_fp32.torchscript", "cuda")
        """
        self.model_path = Path(model_path)
        self.requested_device = str(device or "cpu").lower()
        self.num_threads = num_threads
        self.name = name or f"torch-{self.requested_device.split(':')[0]}"
        self.model = None

    def default_device(self) -> torch.device:
        if self.requested_device.startswith("cuda"):
            if not torch.cuda.is_available():
                raise DeviceError("CUDA requested but not available")
            return torch.device(self.requested_device)
        return torch.device("cpu")

    def load_model(self, device: torch.device):
        if not self.model_path.exists():
            raise ConfigurationError(f"TorchScript model not found: {self.model_path}")

        if self.num_threads:
            try:
                torch.set_num_threads(self.num_threads)
            except (RuntimeError, ValueError) as e:
                raise DeviceError(f"Cannot use {self.num_threads} CPU threads: {e}") from e

        logger.info("Trying torch.jit.load: %s", self.model_path)
        try:
            model = torch.jit.load(str(self.model_path), map_location=device)
        except RuntimeError as e:
            raise DeviceError(f"Failed to load TorchScript model on {device}: {e}") from e

        model.eval()
        for p in model.parameters():
            p.requires_grad_(False)

        if device.type == "cuda":
            torch.backends.cudnn.benchmark = True
            logger.info("CUDA device: %s", torch.cuda.get_device_name(device))

        self.model = model
        return model

    def zeros(self, shape: Shape, device: torch.device) -> torch.Tensor:
        try:
            return torch.zeros(tuple(shape), dtype=torch.float32, device=device)
        except RuntimeError as e:
            raise ComputeError(f"Failed to allocate tensor of shape {tuple(shape)}: {e}") from e

    def from_flat(self, values: Sequence[float], device: torch.device) -> torch.Tensor:
        array = np.asarray(values, dtype=np.float32).reshape(-1)
        if array.size == 1:
            # Scalars (downsample_ratio) stay on the host; forward reads them as floats
            return torch.from_numpy(array)
        return torch.tensor(array, device=device)

    def reshape(self, tensor: torch.Tensor, shape: Shape) -> torch.Tensor:
        check_reshape(tensor.numel(), shape)
        return tensor.reshape(tuple(shape))

    def forward(
        self, model, src, r1, r2, r3, r4, downsample_ratio
    ) -> ForwardResult:
        # The TorchScript export takes the ratio as a plain float
        ratio = float(downsample_ratio[0])
        try:
            with torch.inference_mode():
                outputs = model(src, r1, r2, r3, r4, ratio)
        except RuntimeError as e:
            raise ComputeError(f"TorchScript forward failed: {e}") from e
        return unpack_outputs(outputs)

    def to_host(self, tensor: torch.Tensor) -> np.ndarray:
        return tensor.detach().to("cpu", torch.float32).numpy().reshape(-1).copy()

    def synchronize(self, device: torch.device) -> None:
        if device.type == "cuda":
            torch.cuda.synchronize(device)

    def close(self) -> None:
        """Release the model and cached GPU memory."""
        self.model = None
        if self.requested_device.startswith("cuda") and torch.cuda.is_available():
            torch.cuda.empty_cache()
