# inference/model/factory.py

"""
Builds tensor backends by name.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from rvmbench.errors import ConfigurationError
from rvmbench.utils import get_logger

from ..backendType import BackendType
from .backends.base import TensorBackend

logger = get_logger(__name__)

DEFAULT_ONNX_MODEL = "rvm_mobilenetv3_fp32.onnx"
DEFAULT_TORCHSCRIPT_MODEL = "rvm_mobilenetv3_fp32.torchscript"


def _require(path: Path) -> Path:
    if not path.exists():
        raise ConfigurationError(f"Model not found: {path}")
    return path


def _check_threads(num_threads: Optional[int]) -> Optional[int]:
    if num_threads is not None and (isinstance(num_threads, bool) or num_threads <= 0):
        raise ConfigurationError(f"num_threads must be a positive integer, got {num_threads}")
    return num_threads


def make_backend(
    backend: Union[str, BackendType],
    model_dir: Union[str, Path] = "./models",
    *,
    onnx_model: str = DEFAULT_ONNX_MODEL,
    torchscript_model: str = DEFAULT_TORCHSCRIPT_MODEL,
    num_threads: Optional[int] = None,
) -> TensorBackend:
    """Factory function to create a tensor backend from its name.

    Backend libraries are imported lazily so that a machine without, say,
    OpenVINO can still benchmark the ONNX Runtime backends.

    Args:
        backend (str | BackendType): One of the ``BackendType`` values:
            - "onnx-cpu" → ONNX Runtime, sequential single-thread CPU
            - "onnx-cpu-parallel" → ONNX Runtime, parallel multi-thread CPU
            - "onnx-cuda" → ONNX Runtime CUDA execution provider
            - "openvino" → OpenVINO CPU
            - "torch-cpu" / "torch-cuda" → TorchScript export
        model_dir (str | Path): Directory holding the exported models.
        onnx_model (str): ONNX file name inside ``model_dir``.
        torchscript_model (str): TorchScript file name inside ``model_dir``.
        num_threads (int | None): Thread count for the parallel CPU backends.

    Returns:
        TensorBackend: A backend that has not yet acquired its device.

    Raises:
        ConfigurationError: If the backend name is unknown, its model
            file does not exist or ``num_threads`` is not positive.

    Example:
        >>> backend = make_backend("onnx-cpu", "./models")
        >>> device = backend.default_device()
    """
    backend_type = (
        backend if isinstance(backend, BackendType) else BackendType.from_name(backend)
    )
    model_file = torchscript_model if backend_type.model_format == "torchscript" else onnx_model
    model_path = _require(Path(model_dir) / model_file)
    num_threads = _check_threads(num_threads)
    logger.debug("Creating backend %s from %s", backend_type.value, model_path)

    if backend_type == BackendType.ONNX_CPU:
        from .backends.onnx_backend import OnnxBackend

        return OnnxBackend(model_path, "cpu", name=backend_type.value)

    if backend_type == BackendType.ONNX_CPU_PARALLEL:
        from .backends.onnx_backend import OnnxBackend

        return OnnxBackend(
            model_path,
            "cpu",
            parallel=True,
            num_threads=num_threads,
            name=backend_type.value,
        )

    if backend_type == BackendType.ONNX_CUDA:
        from .backends.onnx_backend import OnnxBackend

        return OnnxBackend(model_path, "cuda", name=backend_type.value)

    if backend_type == BackendType.OPENVINO:
        from .backends.openvino_backend import OpenVinoBackend

        return OpenVinoBackend(
            model_path, "CPU", num_threads=num_threads, name=backend_type.value
        )

    if backend_type == BackendType.TORCH_CPU:
        from .backends.torchscript_backend import TorchScriptBackend

        return TorchScriptBackend(
            model_path, "cpu", num_threads=num_threads, name=backend_type.value
        )

    if backend_type == BackendType.TORCH_CUDA:
        from .backends.torchscript_backend import TorchScriptBackend

        return TorchScriptBackend(model_path, "cuda", name=backend_type.value)

    raise NotImplementedError(f"BackendType {backend_type} is not supported.")
