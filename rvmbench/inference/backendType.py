from enum import Enum

from rvmbench.errors import ConfigurationError


class BackendType(Enum):
    ONNX_CPU = "onnx-cpu"
    ONNX_CPU_PARALLEL = "onnx-cpu-parallel"
    ONNX_CUDA = "onnx-cuda"
    OPENVINO = "openvino"
    TORCH_CPU = "torch-cpu"
    TORCH_CUDA = "torch-cuda"

    @classmethod
    def from_name(cls, name):
        """Look up a backend type by its command-line name"""
        for member in cls:
            if member.value == str(name).lower():
                return member
        raise ConfigurationError(
            f"Unsupported backend: {name}. Supported: {[m.value for m in cls]}"
        )

    @property
    def model_format(self) -> str:
        if self in (BackendType.TORCH_CPU, BackendType.TORCH_CUDA):
            return "torchscript"
        return "onnx"
