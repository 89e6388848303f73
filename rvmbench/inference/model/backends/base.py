# inference/model/backends/base.py

"""
Abstract base protocol for tensor backends.

A backend owns everything that differs between execution engines: how the
compute device is obtained, how tensors are allocated and read back, and how
the recurrent matting model is invoked. The inference loop only talks to
this protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence, Tuple

import numpy as np

from rvmbench.errors import ComputeError, ShapeMismatchError

Shape = Sequence[int]
# (fgr, pha, r1, r2, r3, r4)
ForwardResult = Tuple[Any, Any, Any, Any, Any, Any]


@dataclass(frozen=True)
class HostDevice:
    """Device handle for engines that take host (NumPy) buffers as inputs."""

    kind: str = "cpu"
    index: int = 0


class TensorBackend(Protocol):
    """Protocol for all tensor backend classes."""

    name: str

    def default_device(self) -> Any:
        """Return this backend's compute device, raising DeviceError if unavailable."""
        ...

    def load_model(self, device: Any) -> Any:
        """Load the matting model for ``device`` and return a handle to it."""
        ...

    def zeros(self, shape: Shape, device: Any) -> Any:
        ...

    def from_flat(self, values: Sequence[float], device: Any) -> Any:
        ...

    def reshape(self, tensor: Any, shape: Shape) -> Any:
        ...

    def forward(
        self, model: Any, src, r1, r2, r3, r4, downsample_ratio
    ) -> ForwardResult:
        """Run one recurrent forward pass."""
        ...

    def to_host(self, tensor: Any) -> np.ndarray:
        """Flat float32 copy of ``tensor`` in row-major order."""
        ...

    def synchronize(self, device: Any) -> None:
        """Block until all queued work on ``device`` has finished."""
        ...

    def close(self) -> None:
        """Release backend resources."""
        ...


def element_count(shape: Shape) -> int:
    count = 1
    for dim in shape:
        count *= int(dim)
    return count


def check_reshape(size: int, shape: Shape) -> None:
    expected = element_count(shape)
    if size != expected:
        raise ShapeMismatchError(
            f"Cannot reshape {size} elements into {tuple(shape)} ({expected} elements)"
        )


def unpack_outputs(outputs: Sequence[Any]) -> ForwardResult:
    if len(outputs) != 6:
        raise ComputeError(
            f"Expected 6 outputs (fgr, pha, r1..r4), got {len(outputs)}"
        )
    return tuple(outputs)


class HostTensorOps:
    """NumPy tensor operations shared by host-memory backends."""

    def zeros(self, shape: Shape, device: HostDevice) -> np.ndarray:
        try:
            return np.zeros(tuple(shape), dtype=np.float32)
        except MemoryError as e:
            raise ComputeError(f"Failed to allocate tensor of shape {tuple(shape)}") from e

    def from_flat(self, values: Sequence[float], device: HostDevice) -> np.ndarray:
        return np.array(values, dtype=np.float32).reshape(-1)

    def reshape(self, tensor: np.ndarray, shape: Shape) -> np.ndarray:
        check_reshape(tensor.size, shape)
        return np.ascontiguousarray(tensor.reshape(tuple(shape)))

    def to_host(self, tensor) -> np.ndarray:
        return np.asarray(tensor, dtype=np.float32).reshape(-1).copy()

    def synchronize(self, device: HostDevice) -> None:
        # Host engines return only after results are materialized
        return None
