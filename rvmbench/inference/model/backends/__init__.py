# inference/model/backends/__init__.py

"""
Tensor backend implementations.

Concrete backends are imported from their own modules so that missing
optional engines only fail when that backend is selected.
"""

from .base import ForwardResult, HostDevice, HostTensorOps, TensorBackend

__all__ = [
    "ForwardResult",
    "HostDevice",
    "HostTensorOps",
    "TensorBackend",
]
