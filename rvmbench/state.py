"""
Recurrent state threaded through successive forward passes.
"""

from __future__ import annotations

from typing import Any, Iterator, List, Tuple

from rvmbench.errors import ComputeError
from rvmbench.inference.model.backends.base import TensorBackend
from rvmbench.profiles import ResolutionProfile


class RecurrentState:
    """The model's memory at four spatial scales.

    Each slot keeps the shape it was initialized with for the whole run.
    ``advance`` consumes this state: the instance gives up its tensors and
    the returned state owns the forward pass outputs.
    """

    __slots__ = ("_tensors", "_shapes")

    def __init__(self, r1, r2, r3, r4, shapes: List[Tuple[int, ...]] = None):
        self._tensors = [r1, r2, r3, r4]
        self._shapes = shapes or [tuple(t.shape) for t in self._tensors]

    @classmethod
    def zeros(
        cls, backend: TensorBackend, profile: ResolutionProfile, device: Any
    ) -> "RecurrentState":
        shapes = profile.recurrent_shapes()
        tensors = [backend.zeros(shape, device) for shape in shapes]
        return cls(*tensors, shapes=shapes)

    @property
    def shapes(self) -> List[Tuple[int, ...]]:
        return list(self._shapes)

    @property
    def tensors(self) -> Tuple[Any, Any, Any, Any]:
        if self._tensors is None:
            raise RuntimeError("RecurrentState was consumed by advance()")
        return tuple(self._tensors)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.tensors)

    def __len__(self) -> int:
        return 4

    def __getitem__(self, index: int):
        return self.tensors[index]

    def advance(self, r1, r2, r3, r4) -> "RecurrentState":
        """Replace all four slots with a forward pass's recurrent outputs."""
        new = [r1, r2, r3, r4]
        for k, (tensor, expected) in enumerate(zip(new, self._shapes), start=1):
            actual = tuple(tensor.shape)
            if actual != expected:
                raise ComputeError(
                    f"Recurrent state r{k} changed shape from {expected} to {actual}"
                )
        self._tensors = None
        return RecurrentState(*new, shapes=self._shapes)
