# tests/conftest.py
"""
Pytest configuration and shared fixtures for rvmbench tests.
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import tempfile
from pathlib import Path
from types import SimpleNamespace
from typing import Iterator

import numpy as np
import pytest
import torch
from PIL import Image

from rvmbench.errors import ComputeError, DeviceError
from rvmbench.inference.model.backends.base import HostDevice, HostTensorOps
from rvmbench.profiles import ResolutionProfile

# ---------------------------------------------------------------------------
# Stub backends
# ---------------------------------------------------------------------------


class StubBackend(HostTensorOps):
    """NumPy backend whose model returns a constant alpha and the unchanged state."""

    alpha_value = 0.5

    def __init__(self, name: str = "stub", clock=None, step_ns: int = 0):
        self.name = name
        self.clock = clock
        self.step_ns = step_ns
        self.forward_calls = 0
        self.closed = False
        self.synced = 0
        self.seen_inputs = []

    def default_device(self) -> HostDevice:
        return HostDevice("cpu")

    def load_model(self, device):
        return SimpleNamespace(device=device)

    def _recurrent(self, r1, r2, r3, r4):
        return r1, r2, r3, r4

    def forward(self, model, src, r1, r2, r3, r4, downsample_ratio):
        self.forward_calls += 1
        self.seen_inputs.append((r1, r2, r3, r4))
        if self.clock is not None:
            step = self.step_ns
            if isinstance(step, (list, tuple)):
                step = step[self.forward_calls - 1]
            self.clock.now += step
        pha = np.full(
            (1, 1, src.shape[2], src.shape[3]), self.alpha_value, dtype=np.float32
        )
        return (src.copy(), pha) + tuple(self._recurrent(r1, r2, r3, r4))

    def synchronize(self, device) -> None:
        self.synced += 1

    def close(self) -> None:
        self.closed = True


class CountingBackend(StubBackend):
    """Adds one to every recurrent element per forward pass."""

    def _recurrent(self, r1, r2, r3, r4):
        return tuple(r + 1.0 for r in (r1, r2, r3, r4))


class FailingBackend(StubBackend):
    """Forward always fails."""

    def forward(self, model, src, r1, r2, r3, r4, downsample_ratio):
        self.forward_calls += 1
        raise ComputeError("simulated kernel failure")


class NoDeviceBackend(StubBackend):
    def default_device(self):
        raise DeviceError("no such device")


class ShapeDriftBackend(StubBackend):
    """Returns a first recurrent tensor with the wrong spatial size."""

    def _recurrent(self, r1, r2, r3, r4):
        return np.zeros((1, 16, 99, 99), dtype=np.float32), r2, r3, r4


class ToyRecurrentMatting(torch.nn.Module):
    def forward(
        self,
        src: torch.Tensor,
        r1: torch.Tensor,
        r2: torch.Tensor,
        r3: torch.Tensor,
        r4: torch.Tensor,
        downsample_ratio: float = 1.0,
    ):
        pha = src.mean(dim=1, keepdim=True) * downsample_ratio
        return src, pha, r1 + 1.0, r2 + 1.0, r3 + 1.0, r4 + 1.0


class FakeClock:
    def __init__(self, start: int = 0):
        self.now = start

    def perf_counter_ns(self) -> int:
        return self.now


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stub_backends():
    """Expose stub backend classes to tests."""
    return SimpleNamespace(
        Stub=StubBackend,
        Counting=CountingBackend,
        Failing=FailingBackend,
        NoDevice=NoDeviceBackend,
        ShapeDrift=ShapeDriftBackend,
    )


@pytest.fixture
def fake_clock(monkeypatch) -> FakeClock:
    """Replace the profiler's clock with a manually advanced one."""
    clock = FakeClock()
    monkeypatch.setattr(
        "rvmbench.general.time", SimpleNamespace(perf_counter_ns=clock.perf_counter_ns)
    )
    return clock


@pytest.fixture
def tiny_profile() -> ResolutionProfile:
    """2x2 source, every recurrent scale 1x1."""
    return ResolutionProfile(
        name="tiny",
        source_width=2,
        source_height=2,
        scale1_width=1,
        scale1_height=1,
        scale2_width=1,
        scale2_height=1,
        scale3_width=1,
        scale3_height=1,
        scale4_width=1,
        scale4_height=1,
    )


@pytest.fixture
def small_profile() -> ResolutionProfile:
    return ResolutionProfile.from_source("small", 12, 10)


@pytest.fixture(scope="session")
def sample_images_dir() -> Iterator[Path]:
    """Temporary directory with a few synthetic input images."""
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)

        Image.new("RGB", (2, 2), (128, 128, 128)).save(temp_path / "gray_2x2.png")

        gradient = np.zeros((40, 60, 3), dtype=np.uint8)
        gradient[..., 0] = np.linspace(0, 255, 60, dtype=np.uint8)[None, :]
        gradient[..., 1] = np.linspace(0, 255, 40, dtype=np.uint8)[:, None]
        gradient[..., 2] = 200
        Image.fromarray(gradient).save(temp_path / "gradient.png")

        (temp_path / "not_an_image.png").write_bytes(b"definitely not a png")

        yield temp_path


@pytest.fixture
def gray_image_path(sample_images_dir: Path) -> Path:
    return sample_images_dir / "gray_2x2.png"


@pytest.fixture
def gradient_image_path(sample_images_dir: Path) -> Path:
    return sample_images_dir / "gradient.png"


@pytest.fixture
def gray_buffer() -> np.ndarray:
    """Planar buffer of a 2x2 solid mid-gray frame."""
    return np.full(3 * 2 * 2, 128 / 255.0, dtype=np.float32)


# ---------------------------------------------------------------------------
# Toy recurrent models for the real engines
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def temp_model_dir() -> Iterator[Path]:
    """Temporary directory for saving/loading models."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture(scope="session")
def torchscript_model_path(temp_model_dir: Path) -> Path:
    """Scripted model with the matting model's forward signature.

    pha is the channel mean scaled by downsample_ratio and every recurrent
    output is its input plus one.
    """
    path = temp_model_dir / "toy.torchscript"
    torch.jit.script(ToyRecurrentMatting()).save(str(path))
    return path


@pytest.fixture(scope="session")
def onnx_model_path(temp_model_dir: Path) -> Path:
    """The same toy model as an ONNX graph with the matting model's I/O names."""
    onnx = pytest.importorskip("onnx")
    from onnx import TensorProto, helper, numpy_helper

    def value(name, shape):
        return helper.make_tensor_value_info(name, TensorProto.FLOAT, shape)

    inputs = [value("src", [1, 3, "h", "w"])]
    outputs = [value("fgr", [1, 3, "h", "w"]), value("pha", [1, 1, "h", "w"])]
    nodes = [
        helper.make_node("Identity", ["src"], ["fgr"]),
        helper.make_node("ReduceMean", ["src"], ["mean"], axes=[1], keepdims=1),
        helper.make_node("Mul", ["mean", "downsample_ratio"], ["pha"]),
    ]
    for k in range(1, 5):
        inputs.append(value(f"r{k}i", [1, f"c{k}", f"h{k}", f"w{k}"]))
        outputs.append(value(f"r{k}o", [1, f"c{k}", f"h{k}", f"w{k}"]))
        nodes.append(helper.make_node("Add", [f"r{k}i", "one"], [f"r{k}o"]))
    inputs.append(value("downsample_ratio", [1]))

    graph = helper.make_graph(
        nodes,
        "toy_recurrent_matting",
        inputs,
        outputs,
        initializer=[numpy_helper.from_array(np.array(1.0, dtype=np.float32), "one")],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.checker.check_model(model)

    path = temp_model_dir / "toy.onnx"
    onnx.save(model, str(path))
    return path
