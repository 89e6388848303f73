"""
The warm-up + measured inference loop for one backend/profile combination.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
from PIL import Image

from rvmbench.aggregator import BenchmarkAggregator, BenchmarkReport
from rvmbench.general import Profiler
from rvmbench.image import ImagePostprocessor
from rvmbench.inference.model.backends.base import TensorBackend, check_reshape
from rvmbench.profiles import ResolutionProfile
from rvmbench.state import RecurrentState
from rvmbench.utils import get_logger

logger = get_logger(__name__)

DEFAULT_ITERATIONS = 10


class LoopPhase(Enum):
    WARM_UP = "warm-up"
    MEASURING = "measuring"
    DONE = "done"


class InferenceLoop:
    """
    Runs ``iterations + 1`` forward passes over one fixed source frame.

    Iteration 0 is a warm-up whose timing and outputs are discarded. Each
    iteration times exactly the forward call plus the device synchronization
    that makes its results observable, then hands the four recurrent outputs
    to the next iteration. The alpha matte of the last measured iteration is
    written to ``output_path``.

    Example:
        >>> loop = InferenceLoop(backend, get_profile("fast"), buffer, iterations=10,
        ...                      output_path="output_onnx-cpu_fast.png")
        >>> report = loop.run()
        >>> print(report.line())
    """

    def __init__(
        self,
        backend: TensorBackend,
        profile: ResolutionProfile,
        source_buffer: Sequence[float],
        iterations: int = DEFAULT_ITERATIONS,
        downsample_ratio: float = 1.0,
        output_path: Optional[Union[str, Path]] = None,
    ):
        if iterations < 0:
            raise ValueError(f"iterations must be >= 0, got {iterations}")
        self.backend = backend
        self.profile = profile
        self.source_buffer = np.asarray(source_buffer, dtype=np.float32).reshape(-1)
        self.iterations = iterations
        self.downsample_ratio = float(downsample_ratio)
        self.output_path = Path(output_path) if output_path is not None else None
        self.postprocessor = ImagePostprocessor(profile)

        self.phase = LoopPhase.WARM_UP
        self.state: Optional[RecurrentState] = None
        self.output_image: Optional[Image.Image] = None
        self.aggregator = BenchmarkAggregator()

    @property
    def name(self) -> str:
        return f"{self.backend.name}/{self.profile.name}"

    def run(self) -> BenchmarkReport:
        check_reshape(self.source_buffer.size, self.profile.source_shape)

        backend = self.backend
        saved_path = None
        try:
            device = backend.default_device()
            logger.info("[%s] Using device: %s", self.name, device)
            model = backend.load_model(device)
            self.state = RecurrentState.zeros(backend, self.profile, device)
            logger.debug("[%s] Recurrent shapes: %s", self.name, self.state.shapes)

            profiler = Profiler(synchronize=lambda: backend.synchronize(device))
            self.phase = LoopPhase.WARM_UP

            for index in range(self.iterations + 1):
                src = backend.reshape(
                    backend.from_flat(self.source_buffer, device),
                    self.profile.source_shape,
                )
                ratio = backend.from_flat([self.downsample_ratio], device)

                with profiler:
                    _, pha, r1, r2, r3, r4 = backend.forward(
                        model, src, *self.state, ratio
                    )

                self.state = self.state.advance(r1, r2, r3, r4)

                if self.phase is LoopPhase.WARM_UP:
                    logger.debug(
                        "[%s] Warm-up forward: %.2f ms",
                        self.name,
                        profiler.elapsed_ns / 1e6,
                    )
                    self.phase = LoopPhase.MEASURING
                    continue

                self.aggregator.record(profiler.elapsed_ns)
                logger.debug(
                    "[%s] Iteration %d/%d: %.2f ms",
                    self.name,
                    index,
                    self.iterations,
                    profiler.elapsed_ns / 1e6,
                )

                if index == self.iterations:
                    saved_path = self._emit_alpha(pha)

            self.phase = LoopPhase.DONE
        finally:
            backend.close()

        report = self.aggregator.report(backend.name, self.profile.name, saved_path)
        logger.info(
            "[%s] %d measured iterations, mean %s ms, %.2f FPS",
            self.name,
            report.samples,
            report.mean_ms,
            self.aggregator.fps(),
        )
        return report

    def _emit_alpha(self, pha) -> Optional[Path]:
        self.output_image = self.postprocessor.to_image(self.backend.to_host(pha))
        if self.output_path is None:
            return None
        return self.postprocessor.save(self.output_image, self.output_path)
