"""
Runs every backend × profile combination and collects the results.

Combinations are independent: each gets a fresh backend instance, its own
device handle and its own recurrent state. Device, compute and output-save
failures end only the combination they occur in; configuration errors and
an unreadable input image abort the whole benchmark.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

import numpy as np

from rvmbench.aggregator import BenchmarkReport
from rvmbench.errors import ComputeError, DeviceError, ImageIOError
from rvmbench.general import output_path_for
from rvmbench.image import ImagePreprocessor, load_image
from rvmbench.inference.model.backends.base import TensorBackend
from rvmbench.loop import DEFAULT_ITERATIONS, InferenceLoop
from rvmbench.profiles import ResolutionProfile, get_profile
from rvmbench.utils import get_logger

logger = get_logger(__name__)

BackendFactory = Callable[[str], TensorBackend]

# Errors that end a single combination; anything else propagates.
COMBINATION_ERRORS = (DeviceError, ComputeError, ImageIOError)


@dataclass(frozen=True)
class CombinationFailure:
    backend_name: str
    profile_name: str
    kind: str
    message: str

    def line(self) -> str:
        return f"[{self.backend_name}/{self.profile_name}] FAILED ({self.kind}): {self.message}"


@dataclass
class BenchmarkSummary:
    successes: List[BenchmarkReport] = field(default_factory=list)
    failures: List[CombinationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def lines(self) -> List[str]:
        return [r.line() for r in self.successes] + [f.line() for f in self.failures]


class BenchmarkHarness:
    """
    Drives one InferenceLoop per backend × profile combination.

    Args:
        backends: Backend names, resolved through ``backend_factory``.
        profiles: Profile names or ResolutionProfile instances.
        image_path: The single input image, decoded once.
        backend_factory: Builds a fresh, unstarted backend from a name.
        iterations: Measured iterations per combination (plus one warm-up).
        output_dir: Where ``output_<backend>_<profile>.png`` files go.
        downsample_ratio: Value of the model's downsample_ratio input.
    """

    def __init__(
        self,
        backends: Iterable[str],
        profiles: Iterable[Union[str, ResolutionProfile]],
        image_path: Union[str, Path],
        backend_factory: BackendFactory,
        iterations: int = DEFAULT_ITERATIONS,
        output_dir: Union[str, Path] = ".",
        downsample_ratio: float = 1.0,
    ):
        self.backend_names = list(backends)
        self.profiles = [
            p if isinstance(p, ResolutionProfile) else get_profile(p) for p in profiles
        ]
        self.image_path = Path(image_path)
        self.backend_factory = backend_factory
        self.iterations = iterations
        self.output_dir = Path(output_dir)
        self.downsample_ratio = downsample_ratio

    def _preflight(self) -> None:
        # Unknown backend names and missing models surface before any run
        for name in self.backend_names:
            self.backend_factory(name)

    def _prepare_buffers(self) -> Dict[str, np.ndarray]:
        image = load_image(self.image_path)
        return {
            profile.name: ImagePreprocessor(profile).prepare(image)
            for profile in self.profiles
        }

    def run_combination(
        self, backend_name: str, profile: ResolutionProfile, buffer: np.ndarray
    ) -> BenchmarkReport:
        output_path = output_path_for(self.output_dir, backend_name, profile.name)
        if output_path.exists():
            logger.debug("Removing stale output %s", output_path)
            try:
                output_path.unlink()
            except OSError as e:
                raise ImageIOError(f"Cannot remove stale output {output_path}: {e}") from e

        loop = InferenceLoop(
            self.backend_factory(backend_name),
            profile,
            buffer,
            iterations=self.iterations,
            downsample_ratio=self.downsample_ratio,
            output_path=output_path,
        )
        return loop.run()

    def run(self) -> BenchmarkSummary:
        self._preflight()
        buffers = self._prepare_buffers()
        summary = BenchmarkSummary()

        for backend_name in self.backend_names:
            for profile in self.profiles:
                logger.info("Running %s with profile %s", backend_name, profile.name)
                try:
                    report = self.run_combination(
                        backend_name, profile, buffers[profile.name]
                    )
                except COMBINATION_ERRORS as e:
                    logger.error(
                        "[%s/%s] %s: %s",
                        backend_name,
                        profile.name,
                        type(e).__name__,
                        e,
                    )
                    summary.failures.append(
                        CombinationFailure(
                            backend_name, profile.name, type(e).__name__, str(e)
                        )
                    )
                    continue
                summary.successes.append(report)

        logger.info(
            "Benchmark finished: %d succeeded, %d failed",
            len(summary.successes),
            len(summary.failures),
        )
        return summary


def run_benchmark(
    backends: Iterable[str],
    profiles: Iterable[Union[str, ResolutionProfile]],
    image_path: Union[str, Path],
    backend_factory: BackendFactory,
    iterations: int = DEFAULT_ITERATIONS,
    output_dir: Union[str, Path] = ".",
    downsample_ratio: float = 1.0,
    echo: Optional[Callable[[str], None]] = print,
) -> BenchmarkSummary:
    """Run the harness and echo one summary line per combination."""
    summary = BenchmarkHarness(
        backends,
        profiles,
        image_path,
        backend_factory,
        iterations=iterations,
        output_dir=output_dir,
        downsample_ratio=downsample_ratio,
    ).run()
    if echo is not None:
        for line in summary.lines():
            echo(line)
    return summary
