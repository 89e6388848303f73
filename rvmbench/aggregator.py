"""
Latency aggregation for measured iterations.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

NS_PER_MS = 1_000_000


@dataclass(frozen=True)
class BenchmarkReport:
    backend_name: str
    profile_name: str
    mean_ms: Optional[int]
    samples: int
    total_ns: int
    output_path: Optional[Path] = None

    @property
    def has_samples(self) -> bool:
        return self.samples > 0

    def line(self) -> str:
        tag = f"[{self.backend_name}/{self.profile_name}]"
        if not self.has_samples:
            return f"{tag} Average: n/a (no measured iterations)"
        return f"{tag} Average: {self.mean_ms}ms"


class BenchmarkAggregator:
    """
    Accumulates forward pass durations of measured iterations.

    The mean is reported in whole milliseconds: the total is truncated to
    milliseconds first and then divided by the sample count.
    """

    def __init__(self):
        self.total_ns = 0
        self.samples = 0

    def record(self, elapsed_ns: int) -> None:
        if elapsed_ns < 0:
            raise ValueError(f"elapsed_ns must be non-negative, got {elapsed_ns}")
        self.total_ns += int(elapsed_ns)
        self.samples += 1

    def mean_ms(self) -> Optional[int]:
        """Mean latency in whole milliseconds, or None without samples."""
        if self.samples == 0:
            return None
        return (self.total_ns // NS_PER_MS) // self.samples

    def fps(self) -> float:
        if self.total_ns > 0:
            return self.samples / (self.total_ns / 1e9)
        return 0.0

    def report(
        self, backend_name: str, profile_name: str, output_path: Optional[Path] = None
    ) -> BenchmarkReport:
        return BenchmarkReport(
            backend_name=backend_name,
            profile_name=profile_name,
            mean_ms=self.mean_ms(),
            samples=self.samples,
            total_ns=self.total_ns,
            output_path=output_path,
        )
