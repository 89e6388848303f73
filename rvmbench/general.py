import contextlib
import time
from pathlib import Path
from typing import Callable, Optional


class Profiler(contextlib.ContextDecorator):
    """
    Timing context for a single blocking operation.

    An optional ``synchronize`` callable is invoked before each timestamp so
    that asynchronous device work queued inside the block is included in the
    measurement.

    Example:
        profiler = Profiler(synchronize=torch.cuda.synchronize)
        with profiler:
            outputs = model(src, *rec)
        print(f"Forward: {profiler.elapsed_ns / 1e6:.2f} ms")
    """

    def __init__(self, synchronize: Optional[Callable[[], None]] = None):
        self.synchronize = synchronize
        self.elapsed_ns = 0  # Time for the last measurement
        self.accumulated_ns = 0  # Total across all measurements
        self._start_ns = 0

    def __enter__(self):
        self._start_ns = self._get_precise_time()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        # Failed blocks are not timed
        if exc_type is not None:
            return False
        self.elapsed_ns = self._get_precise_time() - self._start_ns
        self.accumulated_ns += self.elapsed_ns
        return False

    def _get_precise_time(self) -> int:
        if self.synchronize is not None:
            self.synchronize()
        return time.perf_counter_ns()

    def reset(self):
        self.accumulated_ns = 0
        self.elapsed_ns = 0


def output_path_for(output_dir, backend_name: str, profile_name: str) -> Path:
    """Output image location for one backend/profile combination."""
    return Path(output_dir) / f"output_{backend_name}_{profile_name}.png"
