import logging

# Add NullHandler to prevent logs when used as library
logging.getLogger(__name__).addHandler(logging.NullHandler())

"""
Latency benchmark for recurrent video matting across tensor backends and
resolution profiles.
"""

from .aggregator import BenchmarkAggregator, BenchmarkReport
from .errors import (
    ComputeError,
    ConfigurationError,
    DeviceError,
    ImageIOError,
    RvmBenchError,
    ShapeMismatchError,
)
from .harness import BenchmarkHarness, BenchmarkSummary, CombinationFailure, run_benchmark
from .image import ImagePostprocessor, ImagePreprocessor, load_image
from .inference.backendType import BackendType
from .inference.model.factory import make_backend
from .loop import InferenceLoop, LoopPhase
from .profiles import PROFILES, ResolutionProfile, get_profile, register_profile
from .state import RecurrentState
from .utils import get_logger  # Export for users
from .utils import setup_logging  # Export for users who want to enable logging
