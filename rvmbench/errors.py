"""
Error taxonomy for the benchmark harness.

Configuration and shape errors are programmer/config mistakes and abort the
whole run. Device and compute errors only stop the backend/profile
combination they occur in.
"""


class RvmBenchError(Exception):
    """Base class for all rvmbench errors."""


class ConfigurationError(RvmBenchError, ValueError):
    """Malformed resolution profile, unknown backend/profile name or missing model."""


class DeviceError(RvmBenchError, RuntimeError):
    """The backend's compute device could not be obtained."""


class ShapeMismatchError(RvmBenchError, ValueError):
    """A flat buffer does not match the shape it is reshaped into."""


class ComputeError(RvmBenchError, RuntimeError):
    """The forward pass failed (out-of-memory, kernel failure, shape drift)."""


class ImageIOError(RvmBenchError, OSError):
    """Image decode, resize or save failed."""
