"""
Resolution profiles.

A profile fixes the source frame size and the spatial size of the four
recurrent feature maps. The model halves the resolution with stride-2
convolutions at each pyramid level, rounding up, so scale ``k`` of a source
dimension ``d`` is ``ceil(d / 2**k)``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Tuple

from rvmbench.config import _size
from rvmbench.errors import ConfigurationError
from rvmbench.utils import get_logger

logger = get_logger(__name__)

# Channel count of each recurrent state slot, coarsest last.
RECURRENT_CHANNELS: Tuple[int, int, int, int] = (16, 20, 40, 64)
SCALE_FACTORS: Tuple[int, int, int, int] = (2, 4, 8, 16)


def scaled_dim(dim: int, factor: int) -> int:
    return math.ceil(dim / factor)


@dataclass(frozen=True)
class ResolutionProfile:
    """Immutable source and recurrent-scale dimensions for one run."""

    name: str
    source_width: int
    source_height: int
    scale1_width: int
    scale1_height: int
    scale2_width: int
    scale2_height: int
    scale3_width: int
    scale3_height: int
    scale4_width: int
    scale4_height: int

    def __post_init__(self):
        dims = {
            "source_width": self.source_width,
            "source_height": self.source_height,
        }
        for k in range(1, 5):
            dims[f"scale{k}_width"] = getattr(self, f"scale{k}_width")
            dims[f"scale{k}_height"] = getattr(self, f"scale{k}_height")

        for field_name, value in dims.items():
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigurationError(
                    f"Profile '{self.name}': {field_name} must be a positive integer, got {value!r}"
                )

        for k, factor in enumerate(SCALE_FACTORS, start=1):
            expected = (
                scaled_dim(self.source_width, factor),
                scaled_dim(self.source_height, factor),
            )
            actual = dims[f"scale{k}_width"], dims[f"scale{k}_height"]
            if actual != expected:
                raise ConfigurationError(
                    f"Profile '{self.name}': scale{k} is {actual[0]}x{actual[1]}, "
                    f"expected {expected[0]}x{expected[1]} (source / {factor})"
                )

    @classmethod
    def from_source(cls, name: str, width: int, height: int) -> "ResolutionProfile":
        """Build a profile whose scales are derived from the source size."""
        scales = {}
        for k, factor in enumerate(SCALE_FACTORS, start=1):
            scales[f"scale{k}_width"] = scaled_dim(width, factor)
            scales[f"scale{k}_height"] = scaled_dim(height, factor)
        return cls(name=name, source_width=width, source_height=height, **scales)

    @property
    def source_shape(self) -> Tuple[int, int, int, int]:
        return (1, 3, self.source_height, self.source_width)

    @property
    def scale_sizes(self) -> List[Tuple[int, int]]:
        """``(width, height)`` of the four recurrent scales."""
        return [
            (getattr(self, f"scale{k}_width"), getattr(self, f"scale{k}_height"))
            for k in range(1, 5)
        ]

    def recurrent_shapes(self) -> List[Tuple[int, int, int, int]]:
        """NCHW shapes of the four recurrent state tensors."""
        return [
            (1, channels, height, width)
            for channels, (width, height) in zip(RECURRENT_CHANNELS, self.scale_sizes)
        ]


PROFILES: Dict[str, ResolutionProfile] = {
    "fast": ResolutionProfile(
        name="fast",
        source_width=120,
        source_height=90,
        scale1_width=60,
        scale1_height=45,
        scale2_width=30,
        scale2_height=23,
        scale3_width=15,
        scale3_height=12,
        scale4_width=8,
        scale4_height=6,
    ),
    "balanced": ResolutionProfile(
        name="balanced",
        source_width=640,
        source_height=480,
        scale1_width=320,
        scale1_height=240,
        scale2_width=160,
        scale2_height=120,
        scale3_width=80,
        scale3_height=60,
        scale4_width=40,
        scale4_height=30,
    ),
    "accurate": ResolutionProfile(
        name="accurate",
        source_width=1280,
        source_height=720,
        scale1_width=640,
        scale1_height=360,
        scale2_width=320,
        scale2_height=180,
        scale3_width=160,
        scale3_height=90,
        scale4_width=80,
        scale4_height=45,
    ),
}


def get_profile(name: str) -> ResolutionProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown resolution profile '{name}'. Available: {list(PROFILES)}"
        ) from None


def register_profile(profile: ResolutionProfile) -> ResolutionProfile:
    if profile.name in PROFILES and PROFILES[profile.name] != profile:
        logger.warning("Overriding resolution profile '%s'", profile.name)
    PROFILES[profile.name] = profile
    return profile


def profile_from_config(name: str, entry) -> ResolutionProfile:
    """Create a profile from a config entry.

    ``entry`` is either a ``[width, height]`` pair / ``"WxH"`` string, in which
    case the scales are derived, or a mapping with every profile field.
    """
    if isinstance(entry, dict):
        fields = dict(entry)
        fields.setdefault("name", name)
        try:
            return ResolutionProfile(**fields)
        except TypeError as e:
            raise ConfigurationError(f"Profile '{name}': {e}") from e
    try:
        width, height = _size(entry)
    except ValueError as e:
        raise ConfigurationError(f"Profile '{name}': {e}") from e
    return ResolutionProfile.from_source(name, width, height)
