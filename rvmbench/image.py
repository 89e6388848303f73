"""
Conversion between images and flat model buffers.

The source frame is decoded and resized once; every iteration of a run
rebuilds its input tensor from the same channel-planar buffer.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from rvmbench.errors import ImageIOError, ShapeMismatchError
from rvmbench.profiles import ResolutionProfile
from rvmbench.utils import get_logger

logger = get_logger(__name__)

# Pillow's bicubic kernel uses a = -0.5, i.e. Catmull-Rom.
RESAMPLE_FILTER = Image.Resampling.BICUBIC


def load_image(path: Union[str, Path]) -> Image.Image:
    """Decode the input image, raising ImageIOError if it cannot be read."""
    try:
        with Image.open(path) as img:
            img.load()
            logger.info("Loaded input image %s (%dx%d, %s)", path, *img.size, img.mode)
            return img.copy()
    except (OSError, UnidentifiedImageError) as e:
        raise ImageIOError(f"Failed to decode image {path}: {e}") from e


class ImagePreprocessor:
    """Turns a decoded image into the flat ``[1, 3, H, W]`` source buffer."""

    def __init__(self, profile: ResolutionProfile):
        self.profile = profile

    def resize(self, image: Image.Image) -> Image.Image:
        size = (self.profile.source_width, self.profile.source_height)
        try:
            return image.convert("RGB").resize(size, resample=RESAMPLE_FILTER)
        except (OSError, ValueError) as e:
            raise ImageIOError(f"Failed to resize image to {size}: {e}") from e

    @staticmethod
    def to_planar(image: Image.Image) -> np.ndarray:
        """RGB image → flat float32 buffer, all R, then all G, then all B."""
        rgb = np.asarray(image, dtype=np.float32) / 255.0
        return np.ascontiguousarray(rgb.transpose(2, 0, 1)).reshape(-1)

    def prepare(self, image: Image.Image) -> np.ndarray:
        buffer = self.to_planar(self.resize(image))
        logger.debug(
            "Prepared source buffer for profile %s: %d values",
            self.profile.name,
            buffer.size,
        )
        return buffer


class ImagePostprocessor:
    """Turns a flat alpha buffer into an 8-bit grayscale image."""

    def __init__(self, profile: ResolutionProfile):
        self.profile = profile

    def to_image(self, values: Sequence[float]) -> Image.Image:
        width, height = self.profile.source_width, self.profile.source_height
        alpha = np.asarray(values, dtype=np.float32).reshape(-1)
        if alpha.size != width * height:
            raise ShapeMismatchError(
                f"Alpha buffer has {alpha.size} values, expected {width}x{height}"
            )

        # NaN maps to 0
        alpha = np.nan_to_num(alpha, nan=0.0)
        pixels = np.floor(np.clip(alpha, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)
        return Image.fromarray(pixels.reshape(height, width))

    @staticmethod
    def save(image: Image.Image, path: Union[str, Path]) -> Path:
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            image.save(path)
        except (OSError, ValueError) as e:
            raise ImageIOError(f"Failed to save image {path}: {e}") from e
        logger.info("Saved output image: %s", path)
        return path
