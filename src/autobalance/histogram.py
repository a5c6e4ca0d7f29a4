"""
Histogram Engine

Computes a decimated luminance histogram over a rectangular region of a
BGR image. Sampling uses the same stride on both axes, starting at the
top-left corner of the region.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import InvalidRegion

logger = logging.getLogger(__name__)

HIST_SIZE = 256
DEFAULT_DECIMATION_STRIDE = 5

# BGR luminance weights in thousandths (0.114, 0.587, 0.299)
LUMA_WEIGHTS_BGR = np.array([114, 587, 299], dtype=np.int32)
LUMA_SCALE = 1000


@dataclass(frozen=True)
class Region:
    """Axis-aligned rectangle in pixel coordinates"""
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_corners(cls, x_top_left: int, y_top_left: int,
                     x_bottom_right: int, y_bottom_right: int) -> "Region":
        return cls(
            x=x_top_left,
            y=y_top_left,
            width=x_bottom_right - x_top_left,
            height=y_bottom_right - y_top_left,
        )

    @property
    def top_left(self) -> Tuple[int, int]:
        return (self.x, self.y)

    @property
    def bottom_right(self) -> Tuple[int, int]:
        return (self.x + self.width, self.y + self.height)

    def fits(self, image_width: int, image_height: int) -> bool:
        """True when the region is non-empty and lies fully inside the image"""
        return (
            self.x >= 0 and self.y >= 0 and
            self.width > 0 and self.height > 0 and
            self.x + self.width <= image_width and
            self.y + self.height <= image_height
        )

    def to_dict(self) -> dict:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


def compute_histogram(image: np.ndarray, roi: Region,
                      decimation_stride: int = DEFAULT_DECIMATION_STRIDE) -> np.ndarray:
    """
    Build a 256-bucket luminance histogram over the ROI.

    Args:
        image: HxWxC uint8 array, C >= 3, channels in BGR order
        roi: Region to sample, must lie inside the image
        decimation_stride: Sampling step applied to rows and columns

    Returns:
        np.ndarray: int64 counts, one per luminance value 0-255

    Raises:
        InvalidRegion: If the ROI is empty or exceeds the image bounds
        ValueError: If the stride is < 1 or the image is not multi-channel
    """
    if decimation_stride < 1:
        raise ValueError(f"decimation_stride must be >= 1, got {decimation_stride}")

    if image.ndim != 3 or image.shape[2] < 3:
        raise ValueError(f"Expected an HxWxC image with C >= 3, got shape {image.shape}")

    height, width = image.shape[:2]
    if not roi.fits(width, height):
        raise InvalidRegion(
            f"ROI {roi.to_dict()} does not fit inside {width}x{height} image"
        )

    x1, y1 = roi.bottom_right
    samples = image[roi.y:y1:decimation_stride, roi.x:x1:decimation_stride, :3]

    # Exact floor of the weighted sum; max is 255 * 1000 // 1000
    luminance = samples.astype(np.int32) @ LUMA_WEIGHTS_BGR // LUMA_SCALE

    return np.bincount(luminance.ravel(), minlength=HIST_SIZE)


def expected_sample_count(roi: Region, decimation_stride: int = DEFAULT_DECIMATION_STRIDE) -> int:
    """Number of pixels compute_histogram samples for this ROI"""
    rows = -(-roi.height // decimation_stride)
    cols = -(-roi.width // decimation_stride)
    return rows * cols
