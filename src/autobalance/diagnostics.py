"""
Diagnostic rendering: ROI overlay and histogram plot.

Both outputs are best-effort side channels and never affect control.
"""

import logging
import threading
from typing import Dict, List, Optional

import cv2
import numpy as np

from .histogram import Region

logger = logging.getLogger(__name__)

ROI_COLOR = (0, 0, 255)  # Red (BGR)
HIST_COLOR = (255, 0, 0)  # Blue (BGR)


def draw_roi(image: np.ndarray, roi: Region, thickness: int = 4) -> np.ndarray:
    """Return a copy of the frame with the ROI rectangle drawn on it"""
    overlay = np.ascontiguousarray(image[:, :, :3]).copy()
    cv2.rectangle(overlay, roi.top_left, roi.bottom_right, ROI_COLOR, thickness)
    return overlay


def plot_histogram(hist: np.ndarray, width: int = 256, height: int = 256) -> np.ndarray:
    """
    Render a histogram as a line plot scaled to its tallest bucket

    Args:
        hist: Bucket counts
        width: Plot width in pixels, one column per bucket
        height: Plot height in pixels

    Returns:
        np.ndarray: height x width x 3 BGR image
    """
    plot = np.zeros((height, width, 3), dtype=np.uint8)
    peak = int(np.max(hist)) if len(hist) else 0
    if peak == 0:
        return plot

    points = min(width, len(hist))
    ys = [height - int(round(hist[i] * height / peak)) for i in range(points)]
    for i in range(1, points):
        cv2.line(plot, (i - 1, ys[i - 1]), (i, ys[i]), HIST_COLOR, 2, cv2.LINE_8)
    return plot


class DiagnosticsStore:
    """Keeps the latest diagnostic image per channel for the HTTP preview"""

    CHANNELS = ("roi", "histogram")

    def __init__(self):
        self.lock = threading.Lock()
        self._images: Dict[str, np.ndarray] = {}

    def publish(self, name: str, image: np.ndarray) -> None:
        if name not in self.CHANNELS:
            raise ValueError(f"Unknown diagnostics channel: {name}")
        with self.lock:
            self._images[name] = image

    def latest(self, name: str) -> Optional[np.ndarray]:
        with self.lock:
            return self._images.get(name)

    def latest_jpeg(self, name: str, quality: int = 85) -> Optional[bytes]:
        image = self.latest(name)
        if image is None:
            return None

        ok, buf = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ok:
            logger.warning(f"JPEG encoding failed for diagnostics channel {name}")
            return None
        return buf.tobytes()

    def available(self) -> List[str]:
        with self.lock:
            return sorted(self._images)

    def clear(self) -> None:
        with self.lock:
            self._images.clear()
