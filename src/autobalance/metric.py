"""
Brightness metric: mean sample value (MSV) of a luminance histogram.
"""

import numpy as np

from .errors import EmptySample


def mean_sample_value(hist: np.ndarray) -> float:
    """
    Weighted mean of 1-indexed bucket positions.

    MSV = sum((i + 1) * count[i]) / sum(count[i]), in (0, 256] for a
    256-bucket histogram.

    Raises:
        EmptySample: If the histogram holds no samples
    """
    counts = np.asarray(hist, dtype=np.float64)
    total = counts.sum()
    if total <= 0:
        raise EmptySample("Histogram is empty, cannot compute MSV")

    weights = np.arange(1, counts.size + 1, dtype=np.float64)
    return float(np.dot(weights, counts) / total)
