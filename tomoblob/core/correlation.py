"""
Matched filtering of tilt-space maps
"""

import math
from typing import Optional

import numpy as np
from scipy import fft

from .exceptions import DegenerateVolumeError


VARIANCE_EPSILON = 1e-12


def compute_variance(volume: np.ndarray, mean: float = 0.0) -> float:
    """Variance of a volume around a fixed mean."""
    d = np.asarray(volume, dtype=np.float64) - mean
    return float(np.mean(d * d))


def normalize_variance(volume: np.ndarray, epsilon: float = VARIANCE_EPSILON) -> np.ndarray:
    """Scale a volume to unit variance around zero."""
    variance = compute_variance(volume, 0.0)

    if not math.isfinite(variance) or variance <= epsilon:
        raise DegenerateVolumeError(
            f"Correlation volume is degenerate (variance {variance:.3g})"
        )

    return volume / math.sqrt(variance)


def correlate(tilt_map: np.ndarray,
              kernel: np.ndarray,
              weights: Optional[np.ndarray] = None,
              num_threads: int = 1,
              epsilon: float = VARIANCE_EPSILON) -> np.ndarray:
    """
    Weighted, variance-normalised cross-correlation of a map with a kernel.

    Args:
        tilt_map: Tilt-space map (W, H, F)
        kernel: Membrane kernel of the same shape
        weights: Optional confidence weights of the same shape
        num_threads: Worker count for the FFTs
        epsilon: Smallest variance accepted before normalisation

    Returns:
        Correlation volume with unit variance around zero

    Raises:
        DegenerateVolumeError: If the weighted correlation has (near) zero variance
    """
    if tilt_map.shape != kernel.shape:
        raise ValueError(f"Map {tilt_map.shape} and kernel {kernel.shape} differ in shape")
    if weights is not None and weights.shape != tilt_map.shape:
        raise ValueError(f"Weights {weights.shape} and map {tilt_map.shape} differ in shape")

    map_fs = fft.rfftn(np.asarray(tilt_map, dtype=np.float64), workers=num_threads)
    kernel_fs = fft.rfftn(np.asarray(kernel, dtype=np.float64), workers=num_threads)

    correlation = fft.irfftn(map_fs * np.conj(kernel_fs), s=tilt_map.shape, workers=num_threads)

    if weights is not None:
        correlation *= weights

    return normalize_variance(correlation, epsilon)
