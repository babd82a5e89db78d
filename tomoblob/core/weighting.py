"""
Confidence weights for tilt-space correlation values
"""

import numpy as np

from .tilt_space import TiltSpaceGeometry


def compute_weights(geometry: TiltSpaceGeometry,
                    tilt_axis_azimuth: np.ndarray,
                    prior_sigma: float = 100.0) -> np.ndarray:
    """
    Product of the radial, frame-edge and tilt-axis priors.

    Args:
        geometry: Sampling frame of the blob
        tilt_axis_azimuth: Tilt-axis azimuth per frame (F,)
        prior_sigma: Frame-edge prior width in unbinned pixels

    Returns:
        Weights of shape (W, H, F)
    """
    width, height, frames = geometry.shape
    tilt_axis_azimuth = np.asarray(tilt_axis_azimuth, dtype=np.float64)
    if tilt_axis_azimuth.shape != (frames,):
        raise ValueError(f"Expected {frames} tilt-axis azimuths, got {tilt_axis_azimuth.shape}")

    x = np.arange(width, dtype=np.float64)[:, None, None]
    y = np.arange(height, dtype=np.float64)[None, :, None]
    f = np.arange(frames, dtype=np.float64)[None, None, :]

    r = geometry.radius_at(y) / geometry.max_radius

    sigma_f = prior_sigma / geometry.binning
    s2f = 2.0 * sigma_f * sigma_f
    far_y = height - y - 1
    q0 = 1.0 - np.exp(-y * y / s2f)
    q1 = 1.0 - np.exp(-far_y * far_y / s2f)

    sigma_t = frames / 4.0
    s2t = 2.0 * sigma_t * sigma_t
    phi = 2.0 * np.pi * x / width
    mz = (f - frames // 2) * np.sin(phi - tilt_axis_azimuth[None, None, :])
    qt = np.exp(-mz * mz / s2t)

    return r * q0 * q1 * qt
