"""
Synthetic membrane template in tilt space

The kernel is centred on radial index 0 and wraps around every axis, so
circular cross-correlation with it places the membrane response at the
membrane's own radial offset.
"""

from typing import Tuple

import numpy as np


def _wrapped(n: int) -> np.ndarray:
    """Signed distance of every index to 0 on a ring of length n."""
    i = np.arange(n, dtype=np.float64)
    return np.where(i < n / 2.0, i, i - n)


def _wrap_offset(values: np.ndarray, period: int) -> np.ndarray:
    return (values + period / 2.0) % period - period / 2.0


def membrane_profile(height: int,
                     width: float,
                     spacing: float,
                     ratio: float,
                     depth: float = 0.0) -> np.ndarray:
    """
    Zero-mean radial profile of a lipid bilayer.

    Two leaflets of Gaussian width `width`, `spacing` apart around
    `depth`, minus a broad halo of amplitude 1/ratio and width
    2 * ratio * width.
    """
    if width <= 0:
        raise ValueError(f"Leaflet width must be positive, got {width}")
    if ratio <= 0:
        raise ValueError(f"Contrast ratio must be positive, got {ratio}")

    y = np.arange(height, dtype=np.float64)

    def gaussian(center, sigma):
        d = _wrap_offset(y - center, height)
        return np.exp(-d * d / (2.0 * sigma * sigma))

    leaflets = gaussian(depth - spacing / 2.0, width) + gaussian(depth + spacing / 2.0, width)
    halo = gaussian(depth, 2.0 * ratio * width) / ratio

    profile = leaflets - halo
    return profile - profile.mean()


def construct_membrane_kernel(shape: Tuple[int, int, int],
                              falloff: float,
                              width: float,
                              spacing: float,
                              ratio: float = 5.0,
                              depth: float = 0.0,
                              polarity: float = -1.0) -> np.ndarray:
    """
    Build a unit-norm membrane kernel.

    Args:
        shape: Tilt-space shape (W, H, F)
        falloff: Envelope sigma along azimuth and frame, in samples
        width: Leaflet sigma in radial samples
        spacing: Leaflet separation in radial samples
        ratio: Contrast ratio between leaflets and halo
        depth: Radial position of the bilayer centre
        polarity: -1 for membranes darker than the background

    Returns:
        float32 kernel with zero mean and unit L2 norm
    """
    w, h, f = shape
    profile = membrane_profile(h, width, spacing, ratio, depth)

    if falloff > 0:
        ax = _wrapped(w)
        af = _wrapped(f)
        envelope = (np.exp(-ax * ax / (2.0 * falloff * falloff))[:, None]
                    * np.exp(-af * af / (2.0 * falloff * falloff))[None, :])
    else:
        envelope = np.zeros((w, f))
        envelope[0, 0] = 1.0

    kernel = polarity * envelope[:, None, :] * profile[None, :, None]

    norm = np.sqrt(np.sum(kernel * kernel))
    if not np.isfinite(norm) or norm == 0.0:
        raise ValueError("Membrane kernel is identically zero")

    return (kernel / norm).astype(np.float32)
