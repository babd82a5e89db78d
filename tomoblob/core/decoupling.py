"""
Separation of blob position and blob shape

A shift of the centre by t changes the radius function by t . d to first
order, which is exactly the degree-1 content of the expansion. Folding
the degree-1 coefficients into the centre leaves a coefficient vector
that describes shape only.

Blob coefficient vectors are laid out as [cx, cy, cz, r0, c_0, ..., c_n]
in unbinned pixels.
"""

import numpy as np

from .spherical_harmonics import SphericalHarmonics, band_zero_value, pole_value_degree_one
from .tilt_space import TiltSpaceGeometry

# (l, m) slot holding the linear term along x, y and z
DEGREE_ONE_SLOTS = ((1, 1), (1, -1), (1, 0))

HEADER_LENGTH = 4


def coefficient_count(bands: int) -> int:
    """Length of a blob coefficient vector."""
    return HEADER_LENGTH + (bands + 1) ** 2


def fold_degree_one(coefficients) -> np.ndarray:
    """
    Move degree-1 coefficients into the centre and refresh r0.

    Applying this to an already folded vector changes nothing.
    """
    out = np.array(coefficients, dtype=np.float64, copy=True)
    if out.ndim != 1 or len(out) < HEADER_LENGTH + 1:
        raise ValueError(f"Not a blob coefficient vector: shape {out.shape}")

    SphericalHarmonics.band_count(len(out) - HEADER_LENGTH)

    center = out[:3]
    shape = out[HEADER_LENGTH:]

    if len(shape) >= 4:
        pole = pole_value_degree_one()
        for axis, (l, m) in enumerate(DEGREE_ONE_SLOTS):
            i = SphericalHarmonics.index(l, m)
            center[axis] += shape[i] * pole
            shape[i] = 0.0

    out[3] = shape[0] * band_zero_value()
    return out


def decouple_position(params, geometry: TiltSpaceGeometry) -> np.ndarray:
    """
    Convert tilt-space parameters into a blob coefficient vector.

    Args:
        params: Fitted parameters in radial samples of the given geometry
        geometry: Sampling frame the parameters were fitted in

    Returns:
        [cx, cy, cz, r0, c_0, ..., c_n] in unbinned pixels, degree-1 terms zero
    """
    shape = geometry.binning * np.asarray(params, dtype=np.float64)
    shape[0] += geometry.min_radius / band_zero_value()

    return fold_degree_one(np.concatenate([geometry.center, [0.0], shape]))

