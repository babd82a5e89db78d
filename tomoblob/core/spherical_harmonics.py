"""
Real spherical harmonics

Orthonormal real basis used to describe blob surfaces as a radius
function over the unit sphere. Coefficients are stored band by band,
index(l, m) = l*l + l + m with m in [-l, l]. No Condon-Shortley phase
is applied, so the degree-1 functions are proportional to the Cartesian
coordinates of the direction: Y(1,-1) ~ y, Y(1,0) ~ z, Y(1,1) ~ x.
"""

import math
from typing import Tuple

import numpy as np


class SphericalHarmonics:
    """
    Real spherical harmonics up to a maximum band.

    Directions are given either as (z, phi), with z the cosine of the
    polar angle and phi the azimuth, or as Cartesian unit vectors.
    """

    def __init__(self, max_band: int = 2):
        if max_band < 0:
            raise ValueError(f"max_band must be non-negative, got {max_band}")
        self.max_band = int(max_band)
        self.num_coefficients = (self.max_band + 1) ** 2

        self.degrees = np.array(
            [l for l in range(self.max_band + 1) for _ in range(-l, l + 1)],
            dtype=np.int64,
        )
        self._norm = np.array(
            [self._normalization_constant(l, m)
             for l in range(self.max_band + 1) for m in range(-l, l + 1)]
        )

    @staticmethod
    def index(l: int, m: int) -> int:
        """Position of Y(l, m) in a coefficient vector."""
        if abs(m) > l:
            raise ValueError(f"|m| must not exceed l (l={l}, m={m})")
        return l * l + l + m

    @staticmethod
    def band_count(num_coefficients: int) -> int:
        """Maximum band of a coefficient vector of the given length."""
        band = int(round(math.sqrt(num_coefficients))) - 1
        if band < 0 or (band + 1) ** 2 != num_coefficients:
            raise ValueError(
                f"{num_coefficients} is not a valid spherical harmonics coefficient count"
            )
        return band

    def evaluate(self, z, phi) -> np.ndarray:
        """
        Evaluate all basis functions.

        Args:
            z: Cosine of the polar angle, any shape
            phi: Azimuth angle, broadcastable against z

        Returns:
            Array of shape broadcast(z, phi).shape + (num_coefficients,)
        """
        z, phi = np.broadcast_arrays(
            np.clip(np.asarray(z, dtype=np.float64), -1.0, 1.0),
            np.asarray(phi, dtype=np.float64),
        )
        s = np.sqrt(np.maximum(0.0, 1.0 - z * z))
        legendre = self._associated_legendre(z, s)

        out = np.empty(z.shape + (self.num_coefficients,), dtype=np.float64)

        for l in range(self.max_band + 1):
            for m in range(-l, l + 1):
                i = self.index(l, m)
                p = legendre[(l, abs(m))]
                if m > 0:
                    out[..., i] = math.sqrt(2.0) * self._norm[i] * p * np.cos(m * phi)
                elif m < 0:
                    out[..., i] = math.sqrt(2.0) * self._norm[i] * p * np.sin(-m * phi)
                else:
                    out[..., i] = self._norm[i] * p

        return out

    def evaluate_directions(self, directions: np.ndarray) -> np.ndarray:
        """Evaluate all basis functions for Cartesian directions (..., 3)."""
        directions = np.asarray(directions, dtype=np.float64)
        z, phi = self.directions_to_angles(directions)
        return self.evaluate(z, phi)

    def evaluate_sum(self, coefficients, z, phi) -> np.ndarray:
        """Sum of coefficients times basis functions."""
        coefficients = np.asarray(coefficients, dtype=np.float64)
        if coefficients.shape[-1] != self.num_coefficients:
            raise ValueError(
                f"Expected {self.num_coefficients} coefficients, got {coefficients.shape[-1]}"
            )
        return self.evaluate(z, phi) @ coefficients

    def value(self, l: int, m: int, z, phi):
        """Single basis function Y(l, m) at (z, phi)."""
        if l > self.max_band:
            raise ValueError(f"Band {l} exceeds maximum band {self.max_band}")
        return self.evaluate(z, phi)[..., self.index(l, m)]

    @staticmethod
    def directions_to_angles(directions: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        norm = np.linalg.norm(directions, axis=-1)
        norm = np.where(norm > 0.0, norm, 1.0)
        z = directions[..., 2] / norm
        phi = np.arctan2(directions[..., 1], directions[..., 0])
        return z, phi

    def _normalization_constant(self, l: int, m: int) -> float:
        m_abs = abs(m)
        numerator = (2 * l + 1) * math.factorial(l - m_abs)
        denominator = 4 * math.pi * math.factorial(l + m_abs)
        return math.sqrt(numerator / denominator)

    def _associated_legendre(self, z: np.ndarray, s: np.ndarray) -> dict:
        """P_l^m(z) for 0 <= m <= l <= max_band, keyed by (l, m)."""
        table = {}
        p_mm = np.ones_like(z)

        for m in range(self.max_band + 1):
            if m > 0:
                # P_m^m = (2m-1)!! s^m
                p_mm = p_mm * (2 * m - 1) * s
            table[(m, m)] = p_mm

            if m + 1 <= self.max_band:
                table[(m + 1, m)] = (2 * m + 1) * z * p_mm

            for l in range(m + 2, self.max_band + 1):
                table[(l, m)] = (
                    (2 * l - 1) * z * table[(l - 1, m)] - (l + m - 1) * table[(l - 2, m)]
                ) / (l - m)

        return table


def pole_value_degree_one() -> float:
    """Y(1, 0) at the reference direction theta = 0."""
    return math.sqrt(3.0 / (4.0 * math.pi))


def band_zero_value() -> float:
    """Y(0, 0), constant over the sphere."""
    return 0.5 / math.sqrt(math.pi)
