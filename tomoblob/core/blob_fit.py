"""
Spherical-harmonics surface fit in tilt space

The surface height h(x, f), in radial samples, is a spherical-harmonics
expansion of the sample direction. The fit maximises the mean
correlation along the surface with a small roughness penalty
lambda * sum(l(l+1) c_lm^2).
"""

from typing import Tuple

import numpy as np

from .optimizer import ShapeModel
from .spherical_harmonics import SphericalHarmonics
from .tilt_space import draw_solution


class TiltSpaceBlobFit(ShapeModel):
    """
    Regularised negative-correlation objective of one band order.

    Args:
        band: Highest spherical-harmonics band of the model
        regularization: Roughness weight lambda
        correlation: Normalised correlation volume (W, H, F)
        directions: Sample directions, (W, H, F, 3) or (W, F, 3)
    """

    def __init__(self,
                 band: int,
                 regularization: float,
                 correlation: np.ndarray,
                 directions: np.ndarray):
        self.band = band
        self.regularization = regularization
        self.correlation = np.asarray(correlation, dtype=np.float64)

        directions = np.asarray(directions)
        if directions.ndim == 4:
            directions = directions[:, 0, :, :]

        width, height, frames = self.correlation.shape
        if directions.shape != (width, frames, 3):
            raise ValueError(
                f"Directions {directions.shape} do not match correlation {self.correlation.shape}"
            )

        self.harmonics = SphericalHarmonics(band)
        self._basis = self.harmonics.evaluate_directions(directions)
        self._penalty = (self.harmonics.degrees * (self.harmonics.degrees + 1)).astype(np.float64)

        self._xs = np.arange(width)[:, None]
        self._fs = np.arange(frames)[None, :]

    @property
    def parameter_count(self) -> int:
        return self.harmonics.num_coefficients

    def basis(self, l: int, m: int, direction_index: int = 0) -> float:
        """Basis value Y(l, m) at one sample direction (flat azimuth-major index)."""
        flat = self._basis.reshape(-1, self.parameter_count)
        return float(flat[direction_index, self.harmonics.index(l, m)])

    def heights(self, params: np.ndarray) -> np.ndarray:
        """Surface height in radial samples, shape (W, F)."""
        return self._basis @ np.asarray(params, dtype=np.float64)

    def _sample(self, heights: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Catmull-Rom interpolation of the correlation along the radial axis."""
        height = self.correlation.shape[1]
        h = np.clip(heights, 0.0, height - 1)
        inside = (heights >= 0.0) & (heights <= height - 1)

        i = np.minimum(np.floor(h).astype(np.int64), height - 1)
        t = h - i

        def tap(offset):
            y = np.clip(i + offset, 0, height - 1)
            return self.correlation[self._xs, y, self._fs]

        p0, p1, p2, p3 = tap(-1), tap(0), tap(1), tap(2)

        a1 = -p0 + p2
        a2 = 2.0 * p0 - 5.0 * p1 + 4.0 * p2 - p3
        a3 = -p0 + 3.0 * p1 - 3.0 * p2 + p3

        value = 0.5 * (2.0 * p1 + a1 * t + a2 * t * t + a3 * t * t * t)
        derivative = 0.5 * (a1 + 2.0 * a2 * t + 3.0 * a3 * t * t)

        return value, np.where(inside, derivative, 0.0)

    def score(self, params: np.ndarray) -> float:
        value, _ = self._sample(self.heights(params))
        return float(np.mean(value))

    def value_and_gradient(self, params: np.ndarray) -> Tuple[float, np.ndarray]:
        params = np.asarray(params, dtype=np.float64)
        value, derivative = self._sample(self.heights(params))

        samples = value.size
        penalty = self.regularization * np.sum(self._penalty * params * params)
        objective = -float(np.mean(value)) + float(penalty)

        gradient = -np.einsum('xf,xfn->n', derivative, self._basis) / samples
        gradient += 2.0 * self.regularization * self._penalty * params

        return objective, gradient

    def estimate_initial_height(self) -> float:
        """Radial index of the strongest mean correlation, refined to sub-sample precision."""
        profile = self.correlation.mean(axis=(0, 2))
        i = int(np.argmax(profile))

        if 0 < i < len(profile) - 1:
            curvature = profile[i - 1] - 2.0 * profile[i] + profile[i + 1]
            if curvature < 0.0:
                offset = 0.5 * (profile[i - 1] - profile[i + 1]) / curvature
                return i + float(np.clip(offset, -0.5, 0.5))

        return float(i)

    def initial_parameters(self) -> np.ndarray:
        params = np.zeros(self.parameter_count)
        params[0] = self.estimate_initial_height() / self.basis(0, 0)
        return params

    def draw_solution(self, params: np.ndarray, tilt_map: np.ndarray) -> np.ndarray:
        return draw_solution(tilt_map, self.heights(params))
