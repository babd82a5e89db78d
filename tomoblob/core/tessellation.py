"""
Triangulation of spherical-harmonics blob surfaces

The surface is sampled on an (azimuth, tilt) grid restricted to a band of
elevations around the equator. The grid is closed in azimuth and open at
the top and bottom tilt rows.
"""

import math
from typing import Iterable, Optional

import numpy as np

from .decoupling import HEADER_LENGTH
from .spherical_harmonics import SphericalHarmonics


class Mesh:
    """
    Triangle mesh with shared vertices.

    Attributes:
        vertices: (N, 3) float array
        triangles: (M, 3) int array of vertex indices
    """

    def __init__(self, vertices: Optional[np.ndarray] = None, triangles: Optional[np.ndarray] = None):
        self.vertices = (np.zeros((0, 3), dtype=np.float64) if vertices is None
                         else np.asarray(vertices, dtype=np.float64).reshape(-1, 3))
        self.triangles = (np.zeros((0, 3), dtype=np.int64) if triangles is None
                          else np.asarray(triangles, dtype=np.int64).reshape(-1, 3))

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)

    def insert(self, other: "Mesh") -> None:
        """Append another mesh, offsetting its triangle indices."""
        offset = self.vertex_count
        self.vertices = np.concatenate([self.vertices, other.vertices])
        self.triangles = np.concatenate([self.triangles, other.triangles + offset])

    @classmethod
    def merge(cls, meshes: Iterable["Mesh"]) -> "Mesh":
        out = cls()
        for mesh in meshes:
            out.insert(mesh)
        return out

    def face_normals(self) -> np.ndarray:
        """Unnormalised face normals following the triangle winding."""
        a = self.vertices[self.triangles[:, 0]]
        b = self.vertices[self.triangles[:, 1]]
        c = self.vertices[self.triangles[:, 2]]
        return np.cross(b - a, c - a)

    def __repr__(self):
        return f"Mesh(vertices={self.vertex_count}, triangles={self.triangle_count})"


def grid_size(mean_radius: float, pixel_size: float, spacing: float, max_tilt_deg: float):
    """Azimuth and tilt sample counts for a target edge length."""
    if spacing <= 0:
        raise ValueError(f"spacing must be positive, got {spacing}")
    max_tilt = math.radians(max_tilt_deg)
    radius = mean_radius * pixel_size
    azimuth_samples = max(3, int(round(2.0 * math.pi * radius / spacing)))
    tilt_samples = max(2, int(round(2.0 * max_tilt * radius / spacing)))
    return azimuth_samples, tilt_samples


def tessellate(coefficients,
               pixel_size: float,
               spacing: float = 50.0,
               max_tilt_deg: float = 20.0) -> Mesh:
    """
    Build the mesh of a blob coefficient vector.

    Args:
        coefficients: [cx, cy, cz, r0, c_0, ..., c_n] in pixels
        pixel_size: Pixel size in Angstrom; vertices are written in Angstrom
        spacing: Target edge length in Angstrom
        max_tilt_deg: Elevation range covered, +/- degrees

    Returns:
        Mesh with vertex t * A + a at azimuth index a and tilt index t
    """
    coefficients = np.asarray(coefficients, dtype=np.float64)
    center = coefficients[:3]
    mean_radius = coefficients[3]
    shape = coefficients[HEADER_LENGTH:]

    if not mean_radius > 0:
        raise ValueError(f"Mean radius must be positive, got {mean_radius}")

    harmonics = SphericalHarmonics(SphericalHarmonics.band_count(len(shape)))
    azimuth_samples, tilt_samples = grid_size(mean_radius, pixel_size, spacing, max_tilt_deg)

    max_tilt = math.radians(max_tilt_deg)
    phi = 2.0 * np.pi * np.arange(azimuth_samples) / azimuth_samples
    theta = -max_tilt + 2.0 * max_tilt * np.arange(tilt_samples) / (tilt_samples - 1)

    theta_grid, phi_grid = np.meshgrid(theta, phi, indexing='ij')
    dist = harmonics.evaluate_sum(shape, np.sin(theta_grid), phi_grid)

    direction = np.stack([
        np.cos(theta_grid) * np.cos(phi_grid),
        np.cos(theta_grid) * np.sin(phi_grid),
        np.sin(theta_grid),
    ], axis=-1)

    vertices = pixel_size * (center + dist[..., None] * direction)
    vertices = vertices.reshape(-1, 3)

    a = np.arange(azimuth_samples)[None, :]
    t = np.arange(tilt_samples - 1)[:, None]
    a_next = (a + 1) % azimuth_samples

    here = t * azimuth_samples + a
    up = (t + 1) * azimuth_samples + a
    up_next = (t + 1) * azimuth_samples + a_next
    here_next = t * azimuth_samples + a_next

    triangles = np.empty((tilt_samples - 1, azimuth_samples, 2, 3), dtype=np.int64)
    triangles[:, :, 0] = np.stack([here, up_next, up], axis=-1)
    triangles[:, :, 1] = np.stack([here, here_next, up_next], axis=-1)

    return Mesh(vertices, triangles.reshape(-1, 3))
