"""
Tilt-space sampling around a seed sphere

A tilt-space map resamples every frame of a tilt series on a polar grid
centred on the projection of a seed sphere. Axis 0 is the azimuth in the
image plane, axis 1 the radial offset from the minimum expected radius
and axis 2 the frame index. The 3D direction belonging to an
(azimuth, frame) pair lies in the image plane of that frame, so a
membrane seen at radius r in direction phi of frame f sits at
centre + r * direction(phi, f).

Author: TomoBlob Team
"""

import math
from typing import Sequence, Tuple

import numpy as np
from scipy.ndimage import map_coordinates


class TiltSpaceGeometry:
    """
    Sampling frame of one blob.

    All lengths are in unbinned tomogram pixels. One radial sample spans
    exactly `binning` pixels.
    """

    def __init__(self,
                 center: Sequence[float],
                 min_radius: float,
                 binning: float,
                 width: int,
                 height: int,
                 frame_count: int):
        self.center = np.asarray(center, dtype=np.float64)
        self.min_radius = float(min_radius)
        self.binning = float(binning)
        self.width = int(width)
        self.height = int(height)
        self.frame_count = int(frame_count)

    @classmethod
    def create(cls,
               center: Sequence[float],
               mean_radius: float,
               radius_range: float,
               binning: float,
               frame_count: int) -> "TiltSpaceGeometry":
        """
        Build the sampling frame for a seed sphere.

        Args:
            center: Seed centre (x, y, z) in unbinned pixels
            mean_radius: Seed radius in unbinned pixels
            radius_range: Radial search range (sphere thickness) in unbinned pixels
            binning: Binning factor of the stack the map is sampled from
            frame_count: Number of tilt-series frames
        """
        if binning <= 0:
            raise ValueError(f"binning must be positive, got {binning}")
        if mean_radius <= 0 or radius_range <= 0:
            raise ValueError("mean_radius and radius_range must be positive")

        width = max(16, int(round(2.0 * math.pi * mean_radius / binning)))
        height = max(4, int(round(radius_range / binning)))

        return cls(
            center=center,
            min_radius=mean_radius - radius_range / 2.0,
            binning=binning,
            width=width,
            height=height,
            frame_count=frame_count,
        )

    @property
    def shape(self) -> Tuple[int, int, int]:
        return self.width, self.height, self.frame_count

    @property
    def radius_range(self) -> float:
        return self.height * self.binning

    @property
    def max_radius(self) -> float:
        return self.min_radius + self.radius_range

    def radius_at(self, y):
        """Radius in unbinned pixels of radial index y."""
        return self.min_radius + self.radius_range * np.asarray(y, dtype=np.float64) / self.height

    def azimuths(self) -> np.ndarray:
        return 2.0 * np.pi * np.arange(self.width) / self.width

    def __repr__(self):
        return (f"TiltSpaceGeometry(center={self.center.tolist()}, min_radius={self.min_radius:.2f}, "
                f"binning={self.binning}, shape={self.shape})")


def project_point(projection: np.ndarray, point: Sequence[float]) -> np.ndarray:
    """Image position (x, y) of a 3D point under a 4x4 projection matrix."""
    p = projection @ np.append(np.asarray(point, dtype=np.float64), 1.0)
    return p[:2]


def compute_tilt_space_map(geometry: TiltSpaceGeometry,
                           stack: np.ndarray,
                           projections: np.ndarray) -> np.ndarray:
    """
    Resample a binned tilt series around the seed centre.

    Args:
        geometry: Sampling frame of the blob
        stack: Binned tilt series (F, ny, nx)
        projections: Unbinned projection matrices (F, 4, 4)

    Returns:
        float32 map of shape (W, H, F)
    """
    if stack.shape[0] != geometry.frame_count or len(projections) != geometry.frame_count:
        raise ValueError(
            f"Frame count mismatch: geometry {geometry.frame_count}, "
            f"stack {stack.shape[0]}, projections {len(projections)}"
        )

    b = geometry.binning
    phi = geometry.azimuths()
    radii = geometry.radius_at(np.arange(geometry.height)) / b

    offset_x = np.cos(phi)[:, None] * radii[None, :]
    offset_y = np.sin(phi)[:, None] * radii[None, :]

    out = np.zeros(geometry.shape, dtype=np.float32)

    for f in range(geometry.frame_count):
        cx, cy = project_point(projections[f], geometry.center) / b
        coords = np.stack([cy + offset_y, cx + offset_x])
        out[:, :, f] = map_coordinates(
            stack[f].astype(np.float64), coords, order=1, mode='constant', cval=0.0
        )

    return out


def compute_directions(geometry: TiltSpaceGeometry, projections: np.ndarray) -> np.ndarray:
    """
    Unit 3D direction of every tilt-space sample.

    The direction does not depend on the radial index, so the returned
    (W, H, F, 3) array is a read-only broadcast view.
    """
    phi = geometry.azimuths()
    directions = np.empty((geometry.width, geometry.frame_count, 3), dtype=np.float64)

    for f in range(geometry.frame_count):
        rotation = np.asarray(projections[f], dtype=np.float64)[:3, :3]
        ex = rotation[0] / np.linalg.norm(rotation[0])
        ey = rotation[1] / np.linalg.norm(rotation[1])
        d = np.cos(phi)[:, None] * ex[None, :] + np.sin(phi)[:, None] * ey[None, :]
        directions[:, f, :] = d / np.linalg.norm(d, axis=1, keepdims=True)

    return np.broadcast_to(
        directions[:, None, :, :],
        (geometry.width, geometry.height, geometry.frame_count, 3),
    )


def tilt_axis_azimuths(projections: np.ndarray) -> np.ndarray:
    """
    In-plane azimuth of the tilt axis in every frame.

    The 3D tilt axis is perpendicular to the viewing directions of the
    first and last frames.
    """
    projections = np.asarray(projections, dtype=np.float64)
    first = projections[0, 2, :3]
    last = projections[-1, 2, :3]

    axis = np.cross(first, last)
    norm = np.linalg.norm(axis)
    if norm == 0.0:
        raise ValueError("First and last frames share a viewing direction; tilt axis is undefined")
    axis = np.append(axis / norm, 0.0)

    projected = projections @ axis
    return np.arctan2(projected[:, 1], projected[:, 0])


def draw_solution(tilt_map: np.ndarray, heights: np.ndarray) -> np.ndarray:
    """
    Overlay fitted heights onto a tilt-space map.

    Args:
        tilt_map: Map (W, H, F)
        heights: Fitted radial index per (azimuth, frame), shape (W, F)

    Returns:
        Copy of the map with the fitted surface marked at the map maximum
    """
    plot = np.array(tilt_map, dtype=np.float32, copy=True)
    width, height, frames = plot.shape
    marker = float(plot.max()) + (float(plot.std()) or 1.0)

    y = np.clip(np.rint(heights), 0, height - 1).astype(np.int64)
    xs = np.arange(width)[:, None]
    fs = np.arange(frames)[None, :]
    plot[xs, y, fs] = marker

    return plot
