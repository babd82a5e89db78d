"""
Synthetic tilt series of spherical membranes

Used for demonstrations (`tomoblob fit --create-synthetic`) and tests.
Each membrane is drawn in projection as a dark ring with a Gaussian
cross-section at the projected sphere radius, the edge-on part of the
bilayer that dominates its contrast in a tilt image.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..data.tomogram_set import PROJECTION_COLUMNS, format_vector
from ..utils.marker_utils import SeedSphere, write_seed_markers
from ..utils.mrc_utils import MRCWriter
from ..utils.star_utils import write_star

logger = logging.getLogger(__name__)


def tilt_projections(tilt_angles_deg: Sequence[float],
                     volume_center: Sequence[float],
                     image_center: Sequence[float]) -> np.ndarray:
    """
    Projection matrices of a single-axis tilt series around y.

    Returns:
        (F, 4, 4) matrices mapping tomogram pixels to image pixels
    """
    volume_center = np.asarray(volume_center, dtype=np.float64)
    projections = np.zeros((len(tilt_angles_deg), 4, 4))

    for f, angle in enumerate(np.radians(tilt_angles_deg)):
        c, s = np.cos(angle), np.sin(angle)
        rotation = np.array([
            [c, 0.0, s],
            [0.0, 1.0, 0.0],
            [-s, 0.0, c],
        ])
        projections[f, :3, :3] = rotation
        projections[f, :3, 3] = np.array([image_center[0], image_center[1], 0.0]) - rotation @ volume_center
        projections[f, 3, 3] = 1.0

    return projections


def membrane_ring(image_shape: Tuple[int, int],
                  center_2d: Sequence[float],
                  radius: float,
                  thickness: float,
                  contrast: float = -1.0) -> np.ndarray:
    """Gaussian ring image (ny, nx) of sigma thickness / 2 around center_2d."""
    ny, nx = image_shape
    y, x = np.mgrid[:ny, :nx]
    rho = np.hypot(x - center_2d[0], y - center_2d[1])
    sigma = thickness / 2.0
    return contrast * np.exp(-(rho - radius) ** 2 / (2.0 * sigma * sigma))


class SyntheticTiltSeries:
    def __init__(self, stack, projections, cumulative_dose, seeds, pixel_size):
        self.stack = stack
        self.projections = projections
        self.cumulative_dose = cumulative_dose
        self.seeds = seeds
        self.pixel_size = pixel_size


def create_synthetic_tilt_series(
    image_shape: Tuple[int, int] = (160, 160),
    volume_center: Sequence[float] = (80.0, 80.0, 40.0),
    blobs: Optional[List[Tuple[Sequence[float], float]]] = None,
    membrane_thickness: float = 4.0,
    tilt_angles: Optional[Sequence[float]] = None,
    pixel_size: float = 10.0,
    dose_per_tilt: float = 0.0,
    noise_sigma: float = 0.0,
    random_seed: Optional[int] = None,
) -> SyntheticTiltSeries:
    """
    Build a tilt series of spherical membranes.

    Args:
        image_shape: Frame shape (ny, nx)
        volume_center: Tomogram point projected onto the image centre
        blobs: List of (center, radius) in tomogram pixels; one blob at the
            volume centre with radius 30 if None
        membrane_thickness: Ring thickness in pixels
        tilt_angles: Tilt angles in degrees, -60 to 60 in steps of 6 if None
        pixel_size: Pixel size in Angstrom
        dose_per_tilt: Dose per frame in e/A^2, accumulated in tilt order
        noise_sigma: Standard deviation of added white noise
        random_seed: Seed of the noise generator

    Returns:
        SyntheticTiltSeries with exact seeds
    """
    if blobs is None:
        blobs = [(tuple(volume_center), 30.0)]
    if tilt_angles is None:
        tilt_angles = np.arange(-60.0, 61.0, 6.0)

    ny, nx = image_shape
    projections = tilt_projections(tilt_angles, volume_center, (nx / 2.0, ny / 2.0))

    stack = np.zeros((len(tilt_angles), ny, nx), dtype=np.float64)
    for f in range(len(tilt_angles)):
        for center, radius in blobs:
            center_2d = (projections[f] @ np.append(np.asarray(center, dtype=np.float64), 1.0))[:2]
            stack[f] += membrane_ring(image_shape, center_2d, radius, membrane_thickness)

    if noise_sigma > 0:
        rng = np.random.default_rng(random_seed)
        stack += rng.normal(0.0, noise_sigma, size=stack.shape)

    seeds = [
        SeedSphere(i + 1, tuple(float(c) for c in center), float(radius))
        for i, (center, radius) in enumerate(blobs)
    ]

    return SyntheticTiltSeries(
        stack=stack.astype(np.float32),
        projections=projections,
        cumulative_dose=dose_per_tilt * np.arange(len(tilt_angles), dtype=np.float64),
        seeds=seeds,
        pixel_size=pixel_size,
    )


def _projection_rows(projections: np.ndarray) -> Dict[str, List[str]]:
    return {
        column: [format_vector(p[i]) for p in projections]
        for i, column in enumerate(PROJECTION_COLUMNS)
    }


def write_synthetic_dataset(output_dir: Union[str, Path],
                            name: str = "synthetic",
                            seed_binning: float = 1.0,
                            **kwargs) -> Dict[str, Path]:
    """
    Write a synthetic tilt series with its tomogram set, seeds and seed list.

    Args:
        output_dir: Target folder
        name: Tomogram name
        seed_binning: Binning the marker coordinates are written at
        **kwargs: Passed to create_synthetic_tilt_series

    Returns:
        Paths keyed by 'tomogram_set', 'seed_list', 'seeds' and 'tilt_series'
    """
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    series = create_synthetic_tilt_series(**kwargs)

    tilt_series_path = out_dir / f"{name}.mrc"
    MRCWriter.write_tilt_series(series.stack, tilt_series_path, pixel_size=series.pixel_size)

    global_table = pd.DataFrame({
        "rlnTomoName": [name],
        "rlnTomoTiltSeriesName": [f"{tilt_series_path.name}:mrc"],
        "rlnTomoTiltSeriesPixelSize": [float(series.pixel_size)],
    })
    frames = pd.DataFrame(_projection_rows(series.projections))
    frames["rlnMicrographPreExposure"] = series.cumulative_dose

    tomogram_set_path = out_dir / "tomograms.star"
    write_star({"global": global_table, name: frames}, tomogram_set_path)

    seeds_path = out_dir / f"{name}_seeds.cmm"
    write_seed_markers(series.seeds, seeds_path, binning=seed_binning)

    seed_list_path = out_dir / "seeds.txt"
    with open(seed_list_path, 'w') as f:
        f.write(f"{name} {seeds_path.name}\n")

    logger.info("Synthetic dataset with %d blob(s) written to %s", len(series.seeds), out_dir)

    return {
        "tomogram_set": tomogram_set_path,
        "seed_list": seed_list_path,
        "seeds": seeds_path,
        "tilt_series": tilt_series_path,
    }
