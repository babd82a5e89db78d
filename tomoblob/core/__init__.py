"""
TomoBlob core module
Tilt-space matched filtering and spherical-harmonics surface fitting
"""

from .exceptions import (
    TomoBlobError,
    ConfigurationError,
    InputError,
    SeedFileError,
    TomogramNotFoundError,
    BlobFitError,
    DegenerateVolumeError,
)
from .spherical_harmonics import SphericalHarmonics
from .tilt_space import TiltSpaceGeometry
from .correlation import correlate
from .blob_fit import TiltSpaceBlobFit
from .optimizer import ProgressiveShapeOptimizer, ShapeModel
from .decoupling import decouple_position, fold_degree_one
from .tessellation import Mesh, tessellate

__all__ = [
    "TomoBlobError",
    "ConfigurationError",
    "InputError",
    "SeedFileError",
    "TomogramNotFoundError",
    "BlobFitError",
    "DegenerateVolumeError",
    "SphericalHarmonics",
    "TiltSpaceGeometry",
    "correlate",
    "TiltSpaceBlobFit",
    "ProgressiveShapeOptimizer",
    "ShapeModel",
    "decouple_position",
    "fold_degree_one",
    "Mesh",
    "tessellate",
]
