"""
TomoBlob - membrane blob surface fitting for cryo-electron tomography
Fits spherical-harmonics surfaces to vesicles and other membrane-bound
blobs in tilt-series data, starting from hand-picked seed spheres.
"""

__version__ = "0.1.0"
__author__ = "TomoBlob Team"
__email__ = "contact@tomoblob.org"

from .cli import main

# Re-export the blob fitting entry points for convenience
from .core.pipeline import (
    BlobSegmenter,
    create_blob_segmenter,
    run_blob_fitting,
)
from .core.synthetic import create_synthetic_tilt_series, write_synthetic_dataset
from .core.tessellation import tessellate

__all__ = [
    "main",
    "BlobSegmenter",
    "create_blob_segmenter",
    "run_blob_fitting",
    "create_synthetic_tilt_series",
    "write_synthetic_dataset",
    "tessellate",
]
