"""
TomoBlob data module
Tomogram set metadata and tilt-series preprocessing
"""

from .tomogram_set import TomogramSet, TomogramInfo, read_fiducials
from .preprocessing import (
    fourier_crop,
    erase_fiducials,
    highpass_filter,
    apply_dose_weights,
    prepare_stack,
)

__all__ = [
    "TomogramSet",
    "TomogramInfo",
    "read_fiducials",
    "fourier_crop",
    "erase_fiducials",
    "highpass_filter",
    "apply_dose_weights",
    "prepare_stack",
]
