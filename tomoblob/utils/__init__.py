"""
TomoBlob utilities
File formats (MRC, STAR, marker files) and logging
"""

from .mrc_utils import MRCReader, MRCWriter, load_tilt_series
from .star_utils import read_star, read_star_table, write_star
from .marker_utils import SeedSphere, read_seed_markers, write_seed_markers, read_seed_list
from .logging import initialize_logger

__all__ = [
    "MRCReader",
    "MRCWriter",
    "load_tilt_series",
    "read_star",
    "read_star_table",
    "write_star",
    "SeedSphere",
    "read_seed_markers",
    "write_seed_markers",
    "read_seed_list",
    "initialize_logger",
]
