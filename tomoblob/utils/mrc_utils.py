"""
MRC File Utilities for TomoBlob

Reading tilt series and writing tilt-space diagnostic volumes.

Author: TomoBlob Team
"""

import numpy as np
from typing import Tuple, Optional, Union
import mrcfile
from pathlib import Path


class MRCReader:
    """
    Utility class for reading MRC files with proper error handling.
    """

    @staticmethod
    def read_mrc(filepath: Union[str, Path],
                 permissive: bool = True) -> Tuple[np.ndarray, dict]:
        """
        Read MRC file and return data with metadata.

        Args:
            filepath: Path to MRC file
            permissive: Whether to use permissive mode for reading

        Returns:
            Tuple of (data, metadata) where:
            - data: numpy array in file order (z, y, x)
            - metadata: Dictionary containing header information
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"MRC file not found: {filepath}")

        try:
            with mrcfile.open(str(filepath), permissive=permissive) as mrc:
                data = mrc.data.copy()
                metadata = {
                    'shape': data.shape,
                    'dtype': data.dtype,
                    'voxel_size': (float(mrc.voxel_size.x),
                                   float(mrc.voxel_size.y),
                                   float(mrc.voxel_size.z)),
                    'nx': int(mrc.header.nx),
                    'ny': int(mrc.header.ny),
                    'nz': int(mrc.header.nz),
                }
        except (OSError, ValueError) as e:
            raise RuntimeError(f"Failed to read MRC file {filepath}: {e}") from e

        return data, metadata

    @staticmethod
    def read_tilt_series(filepath: Union[str, Path]) -> Tuple[np.ndarray, dict]:
        """
        Read a tilt series as a float32 stack (frames, y, x).

        A single image is returned as a one-frame stack.
        """
        data, metadata = MRCReader.read_mrc(filepath)
        if data.ndim == 2:
            data = data[None, :, :]
        if data.ndim != 3:
            raise ValueError(f"Tilt series must be 2D or 3D, got {data.ndim}D: {filepath}")
        return data.astype(np.float32), metadata


class MRCWriter:
    """
    Utility class for writing MRC files.
    """

    @staticmethod
    def write_mrc(data: np.ndarray,
                  filepath: Union[str, Path],
                  voxel_size: Optional[Union[float, Tuple[float, float, float]]] = None,
                  overwrite: bool = True) -> None:
        """
        Write numpy array to MRC file.

        Args:
            data: 3D numpy array to write, in file order (z, y, x)
            filepath: Output file path
            voxel_size: Voxel size in Angstroms
            overwrite: Whether to overwrite existing file
        """
        filepath = Path(filepath)

        if filepath.exists() and not overwrite:
            raise FileExistsError(f"File already exists: {filepath}")

        if data.ndim != 3:
            raise ValueError(f"Data must be 3D, got {data.ndim}D")

        try:
            with mrcfile.new(str(filepath), overwrite=overwrite) as mrc:
                mrc.set_data(np.ascontiguousarray(data, dtype=np.float32))
                if voxel_size is not None:
                    mrc.voxel_size = voxel_size
        except (OSError, ValueError) as e:
            raise RuntimeError(f"Failed to write MRC file {filepath}: {e}") from e

    @staticmethod
    def write_tilt_space(volume: np.ndarray, filepath: Union[str, Path]) -> None:
        """
        Write a tilt-space volume (W, H, F).

        Frames become MRC sections, so the file holds (F, H, W).
        """
        MRCWriter.write_mrc(np.transpose(volume, (2, 1, 0)), filepath)

    @staticmethod
    def write_tilt_series(stack: np.ndarray,
                          filepath: Union[str, Path],
                          pixel_size: Optional[float] = None) -> None:
        """Write a tilt series (frames, y, x)."""
        MRCWriter.write_mrc(stack, filepath, voxel_size=pixel_size)


def load_tilt_series(filepath: Union[str, Path]) -> np.ndarray:
    """
    Convenience function to load a tilt series.

    Args:
        filepath: Path to the tilt-series MRC file

    Returns:
        float32 stack (frames, y, x)
    """
    stack, _ = MRCReader.read_tilt_series(filepath)
    return stack
