"""
Tomogram set bookkeeping

A tomogram set is a RELION-4 style STAR file: a 'global' block with one
row per tomogram and one block per tomogram with one row per tilt-series
frame. Projection matrices are stored row-wise as '[a,b,c,d]' strings in
rlnTomoProjX/Y/Z/W and map unbinned tomogram pixels to tilt-series pixels.
"""

import copy
import logging
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from ..core.exceptions import InputError, TomogramNotFoundError
from ..utils.mrc_utils import load_tilt_series
from ..utils.star_utils import read_star, write_star

logger = logging.getLogger(__name__)

GLOBAL_BLOCK = "global"
PROJECTION_COLUMNS = ("rlnTomoProjX", "rlnTomoProjY", "rlnTomoProjZ", "rlnTomoProjW")
PIXEL_SIZE_COLUMNS = ("rlnTomoTiltSeriesPixelSize", "rlnMicrographOriginalPixelSize")
FIDUCIALS_COLUMN = "rlnTomoFiducialsStarFile"


def parse_vector(text) -> np.ndarray:
    """Parse a '[a,b,c,d]' STAR value."""
    values = str(text).strip().strip('[]').split(',')
    try:
        return np.array([float(v) for v in values], dtype=np.float64)
    except ValueError as e:
        raise ValueError(f"Not a vector: {text}") from e


def format_vector(values) -> str:
    return "[" + ",".join(f"{v:.10g}" for v in values) + "]"


class TomogramInfo:
    """Metadata of one tomogram, all in unbinned pixels."""

    def __init__(self,
                 name: str,
                 tilt_series_path: Path,
                 pixel_size: float,
                 projections: np.ndarray,
                 cumulative_dose: np.ndarray,
                 fiducials_path: Optional[Path] = None):
        self.name = name
        self.tilt_series_path = tilt_series_path
        self.pixel_size = pixel_size
        self.projections = projections
        self.cumulative_dose = cumulative_dose
        self.fiducials_path = fiducials_path

    @property
    def frame_count(self) -> int:
        return len(self.projections)

    @property
    def has_fiducials(self) -> bool:
        return self.fiducials_path is not None

    def load_stack(self) -> np.ndarray:
        stack = load_tilt_series(self.tilt_series_path)
        if stack.shape[0] != self.frame_count:
            raise InputError(
                f"Tilt series {self.tilt_series_path} has {stack.shape[0]} frames, "
                f"tomogram '{self.name}' lists {self.frame_count}"
            )
        return stack


class TomogramSet:
    """
    Read-only view of a tomogram set plus the columns added by a run.

    Args:
        global_table: One row per tomogram
        tomogram_tables: Per-tomogram frame tables keyed by tomogram name
        path: STAR file the set was read from
    """

    def __init__(self,
                 global_table: pd.DataFrame,
                 tomogram_tables: Dict[str, pd.DataFrame],
                 path: Optional[Union[str, Path]] = None):
        if "rlnTomoName" not in global_table.columns:
            raise InputError("Tomogram set has no rlnTomoName column")
        self.global_table = global_table.reset_index(drop=True)
        self.global_table["rlnTomoName"] = self.global_table["rlnTomoName"].astype(str)
        self.tomogram_tables = tomogram_tables
        self.path = Path(path) if path is not None else None

    @classmethod
    def read(cls, filepath: Union[str, Path]) -> "TomogramSet":
        filepath = Path(filepath)
        try:
            blocks = read_star(filepath)
        except (OSError, ValueError) as e:
            raise InputError(f"Unable to read tomogram set {filepath}: {e}") from e

        if GLOBAL_BLOCK not in blocks:
            raise InputError(f"Tomogram set {filepath} has no data_{GLOBAL_BLOCK} block")

        tables = OrderedDict((name, df) for name, df in blocks.items() if name != GLOBAL_BLOCK)
        tomogram_set = cls(blocks[GLOBAL_BLOCK], tables, filepath)

        if FIDUCIALS_COLUMN not in tomogram_set.global_table.columns:
            logger.warning("No fiducial markers present in %s", filepath)

        return tomogram_set

    @property
    def names(self) -> List[str]:
        return list(self.global_table["rlnTomoName"])

    def index_of(self, name: str) -> int:
        matches = np.flatnonzero(self.global_table["rlnTomoName"].to_numpy() == name)
        if len(matches) == 0:
            raise TomogramNotFoundError(name, self.path)
        return int(matches[0])

    def _resolve(self, value) -> Path:
        text = str(value)
        if text.endswith(':mrc'):
            text = text[:-4]
        path = Path(text)
        if path.is_absolute() or path.exists() or self.path is None:
            return path
        return self.path.parent / path

    def get_tomogram(self, name: str) -> TomogramInfo:
        """Metadata of a tomogram by name."""
        row = self.global_table.iloc[self.index_of(name)]

        if name not in self.tomogram_tables:
            raise InputError(f"Tomogram set has no data_{name} block")
        frames = self.tomogram_tables[name]

        missing = [c for c in PROJECTION_COLUMNS if c not in frames.columns]
        if missing:
            raise InputError(f"Block data_{name} lacks {', '.join(missing)}")

        projections = np.zeros((len(frames), 4, 4))
        for i, column in enumerate(PROJECTION_COLUMNS):
            projections[:, i, :] = np.stack([parse_vector(v) for v in frames[column]])

        if "rlnMicrographPreExposure" in frames.columns:
            dose = frames["rlnMicrographPreExposure"].to_numpy(dtype=np.float64)
        else:
            dose = np.zeros(len(frames))

        pixel_size = None
        for column in PIXEL_SIZE_COLUMNS:
            if column in row.index:
                pixel_size = float(row[column])
                break
        if pixel_size is None or not pixel_size > 0:
            raise InputError(f"Tomogram '{name}' has no valid pixel size")

        fiducials = None
        if FIDUCIALS_COLUMN in row.index:
            value = str(row[FIDUCIALS_COLUMN])
            if value and value != "empty":
                fiducials = self._resolve(value)

        return TomogramInfo(
            name=name,
            tilt_series_path=self._resolve(row["rlnTomoTiltSeriesName"]),
            pixel_size=pixel_size,
            projections=projections,
            cumulative_dose=dose,
            fiducials_path=fiducials,
        )

    def copy(self) -> "TomogramSet":
        return TomogramSet(
            self.global_table.copy(),
            OrderedDict((k, v.copy()) for k, v in self.tomogram_tables.items()),
            copy.copy(self.path),
        )

    def set_value(self, name: str, column: str, value) -> None:
        if column not in self.global_table.columns:
            self.global_table[column] = "empty"
        self.global_table.loc[self.index_of(name), column] = value

    def write(self, filepath: Union[str, Path]) -> Path:
        blocks = OrderedDict([(GLOBAL_BLOCK, self.global_table)])
        blocks.update(self.tomogram_tables)
        write_star(blocks, filepath)
        return Path(filepath)


def read_fiducials(filepath: Union[str, Path]) -> np.ndarray:
    """
    Read fiducial marker positions (N, 3) in unbinned tomogram pixels.

    The STAR file must carry rlnCoordinateX/Y/Z.
    """
    blocks = read_star(filepath)
    for df in blocks.values():
        if all(c in df.columns for c in ("rlnCoordinateX", "rlnCoordinateY", "rlnCoordinateZ")):
            return df[["rlnCoordinateX", "rlnCoordinateY", "rlnCoordinateZ"]].to_numpy(dtype=np.float64)
    raise InputError(f"No rlnCoordinateX/Y/Z table in fiducials file {filepath}")
