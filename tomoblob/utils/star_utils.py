"""
RELION STAR file reading and writing

A STAR file is a sequence of named data blocks. Each block holds either a
loop_ table or a list of single key/value pairs. Blocks are returned as
pandas DataFrames keyed by block name (the text after "data_"); a
key/value block becomes a one-row DataFrame.
"""

from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Union

import numpy as np
import pandas as pd


def _to_numeric(column: pd.Series) -> pd.Series:
    try:
        return pd.to_numeric(column)
    except (ValueError, TypeError):
        return column


def _finish_block(blocks: Dict[str, pd.DataFrame], name: str,
                  columns: List[str], rows: List[List[str]], pairs: Dict[str, str]) -> None:
    if columns:
        df = pd.DataFrame(rows, columns=columns)
    elif pairs:
        df = pd.DataFrame([list(pairs.values())], columns=list(pairs.keys()))
    else:
        df = pd.DataFrame()

    for c in df.columns:
        df[c] = _to_numeric(df[c])

    blocks[name] = df


def read_star(filepath: Union[str, Path]) -> "OrderedDict[str, pd.DataFrame]":
    """
    Read all data blocks of a RELION .star file.

    Notes:
        - Lines starting with '#' or empty are ignored.
        - Column labels are expected as '_rln...'; RELION's trailing
          '#N' column numbers are dropped.

    Returns:
        Ordered mapping of block name to DataFrame
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"STAR file not found: {filepath}")

    blocks: "OrderedDict[str, pd.DataFrame]" = OrderedDict()
    name = None
    columns: List[str] = []
    rows: List[List[str]] = []
    pairs: Dict[str, str] = OrderedDict()
    in_loop = False

    with open(filepath, 'r') as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith('#'):
                continue
            if line.lower().startswith('data_'):
                if name is not None:
                    _finish_block(blocks, name, columns, rows, pairs)
                name = line[5:]
                columns, rows, pairs = [], [], OrderedDict()
                in_loop = False
                continue
            if name is None:
                raise ValueError(f"Content before the first data block in {filepath}: {line}")
            if line.lower().startswith('loop_'):
                in_loop = True
                columns, rows = [], []
                continue
            if line.startswith('_'):
                parts = line[1:].split()
                if in_loop and not rows:
                    columns.append(parts[0])
                else:
                    in_loop = False
                    pairs[parts[0]] = parts[1] if len(parts) > 1 else ''
                continue
            if in_loop:
                parts = line.split()
                if len(parts) < len(columns):
                    raise ValueError(
                        f"Row has {len(parts)} values for {len(columns)} columns "
                        f"in block '{name}' of {filepath}: {line}"
                    )
                rows.append(['' if p == '""' else p for p in parts[:len(columns)]])

    if name is not None:
        _finish_block(blocks, name, columns, rows, pairs)

    if not blocks:
        raise ValueError(f"No data blocks found in STAR file: {filepath}")

    return blocks


def read_star_table(filepath: Union[str, Path], block: str = None) -> pd.DataFrame:
    """Read one block, the first one if no name is given."""
    blocks = read_star(filepath)
    if block is None:
        return next(iter(blocks.values()))
    if block not in blocks:
        raise KeyError(f"Block 'data_{block}' not found in {filepath}")
    return blocks[block]


def _format_value(val) -> str:
    if isinstance(val, (float, np.floating)):
        return f"{val:.6f}"
    text = str(val)
    return text if text else '""'


def write_star(blocks: Dict[str, pd.DataFrame], filepath: Union[str, Path]) -> None:
    """
    Write data blocks as loop_ tables.

    Args:
        blocks: Mapping of block name to DataFrame
        filepath: Output STAR file path
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w') as f:
        for name, df in blocks.items():
            f.write(f"\ndata_{name}\n\nloop_\n")
            for i, col in enumerate(df.columns):
                f.write(f"_{col} #{i + 1}\n")
            for row in df.itertuples(index=False):
                f.write(" ".join(_format_value(val) for val in row) + "\n")
            f.write("\n")
