"""
Seed sphere input

Seeds are picked in ChimeraX/Chimera and saved as marker files (.cmm),
one <marker .../> element per line. A seed list file pairs tomogram
names with their marker files.
"""

import re
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Tuple, Union

from ..core.exceptions import SeedFileError

_ATTRIBUTE = re.compile(r'([A-Za-z_][\w]*)\s*=\s*"([^"]*)"')
_REQUIRED = ('id', 'x', 'y', 'z', 'radius')


class SeedSphere(NamedTuple):
    """Hand-picked blob seed in unbinned tomogram pixels."""
    id: int
    center: Tuple[float, float, float]
    radius: float


def parse_marker_line(line: str, binning: float = 1.0) -> SeedSphere:
    """Parse one <marker .../> element, scaling position and radius by binning."""
    attributes = dict(_ATTRIBUTE.findall(line))
    missing = [key for key in _REQUIRED if key not in attributes]
    if missing:
        raise ValueError(f"missing attribute(s) {', '.join(missing)}")

    marker_id = int(float(attributes['id']))
    center = tuple(binning * float(attributes[key]) for key in ('x', 'y', 'z'))
    radius = binning * float(attributes['radius'])

    return SeedSphere(marker_id, center, radius)


def read_seed_markers(filepath: Union[str, Path], binning: float = 1.0) -> List[SeedSphere]:
    """
    Read seed spheres from a marker file.

    Args:
        filepath: ChimeraX marker file
        binning: Binning of the marker coordinates relative to the tilt series

    Returns:
        Seed spheres in file order

    Raises:
        SeedFileError: If the file cannot be read or a marker line is malformed
    """
    filepath = Path(filepath)
    try:
        with open(filepath, 'r') as f:
            lines = f.readlines()
    except OSError as e:
        raise SeedFileError(filepath, f"Unable to read seed file: {e.strerror or e}") from e

    seeds = []
    for number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line.startswith('<marker '):
            continue
        try:
            seeds.append(parse_marker_line(line, binning))
        except ValueError as e:
            raise SeedFileError(filepath, f"Bad syntax in marker: {e}", number) from e

    return seeds


def write_seed_markers(seeds: Iterable[SeedSphere],
                       filepath: Union[str, Path],
                       binning: float = 1.0,
                       name: str = "seeds") -> None:
    """Write seed spheres as a ChimeraX marker set, dividing by binning."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w') as f:
        f.write(f'<marker_set name="{name}">\n')
        for seed in seeds:
            x, y, z = (c / binning for c in seed.center)
            f.write(
                f'<marker id="{seed.id}" x="{x:.3f}" y="{y:.3f}" z="{z:.3f}" '
                f'r="1" g="1" b="0" radius="{seed.radius / binning:.3f}"/>\n'
            )
        f.write('</marker_set>\n')


def read_seed_list(filepath: Union[str, Path]) -> "OrderedDict[str, Path]":
    """
    Read tomogram-name / marker-file pairs.

    Relative marker paths are resolved against the list file's folder.
    The result is ordered by tomogram name.
    """
    filepath = Path(filepath)
    try:
        with open(filepath, 'r') as f:
            lines = f.readlines()
    except OSError as e:
        raise SeedFileError(filepath, f"Unable to read seed list: {e.strerror or e}") from e

    pairs: Dict[str, Path] = {}
    for number, raw in enumerate(lines, start=1):
        line = raw.split('#', 1)[0].strip()
        if not line:
            continue
        parts = line.split()
        if len(parts) != 2:
            raise SeedFileError(
                filepath, f"Expected 'tomogram-name seeds-file', got {len(parts)} field(s)", number
            )
        name, seeds_path = parts
        seeds_path = Path(seeds_path)
        if not seeds_path.is_absolute():
            seeds_path = filepath.parent / seeds_path
        pairs[name] = seeds_path

    return OrderedDict(sorted(pairs.items()))
