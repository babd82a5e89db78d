"""
Mesh file output through Open3D
"""

from pathlib import Path
from typing import Union

import numpy as np
import open3d as o3d

from ..core.tessellation import Mesh


def to_open3d(mesh: Mesh) -> o3d.geometry.TriangleMesh:
    return o3d.geometry.TriangleMesh(
        o3d.utility.Vector3dVector(mesh.vertices),
        o3d.utility.Vector3iVector(mesh.triangles.astype(np.int32)),
    )


def write_mesh(mesh: Mesh, filepath: Union[str, Path]) -> Path:
    """
    Write a mesh; the format follows the file extension (.obj, .ply, .stl).

    Returns:
        Path of the written file
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    triangle_mesh = to_open3d(mesh)
    if filepath.suffix.lower() == '.stl':
        triangle_mesh.compute_triangle_normals()

    ok = o3d.io.write_triangle_mesh(str(filepath), triangle_mesh, write_ascii=True)
    if not ok:
        raise RuntimeError(f"Failed to write mesh file {filepath}")

    return filepath


def read_mesh(filepath: Union[str, Path]) -> Mesh:
    """Read a mesh file into a Mesh."""
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Mesh file not found: {filepath}")

    triangle_mesh = o3d.io.read_triangle_mesh(str(filepath))
    return Mesh(np.asarray(triangle_mesh.vertices), np.asarray(triangle_mesh.triangles))
