"""
Mesh command
tomoblob mesh <coefficients.csv> --pixel-size <A> [options]
"""

import argparse
from pathlib import Path

import numpy as np

from .base import BaseCommand


class MeshCommand(BaseCommand):
    """Re-tessellate fitted blob coefficients"""

    def get_name(self) -> str:
        return "mesh"

    def get_description(self) -> str:
        return "Build blob meshes from a coefficient table"

    def add_parser(self, subparsers: argparse._SubParsersAction) -> argparse.ArgumentParser:
        parser = subparsers.add_parser(
            self.name,
            help=self.description,
            description="Tessellate the blobs of a <tomo>_blob_coefficients.csv table "
                        "with a new edge length or elevation range"
        )

        parser.add_argument(
            'coefficients',
            type=str,
            help='Coefficient table written by "tomoblob fit"'
        )
        parser.add_argument(
            '--pixel-size',
            type=float,
            required=True,
            help='Unbinned tilt-series pixel size in Angstrom'
        )
        parser.add_argument(
            '--spacing',
            type=float,
            default=50.0,
            help='Mesh edge length in Angstrom (default: 50)'
        )
        parser.add_argument(
            '--max-tilt',
            type=float,
            default=20.0,
            help='Elevation range in degrees, +/- (default: 20)'
        )

        self.add_common_args(parser)

        return parser

    def execute(self, args: argparse.Namespace) -> int:
        """Execute mesh command"""
        try:
            import pandas as pd

            from ...core.tessellation import Mesh, tessellate
            from ...utils.mesh_io import write_mesh

            table_path = Path(args.coefficients)
            if not table_path.exists():
                print(f"Error: Coefficient table not found: {table_path}")
                return 1

            output_dir = Path(args.output) if args.output else table_path.parent
            output_dir.mkdir(parents=True, exist_ok=True)
            stem = table_path.stem.replace("_blob_coefficients", "")

            print("=== TomoBlob Mesh Generation ===")
            table = pd.read_csv(table_path)
            sh_columns = [c for c in table.columns if c.startswith("sh_")]
            sh_columns.sort(key=lambda c: int(c[3:]))
            print(f"Loaded {len(table)} blob(s) with {len(sh_columns)} SH coefficient(s)")

            merged = Mesh()
            for _, row in table.iterrows():
                coefficients = np.concatenate([
                    row[["x", "y", "z", "r0"]].to_numpy(dtype=np.float64),
                    row[sh_columns].to_numpy(dtype=np.float64),
                ])
                mesh = tessellate(coefficients, args.pixel_size, args.spacing, args.max_tilt)
                index = int(row["blob_index"])
                path = write_mesh(mesh, output_dir / f"{stem}_blob_{index}.obj")
                merged.insert(mesh)
                if args.verbose:
                    print(f"  - blob {index}: {mesh.vertex_count} vertices -> {path}")

            merged_path = write_mesh(merged, output_dir / f"{stem}_blobs.obj")
            print(f"Saved merged mesh ({merged.triangle_count} triangles) to: {merged_path}")
            return 0

        except Exception as e:
            print(f"Error occurred while building meshes: {e}")
            if args.verbose:
                import traceback
                traceback.print_exc()
            return 1
