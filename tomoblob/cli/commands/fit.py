"""
Blob fitting command
tomoblob fit --t tomograms.star --i seeds.txt --th 20 [options]
"""

import argparse
import logging
from pathlib import Path

from .base import BaseCommand
from ...core.exceptions import ConfigurationError, InputError


class FitCommand(BaseCommand):
    """Fit spherical-harmonics surfaces to seeded membrane blobs"""

    def get_name(self) -> str:
        return "fit"

    def get_description(self) -> str:
        return "Fit membrane blob surfaces in tilt space"

    def add_parser(self, subparsers: argparse._SubParsersAction) -> argparse.ArgumentParser:
        parser = subparsers.add_parser(
            self.name,
            help=self.description,
            description="""
Fit the membrane surface of every seeded blob directly in the tilt series.

Each seed sphere is unrolled into a tilt-space map (azimuth x radius x frame),
matched against a bilayer kernel, and a spherical-harmonics radius function is
fitted band by band. Meshes (OBJ), a coefficient table (CSV) and annotated
tomogram tables (STAR) are written to the output directory.
            """,
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Fit blobs seeded in bin-4 marker files, membrane search range of 20 px
  tomoblob fit --t tomograms.star --i seeds.txt --th 20 --sbin 4 -o blobs/

  # Coarse pass at bin 8, refinement at bin 2, three SH bands
  tomoblob fit --t tomograms.star --i seeds.txt --th 20 --bin0 8 --bin1 2 --n 3

  # Try the pipeline on a synthetic vesicle
  tomoblob fit --create-synthetic --th 24 --bin0 2 -o synthetic_run/
            """
        )

        io_group = parser.add_argument_group('Input')
        io_group.add_argument(
            '--t', '--tomograms',
            dest='tomograms',
            type=str,
            help='Tomogram set STAR file'
        )
        io_group.add_argument(
            '--i', '--seeds',
            dest='seeds',
            type=str,
            help='Seed list: one "<tomogram name> <marker file>" pair per line'
        )
        io_group.add_argument(
            '--th', '--thickness',
            dest='thickness',
            type=float,
            help='Radial search range around the seed radius, in seed pixels'
        )
        io_group.add_argument(
            '--sbin',
            type=float,
            help='Binning of the seed marker coordinates (default: 1)'
        )
        io_group.add_argument(
            '--create-synthetic',
            action='store_true',
            help='Generate a synthetic vesicle tilt series in the output directory and fit it'
        )

        fit_group = parser.add_argument_group('Fitting')
        fit_group.add_argument(
            '--bin0',
            type=float,
            help='Binning of the fitting pass (default: 8)'
        )
        fit_group.add_argument(
            '--bin1',
            type=float,
            help='Binning of an optional refinement pass, below --bin0'
        )
        fit_group.add_argument(
            '--n',
            type=int,
            help='Highest spherical-harmonics band (default: 2)'
        )
        fit_group.add_argument(
            '--sig',
            type=float,
            help='Frame-edge prior sigma in unbinned pixels (default: 100)'
        )
        fit_group.add_argument(
            '--max-iters',
            type=int,
            help='L-BFGS iteration cap per band (default: 1000)'
        )

        pre_group = parser.add_argument_group('Preprocessing')
        pre_group.add_argument(
            '--frad',
            type=float,
            help='Fiducial erasure radius in Angstrom (default: 100)'
        )
        pre_group.add_argument(
            '--hp',
            type=float,
            help='High-pass sigma in Angstrom, 0 disables (default: 300)'
        )

        out_group = parser.add_argument_group('Output')
        out_group.add_argument(
            '--diag',
            action='store_true',
            default=None,
            help='Write tilt-space diagnostic volumes and plots'
        )
        out_group.add_argument(
            '--no-meshes',
            action='store_true',
            help='Skip writing OBJ meshes'
        )
        out_group.add_argument(
            '--mesh-spacing',
            type=float,
            help='Mesh edge length in Angstrom (default: 50)'
        )
        out_group.add_argument(
            '--max-tilt',
            type=float,
            help='Mesh elevation range in degrees, +/- (default: 20)'
        )

        sys_group = parser.add_argument_group('System')
        sys_group.add_argument(
            '--j',
            type=int,
            help='FFT thread count (default: 6)'
        )
        sys_group.add_argument(
            '--blob-workers',
            type=int,
            help='Number of blobs fitted in parallel (default: 1)'
        )

        self.add_common_args(parser)
        self.parser = parser

        return parser

    def execute(self, args: argparse.Namespace) -> int:
        """Execute blob fitting"""
        from ...core.pipeline import BlobFittingPipeline
        from ...utils.logging import initialize_logger

        try:
            config = self.load_config(args, self._overrides(args))
        except ConfigurationError as e:
            return self._usage_error(e)

        output_dir = Path(config.get("output.directory"))

        log = initialize_logger(
            directory=output_dir,
            filename=config.get("output.log_file") or False,
            level=logging.DEBUG if args.verbose else logging.INFO,
        )

        print("=== TomoBlob Surface Fitting ===")
        print(f"Output directory: {output_dir}")

        if args.create_synthetic:
            self._create_synthetic(config, output_dir)

        try:
            config.validate()
        except ConfigurationError as e:
            return self._usage_error(e)

        if args.verbose:
            print("Fitting parameters:")
            print(f"  - Tomogram set: {config.get('input.tomogram_set')}")
            print(f"  - Seed list: {config.get('input.seed_list')}")
            print(f"  - Sphere thickness: {config.get('seeds.sphere_thickness')} (seed binning {config.get('seeds.binning')})")
            print(f"  - Binning: {config.get('fitting.initial_binning')} -> {config.get('fitting.final_binning')}")
            print(f"  - SH bands: {config.get('fitting.sh_bands')}")

        print("\n=== Fitting Blobs ===")
        try:
            pipeline = BlobFittingPipeline(config)
            batch = pipeline.run()
        except InputError as e:
            print(f"Error: {e}")
            log.error("Input validation failed: %s", e)
            return 1

        print("\n=== Summary ===")
        for result in batch.tomograms:
            print(f"{result.name}: {len(result.fits)} blob(s) fitted, {len(result.failures)} skipped")
            for index, seed_id, message in result.failures:
                print(f"  - blob {index} (seed {seed_id}): {message}")
        for name, message in batch.failed_tomograms.items():
            print(f"{name}: FAILED ({message})")

        print(f"Tomogram table: {batch.tomograms_star}")
        print(f"Blob tomogram table: {batch.blob_tomograms_star}")

        return 0 if batch.success else 1

    def _overrides(self, args: argparse.Namespace) -> dict:
        """Map command line flags onto configuration keys."""
        overrides = {
            "input.tomogram_set": args.tomograms,
            "input.seed_list": args.seeds,
            "seeds.sphere_thickness": args.thickness,
            "seeds.binning": args.sbin,
            "fitting.initial_binning": args.bin0,
            "fitting.final_binning": args.bin1,
            "fitting.sh_bands": args.n,
            "fitting.prior_sigma": args.sig,
            "fitting.max_iterations": args.max_iters,
            "preprocessing.fiducial_radius_angstrom": args.frad,
            "preprocessing.highpass_sigma_angstrom": args.hp,
            "mesh.spacing_angstrom": args.mesh_spacing,
            "mesh.max_tilt_deg": args.max_tilt,
            "output.directory": args.output,
            "output.diagnostics": args.diag,
            "system.num_threads": args.j,
            "system.blob_workers": args.blob_workers,
        }
        if args.no_meshes:
            overrides["output.write_meshes"] = False
        return overrides

    def _create_synthetic(self, config, output_dir: Path) -> None:
        from ...core.synthetic import write_synthetic_dataset

        print("Creating synthetic tilt series...")
        paths = write_synthetic_dataset(
            output_dir / "synthetic",
            seed_binning=float(config.get("seeds.binning")),
        )
        config.set("input.tomogram_set", str(paths["tomogram_set"]))
        config.set("input.seed_list", str(paths["seed_list"]))
        print(f"Saved synthetic tilt series to: {paths['tilt_series']}")

    def _usage_error(self, error: Exception) -> int:
        self.parser.print_usage()
        print(f"tomoblob fit: error: {error}")
        return 2
