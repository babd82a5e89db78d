"""
Version information command
tomoblob version [options]
"""

import argparse
import sys

from .base import BaseCommand


class VersionCommand(BaseCommand):
    """Version information command"""

    def get_name(self) -> str:
        return "version"

    def get_description(self) -> str:
        return "Display TomoBlob version information"

    def add_parser(self, subparsers: argparse._SubParsersAction) -> argparse.ArgumentParser:
        parser = subparsers.add_parser(
            self.name,
            help=self.description,
            description="Display TomoBlob version information and system information"
        )

        parser.add_argument(
            '--short', '-s',
            action='store_true',
            help='Show only version number'
        )

        self.add_common_args(parser)

        return parser

    def execute(self, args: argparse.Namespace) -> int:
        """Execute version command"""
        try:
            if args.short:
                print(self._get_version())
            else:
                self._print_version_info(args.verbose)
            return 0

        except Exception as e:
            print(f"Error occurred while getting version information: {e}")
            if args.verbose:
                import traceback
                traceback.print_exc()
            return 1

    def _get_version(self) -> str:
        from ... import __version__
        return __version__

    def _print_version_info(self, verbose: bool) -> None:
        """Print version information"""
        print(f"TomoBlob {self._get_version()}")

        if verbose:
            print(f"Python version: {sys.version}")
            print(f"Platform: {sys.platform}")

            import numpy
            import scipy
            import mrcfile
            import pandas
            print(f"NumPy version: {numpy.__version__}")
            print(f"SciPy version: {scipy.__version__}")
            print(f"mrcfile version: {mrcfile.__version__}")
            print(f"pandas version: {pandas.__version__}")

            try:
                import open3d
                print(f"Open3D version: {open3d.__version__}")
            except ImportError:
                print("Open3D: Not installed")
