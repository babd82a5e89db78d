#!/usr/bin/env python3
"""
TomoBlob main command line entry point
Supports multi-command architecture: tomoblob <command> <args...>
"""

import sys
import argparse
from typing import List, Optional

from .commands.fit import FitCommand
from .commands.mesh import MeshCommand
from .commands.config import ConfigCommand
from .commands.version import VersionCommand


class TomoBlobCLI:
    """TomoBlob main command line interface class"""

    def __init__(self):
        self.commands = {
            'fit': FitCommand(),
            'mesh': MeshCommand(),
            'config': ConfigCommand(),
            'version': VersionCommand(),
        }

    def create_parser(self) -> argparse.ArgumentParser:
        """Create main argument parser"""
        parser = argparse.ArgumentParser(
            prog='tomoblob',
            description='TomoBlob - membrane blob surface fitting for cryo-ET tilt series',
            epilog='Use "tomoblob <command> --help" to view help for specific commands',
            formatter_class=argparse.RawDescriptionHelpFormatter
        )

        subparsers = parser.add_subparsers(
            dest='command',
            help='commands',
            metavar='<command>'
        )

        for name, command in self.commands.items():
            command.add_parser(subparsers)

        return parser

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the command line interface"""
        parser = self.create_parser()
        parsed_args = parser.parse_args(args)

        if not parsed_args.command:
            parser.print_help()
            return 1

        command = self.commands[parsed_args.command]
        return command.execute(parsed_args)


def main(args: Optional[List[str]] = None) -> int:
    """Main entry function"""
    cli = TomoBlobCLI()
    return cli.run(args)


if __name__ == '__main__':
    sys.exit(main())
