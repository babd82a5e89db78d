"""
Configuration management command
tomoblob config <action> [options]
"""

import argparse
from pathlib import Path

import yaml

from .base import BaseCommand
from ...config.manager import ConfigManager
from ...core.exceptions import ConfigurationError


class ConfigCommand(BaseCommand):
    """Configuration management command"""

    def get_name(self) -> str:
        return "config"

    def get_description(self) -> str:
        return "Manage TomoBlob configuration"

    def add_parser(self, subparsers: argparse._SubParsersAction) -> argparse.ArgumentParser:
        parser = subparsers.add_parser(
            self.name,
            help=self.description,
            description="Manage TomoBlob configuration files"
        )

        subparsers_config = parser.add_subparsers(
            dest='action',
            help='Configuration operations',
            metavar='<action>'
        )

        init_parser = subparsers_config.add_parser(
            'init',
            help='Write a configuration file holding the defaults'
        )
        init_parser.add_argument(
            'path',
            nargs='?',
            default=None,
            help='Target file (default: tomoblob_config.<format>)'
        )
        init_parser.add_argument(
            '--format',
            choices=['yaml', 'json'],
            default='yaml',
            help='File format when no path is given (default: yaml)'
        )
        init_parser.add_argument(
            '--force',
            action='store_true',
            help='Overwrite existing configuration file'
        )

        show_parser = subparsers_config.add_parser(
            'show',
            help='Show the effective configuration'
        )
        show_parser.add_argument(
            '--section',
            type=str,
            help='Show specific configuration section'
        )

        validate_parser = subparsers_config.add_parser(
            'validate',
            help='Validate configuration file'
        )
        validate_parser.add_argument(
            'config_file',
            type=str,
            help='Configuration file to validate'
        )
        validate_parser.add_argument(
            '--no-inputs',
            action='store_true',
            help='Do not require input paths and sphere thickness'
        )

        self.add_common_args(parser)

        return parser

    def execute(self, args: argparse.Namespace) -> int:
        """Execute configuration command"""
        try:
            if not args.action:
                print("Error: Please specify a configuration action (init, show, validate)")
                return 1

            if args.action == 'init':
                return self._init_config(args)
            elif args.action == 'show':
                return self._show_config(args)
            elif args.action == 'validate':
                return self._validate_config(args)
            else:
                print(f"Error: Unknown configuration action: {args.action}")
                return 1

        except ConfigurationError as e:
            print(f"Configuration error: {e}")
            return 1
        except Exception as e:
            print(f"Error occurred during configuration operation: {e}")
            if args.verbose:
                import traceback
                traceback.print_exc()
            return 1

    def _init_config(self, args: argparse.Namespace) -> int:
        """Write the default configuration"""
        config_file = Path(args.path) if args.path else Path(f"tomoblob_config.{args.format}")

        if config_file.exists() and not args.force:
            print(f"Configuration file already exists: {config_file}")
            print("Use --force to overwrite the existing configuration")
            return 1

        manager = ConfigManager()
        manager.config_path = config_file
        manager.save_config()

        print(f"Configuration file created: {config_file}")
        return 0

    def _show_config(self, args: argparse.Namespace) -> int:
        """Print the defaults merged with --config"""
        manager = ConfigManager(args.config) if args.config else ConfigManager()

        config = manager.config
        if args.section:
            if args.section not in config:
                print(f"Configuration section '{args.section}' does not exist")
                return 1
            config = {args.section: config[args.section]}

        print(yaml.safe_dump(config, default_flow_style=False, sort_keys=False).rstrip())
        return 0

    def _validate_config(self, args: argparse.Namespace) -> int:
        """Validate configuration file"""
        manager = ConfigManager(args.config_file)
        manager.validate(require_inputs=not args.no_inputs)

        print(f"Configuration file is valid: {args.config_file}")
        return 0
