"""
Configuration manager
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.exceptions import ConfigurationError
from .defaults import DEFAULT_CONFIG

logger = logging.getLogger(__name__)


class ConfigManager:
    """
    Nested configuration with JSON or YAML persistence.

    Values from the file are merged over DEFAULT_CONFIG, so a partial file
    only needs the keys it changes.
    """

    def __init__(self, config_path: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        self.config_path = Path(config_path) if config_path else Path("tomoblob_config.yaml")
        self.config = copy.deepcopy(DEFAULT_CONFIG)
        if config is not None:
            self.update(config)
        elif config_path is not None:
            self.update(self._load_config())

    def _is_yaml(self) -> bool:
        return self.config_path.suffix in ('.yaml', '.yml')

    def _load_config(self) -> Dict[str, Any]:
        """Load the configuration file."""
        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                if self._is_yaml():
                    loaded = yaml.safe_load(f)
                else:
                    loaded = json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot parse configuration file {self.config_path}: {e}") from e

        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Configuration file {self.config_path} must hold a mapping")

        logger.debug("Loaded configuration from %s", self.config_path)
        return loaded

    def save_config(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Save the configuration file."""
        if config is None:
            config = self.config

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w', encoding='utf-8') as f:
            if self._is_yaml():
                yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(config, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dotted key."""
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set a value by dotted key."""
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def update(self, updates: Dict[str, Any]) -> None:
        """Merge a nested mapping into the configuration."""
        self._deep_update(self.config, updates)

    def _deep_update(self, base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> None:
        for key, value in update_dict.items():
            if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
                self._deep_update(base_dict[key], value)
            else:
                base_dict[key] = value

    def validate(self, require_inputs: bool = True) -> None:
        """
        Check the configuration for a fitting run.

        Raises:
            ConfigurationError: Listing every problem found
        """
        problems: List[str] = []

        def positive(key, allow_none=False):
            value = self.get(key)
            if value is None:
                if not allow_none:
                    problems.append(f"{key} is required")
                return
            try:
                if not float(value) > 0:
                    problems.append(f"{key} must be positive, got {value}")
            except (TypeError, ValueError):
                problems.append(f"{key} must be a number, got {value!r}")

        if require_inputs:
            for key in ("input.tomogram_set", "input.seed_list"):
                if not self.get(key):
                    problems.append(f"{key} is required")
            positive("seeds.sphere_thickness")
        else:
            positive("seeds.sphere_thickness", allow_none=True)

        positive("seeds.binning")
        positive("fitting.initial_binning")
        positive("fitting.final_binning", allow_none=True)
        positive("fitting.prior_sigma")
        positive("fitting.max_iterations")
        positive("kernel.leaflet_width")
        positive("kernel.contrast_ratio")
        positive("mesh.spacing_angstrom")
        positive("mesh.max_tilt_deg")
        positive("system.num_threads")
        positive("system.blob_workers")

        bands = self.get("fitting.sh_bands")
        if not isinstance(bands, int) or isinstance(bands, bool) or bands < 0:
            problems.append(f"fitting.sh_bands must be a non-negative integer, got {bands!r}")

        initial, final = self.get("fitting.initial_binning"), self.get("fitting.final_binning")
        if final is not None and not problems and float(final) > float(initial):
            problems.append(
                f"fitting.final_binning ({final}) must not exceed fitting.initial_binning ({initial})"
            )

        if problems:
            raise ConfigurationError("; ".join(problems))
