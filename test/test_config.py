#!/usr/bin/env python3
"""
Tests for the configuration manager
"""

import json

import pytest
import yaml

from tomoblob.config import DEFAULT_CONFIG, ConfigManager
from tomoblob.core.exceptions import ConfigurationError


def valid_config(tmp_path):
    return ConfigManager(config={
        "input": {"tomogram_set": str(tmp_path / "tomograms.star"), "seed_list": str(tmp_path / "seeds.txt")},
        "seeds": {"sphere_thickness": 20.0},
    })


def test_defaults_are_not_shared():
    config = ConfigManager()
    config.set("fitting.sh_bands", 5)

    assert DEFAULT_CONFIG["fitting"]["sh_bands"] == 2
    assert ConfigManager().get("fitting.sh_bands") == 2


def test_dotted_access():
    config = ConfigManager()
    assert config.get("kernel.contrast_ratio") == 5.0
    assert config.get("kernel.missing", "fallback") == "fallback"

    config.set("extra.nested.value", 3)
    assert config.get("extra.nested.value") == 3


def test_partial_file_is_merged_over_defaults(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text(yaml.safe_dump({"fitting": {"sh_bands": 4}, "system": {"num_threads": 2}}))

    config = ConfigManager(str(path))

    assert config.get("fitting.sh_bands") == 4
    assert config.get("fitting.initial_binning") == 8.0
    assert config.get("system.num_threads") == 2


def test_save_and_reload(tmp_path):
    for name in ("run.yaml", "run.json"):
        config = valid_config(tmp_path)
        config.config_path = tmp_path / name
        config.set("fitting.final_binning", 2.0)
        config.save_config()

        reloaded = ConfigManager(str(tmp_path / name))
        assert reloaded.config == config.config

    with open(tmp_path / "run.json") as f:
        assert json.load(f)["fitting"]["final_binning"] == 2.0


def test_missing_and_broken_files(tmp_path):
    with pytest.raises(ConfigurationError):
        ConfigManager(str(tmp_path / "missing.yaml"))

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigurationError):
        ConfigManager(str(broken))

    listing = tmp_path / "list.yaml"
    listing.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigurationError):
        ConfigManager(str(listing))


def test_validate_accepts_complete_configuration(tmp_path):
    valid_config(tmp_path).validate()
    ConfigManager().validate(require_inputs=False)


def test_validate_reports_every_problem(tmp_path):
    config = ConfigManager()
    config.set("input.tomogram_set", None)
    config.set("fitting.prior_sigma", -1)
    config.set("fitting.sh_bands", 1.5)

    with pytest.raises(ConfigurationError) as info:
        config.validate()

    message = str(info.value)
    assert "input.tomogram_set is required" in message
    assert "input.seed_list is required" in message
    assert "seeds.sphere_thickness is required" in message
    assert "fitting.prior_sigma must be positive" in message
    assert "fitting.sh_bands must be a non-negative integer" in message
    assert isinstance(info.value, ValueError)


def test_validate_binning_order(tmp_path):
    config = valid_config(tmp_path)
    config.set("fitting.final_binning", 16.0)

    with pytest.raises(ConfigurationError, match="final_binning"):
        config.validate()

    config.set("fitting.final_binning", "two")
    with pytest.raises(ConfigurationError, match="must be a number"):
        config.validate()
