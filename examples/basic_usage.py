#!/usr/bin/env python3
"""
TomoBlob basic usage example
"""

import subprocess
import sys
from pathlib import Path

import yaml

# The synthetic vesicle is small, so the kernel and prior are narrowed
SMALL_BLOB_CONFIG = {
    "fitting": {"sh_bands": 2, "prior_sigma": 3.0},
    "kernel": {"falloff": 2.0, "leaflet_width": 1.5, "leaflet_spacing_angstrom": 20.0},
    "preprocessing": {"highpass_sigma_angstrom": 0.0},
}


def run_command(cmd):
    """Run a command and show its output"""
    print(f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, capture_output=True, text=True)
    print(f"Return code: {result.returncode}")
    if result.stdout:
        print(f"Output:\n{result.stdout}")
    if result.stderr:
        print(f"Errors:\n{result.stderr}")
    return result.returncode


def main():
    """Basic usage example"""
    print("=== TomoBlob basic usage example ===\n")

    cli = [sys.executable, "-m", "tomoblob.cli.main"]
    work_dir = Path("examples_blob_results")
    work_dir.mkdir(exist_ok=True)
    defaults_file = work_dir / "defaults.yaml"
    config_file = work_dir / "small_blobs.yaml"
    config_file.write_text(yaml.safe_dump(SMALL_BLOB_CONFIG))

    # 1. Version information
    print("1. Version information:")
    run_command(cli + ["version", "--verbose"])
    print()

    # 2. Write a configuration file with the defaults
    print("2. Write the default configuration:")
    run_command(cli + ["config", "init", str(defaults_file), "--force"])
    print()

    # 3. Show the kernel settings after merging the small-blob file
    print("3. Show the effective kernel settings:")
    run_command(cli + ["config", "-c", str(config_file), "show", "--section", "kernel"])
    print()

    # 4. Fit the synthetic vesicle
    print("4. Fit blobs on synthetic data:")
    run_command(cli + [
        "fit", "--create-synthetic", "-c", str(config_file),
        "--th", "24", "--bin0", "2",
        "--output", str(work_dir), "--verbose",
    ])
    print()

    # 5. Re-tessellate the fitted coefficients with finer triangles
    print("5. Re-tessellate the fitted blobs:")
    run_command(cli + [
        "mesh", str(work_dir / "synthetic_blob_coefficients.csv"),
        "--pixel-size", "10.0", "--spacing", "30",
        "--output", str(work_dir / "fine_meshes"),
    ])
    print()

    print("=== Example finished ===")


if __name__ == "__main__":
    main()
