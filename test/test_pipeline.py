#!/usr/bin/env python3
"""
End-to-end tests of blob fitting on synthetic tilt series
"""

import logging

import numpy as np
import pandas as pd
import pytest

from tomoblob.config import ConfigManager
from tomoblob.core.exceptions import BlobFitError, DegenerateVolumeError, TomogramNotFoundError
from tomoblob.core.pipeline import (
    BlobFittingPipeline,
    BlobSegmenter,
    create_blob_segmenter,
    run_blob_fitting,
)
from tomoblob.core.synthetic import create_synthetic_tilt_series, write_synthetic_dataset
from tomoblob.data.preprocessing import fourier_crop
from tomoblob.data.tomogram_set import TomogramSet
from tomoblob.utils.marker_utils import SeedSphere, write_seed_markers
from tomoblob.utils.star_utils import read_star, write_star

TRUE_CENTER = (85.0, 78.0, 45.0)
TRUE_RADIUS = 30.0

# Thin membrane, narrow kernel envelope and a weak frame-edge prior, so the
# small synthetic blobs are not pulled towards the middle of the search range.
SEGMENTER_OPTIONS = dict(
    sphere_thickness=24.0,
    sh_bands=1,
    prior_sigma=3.0,
    kernel_falloff=2.0,
    leaflet_width=1.5,
    leaflet_spacing=20.0,
)

CONFIG_OVERRIDES = {
    "seeds": {"sphere_thickness": 24.0},
    "fitting": {"initial_binning": 2.0, "sh_bands": 1, "prior_sigma": 3.0},
    "kernel": {"falloff": 2.0, "leaflet_width": 1.5, "leaflet_spacing_angstrom": 20.0},
    "preprocessing": {"highpass_sigma_angstrom": 0.0},
    "output": {"write_meshes": False},
    "system": {"num_threads": 1},
}


@pytest.fixture(scope="module")
def series():
    return create_synthetic_tilt_series(
        blobs=[(TRUE_CENTER, TRUE_RADIUS)],
        membrane_thickness=2.0,
    )


def offset_seed(series, dx=2.0):
    seed = series.seeds[0]
    x, y, z = seed.center
    return SeedSphere(seed.id, (x - dx, y, z), seed.radius)


def fit(series, binning, **options):
    segmenter = BlobSegmenter(binning=binning, **dict(SEGMENTER_OPTIONS, **options))
    stack = fourier_crop(series.stack, binning)
    return segmenter.segment_blob(offset_seed(series), stack, series.pixel_size, series.projections)


def config_for(paths, output_dir, **sections):
    config = ConfigManager(config=CONFIG_OVERRIDES)
    config.update({
        "input": {"tomogram_set": str(paths["tomogram_set"]), "seed_list": str(paths["seed_list"])},
        "output": {"directory": str(output_dir)},
    })
    config.update(sections)
    return config


def test_recovers_synthetic_vesicle(series):
    blob = fit(series, 1.0)

    assert len(blob.coefficients) == 4 + (1 + 1) ** 2
    np.testing.assert_allclose(blob.center, TRUE_CENTER, atol=1.0)
    assert blob.mean_radius == pytest.approx(TRUE_RADIUS, abs=1.0)
    assert [stage.band for stage in blob.stages] == [0, 1]
    np.testing.assert_allclose(blob.coefficients[5:8], 0.0)


def test_binning_round_trip(series):
    fine = fit(series, 1.0)
    coarse = fit(series, 2.0)

    np.testing.assert_allclose(coarse.center, fine.center, atol=1.0)
    assert coarse.mean_radius == pytest.approx(fine.mean_radius, abs=1.0)


def test_refinement_pass(series):
    segmenter = BlobSegmenter(binning=4.0, final_binning=2.0, **SEGMENTER_OPTIONS)
    assert segmenter.refines
    assert segmenter.binnings == [4.0, 2.0]

    blob = segmenter.segment_blob(
        offset_seed(series), fourier_crop(series.stack, 4.0), series.pixel_size, series.projections,
        fine_stack=fourier_crop(series.stack, 2.0),
    )

    assert blob.geometry.binning == 2.0
    assert [stage.band for stage in blob.stages] == [0, 1, 1]
    np.testing.assert_allclose(blob.center, TRUE_CENTER, atol=1.5)

    with pytest.raises(ValueError):
        segmenter.segment_blob(offset_seed(series), fourier_crop(series.stack, 4.0),
                               series.pixel_size, series.projections)


def test_empty_tilt_series_is_degenerate(series):
    segmenter = BlobSegmenter(binning=2.0, **SEGMENTER_OPTIONS)
    empty = np.zeros((len(series.projections), 80, 80), dtype=np.float32)

    with pytest.raises(DegenerateVolumeError):
        segmenter.segment_blob(series.seeds[0], empty, series.pixel_size, series.projections)


def test_zero_radius_seed_is_a_blob_failure(series):
    segmenter = BlobSegmenter(binning=2.0, **SEGMENTER_OPTIONS)
    flat = SeedSphere(7, TRUE_CENTER, 0.0)

    with pytest.raises(BlobFitError, match="non-positive radius"):
        segmenter.segment_blob(flat, fourier_crop(series.stack, 2.0),
                               series.pixel_size, series.projections)


def test_diagnostics(series, tmp_path):
    pytest.importorskip("matplotlib")
    segmenter = BlobSegmenter(binning=2.0, **SEGMENTER_OPTIONS)
    prefix = str(tmp_path / "diag" / "TS_blob_0")

    segmenter.segment_blob(series.seeds[0], fourier_crop(series.stack, 2.0),
                           series.pixel_size, series.projections, diag_prefix=prefix)

    for suffix in ("_tilt_space_map.mrc", "_tilt_space_kernel.mrc",
                   "_tilt_space_correlation.mrc", "_tilt_space_plot_SH_1.mrc", "_fit.png"):
        assert (tmp_path / "diag" / ("TS_blob_0" + suffix)).exists()


def test_create_blob_segmenter_scales_thickness():
    config = ConfigManager(config={"seeds": {"binning": 4.0, "sphere_thickness": 5.0},
                                   "fitting": {"final_binning": 2}})
    segmenter = create_blob_segmenter(config)

    assert segmenter.sphere_thickness == 20.0
    assert segmenter.final_binning == 2.0
    assert segmenter.binning == 8.0


def test_pipeline_isolates_blobs_and_tomograms(tmp_path):
    data_dir = tmp_path / "data"
    paths = write_synthetic_dataset(data_dir, name="TS_01",
                                    blobs=[(TRUE_CENTER, TRUE_RADIUS)], membrane_thickness=2.0)

    # A seed far outside the field of view cannot be fitted
    with open(paths["seeds"]) as f:
        markers = f.read()
    far = '<marker id="2" x="9000" y="9000" z="40" r="1" g="1" b="0" radius="30"/>\n'
    # A seed with zero radius is rejected on its own
    flat = '<marker id="3" x="85" y="78" z="45" r="1" g="1" b="0" radius="0"/>\n'
    with open(paths["seeds"], "w") as f:
        f.write(markers.replace("</marker_set>", far + flat + "</marker_set>"))

    # A second tomogram whose tilt series is missing
    blocks = read_star(paths["tomogram_set"])
    broken = blocks["global"].copy()
    broken["rlnTomoName"] = "TS_00"
    broken["rlnTomoTiltSeriesName"] = "missing.mrc:mrc"
    blocks["global"] = pd.concat([blocks["global"], broken], ignore_index=True)
    blocks["TS_00"] = blocks["TS_01"].copy()
    write_star(blocks, paths["tomogram_set"])
    with open(paths["seed_list"], "a") as f:
        f.write(f"TS_00 {paths['seeds'].name}\n")

    output_dir = tmp_path / "out"
    batch = run_blob_fitting(config_for(paths, output_dir))

    assert not batch.success
    assert list(batch.failed_tomograms) == ["TS_00"]

    [result] = batch.tomograms
    assert result.name == "TS_01"
    assert len(result.fits) == 1
    assert [(index, seed_id) for index, seed_id, _ in result.failures] == [(1, 2), (2, 3)]

    table = pd.read_csv(result.coefficients_path)
    assert list(table.columns[:6]) == ["blob_index", "seed_id", "x", "y", "z", "r0"]
    assert list(table["blob_index"]) == [0]
    assert table["r0"].iloc[0] == pytest.approx(TRUE_RADIUS, abs=1.5)

    annotated = TomogramSet.read(batch.blob_tomograms_star).global_table.set_index("rlnTomoName")
    assert annotated.loc["TS_01", "rlnTomoBlobCoefficientsFile"] == str(result.coefficients_path)
    assert annotated.loc["TS_00", "rlnTomoBlobCoefficientsFile"] == "empty"
    assert batch.tomograms_star.exists()


def test_parallel_blob_workers_keep_seed_order(tmp_path):
    paths = write_synthetic_dataset(
        tmp_path / "data",
        blobs=[((55.0, 55.0, 40.0), 16.0), ((110.0, 108.0, 40.0), 20.0)],
        membrane_thickness=2.0,
    )
    config = config_for(paths, tmp_path / "out", system={"blob_workers": 2})

    batch = BlobFittingPipeline(config).run()

    assert batch.success
    [result] = batch.tomograms
    assert [fit.seed.id for fit in result.fits] == [1, 2]
    assert result.fits[0].mean_radius == pytest.approx(16.0, abs=1.5)
    assert result.fits[1].mean_radius == pytest.approx(20.0, abs=1.5)


def test_pipeline_writes_meshes(tmp_path):
    pytest.importorskip("open3d")
    from tomoblob.utils.mesh_io import read_mesh

    paths = write_synthetic_dataset(tmp_path / "data", blobs=[(TRUE_CENTER, TRUE_RADIUS)],
                                    membrane_thickness=2.0)
    output_dir = tmp_path / "out"
    batch = run_blob_fitting(config_for(paths, output_dir, output={"write_meshes": True}))

    [result] = batch.tomograms
    assert result.mesh_path == output_dir / "synthetic_blobs.obj"
    assert (output_dir / "synthetic_blob_0.obj").exists()

    mesh = read_mesh(result.mesh_path)
    assert mesh.vertex_count == result.mesh.vertex_count
    assert mesh.triangle_count == result.mesh.triangle_count


def test_unknown_tomogram_in_seed_list(tmp_path):
    paths = write_synthetic_dataset(tmp_path / "data")
    with open(paths["seed_list"], "a") as f:
        f.write("TS_99 synthetic_seeds.cmm\n")

    with pytest.raises(TomogramNotFoundError):
        run_blob_fitting(config_for(paths, tmp_path / "out"))

    assert not (tmp_path / "out").exists()


def test_unconverged_bands_are_flagged_with_the_optimiser_message(tmp_path, caplog):
    paths = write_synthetic_dataset(tmp_path / "data", name="TS_01",
                                    blobs=[(TRUE_CENTER, TRUE_RADIUS)], membrane_thickness=2.0)
    x, y, z = TRUE_CENTER
    write_seed_markers([SeedSphere(1, (x - 4.0, y, z), TRUE_RADIUS)], paths["seeds"])
    config = config_for(paths, tmp_path / "out", fitting={"max_iterations": 1})

    with caplog.at_level(logging.WARNING, logger="tomoblob"):
        batch = run_blob_fitting(config)

    [result] = batch.tomograms
    table = pd.read_csv(result.coefficients_path)
    assert not table["converged"].iloc[0]

    [stage] = [stage for stage in result.fits[0].stages if stage.band == 1]
    assert not stage.converged
    assert stage.message
    assert any("band 1 did not converge" in record.getMessage() and stage.message in record.getMessage()
               for record in caplog.records)
