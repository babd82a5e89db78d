#!/usr/bin/env python3
"""
Tests for STAR, marker, seed-list, MRC and tomogram-set handling
"""

import numpy as np
import pandas as pd
import pytest

from tomoblob.core.exceptions import InputError, SeedFileError, TomogramNotFoundError
from tomoblob.core.synthetic import create_synthetic_tilt_series, write_synthetic_dataset
from tomoblob.data.tomogram_set import TomogramSet, format_vector, parse_vector, read_fiducials
from tomoblob.utils.marker_utils import (
    SeedSphere,
    read_seed_list,
    read_seed_markers,
    write_seed_markers,
)
from tomoblob.utils.mrc_utils import MRCReader, MRCWriter
from tomoblob.utils.star_utils import read_star, read_star_table, write_star


MARKERS = """<marker_set name="vesicles">
<marker id="1" x="10.5" y="20" z="30" r="1" g="1" b="0" radius="8"/>
<marker id="7" x="1" y="2" z="3" r="1" g="1" b="0" radius="2.5"/>
</marker_set>
"""


def test_read_seed_markers_applies_binning(tmp_path):
    path = tmp_path / "seeds.cmm"
    path.write_text(MARKERS)

    seeds = read_seed_markers(path, binning=4.0)

    assert seeds == [
        SeedSphere(1, (42.0, 80.0, 120.0), 32.0),
        SeedSphere(7, (4.0, 8.0, 12.0), 10.0),
    ]


def test_seed_markers_round_trip(tmp_path):
    seeds = [SeedSphere(3, (12.0, 16.0, 20.0), 8.0)]
    path = tmp_path / "out.cmm"
    write_seed_markers(seeds, path, binning=2.0)

    assert read_seed_markers(path, binning=2.0) == seeds


def test_bad_marker_reports_line(tmp_path):
    path = tmp_path / "bad.cmm"
    path.write_text('<marker_set name="x">\n<marker id="1" x="1" y="2" radius="3"/>\n</marker_set>\n')

    with pytest.raises(SeedFileError) as info:
        read_seed_markers(path)

    assert info.value.line_number == 2
    assert "Bad syntax in marker" in str(info.value)
    assert isinstance(info.value, InputError)


def test_missing_seed_file(tmp_path):
    with pytest.raises(SeedFileError):
        read_seed_markers(tmp_path / "nope.cmm")


def test_read_seed_list(tmp_path):
    (tmp_path / "sub").mkdir()
    list_path = tmp_path / "seeds.txt"
    list_path.write_text("# name file\nTS_02 sub/b.cmm\nTS_01 /abs/a.cmm\n\n")

    pairs = read_seed_list(list_path)

    assert list(pairs) == ["TS_01", "TS_02"]
    assert str(pairs["TS_01"]) == "/abs/a.cmm"
    assert pairs["TS_02"] == tmp_path / "sub" / "b.cmm"


def test_seed_list_with_bad_line(tmp_path):
    list_path = tmp_path / "seeds.txt"
    list_path.write_text("TS_01 a.cmm\nTS_02\n")

    with pytest.raises(SeedFileError) as info:
        read_seed_list(list_path)
    assert info.value.line_number == 2


def test_star_round_trip(tmp_path):
    blocks = {
        "global": pd.DataFrame({
            "rlnTomoName": ["TS_01", "TS_02"],
            "rlnTomoTiltSeriesPixelSize": [1.35, 2.7],
            "rlnTomoFiducialsStarFile": ["", "fid.star"],
        }),
        "TS_01": pd.DataFrame({"rlnTomoProjX": ["[1,0,0,0]", "[0.5,0,0.5,3]"]}),
    }
    path = tmp_path / "set.star"
    write_star(blocks, path)

    read = read_star(path)

    assert list(read) == ["global", "TS_01"]
    assert list(read["global"]["rlnTomoName"]) == ["TS_01", "TS_02"]
    np.testing.assert_allclose(read["global"]["rlnTomoTiltSeriesPixelSize"], [1.35, 2.7])
    assert list(read["global"]["rlnTomoFiducialsStarFile"]) == ["", "fid.star"]
    assert list(read_star_table(path, "TS_01")["rlnTomoProjX"]) == ["[1,0,0,0]", "[0.5,0,0.5,3]"]

    with pytest.raises(KeyError):
        read_star_table(path, "TS_03")


def test_star_key_value_block(tmp_path):
    path = tmp_path / "kv.star"
    path.write_text("data_general\n\n_rlnTomoHand -1\n_rlnTomoName \"\"\n\ndata_list\nloop_\n_rlnA #1\n_rlnB #2\n1 x\n2 y\n")

    blocks = read_star(path)

    assert blocks["general"].shape == (1, 2)
    assert blocks["general"]["rlnTomoHand"].iloc[0] == -1
    assert list(blocks["list"]["rlnB"]) == ["x", "y"]


def test_vectors():
    v = parse_vector("[1,-2.5,3e-3,4]")
    np.testing.assert_allclose(v, [1, -2.5, 0.003, 4])
    np.testing.assert_allclose(parse_vector(format_vector(v)), v)

    with pytest.raises(ValueError):
        parse_vector("[1,a]")


def test_tilt_space_volume_is_written_frame_major(tmp_path):
    volume = np.arange(4 * 3 * 2, dtype=np.float32).reshape(4, 3, 2)
    path = tmp_path / "ts.mrc"

    MRCWriter.write_tilt_space(volume, path)
    data, metadata = MRCReader.read_mrc(path)

    assert data.shape == (2, 3, 4)
    np.testing.assert_array_equal(data[1, 2, 3], volume[3, 2, 1])


def test_tomogram_set_from_synthetic_dataset(tmp_path):
    paths = write_synthetic_dataset(tmp_path, name="TS_01", dose_per_tilt=3.0, pixel_size=8.0)
    series = create_synthetic_tilt_series(dose_per_tilt=3.0, pixel_size=8.0)

    tomogram_set = TomogramSet.read(paths["tomogram_set"])
    info = tomogram_set.get_tomogram("TS_01")

    assert tomogram_set.names == ["TS_01"]
    assert info.pixel_size == pytest.approx(8.0)
    assert info.frame_count == len(series.projections)
    assert not info.has_fiducials
    np.testing.assert_allclose(info.projections, series.projections, atol=1e-6)
    np.testing.assert_allclose(info.cumulative_dose, series.cumulative_dose)

    stack = info.load_stack()
    assert stack.shape == series.stack.shape
    np.testing.assert_allclose(stack, series.stack, atol=1e-6)

    seeds = read_seed_markers(paths["seeds"])
    assert seeds[0].center == pytest.approx(series.seeds[0].center)


def test_unknown_tomogram(tmp_path):
    paths = write_synthetic_dataset(tmp_path)
    tomogram_set = TomogramSet.read(paths["tomogram_set"])

    with pytest.raises(TomogramNotFoundError) as info:
        tomogram_set.get_tomogram("TS_99")

    assert isinstance(info.value, KeyError)
    assert "TS_99" in str(info.value)


def test_tomogram_set_write_adds_columns(tmp_path):
    paths = write_synthetic_dataset(tmp_path)
    tomogram_set = TomogramSet.read(paths["tomogram_set"])

    annotated = tomogram_set.copy()
    annotated.set_value("synthetic", "rlnTomoBlobMeshFile", "blobs/synthetic_blobs.obj")
    out = annotated.write(tmp_path / "annotated.star")

    again = TomogramSet.read(out)
    assert again.global_table["rlnTomoBlobMeshFile"].iloc[0] == "blobs/synthetic_blobs.obj"
    assert "rlnTomoBlobMeshFile" not in tomogram_set.global_table.columns
    np.testing.assert_allclose(
        again.get_tomogram("synthetic").projections,
        tomogram_set.get_tomogram("synthetic").projections,
    )


def test_read_fiducials(tmp_path):
    path = tmp_path / "fid.star"
    write_star({"fiducials": pd.DataFrame({
        "rlnCoordinateX": [1.0, 4.0],
        "rlnCoordinateY": [2.0, 5.0],
        "rlnCoordinateZ": [3.0, 6.0],
    })}, path)

    np.testing.assert_allclose(read_fiducials(path), [[1, 2, 3], [4, 5, 6]])

    write_star({"other": pd.DataFrame({"rlnA": [1.0]})}, tmp_path / "bad.star")
    with pytest.raises(InputError):
        read_fiducials(tmp_path / "bad.star")
