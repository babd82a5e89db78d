#!/usr/bin/env python3
"""
Tests for position/shape decoupling and mesh generation
"""

import math

import numpy as np
import pytest

from tomoblob.core.decoupling import (
    DEGREE_ONE_SLOTS,
    coefficient_count,
    decouple_position,
    fold_degree_one,
)
from tomoblob.core.spherical_harmonics import (
    SphericalHarmonics,
    band_zero_value,
    pole_value_degree_one,
)
from tomoblob.core.tessellation import Mesh, grid_size, tessellate
from tomoblob.core.tilt_space import TiltSpaceGeometry


def sphere_coefficients(center, radius, bands=2):
    coefficients = np.zeros(coefficient_count(bands))
    coefficients[:3] = center
    coefficients[3] = radius
    coefficients[4] = radius / band_zero_value()
    return coefficients


def test_coefficient_count():
    assert coefficient_count(0) == 5
    assert coefficient_count(2) == 13
    assert coefficient_count(4) == 29


def test_decouple_position_layout():
    geometry = TiltSpaceGeometry.create((100.0, 80.0, 40.0), 30.0, 16.0, 2.0, 21)
    params = np.zeros(9)
    params[0] = 4.0 / band_zero_value()

    coefficients = decouple_position(params, geometry)

    assert len(coefficients) == coefficient_count(2)
    np.testing.assert_allclose(coefficients[:3], [100.0, 80.0, 40.0])
    # min radius 22 plus 4 samples of 2 pixels
    assert coefficients[3] == pytest.approx(30.0)
    assert coefficients[4] * band_zero_value() == pytest.approx(30.0)


def test_decouple_moves_linear_terms_into_the_center():
    geometry = TiltSpaceGeometry.create((100.0, 80.0, 40.0), 30.0, 16.0, 1.0, 21)
    params = np.zeros(4)
    params[0] = 8.0 / band_zero_value()
    params[SphericalHarmonics.index(1, 1)] = 1.0 / pole_value_degree_one()
    params[SphericalHarmonics.index(1, 0)] = -2.0 / pole_value_degree_one()

    coefficients = decouple_position(params, geometry)

    np.testing.assert_allclose(coefficients[:3], [101.0, 80.0, 38.0])
    for l, m in DEGREE_ONE_SLOTS:
        assert coefficients[4 + SphericalHarmonics.index(l, m)] == 0.0


def test_fold_is_idempotent():
    rng = np.random.default_rng(1)
    coefficients = sphere_coefficients((10.0, 20.0, 30.0), 25.0, bands=3)
    coefficients[5:] = rng.normal(scale=0.5, size=len(coefficients) - 5)

    once = fold_degree_one(coefficients)
    twice = fold_degree_one(once)

    np.testing.assert_array_equal(once, twice)
    assert once[3] == pytest.approx(once[4] * band_zero_value())


def test_fold_describes_the_same_surface_to_first_order():
    radius = 30.0
    shift = 0.3
    coefficients = sphere_coefficients((0.0, 0.0, 0.0), radius, bands=1)
    coefficients[4 + SphericalHarmonics.index(1, 1)] = shift / pole_value_degree_one()

    folded = fold_degree_one(coefficients)
    np.testing.assert_allclose(folded[:3], [shift, 0.0, 0.0])

    sh = SphericalHarmonics(1)
    rng = np.random.default_rng(2)
    d = rng.normal(size=(200, 3))
    d /= np.linalg.norm(d, axis=1, keepdims=True)

    original_points = (sh.evaluate_directions(d) @ coefficients[4:])[:, None] * d
    distance = np.linalg.norm(original_points - folded[:3], axis=1)

    np.testing.assert_allclose(distance, folded[3], atol=shift * shift / radius + 1e-9)


def test_fold_rejects_bad_vectors():
    with pytest.raises(ValueError):
        fold_degree_one(np.zeros(4))
    with pytest.raises(ValueError):
        fold_degree_one(np.zeros(4 + 5))


def test_grid_size():
    azimuths, tilts = grid_size(mean_radius=100.0, pixel_size=5.0, spacing=50.0, max_tilt_deg=20.0)
    assert azimuths == int(round(2 * math.pi * 500 / 50))
    assert tilts == int(round(2 * math.radians(20) * 500 / 50))

    assert grid_size(0.1, 1.0, 50.0, 20.0) == (3, 2)

    with pytest.raises(ValueError):
        grid_size(10.0, 1.0, 0.0, 20.0)


def test_tessellate_sphere():
    center = np.array([40.0, 50.0, 60.0])
    radius = 100.0
    pixel_size = 5.0
    mesh = tessellate(sphere_coefficients(center, radius), pixel_size, spacing=50.0, max_tilt_deg=20.0)

    azimuths, tilts = grid_size(radius, pixel_size, 50.0, 20.0)
    assert mesh.vertex_count == azimuths * tilts
    assert mesh.triangle_count == 2 * azimuths * (tilts - 1)

    distance = np.linalg.norm(mesh.vertices - pixel_size * center, axis=1)
    np.testing.assert_allclose(distance, pixel_size * radius)

    # Vertex t * A + a sits at azimuth a and elevation t
    offset = mesh.vertices - pixel_size * center
    phi = np.arctan2(offset[:, 1], offset[:, 0]) % (2 * np.pi)
    elevation = np.arcsin(offset[:, 2] / (pixel_size * radius))
    a = np.arange(mesh.vertex_count) % azimuths
    t = np.arange(mesh.vertex_count) // azimuths
    np.testing.assert_allclose(phi, 2 * np.pi * a / azimuths, atol=1e-9)
    np.testing.assert_allclose(elevation, np.radians(-20 + 40 * t / (tilts - 1)), atol=1e-9)


def test_tessellation_wraps_in_azimuth_only():
    mesh = tessellate(sphere_coefficients((0, 0, 0), 30.0), 10.0, spacing=50.0, max_tilt_deg=20.0)
    azimuths, tilts = grid_size(30.0, 10.0, 50.0, 20.0)

    last_cell = mesh.triangles[2 * (azimuths - 1):2 * azimuths]
    assert set(last_cell.ravel()) == {azimuths - 1, 0, 2 * azimuths - 1, azimuths}

    # Every vertex is used and no triangle crosses from the top row to the bottom one
    assert set(mesh.triangles.ravel()) == set(range(mesh.vertex_count))
    rows = mesh.triangles // azimuths
    assert np.all(rows.max(axis=1) - rows.min(axis=1) == 1)


def test_tessellation_normals_point_outwards():
    coefficients = sphere_coefficients((5.0, -3.0, 2.0), 40.0)
    coefficients[4 + SphericalHarmonics.index(2, 2)] = 3.0
    mesh = tessellate(coefficients, 2.0, spacing=10.0, max_tilt_deg=30.0)

    centroids = mesh.vertices[mesh.triangles].mean(axis=1)
    outward = centroids - 2.0 * coefficients[:3]

    assert np.all(np.einsum('ij,ij->i', mesh.face_normals(), outward) > 0)


def test_tessellate_rejects_collapsed_blob():
    with pytest.raises(ValueError):
        tessellate(sphere_coefficients((0, 0, 0), 0.0), 1.0)


def test_mesh_insert_offsets_indices():
    a = tessellate(sphere_coefficients((0, 0, 0), 30.0), 10.0)
    b = tessellate(sphere_coefficients((100, 0, 0), 20.0), 10.0)

    merged = Mesh.merge([a, b])

    assert merged.vertex_count == a.vertex_count + b.vertex_count
    assert merged.triangle_count == a.triangle_count + b.triangle_count
    np.testing.assert_array_equal(merged.triangles[a.triangle_count:], b.triangles + a.vertex_count)
