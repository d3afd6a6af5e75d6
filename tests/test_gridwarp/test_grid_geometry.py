import numpy
import pytest

from gridwarp.errors import MismatchedDimensionError
from gridwarp.grid_geometry import Envelope, GridGeometry, GridRange
from gridwarp.transform import AffineTransform


def test_grid_range_properties():
    grid_range = GridRange((1, 2), (5, 4))

    assert grid_range.width == 4
    assert grid_range.height == 2
    assert grid_range.bounds == (1, 2, 5, 4)
    assert not grid_range.is_empty
    assert GridRange((0, 0), (0, 3)).is_empty


def test_grid_range_contains_and_intersection():
    outer = GridRange((0, 0), (4, 4))
    inner = GridRange((1, 1), (3, 4))
    overlapping = GridRange((2, -1), (6, 2))

    assert outer.contains(inner)
    assert not inner.contains(outer)
    assert not outer.contains(overlapping)
    assert outer.intersection(overlapping) == GridRange((2, 0), (4, 2))


def test_grid_range_validation():
    with pytest.raises(ValueError):
        GridRange((2, 0), (1, 1))
    with pytest.raises(MismatchedDimensionError):
        GridRange((0, 0, 0), (1, 1))


@pytest.mark.parametrize(
    "flip_y, expected_first_center",
    [
        [True, (1, 3)],
        [False, (1, 1)],
    ],
)
def test_from_envelope(flip_y, expected_first_center):
    grid_range = GridRange.from_shape(4, 2)
    envelope = Envelope.from_bounds((0, 0, 8, 4))
    geometry = GridGeometry.from_envelope(grid_range, envelope, flip_y=flip_y)

    numpy.testing.assert_allclose(
        geometry.grid_to_crs.transform_point((0, 0)), expected_first_center
    )
    numpy.testing.assert_allclose(geometry.envelope.bounds, (0, 0, 8, 4))


def test_from_envelope_with_offset_range():
    grid_range = GridRange((10, 20), (14, 22))
    envelope = Envelope.from_bounds((0, 0, 8, 4))
    geometry = GridGeometry.from_envelope(grid_range, envelope)

    numpy.testing.assert_allclose(geometry.grid_to_crs.transform_point((10, 20)), (1, 3))
    numpy.testing.assert_allclose(geometry.envelope.bounds, (0, 0, 8, 4))


@pytest.mark.parametrize(
    "bounds, expected",
    [
        [(-0.5, -0.5, 3.5, 3.5), ((0, 0), (4, 4))],
        [(-0.5 + 1e-9, -0.5, 3.5 - 1e-9, 3.5), ((0, 0), (4, 4))],
        [(0.6, 0, 2.2, 1.4), ((1, 0), (3, 2))],
    ],
)
def test_range_from_envelope(bounds, expected):
    grid_range = GridGeometry.range_from_envelope(
        AffineTransform.identity(2), Envelope.from_bounds(bounds)
    )
    assert grid_range == GridRange(*expected)


def test_envelope_and_range_conventions_agree():
    grid_to_crs = AffineTransform.from_coefficients(10, 0, 100, 0, -10, 500)
    grid_range = GridRange((3, 7), (9, 12))
    envelope = GridGeometry(grid_range, grid_to_crs).envelope

    assert GridGeometry.range_from_envelope(grid_to_crs, envelope) == grid_range


def test_is_equivalent_ignores_missing_parts():
    grid_to_crs = AffineTransform.scale_translate((2, 2), (0, 0))
    complete = GridGeometry(GridRange.from_shape(2, 2), grid_to_crs)

    assert complete.is_equivalent(GridGeometry(grid_to_crs=grid_to_crs))
    assert complete.is_equivalent(GridGeometry(GridRange.from_shape(2, 2)))
    assert complete.is_equivalent(None)
    assert not complete.is_equivalent(GridGeometry(GridRange.from_shape(3, 2)))
    assert not complete.is_equivalent(
        GridGeometry(grid_to_crs=AffineTransform.identity(2))
    )


def test_incomplete_geometry():
    geometry = GridGeometry(grid_to_crs=AffineTransform.identity(2))

    assert not geometry.is_complete
    with pytest.raises(ValueError):
        geometry.envelope
    with pytest.raises(ValueError):
        GridGeometry()


def test_grid_to_crs_2d():
    geometry = GridGeometry(
        GridRange((0, 0, 0), (4, 4, 1)),
        AffineTransform(numpy.diag([2.0, 3.0, 5.0, 1.0])),
    )
    numpy.testing.assert_allclose(geometry.grid_to_crs_2d.matrix, numpy.diag([2.0, 3.0, 1.0]))


def test_envelope_helpers():
    envelope = Envelope((0, 0, 10), (4, 2, 20))

    assert envelope.sub_envelope(0, 2).bounds == (0, 0, 4, 2)
    assert envelope.equals(Envelope((0, 0, 10), (4, 2 + 1e-9, 20)))
    assert not envelope.equals(Envelope((0, 0, 10), (4, 2.1, 20)))
    assert envelope.to_shapely().area == 8
    replaced = envelope.with_sub_envelope(Envelope.from_bounds((1, 1, 2, 2)))
    numpy.testing.assert_allclose(replaced.lower, (1, 1, 10))


def test_repr_uses_plain_numbers():
    assert repr(GridRange((0, 0), (2, 3))) == "GridRange([0, 0], [2, 3])"
    assert repr(Envelope((0, 1), (2, 3))) == "Envelope([0.0, 1.0], [2.0, 3.0])"
