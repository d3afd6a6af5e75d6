import numpy
import pytest
from pyproj import CRS

from gridwarp import (
    AffineTransform,
    GridCoverage,
    GridGeometry,
    GridRange,
    ProcessingConfig,
    RasterEngine,
    ResampledCoverage,
    reproject,
)
from gridwarp.errors import (
    BoundsMismatchWarning,
    CannotReprojectError,
    NoninvertibleTransformError,
)


class ShiftingEngine(RasterEngine):
    """Produces pixels one column to the right of the requested ones"""

    def __init__(self, shift_affine=True, shift_warp=False):
        self.shift_affine = shift_affine
        self.shift_warp = shift_warp

    @staticmethod
    def _shift(bounds):
        xmin, ymin, xmax, ymax = bounds
        return (xmin + 1, ymin, xmax + 1, ymax)

    def affine_resample(self, data, matrix, interpolation, background, bounds):
        values, actual = super().affine_resample(
            data, matrix, interpolation, background, bounds
        )
        return values, self._shift(actual) if self.shift_affine else actual

    def warp_resample(self, sampler, warp, background, bounds):
        values, actual = super().warp_resample(sampler, warp, background, bounds)
        return values, self._shift(actual) if self.shift_warp else actual


def _scaled_geometry(scale, translate=(0, 0), shape=None):
    grid_range = None if shape is None else GridRange.from_shape(*shape)
    return GridGeometry(grid_range, AffineTransform.scale_translate(scale, translate))


def test_same_geometry_returns_source(counting_coverage):
    assert reproject(counting_coverage) is counting_coverage
    assert (
        reproject(counting_coverage, grid_geometry=counting_coverage.grid_geometry)
        is counting_coverage
    )
    partial = GridGeometry(grid_to_crs=AffineTransform.identity(2))
    assert reproject(counting_coverage, grid_geometry=partial) is counting_coverage


def test_downsample(counting_coverage):
    target = _scaled_geometry((2, 2), shape=(2, 2))
    result = reproject(counting_coverage, grid_geometry=target)

    assert isinstance(result, ResampledCoverage)
    assert result.strategy == "Affine"
    assert result.source is counting_coverage
    assert result.dtype == counting_coverage.dtype
    assert [i.name for i in result.interpolations] == ["nearest"]
    numpy.testing.assert_equal(result.data[0], [[0, 2], [8, 10]])


def test_resample_is_idempotent(counting_coverage):
    target = _scaled_geometry((2, 2), shape=(2, 2))
    result = reproject(counting_coverage, grid_geometry=target)

    assert reproject(result, grid_geometry=target) is result
    assert reproject(result, grid_geometry=counting_coverage.grid_geometry) is counting_coverage


def test_collapse_can_be_disabled(counting_coverage):
    config = ProcessingConfig(collapse_resampled_chain=False)
    target = _scaled_geometry((2, 2), shape=(2, 2))
    result = reproject(counting_coverage, grid_geometry=target, config=config)
    back = reproject(result, grid_geometry=counting_coverage.grid_geometry, config=config)

    assert back is not counting_coverage
    assert back.source is result
    assert back.data.shape == (1, 4, 4)


def test_crop(counting_coverage):
    target = GridGeometry(GridRange((1, 1), (3, 4)), AffineTransform.identity(2))
    result = reproject(counting_coverage, grid_geometry=target)

    assert result.strategy == "Crop"
    assert result.grid_range == GridRange((1, 1), (3, 4))
    numpy.testing.assert_equal(result.data, counting_coverage.data[:, 1:4, 1:3])
    assert result.evaluate((2, 3))[0] == 14


def test_shift(counting_coverage):
    target = _scaled_geometry((1, 1), translate=(1, 0), shape=(4, 4))
    result = reproject(counting_coverage, grid_geometry=target)

    assert result.strategy == "Affine"
    numpy.testing.assert_equal(result.data[:, :, :3], counting_coverage.data[:, :, 1:])
    numpy.testing.assert_equal(result.data[:, :, 3], 0)


def test_affine_and_warp_agree(float_coverage):
    target = _scaled_geometry((0.5, 0.5), translate=(0.25, 0.25), shape=(10, 10))
    affine = reproject(float_coverage, grid_geometry=target, interpolation="bilinear")
    warped = reproject(
        float_coverage,
        grid_geometry=target,
        interpolation="bilinear",
        config=ProcessingConfig(engine=ShiftingEngine()),
    )

    assert affine.strategy == "Affine"
    assert warped.strategy == "Warp"
    cols, rows = numpy.meshgrid(numpy.arange(10), numpy.arange(10))
    expected = (0.5 * cols + 0.25) + 6 * (0.5 * rows + 0.25)
    numpy.testing.assert_allclose(affine.data[0], expected)
    numpy.testing.assert_allclose(warped.data[0], expected)


def test_bicubic_affine_resample(float_coverage):
    target = _scaled_geometry((1, 1), translate=(1.5, 1.5), shape=(2, 2))
    result = reproject(float_coverage, grid_geometry=target, interpolation="bicubic")

    assert result.strategy == "Affine"
    numpy.testing.assert_allclose(result.data[0], [[10.5, 11.5], [16.5, 17.5]])


def test_reproject_to_geographic(projected_coverage):
    result = reproject(projected_coverage, crs=4326)

    assert result.strategy == "Warp"
    assert result.crs == CRS.from_epsg(4326)
    assert result.data.shape == projected_coverage.data.shape
    minx, miny, maxx, maxy = result.bounds
    assert 2.99 < minx < maxx < 3.2
    assert 51.4 < miny < maxy < 51.6
    values = result.data[numpy.isfinite(result.data)]
    assert values.size > 0
    assert set(values).issubset(set(projected_coverage.data.ravel()))


def test_only_one_crs_known(counting_coverage):
    with pytest.raises(CannotReprojectError) as e:
        reproject(counting_coverage, crs=4326)
    assert e.value.coverage_name == "counting"


def test_singular_source_transform():
    coverage = GridCoverage(
        numpy.zeros((2, 2)),
        grid_geometry=GridGeometry(
            GridRange.from_shape(2, 2), AffineTransform([[1, 0, 0], [0, 0, 0], [0, 0, 1]])
        ),
    )
    target = _scaled_geometry((2, 2), shape=(2, 2))
    with pytest.raises(CannotReprojectError) as e:
        reproject(coverage, grid_geometry=target)
    assert isinstance(e.value.__cause__, NoninvertibleTransformError)


def test_no_2d_transform():
    matrix = numpy.eye(4)
    matrix[0, 2] = 1  # x depends on the third axis
    coverage = GridCoverage(
        numpy.zeros((2, 2)), grid_geometry=GridGeometry(grid_to_crs=AffineTransform(matrix))
    )
    target = GridGeometry(grid_to_crs=AffineTransform(numpy.diag([2.0, 2.0, 1.0, 1.0])))
    with pytest.raises(CannotReprojectError) as e:
        reproject(coverage, grid_geometry=target)
    assert "2-D" in str(e.value)


def test_separable_extra_axis():
    data = numpy.arange(16).reshape(4, 4)
    coverage = GridCoverage(
        data, grid_geometry=GridGeometry(grid_to_crs=AffineTransform.identity(3))
    )
    target = GridGeometry(grid_to_crs=AffineTransform(numpy.diag([2.0, 2.0, 1.0, 1.0])))
    result = reproject(coverage, grid_geometry=target)

    assert result.grid_range == GridRange((0, 0, 0), (3, 3, 1))
    numpy.testing.assert_equal(result.data[0], [[0, 2, 0], [8, 10, 0], [0, 0, 0]])


def test_automatic_geometry_keeps_engine_bounds(counting_coverage):
    config = ProcessingConfig(engine=ShiftingEngine())
    target = GridGeometry(grid_to_crs=AffineTransform.scale_translate((2, 2), (0, 0)))
    with pytest.warns(BoundsMismatchWarning):
        result = reproject(counting_coverage, grid_geometry=target, config=config)

    assert result.strategy == "Affine"
    assert result.grid_range == GridRange((1, 0), (4, 3))


def test_warp_bounds_mismatch(counting_coverage):
    config = ProcessingConfig(engine=ShiftingEngine(shift_warp=True))
    target = _scaled_geometry((2, 2), shape=(2, 2))
    with pytest.warns(BoundsMismatchWarning):
        result = reproject(counting_coverage, grid_geometry=target, config=config)

    assert result.strategy == "Warp"
    assert result.grid_range == GridRange((1, 0), (3, 2))


def test_packed_values_are_interpolated_as_geophysics(packed_coverage):
    target = _scaled_geometry((1, 1), translate=(0.5, 0.5), shape=(2, 2))
    result = reproject(packed_coverage, grid_geometry=target, interpolation="bilinear")

    assert not result.is_geophysics
    assert result.dtype == numpy.int16
    assert result.sample_dimensions == packed_coverage.sample_dimensions
    numpy.testing.assert_equal(result.data[0], [[200, 300], [500, -9999]])
    assert result.geophysics(True).is_geophysics


def test_packed_nearest_keeps_samples(packed_coverage):
    target = _scaled_geometry((1, 1), translate=(1, 1), shape=(3, 3))
    result = reproject(packed_coverage, grid_geometry=target)

    assert result.dtype == numpy.int16
    numpy.testing.assert_equal(
        result.data[0], [[400, 500, -9999], [700, -9999, -9999], [-9999, -9999, -9999]]
    )


def test_empty_source():
    coverage = GridCoverage(
        numpy.zeros((0, 0)),
        grid_geometry=GridGeometry(GridRange.from_shape(0, 0), AffineTransform.identity(2)),
    )
    result = reproject(coverage, grid_geometry=_scaled_geometry((1, 1), shape=(2, 2)))

    assert result.data.shape == (1, 2, 2)
    assert numpy.isnan(result.data).all()


def test_bicubic_affine_and_warp_agree_inside():
    data = numpy.random.default_rng(1).random((8, 8))
    coverage = GridCoverage(
        data,
        grid_geometry=GridGeometry(GridRange.from_shape(8, 8), AffineTransform.identity(2)),
    )
    target = _scaled_geometry((0.5, 0.5), translate=(1.25, 1.25), shape=(10, 10))
    affine = reproject(coverage, grid_geometry=target, interpolation="bicubic")
    warped = reproject(
        coverage,
        grid_geometry=target,
        interpolation="bicubic",
        config=ProcessingConfig(engine=ShiftingEngine()),
    )

    assert affine.strategy == "Affine"
    assert warped.strategy == "Warp"
    assert numpy.isfinite(warped.data).all()
    numpy.testing.assert_allclose(affine.data, warped.data)
