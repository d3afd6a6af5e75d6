import numpy
import pytest
from astropy import units

from gridwarp import (
    AffineTransform,
    Category,
    GridCoverage,
    GridGeometry,
    GridRange,
    SampleDimension,
)
from gridwarp import operation
from gridwarp.errors import AlignmentError


def _coverage(data, sample_dimensions=None, translate=(0, 0)):
    data = numpy.asarray(data, dtype=float)
    shape = data.shape[-2:]
    return GridCoverage(
        data,
        grid_geometry=GridGeometry(
            GridRange.from_shape(shape[1], shape[0]),
            AffineTransform.scale_translate((1, 1), translate),
        ),
        sample_dimensions=sample_dimensions,
    )


def _dimension(name, minimum, maximum, unit=None):
    return SampleDimension([Category.quantitative(name, minimum, maximum)], unit=unit)


def test_unknown_sample_dimensions_without_categories():
    result = operation.ADD.apply([_coverage([[1, 2]]), _coverage([[3, 4]])])

    numpy.testing.assert_allclose(result.data, [[[4, 6]]])
    assert result.sample_dimensions == (SampleDimension(),)


def test_add_derives_range_and_unit():
    first = _coverage([[1, 2]], [_dimension("a", 0, 10, "K")])
    second = _coverage([[5, 6]], [_dimension("b", 5, 7, "K")])
    result = operation.ADD.apply([first, second])

    dimension = result.sample_dimensions[0]
    assert dimension.categories[0].name == "a"
    assert dimension.categories[0].geophysics_range == (5, 17)
    assert dimension.unit == units.K


def test_add_with_different_units():
    first = _coverage([[1, 2]], [_dimension("a", 0, 10, "K")])
    second = _coverage([[5, 6]], [_dimension("b", 5, 7, "m")])
    result = operation.ADD.apply([first, second])

    assert result.sample_dimensions[0].unit is None
    assert result.sample_dimensions[0].categories[0].geophysics_range == (5, 17)


def test_multiply_unit():
    first = _coverage([[1, 2]], [_dimension("a", 0, 10, "K")])
    second = _coverage([[5, 6]], [_dimension("b", 5, 7, "m")])
    result = operation.MULTIPLY.apply([first, second])

    numpy.testing.assert_allclose(result.data, [[[5, 12]]])
    assert result.sample_dimensions[0].unit == units.K * units.m
    assert result.sample_dimensions[0].categories[0].geophysics_range == (0, 70)


def test_divide_by_range_containing_zero():
    first = _coverage([[1, 2]], [_dimension("a", 0, 10)])
    second = _coverage([[1, 4]], [_dimension("b", -1, 7)])
    result = operation.DIVIDE.apply([first, second])

    numpy.testing.assert_allclose(result.data, [[[1, 0.5]]])
    assert result.sample_dimensions == (SampleDimension(),)


def test_rescale_identity_reuses_sample_dimension():
    dimension = _dimension("a", 0, 10, "K")
    coverage = _coverage([[1, 2]], [dimension])
    result = operation.RESCALE.apply([coverage])

    assert result.sample_dimensions[0] is dimension
    numpy.testing.assert_allclose(result.data, coverage.data)


def test_rescale_per_band():
    coverage = _coverage(
        [[[1, 2]], [[3, 4]]], [_dimension("a", 0, 10), _dimension("b", 0, 1)]
    )
    result = operation.RESCALE.apply([coverage], constants=[2, -1], offsets=[0, 1])

    numpy.testing.assert_allclose(result.data, [[[2, 4]], [[-2, -3]]])
    assert result.sample_dimensions[0].categories[0].geophysics_range == (0, 20)
    assert result.sample_dimensions[1].categories[0].geophysics_range == (0, 1)


def test_absolute():
    coverage = _coverage([[-3, 2]], [_dimension("a", -5, 4)])
    result = operation.ABSOLUTE.apply([coverage])

    numpy.testing.assert_allclose(result.data, [[[3, 2]]])
    assert result.sample_dimensions[0].categories[0].geophysics_range == (0, 5)


def test_single_band_is_broadcast():
    single = _coverage([[1, 2]], [_dimension("a", 0, 10)])
    double = _coverage([[[1, 2]], [[3, 4]]], [_dimension("b", 0, 1), _dimension("c", 0, 2)])
    result = operation.ADD.apply([single, double])

    numpy.testing.assert_allclose(result.data, [[[2, 4]], [[4, 6]]])
    assert [sd.categories[0].geophysics_range for sd in result.sample_dimensions] == [
        (0, 11),
        (0, 12),
    ]


def test_band_count_mismatch():
    double = _coverage([[[1, 2]], [[3, 4]]])
    triple = _coverage([[[1, 2]], [[3, 4]], [[5, 6]]])
    with pytest.raises(AlignmentError):
        operation.ADD.apply([double, triple])

    dimension = _dimension("a", 0, 1)
    assert (
        operation.derive_sample_dimensions(
            operation.ADD, [[dimension] * 2, [dimension] * 3], double, {}
        )
        is None
    )


def test_two_quantitative_categories_are_not_derived():
    dimension = SampleDimension(
        [Category.quantitative("low", 0, 10), Category.quantitative("high", 11, 20)]
    )
    coverage = _coverage([[1, 2]], [dimension])
    result = operation.ADD.apply([coverage, coverage])

    assert result.sample_dimensions == (SampleDimension(),)


def test_not_aligned():
    with pytest.raises(AlignmentError):
        operation.ADD.apply([_coverage([[1, 2]]), _coverage([[1, 2]], translate=(1, 0))])


def test_packed_sources_are_combined_as_geophysics(packed_coverage):
    result = operation.ADD.apply([packed_coverage, packed_coverage])

    assert result.is_geophysics
    numpy.testing.assert_allclose(result.data[0, 0], [-10, -8, -6])
    assert numpy.isnan(result.data[0, 2, 2])


def test_gradient_magnitude():
    data = numpy.tile(2.0 * numpy.arange(5), (5, 1))
    coverage = GridCoverage(
        data,
        bounds=(0, 0, 50, 50),
        crs=32631,
        sample_dimensions=[_dimension("temperature", 0, 6, "K")],
    )
    result = operation.GRADIENT_MAGNITUDE.apply([coverage])

    numpy.testing.assert_allclose(result.data[0, 1:-1, 1:-1], 0.2)
    dimension = result.sample_dimensions[0]
    assert dimension.unit == units.K / units.m
    assert dimension.categories[0].geophysics_range == pytest.approx((0, 0.15))


def test_gradient_magnitude_range_scale():
    coverage = GridCoverage(
        numpy.zeros((3, 3)),
        bounds=(0, 0, 3, 3),
        sample_dimensions=[_dimension("height", 0, 10, "m")],
    )
    result = operation.GRADIENT_MAGNITUDE.apply([coverage], range_scale=0.5)

    numpy.testing.assert_allclose(result.data, 0)
    assert result.sample_dimensions[0].categories[0].geophysics_range == (0, 5)
    assert result.sample_dimensions[0].unit is None


def test_select_sample_dimension():
    coverage = _coverage(
        [[[1, 2]], [[3, 4]]], [_dimension("a", 0, 10), _dimension("b", 0, 1)]
    )
    result = operation.SELECT_SAMPLE_DIMENSION.apply([coverage], sample_dimensions=[1])

    numpy.testing.assert_allclose(result.data, [[[3, 4]]])
    assert result.sample_dimensions == (coverage.sample_dimensions[1],)
    assert operation.SELECT_SAMPLE_DIMENSION.apply([coverage]) is coverage


def test_unknown_parameter():
    with pytest.raises(ValueError):
        operation.RESCALE.apply([_coverage([[1]])], factor=2)


def test_wrong_number_of_sources():
    with pytest.raises(ValueError):
        operation.ADD.apply([_coverage([[1]])])


def test_derived_category_holds_plain_floats():
    first = _coverage([[1, 2]], [_dimension("a", 0, 10)])
    second = _coverage([[5, 6]], [_dimension("b", 5, 7)])
    category = operation.MULTIPLY.apply([first, second]).sample_dimensions[0].categories[0]

    assert all(type(value) is float for value in category.sample_range)
    assert category == Category.quantitative("a", 0.0, 70.0)
    assert repr(category) == "Category('a', (0.0, 70.0), scale=1.0, offset=0.0)"
