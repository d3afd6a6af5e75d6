import numpy
import pytest

from gridwarp import (
    AffineTransform,
    Category,
    GridCoverage,
    GridGeometry,
    GridRange,
    SampleDimension,
)


@pytest.fixture(scope="function")
def counting_coverage():
    """4x4 values 0..15, pixel centers at integer coordinates"""
    data = numpy.arange(16).reshape(4, 4)
    grid_geometry = GridGeometry(GridRange.from_shape(4, 4), AffineTransform.identity(2))
    return GridCoverage(data, grid_geometry=grid_geometry, name="counting")


@pytest.fixture(scope="function")
def float_coverage():
    data = numpy.arange(36, dtype=float).reshape(6, 6)
    grid_geometry = GridGeometry(GridRange.from_shape(6, 6), AffineTransform.identity(2))
    return GridCoverage(data, grid_geometry=grid_geometry, name="float")


@pytest.fixture(scope="function")
def projected_coverage():
    data = numpy.arange(6 * 8, dtype=float).reshape(6, 8)
    bounds = (500000, 5700000, 508000, 5706000)
    return GridCoverage(data, bounds=bounds, crs=32631, name="projected")


@pytest.fixture(scope="function")
def temperature_dimension():
    return SampleDimension(
        [
            Category("no data", (-9999, -9999)),
            Category("temperature", (0, 1000), scale=0.01, offset=-5),
        ],
        unit="deg_C",
        description="temperature",
    )


@pytest.fixture(scope="function")
def packed_coverage(temperature_dimension):
    data = numpy.array(
        [[0, 100, 200], [300, 400, 500], [600, 700, -9999]], dtype="int16"
    )
    grid_geometry = GridGeometry(GridRange.from_shape(3, 3), AffineTransform.identity(2))
    return GridCoverage(
        data,
        grid_geometry=grid_geometry,
        sample_dimensions=[temperature_dimension],
        name="temperature",
    )
