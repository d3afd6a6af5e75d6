import numpy
import pytest

from gridwarp import GridCoverage, SampleDimension, read_raster, write_raster


def test_write_and_read(tmp_path):
    data = numpy.arange(12, dtype="int16").reshape(3, 4)
    data[0, 0] = -9999
    coverage = GridCoverage(
        data,
        bounds=(500000, 5700000, 500040, 5700030),
        crs=32631,
        sample_dimensions=[SampleDimension.from_nodata(-9999)],
    )
    path = write_raster(coverage, tmp_path / "written.tiff")
    result = read_raster(path)

    assert result.name == "written"
    assert result.crs.to_epsg() == 32631
    assert result.dtype == numpy.int16
    assert result.bounds == pytest.approx(coverage.bounds)
    numpy.testing.assert_equal(result.data, coverage.data)
    assert result.sample_dimensions[0].background_value() == -9999
    assert numpy.isnan(result.geophysics(True).data[0, 0, 0])
    assert result.evaluate((500015, 5700025))[0] == 1


def test_read_window(tmp_path):
    data = numpy.arange(16, dtype=float).reshape(4, 4)
    coverage = GridCoverage(data, bounds=(0, 0, 4, 4), crs=32631)
    path = write_raster(coverage, tmp_path / "window.tiff")
    result = read_raster(path, bounds=(1, 1, 3, 3))

    numpy.testing.assert_equal(result.data[0], data[1:3, 1:3])
    assert result.bounds == pytest.approx((1, 1, 3, 3))
    assert result.is_geophysics


def test_read_window_with_buffer(tmp_path):
    data = numpy.arange(16, dtype=float).reshape(4, 4)
    coverage = GridCoverage(data, bounds=(0, 0, 4, 4), crs=32631)
    path = write_raster(coverage, tmp_path / "buffer.tiff")
    result = read_raster(path, bounds=(1, 1, 3, 3), border_buffer=1)

    numpy.testing.assert_equal(result.data[0], data)
