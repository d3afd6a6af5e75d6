from pathlib import Path
from typing import Tuple

import numpy
import rasterio
from astropy import units
from pyproj import CRS, Transformer

from gridwarp.coverage import GridCoverage
from gridwarp.grid_geometry import GridGeometry, GridRange
from gridwarp.sample_dimension import SampleDimension
from gridwarp.transform import AffineTransform, affine_matrix


def _parse_unit(unit):
    if not unit:
        return None
    return units.Unit(unit, parse_strict="silent")


def read_raster(
    path: str,
    bounds: Tuple[float, float, float, float] = None,
    bounds_crs: CRS = None,
    border_buffer: int = 0,
):
    """Read all bands of a raster file, such as a GeoTIFF

    Parameters
    ----------
    path: :class:`str`
        The path to the file. This needs to be a file that is supported by rasterio.
    bounds: Tuple(float, float, float, float)
        The bounds of the area of interest. Only the data within the supplied bounds is read from the input file.
    bounds_crs: `pyproj.CRS`
        The Coordinate Reference System (CRS) of the supplied bounds.
        If the CRS of the bounds does not match that of the input file,
        the bounds are converted to that of the input file before reading.
    border_buffer: :class:`int`
        A number of pixels added around the supplied `bounds` to read in a larger slice of the area.

    Returns
    -------
    :class:`~gridwarp.coverage.GridCoverage`
        The contents of the file, with one sample dimension per band.
        The nodata value of a band is described as a "no data" category.

    See also
    --------
    :func:`.write_raster`
    """
    with rasterio.open(path) as raster_file:
        crs = raster_file.crs.to_wkt() if raster_file.crs else None

        if bounds is not None:
            if bounds_crs is not None:
                bounds_crs = CRS.from_user_input(bounds_crs)
                transformer = Transformer.from_crs(bounds_crs, crs, always_xy=True)
                bounds = transformer.transform_bounds(*bounds)
            top, left = raster_file.index(bounds[0], bounds[3])
            bottom, right = raster_file.index(bounds[2], bounds[1])

            if border_buffer:  # note rasterio slices from top to bottom
                left -= border_buffer
                right += border_buffer
                top -= border_buffer
                bottom += border_buffer

            window = rasterio.windows.Window.from_slices(
                (max(top, 0), bottom), (max(left, 0), right)
            )
            transform = raster_file.window_transform(window)
        else:
            window = None
            transform = raster_file.transform

        data = raster_file.read(window=window)
        sample_dimensions = [
            SampleDimension.from_nodata(
                nodata, unit=_parse_unit(unit), description=description
            )
            for nodata, unit, description in zip(
                raster_file.nodatavals, raster_file.units, raster_file.descriptions
            )
        ]

    # rasterio maps the corner of a pixel, the grid-to-crs transform maps its center
    a, b, c, d, e, f = transform[:6]
    grid_to_crs = AffineTransform.from_coefficients(
        a, b, c + 0.5 * a + 0.5 * b, d, e, f + 0.5 * d + 0.5 * e
    )
    height, width = data.shape[1:]
    grid_geometry = GridGeometry(GridRange.from_shape(width, height), grid_to_crs)
    return GridCoverage(
        data,
        crs=crs,
        grid_geometry=grid_geometry,
        sample_dimensions=sample_dimensions,
        name=Path(path).stem,
        prevent_copy=True,
    )


def write_raster(coverage, path):
    """Write a coverage to a raster file (eg .tiff).

    Parameters
    ----------
    coverage: :class:`~gridwarp.coverage.GridCoverage`
        The coverage to write. It needs an affine grid-to-crs transform.
        The background value of the first band is written as the nodata value.
    path: :class:`str`
        The location of the file to write to (eg ./my_raster.tiff).

    Returns
    -------
    :class:`str`
        The path pointing to the written file

    See also
    --------
    :func:`read_raster`
    """
    matrix = affine_matrix(coverage.grid_geometry.grid_to_crs_2d)
    if matrix is None:
        raise ValueError(
            f"Coverage '{coverage.name}' has no affine grid-to-crs transform and can not be written as a raster"
        )
    x0, y0 = coverage.grid_range.lower[:2]
    corner = matrix @ numpy.array([x0 - 0.5, y0 - 0.5, 1])
    transform = rasterio.Affine(
        matrix[0, 0], matrix[0, 1], corner[0], matrix[1, 0], matrix[1, 1], corner[1]
    )
    background_category = coverage.sample_dimensions[0].background_category
    nodata = None
    if background_category is not None and not coverage.is_geophysics:
        nodata = coverage.sample_dimensions[0].background_value(False)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=coverage.height,
        width=coverage.width,
        count=coverage.num_bands,
        dtype=coverage.dtype,
        crs=coverage.crs.to_wkt() if coverage.crs else None,
        nodata=nodata,
        transform=transform,
    ) as dst:
        dst.write(numpy.ascontiguousarray(coverage.data))
    return path
