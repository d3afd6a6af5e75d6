import numpy
import scipy.ndimage

from gridwarp.transform import AffineTransform
from gridwarp.warp import WarpTransform


class RasterEngine:
    """Executes the pixel work of a resample: cropping, affine resampling and warping.

    Every primitive takes the requested output bounds as (xmin, ymin, xmax, ymax)
    in destination grid coordinates and returns the data it produced together with
    the bounds that data actually covers. This engine always produces the requested
    bounds, but engines that pad or trim their output are supported by the resampler.
    """

    def crop(self, data, bounds):
        """Copy the pixels within `bounds` (xmin, ymin, xmax, ymax) in array coordinates"""
        xmin, ymin, xmax, ymax = bounds
        return data[:, ymin:ymax, xmin:xmax].copy(), bounds

    def affine_resample(self, data, matrix, interpolation, background, bounds):
        """Resample `data` onto a grid related to it by an affine transform.

        Parameters
        ----------
        data: `numpy.ndarray`
            Source pixel values with shape (bands, rows, columns)
        matrix: `numpy.ndarray`
            A 3x3 matrix from destination grid coordinates (col, row) to positions
            in the source data, where the center of the first source pixel is at (0, 0)
        interpolation: :class:`~gridwarp.interpolation.Interpolation`
            The kernel to use
        background: `numpy.ndarray`
            The value of every band for pixels that fall outside of the source data
        bounds: `Tuple(int, int, int, int)`
            The destination pixels to produce

        Returns
        -------
        `Tuple(numpy.ndarray, Tuple(int, int, int, int))`
            The resampled values as floats and the bounds they cover
        """
        xmin, ymin, xmax, ymax = bounds
        shape = (ymax - ymin, xmax - xmin)
        cols, rows = WarpTransform(AffineTransform(matrix)).warp_rect(bounds)
        if cols.size == 0:
            return numpy.empty((len(data), *shape)), bounds
        if 0 in data.shape[1:]:
            outside = numpy.zeros(cols.size, dtype=bool)
            values = numpy.empty((len(data), cols.size))
            return _fill(values, outside, background, shape), bounds
        if interpolation.spline_order is None:
            values, inside = interpolation.sample(data, cols.ravel(), rows.ravel())
        else:
            # scipy works in (row, col) order and starts at the first destination pixel
            a = numpy.asarray(matrix, dtype=float)
            linear = numpy.array([[a[1, 1], a[1, 0]], [a[0, 1], a[0, 0]]])
            offset = numpy.array(
                [
                    a[1, 0] * xmin + a[1, 1] * ymin + a[1, 2],
                    a[0, 0] * xmin + a[0, 1] * ymin + a[0, 2],
                ]
            )
            values = numpy.stack(
                [
                    scipy.ndimage.affine_transform(
                        band.astype(float),
                        linear,
                        offset=offset,
                        output_shape=shape,
                        order=interpolation.spline_order,
                        mode="nearest",
                    )
                    for band in data
                ]
            ).reshape(len(data), -1)
            inside = _footprint(data, cols.ravel(), rows.ravel())
        return _fill(values, inside, background, shape), bounds

    def warp_resample(self, sampler, warp: WarpTransform, background, bounds):
        """Resample through an arbitrary per pixel mapping.

        Parameters
        ----------
        sampler: `Callable`
            Takes arrays of source columns and rows and returns the values with shape
            (bands, positions) and a mask of the positions it could evaluate.
            Typically ``sample_grid`` of a coverage or an interpolator.
        warp: :class:`~gridwarp.warp.WarpTransform`
            Maps destination pixels onto source positions
        background: `numpy.ndarray`
            The value of every band for pixels the sampler could not evaluate
        bounds: `Tuple(int, int, int, int)`
            The destination pixels to produce

        Returns
        -------
        `Tuple(numpy.ndarray, Tuple(int, int, int, int))`
            The resampled values as floats and the bounds they cover
        """
        xmin, ymin, xmax, ymax = bounds
        shape = (ymax - ymin, xmax - xmin)
        cols, rows = warp.warp_rect(bounds)
        if cols.size == 0:
            return numpy.empty((len(background), *shape)), bounds
        values, inside = sampler(cols.ravel(), rows.ravel())
        return _fill(values, inside, background, shape), bounds


def _footprint(data, cols, rows):
    height, width = data.shape[1:]
    return (
        numpy.isfinite(cols)
        & numpy.isfinite(rows)
        & (cols >= -0.5)
        & (cols < width - 0.5)
        & (rows >= -0.5)
        & (rows < height - 0.5)
    )


def _fill(values, inside, background, shape):
    values = numpy.array(values, dtype=float)
    background = numpy.asarray(background, dtype=float)
    values[:, ~inside] = background[:, numpy.newaxis]
    return values.reshape(len(values), *shape)
