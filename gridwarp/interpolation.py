import abc

import numpy

from gridwarp.errors import UnknownInterpolationError

# largest float32 below 1, used to keep a fractional offset inside the kernel window
ONE_EPSILON = float(numpy.nextafter(numpy.float32(1), numpy.float32(0)))


class Interpolation(metaclass=abc.ABCMeta):
    """An interpolation kernel.

    The kernel reads a window of ``width`` by ``height`` pixels. The window
    starts ``left`` pixels before and ends ``right`` pixels after the pixel
    that contains the evaluation point, and likewise ``top`` and ``bottom``
    for rows.

    Parameters
    ----------
    width: :class:`int`
        Number of columns in the window
    height: :class:`int`
        Number of rows in the window
    left: :class:`int`
        Number of columns read before the column containing the point
    top: :class:`int`
        Number of rows read before the row containing the point
    subsample_bits: :class:`int`
        Precision of the fractional position used for integer data. Default: 8
    """

    name = None
    spline_order = None

    def __init__(self, width, height, left, top, subsample_bits=8):
        self.width = width
        self.height = height
        self.left = left
        self.top = top
        self.subsample_bits = subsample_bits

    @property
    def right(self):
        return self.width - self.left - 1

    @property
    def bottom(self):
        return self.height - self.top - 1

    @property
    def padding(self):
        """The padding as (left, top, right, bottom)"""
        return (self.left, self.top, self.right, self.bottom)

    def origin(self, coords):
        """The pixel containing each coordinate and the fractional offset within that pixel"""
        index = numpy.floor(coords)
        return index.astype(int), coords - index

    def quantize(self, fraction):
        """Round fractions down to the subsample precision of this kernel"""
        steps = 1 << self.subsample_bits
        return numpy.floor(numpy.asarray(fraction) * steps) / steps

    @abc.abstractmethod
    def weights(self, fraction):
        """The weight of every pixel in a window row, shape (positions, width)"""

    def interpolate(self, samples, xfrac, yfrac):
        """Combine windows of samples into interpolated values.

        Parameters
        ----------
        samples: `numpy.ndarray`
            Windows with shape (..., positions, height, width)
        xfrac: `numpy.ndarray`
            Fractional column offset of each position in [0, 1)
        yfrac: `numpy.ndarray`
            Fractional row offset of each position in [0, 1)

        Returns
        -------
        `numpy.ndarray`
            Values with shape (..., positions)
        """
        wx = self.weights(numpy.atleast_1d(xfrac))
        wy = self.weights(numpy.atleast_1d(yfrac))
        return numpy.einsum("...nhw,nh,nw->...n", samples, wy, wx)

    def gather(self, data, cols, rows):
        """Read the window around every position, repeating the edge pixels where the window sticks out.

        Returns
        -------
        `Tuple(numpy.ndarray, numpy.ndarray, numpy.ndarray)`
            The windows with shape (bands, positions, height, width) and the fractional offsets
        """
        ox, xfrac = self.origin(cols)
        oy, yfrac = self.origin(rows)
        ix = numpy.clip(
            ox[:, numpy.newaxis] - self.left + numpy.arange(self.width),
            0,
            data.shape[2] - 1,
        )
        iy = numpy.clip(
            oy[:, numpy.newaxis] - self.top + numpy.arange(self.height),
            0,
            data.shape[1] - 1,
        )
        samples = data[:, iy[:, :, numpy.newaxis], ix[:, numpy.newaxis, :]]
        return samples.astype(float), xfrac, yfrac

    def sample(self, data, cols, rows):
        """Interpolate `data` at fractional grid positions.

        Parameters
        ----------
        data: `numpy.ndarray`
            Pixel values with shape (bands, rows, columns)
        cols: `numpy.ndarray`
            The fractional column of each position, where the center of the first column is 0
        rows: `numpy.ndarray`
            The fractional row of each position

        Returns
        -------
        `Tuple(numpy.ndarray, numpy.ndarray)`
            The values with shape (bands, positions) and a mask of the positions that fall within the data
        """
        cols = numpy.asarray(cols, dtype=float)
        rows = numpy.asarray(rows, dtype=float)
        height, width = data.shape[1:]
        finite = numpy.isfinite(cols) & numpy.isfinite(rows)
        cols = numpy.where(finite, cols, 0)
        rows = numpy.where(finite, rows, 0)
        inside = (
            finite
            & (cols >= -0.5)
            & (cols < width - 0.5)
            & (rows >= -0.5)
            & (rows < height - 0.5)
        )
        samples, xfrac, yfrac = self.gather(data, cols, rows)
        return self.interpolate(samples, xfrac, yfrac), inside

    def __eq__(self, other):
        if not isinstance(other, Interpolation):
            return NotImplemented
        return self.name == other.name and self.subsample_bits == other.subsample_bits

    def __hash__(self):
        return hash((self.name, self.subsample_bits))

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name!r})"


class NearestInterpolation(Interpolation):
    name = "nearest"
    spline_order = 0

    def __init__(self, subsample_bits=8):
        super().__init__(1, 1, 0, 0, subsample_bits)

    def origin(self, coords):
        index = numpy.floor(coords + 0.5)
        return index.astype(int), numpy.zeros_like(coords)

    def weights(self, fraction):
        return numpy.ones((len(fraction), 1))


class BilinearInterpolation(Interpolation):
    name = "bilinear"
    spline_order = 1

    def __init__(self, subsample_bits=8):
        super().__init__(2, 2, 0, 0, subsample_bits)

    def weights(self, fraction):
        return numpy.column_stack([1 - fraction, fraction])


def _cubic(distance, a):
    distance = numpy.abs(distance)
    near = ((a + 2) * distance - (a + 3)) * distance**2 + 1
    far = ((a * distance - 5 * a) * distance + 8 * a) * distance - 4 * a
    return numpy.where(distance <= 1, near, numpy.where(distance < 2, far, 0))


class BicubicInterpolation(Interpolation):
    """Cubic convolution over a 4 by 4 window.

    Parameters
    ----------
    a: :class:`float`
        The free parameter of the cubic convolution kernel. Default: -0.5
    """

    name = "bicubic"

    def __init__(self, a=-0.5, subsample_bits=8):
        super().__init__(4, 4, 1, 1, subsample_bits)
        self.a = a

    def weights(self, fraction):
        return numpy.column_stack(
            [
                _cubic(1 + fraction, self.a),
                _cubic(fraction, self.a),
                _cubic(1 - fraction, self.a),
                _cubic(2 - fraction, self.a),
            ]
        )


class Bicubic2Interpolation(BicubicInterpolation):
    """Cubic convolution with a sharper kernel (a = -1)"""

    name = "bicubic2"

    def __init__(self, subsample_bits=8):
        super().__init__(a=-1.0, subsample_bits=subsample_bits)


_INTERPOLATIONS = {
    "nearest": NearestInterpolation,
    "nearestneighbor": NearestInterpolation,
    "nearest_neighbor": NearestInterpolation,
    "bilinear": BilinearInterpolation,
    "bicubic": BicubicInterpolation,
    "bicubic2": Bicubic2Interpolation,
}


def get_interpolation(interpolation):
    """Get an interpolation kernel by its name.

    Parameters
    ----------
    interpolation: :class:`str` or :class:`Interpolation`
        One of 'nearest', 'bilinear', 'bicubic' or 'bicubic2' (case insensitive).
        A kernel is returned as is.

    Returns
    -------
    :class:`Interpolation`

    Raises
    ------
    :class:`~gridwarp.errors.UnknownInterpolationError`
        If no kernel goes by the supplied name
    """
    if isinstance(interpolation, Interpolation):
        return interpolation
    try:
        return _INTERPOLATIONS[str(interpolation).lower()]()
    except KeyError:
        raise UnknownInterpolationError(
            f"Interpolation '{interpolation}' is not supported, choose from {sorted(set(_INTERPOLATIONS) - {'nearestneighbor', 'nearest_neighbor'})}"
        ) from None


def get_interpolations(interpolations):
    """Get a list of interpolation kernels from a name, a kernel or a sequence of either"""
    if isinstance(interpolations, (str, Interpolation)):
        interpolations = [interpolations]
    interpolations = [get_interpolation(interpolation) for interpolation in interpolations]
    if not interpolations:
        raise UnknownInterpolationError("At least one interpolation is required")
    return interpolations
