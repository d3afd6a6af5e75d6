import numpy

from gridwarp.coverage import GridCoverage, cast_values
from gridwarp.errors import PointOutsideCoverageError
from gridwarp.interpolation import (
    ONE_EPSILON,
    Interpolation,
    NearestInterpolation,
    get_interpolations,
)


class _BaseCase:
    """Marks the end of a fallback chain that defers to nearest neighbor sampling of the coverage"""

    def __repr__(self):
        return "BASE_CASE"


BASE_CASE = _BaseCase()


class Interpolator:
    """Evaluates a coverage at arbitrary positions using an interpolation kernel.

    Where the kernel can not be applied, either because its window would stick out
    of the data or because it produced NaN, the value of the fallback is used.
    The fallback is another Interpolator, :data:`BASE_CASE` for plain nearest neighbor
    sampling of the coverage, or None. Without a fallback, positions where the kernel
    can not be applied are outside of the coverage.

    Interpolators hold no scratch state, so a single instance can be used from
    multiple threads. Use :func:`create_interpolator` to build a chain.

    Parameters
    ----------
    coverage: :class:`~gridwarp.coverage.GridCoverage`
        The coverage to interpolate
    interpolation: :class:`~gridwarp.interpolation.Interpolation`
        The kernel
    fallback: :class:`Interpolator` or :data:`BASE_CASE` or None
        What to use where the kernel can not be applied
    """

    def __init__(self, coverage: GridCoverage, interpolation: Interpolation, fallback=None):
        if isinstance(coverage, Interpolator):
            raise TypeError("Expected a GridCoverage, got an Interpolator")
        if not (fallback is None or fallback is BASE_CASE or isinstance(fallback, Interpolator)):
            raise TypeError(f"Unsupported fallback: {fallback!r}")
        if isinstance(fallback, Interpolator) and fallback.coverage is not coverage:
            raise ValueError("A fallback has to interpolate the same coverage")
        self.coverage = coverage
        self.interpolation = interpolation
        self.fallback = fallback
        left, top, right, bottom = interpolation.padding
        self.xmin = left
        self.ymin = top
        self.xmax = coverage.width - right
        self.ymax = coverage.height - bottom

    @property
    def interpolations(self):
        """The kernels of this node and all its fallbacks, in order of preference"""
        result = [self.interpolation]
        fallback = self.fallback
        while isinstance(fallback, Interpolator):
            result.append(fallback.interpolation)
            fallback = fallback.fallback
        if fallback is BASE_CASE:
            result.append(NearestInterpolation())
        return result

    @property
    def name(self):
        return self.coverage.name

    def _sample_fallback(self, cols, rows, integer):
        if self.fallback is BASE_CASE:
            return self.coverage.sample_grid(cols, rows)
        if self.fallback is None:
            return None, numpy.zeros(len(cols), dtype=bool)
        return self.fallback.sample_grid(cols, rows, integer)

    def sample_grid(self, cols, rows, integer=False):
        """Interpolate at fractional grid positions.

        Positions are relative to the first pixel of the data, whose center is at (0, 0).

        Parameters
        ----------
        cols: `numpy.ndarray`
            The fractional column of each position
        rows: `numpy.ndarray`
            The fractional row of each position
        integer: :class:`bool`
            Round the fractional offsets to the subsample precision of the kernel,
            as is done when evaluating for integer results. Default: False

        Returns
        -------
        `Tuple(numpy.ndarray, numpy.ndarray)`
            The values with shape (bands, positions) and a mask of the positions
            that could be evaluated by this node or its fallbacks
        """
        cols = numpy.atleast_1d(numpy.asarray(cols, dtype=float))
        rows = numpy.atleast_1d(numpy.asarray(rows, dtype=float))
        # the fallback goes first, its values fill the gaps left by this kernel
        base, base_inside = self._sample_fallback(cols, rows, integer)

        finite = numpy.isfinite(cols) & numpy.isfinite(rows)
        ix = numpy.floor(numpy.where(finite, cols, -1e9))
        iy = numpy.floor(numpy.where(finite, rows, -1e9))
        usable = (
            finite
            & (ix >= self.xmin)
            & (ix < self.xmax)
            & (iy >= self.ymin)
            & (iy < self.ymax)
        )
        values = numpy.full((self.coverage.num_bands, len(cols)), numpy.nan)
        if numpy.any(usable):
            samples, xfrac, yfrac = self.interpolation.gather(
                self.coverage.data, cols[usable], rows[usable]
            )
            if integer:
                xfrac = self.interpolation.quantize(xfrac)
                yfrac = self.interpolation.quantize(yfrac)
            else:
                xfrac = numpy.minimum(xfrac, ONE_EPSILON)
                yfrac = numpy.minimum(yfrac, ONE_EPSILON)
            values[:, usable] = self.interpolation.interpolate(samples, xfrac, yfrac)
        if base is not None:
            values = numpy.where(numpy.isnan(values), base, values)
        return values, usable | base_inside

    def evaluate(self, point, dtype=numpy.float64):
        """The interpolated values of all bands at `point`.

        Parameters
        ----------
        point: `Tuple(float, ...)`
            The location in the CRS of the coverage
        dtype: `numpy.dtype`
            The numeric domain to return the values in. Default: float64

        Returns
        -------
        `numpy.ndarray`
            One value per band

        Raises
        ------
        :class:`~gridwarp.errors.PointOutsideCoverageError`
            If neither the kernel nor any of the fallbacks could evaluate the point
        """
        position = self.coverage.to_grid(point)
        integer = numpy.issubdtype(numpy.dtype(dtype), numpy.integer)
        values, inside = self.sample_grid(position[:1], position[1:2], integer)
        if not inside[0] or self.coverage._outside_extra_axes(position):
            raise PointOutsideCoverageError(point)
        return cast_values(values[:, 0], dtype)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.coverage.name!r}, {[i.name for i in self.interpolations]})"


def create_interpolator(coverage, interpolations):
    """Wrap a coverage in a chain of interpolators.

    The first kernel is preferred, every next kernel is used where the previous
    one can not be applied. The chain ends at the first nearest neighbor kernel,
    which is represented by :data:`BASE_CASE`.

    Parameters
    ----------
    coverage: :class:`~gridwarp.coverage.GridCoverage` or :class:`Interpolator`
        The coverage to interpolate. An Interpolator is replaced by the coverage it wraps.
    interpolations: :class:`str` or :class:`~gridwarp.interpolation.Interpolation` or a list of either
        The kernels in order of preference

    Returns
    -------
    :class:`Interpolator` or :class:`~gridwarp.coverage.GridCoverage`
        The coverage itself if the first kernel is nearest neighbor
    """
    if isinstance(coverage, Interpolator):
        coverage = coverage.coverage
    kernels = get_interpolations(interpolations)
    fallback = None
    for index, kernel in enumerate(kernels):
        if isinstance(kernel, NearestInterpolation):
            kernels = kernels[:index]
            fallback = BASE_CASE
            break
    if not kernels:
        return coverage
    for kernel in reversed(kernels):
        fallback = Interpolator(coverage, kernel, fallback)
    return fallback
