import numpy
from pyproj import CRS

from gridwarp.errors import MismatchedDimensionError, PointOutsideCoverageError
from gridwarp.grid_geometry import Envelope, GridGeometry, GridRange
from gridwarp.sample_dimension import SampleDimension


def cast_values(values, dtype):
    """Cast floating point values to `dtype`, rounding and clipping for integer types"""
    dtype = numpy.dtype(dtype)
    if numpy.issubdtype(dtype, numpy.integer):
        info = numpy.iinfo(dtype)
        values = numpy.nan_to_num(values, nan=0)
        values = numpy.clip(numpy.floor(values + 0.5), info.min, info.max)
    return numpy.asarray(values).astype(dtype)


class _CoverageMeta(type):
    """metaclass of the GridCoverage class"""

    def __new__(cls, name, bases, namespace):
        # (operator name, operation name, reflected, rescale parameters for scalars)
        for opname, operation_name, reflected, scalar in (
            ("add", "Add", False, lambda value: (1, value)),
            ("radd", "Add", True, lambda value: (1, value)),
            ("sub", "Subtract", False, lambda value: (1, -value)),
            ("rsub", "Subtract", True, lambda value: (-1, value)),
            ("mul", "Multiply", False, lambda value: (value, 0)),
            ("rmul", "Multiply", True, lambda value: (value, 0)),
            ("truediv", "Divide", False, lambda value: (1 / value, 0)),
        ):
            namespace[f"__{opname}__"] = cls._gen_operator(
                operation_name, reflected, scalar
            )
        return super().__new__(cls, name, bases, namespace)

    @staticmethod
    def _gen_operator(operation_name, reflected, scalar):
        def _coverage_op(self, other):
            from gridwarp import operation

            if isinstance(other, GridCoverage):
                sources = (other, self) if reflected else (self, other)
                return operation.BUILTIN_OPERATIONS[operation_name].apply(sources)
            if not numpy.isscalar(other):
                return NotImplemented
            constant, offset = scalar(other)
            return operation.RESCALE.apply([self], constants=constant, offsets=offset)

        _coverage_op.__name__ = operation_name.lower()
        return _coverage_op


class GridCoverage(metaclass=_CoverageMeta):
    """A multi-band raster tied to a grid geometry and a coordinate reference system.

    A coverage is treated as an immutable value. The only state that changes after
    creation is the cached link to its geophysics or packed companion view.

    Parameters
    ----------
    data: `numpy.ndarray`
        The pixel values, with shape (bands, rows, columns). A 2D array is taken as a single band.
        The first row is the one with the lowest row index.
    crs: `pyproj.CRS` (optional)
        The coordinate reference system of the grid.
        The value can be anything accepted by pyproj.CRS.from_user_input(),
        such as an epsg integer (eg 4326), an authority string (eg “EPSG:4326”) or a WKT string.
    grid_geometry: :class:`~gridwarp.grid_geometry.GridGeometry` (optional)
        The grid geometry. If it has no grid range, a range starting at zero and
        matching the shape of `data` is used.
    bounds: `Tuple(float, float, float, float)` (optional)
        The extent of the data as (minx, miny, maxx, maxy), used instead of `grid_geometry`.
        The first row of `data` is placed at the top (maxy).
    sample_dimensions: List[:class:`~gridwarp.sample_dimension.SampleDimension`] (optional)
        One per band. If not supplied, nothing is known about the values of the bands.
    sources: List[:class:`GridCoverage`]
        The coverages this coverage was derived from
    name: :class:`str` (optional)
        The name of the coverage, used in error messages
    prevent_copy: :class:`bool`
        Use `data` as is instead of taking a copy. Default: False
    """

    def __init__(
        self,
        data,
        crs=None,
        grid_geometry: GridGeometry = None,
        bounds=None,
        sample_dimensions=None,
        sources=(),
        name=None,
        prevent_copy=False,
    ):
        data = numpy.asarray(data) if prevent_copy else numpy.array(data)
        if data.ndim == 2:
            data = data[numpy.newaxis]
        if data.ndim != 3:
            raise ValueError(
                f"Expected data with shape (bands, rows, columns), got shape {data.shape}"
            )
        data.setflags(write=False)
        self._data = data

        if grid_geometry is None:
            if bounds is None:
                raise ValueError("Either a grid geometry or bounds are required")
            grid_geometry = GridGeometry.from_envelope(
                GridRange.from_shape(self.width, self.height),
                Envelope.from_bounds(bounds),
            )
        elif bounds is not None:
            raise ValueError("Supply either a grid geometry or bounds, not both")
        if grid_geometry.grid_to_crs is None:
            raise ValueError("The grid geometry of a coverage needs a grid-to-crs transform")
        if grid_geometry.grid_range is None:
            grid_range = GridRange.from_shape(
                self.width, self.height, *([1] * (grid_geometry.dimension - 2))
            )
            grid_geometry = GridGeometry(grid_range, grid_geometry.grid_to_crs)
        span = grid_geometry.grid_range.span
        if grid_geometry.dimension < 2 or tuple(span[:2]) != (self.width, self.height):
            raise MismatchedDimensionError(
                f"Grid range {grid_geometry.grid_range} does not match data of shape {data.shape}"
            )
        if numpy.any(span[2:] != 1):
            raise MismatchedDimensionError(
                f"Only the first two axes of a grid range can span more than one index, got {grid_geometry.grid_range}"
            )
        self._grid_geometry = grid_geometry

        self._crs = None if crs is None else CRS.from_user_input(crs)
        if self._crs is not None and len(self._crs.axis_info) != grid_geometry.grid_to_crs.dim_target:
            raise MismatchedDimensionError(
                f"CRS '{self._crs.name}' has {len(self._crs.axis_info)} axes but the grid-to-crs "
                f"transform produces {grid_geometry.grid_to_crs.dim_target} coordinates."
            )

        if sample_dimensions is None:
            sample_dimensions = [SampleDimension() for _ in range(self.num_bands)]
        if len(sample_dimensions) != self.num_bands:
            raise ValueError(
                f"Got {len(sample_dimensions)} sample dimensions for {self.num_bands} bands"
            )
        self._sample_dimensions = tuple(sample_dimensions)
        self._sources = tuple(sources)
        self.name = name if name is not None else "coverage"
        self._companion = None
        self._crs_to_grid = None

    @property
    def data(self):
        """The read-only pixel values with shape (bands, rows, columns)"""
        return self._data

    @property
    def crs(self):
        return self._crs

    @property
    def grid_geometry(self):
        return self._grid_geometry

    @property
    def grid_range(self):
        return self._grid_geometry.grid_range

    @property
    def grid_to_crs(self):
        return self._grid_geometry.grid_to_crs

    @property
    def sample_dimensions(self):
        return self._sample_dimensions

    @property
    def sources(self):
        return self._sources

    @property
    def num_bands(self):
        return self._data.shape[0]

    @property
    def height(self):
        return self._data.shape[1]

    @property
    def width(self):
        return self._data.shape[2]

    @property
    def dtype(self):
        return self._data.dtype

    @property
    def envelope(self):
        return self._grid_geometry.envelope

    @property
    def bounds(self):
        """The extent of the first two axes as (minx, miny, maxx, maxy)"""
        return self.envelope.bounds

    @property
    def footprint(self):
        """The extent of the coverage as a shapely Polygon"""
        return self.envelope.to_shapely()

    @property
    def is_geophysics(self):
        return all(sd.is_geophysics for sd in self._sample_dimensions)

    def is_aligned_with(self, other):
        """Check if two coverages share a CRS and grid geometry.

        Returns
        -------
        `Tuple(bool, str)`
            Whether the coverages are aligned and, if they are not, the reason why
        """
        if self.crs != other.crs:
            return False, f"CRS does not match: {self.crs} and {other.crs}."
        if not self.grid_geometry.is_equivalent(other.grid_geometry):
            return (
                False,
                f"Grid geometry does not match: {self.grid_geometry} and {other.grid_geometry}.",
            )
        return True, ""

    def geophysics(self, geophysics=True, dtype=None):
        """The view of this coverage as geophysical values (True) or as packed samples (False).

        The two views are linked to each other, so asking for the same view twice
        returns the same coverage.

        Parameters
        ----------
        geophysics: :class:`bool`
            Which view to return. Default: True
        dtype: `numpy.dtype` (optional)
            The data type of a new packed view. If not supplied the smallest type
            that holds every category of every band is used.

        Returns
        -------
        :class:`GridCoverage`
        """
        if bool(geophysics) == self.is_geophysics:
            return self
        if self._companion is not None:
            return self._companion
        sample_dimensions = [sd.geophysics(geophysics) for sd in self._sample_dimensions]
        if not geophysics and all(
            new is old for new, old in zip(sample_dimensions, self._sample_dimensions)
        ):
            return self
        if geophysics:
            data = numpy.stack(
                [
                    sd.to_geophysics(band)
                    for sd, band in zip(self._sample_dimensions, self._data)
                ]
            )
        else:
            if dtype is None:
                dtype = _packed_dtype(sample_dimensions)
            data = numpy.stack(
                [
                    sd.to_packed(band, dtype)
                    for sd, band in zip(self._sample_dimensions, self._data)
                ]
            )
        companion = GridCoverage(
            data,
            crs=self._crs,
            grid_geometry=self._grid_geometry,
            sample_dimensions=sample_dimensions,
            sources=self._sources,
            name=self.name,
            prevent_copy=True,
        )
        companion._companion = self
        self._companion = companion
        return companion

    def sample_grid(self, cols, rows):
        """Sample the nearest pixel at fractional grid positions.

        Positions are relative to the first pixel of the data, whose center is at (0, 0).

        Parameters
        ----------
        cols: `numpy.ndarray`
            The fractional column of each position
        rows: `numpy.ndarray`
            The fractional row of each position

        Returns
        -------
        `Tuple(numpy.ndarray, numpy.ndarray)`
            The values with shape (bands, positions) and a mask of the positions that fall within the data
        """
        cols = numpy.asarray(cols, dtype=float)
        rows = numpy.asarray(rows, dtype=float)
        finite = numpy.isfinite(cols) & numpy.isfinite(rows)
        ix = numpy.floor(numpy.where(finite, cols, -1) + 0.5).astype(int)
        iy = numpy.floor(numpy.where(finite, rows, -1) + 0.5).astype(int)
        inside = finite & (ix >= 0) & (ix < self.width) & (iy >= 0) & (iy < self.height)
        values = numpy.full((self.num_bands, len(cols)), numpy.nan)
        values[:, inside] = self._data[:, iy[inside], ix[inside]]
        return values, inside

    def to_grid(self, point):
        """The fractional position of a point in the CRS relative to the first pixel of the data"""
        if self._crs_to_grid is None:
            self._crs_to_grid = self.grid_to_crs.inverse()
        return self._crs_to_grid.transform_point(point) - self.grid_range.lower

    def _outside_extra_axes(self, position):
        extra = numpy.floor(position[2:] + 0.5)
        return bool(numpy.any(extra != 0))

    def evaluate(self, point, dtype=numpy.float64):
        """The values of all bands at `point`, using the nearest pixel.

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
            If the point does not fall on any pixel of the coverage
        """
        position = self.to_grid(point)
        values, inside = self.sample_grid(position[:1], position[1:2])
        if not inside[0] or self._outside_extra_axes(position):
            raise PointOutsideCoverageError(point)
        return cast_values(values[:, 0], dtype)

    def crop_range(self, grid_range: GridRange):
        """Extract the pixels within `grid_range`, which is clipped to the grid range of this coverage"""
        grid_range = grid_range.intersection(self.grid_range)
        xmin, ymin, xmax, ymax = grid_range.bounds
        x0, y0 = self.grid_range.lower[:2]
        data = self._data[:, ymin - y0 : ymax - y0, xmin - x0 : xmax - x0]
        return GridCoverage(
            data,
            crs=self._crs,
            grid_geometry=GridGeometry(grid_range, self.grid_to_crs),
            sample_dimensions=self._sample_dimensions,
            sources=(self,),
            name=self.name,
        )

    def crop(self, bounds):
        """Extract the pixels that intersect `bounds`

        Parameters
        ----------
        bounds: `Tuple(float, float, float, float)`
            The area of interest as (minx, miny, maxx, maxy) in the CRS of the coverage

        Returns
        -------
        :class:`GridCoverage`
        """
        envelope = self.envelope.with_sub_envelope(Envelope.from_bounds(bounds))
        grid_range = GridGeometry.range_from_envelope(self.grid_to_crs, envelope)
        return self.crop_range(grid_range)

    def __abs__(self):
        from gridwarp import operation

        return operation.ABSOLUTE.apply([self])

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(name={self.name!r}, shape={self._data.shape}, "
            f"crs={self._crs.name if self._crs else None!r}, grid_geometry={self._grid_geometry!r})"
        )


def _packed_dtype(sample_dimensions):
    values = [
        value
        for sd in sample_dimensions
        for category in sd.categories
        for value in category.sample_range
        if numpy.isfinite(value)
    ]
    if not values or any(float(value) != int(value) for value in values):
        return numpy.dtype(numpy.float64)
    return numpy.result_type(*[numpy.min_scalar_type(int(value)) for value in values])
