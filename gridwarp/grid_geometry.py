from typing import Tuple

import numpy
import shapely

from gridwarp.errors import MismatchedDimensionError
from gridwarp.transform import AffineTransform, MathTransform, transform_bounds


class GridRange:
    """Integer pixel index bounds, inclusive `lower` and exclusive `upper`, per axis.

    The first axis is the column (x) and the second axis the row (y).
    Any further axes are expected to span a single index.
    """

    def __init__(self, lower, upper):
        lower = numpy.asarray(lower, dtype=int)
        upper = numpy.asarray(upper, dtype=int)
        if lower.shape != upper.shape or lower.ndim != 1:
            raise MismatchedDimensionError(
                f"Lower and upper bounds differ in dimension: {lower} and {upper}"
            )
        if numpy.any(upper < lower):
            raise ValueError(f"Upper bound {upper} is below lower bound {lower}")
        self._lower = lower
        self._upper = upper

    @classmethod
    def from_shape(cls, width, height, *extra):
        """A range starting at zero, sized `width` by `height` plus any extra axis spans"""
        span = (width, height, *extra)
        return cls(numpy.zeros(len(span), dtype=int), span)

    @property
    def lower(self):
        return self._lower.copy()

    @property
    def upper(self):
        return self._upper.copy()

    @property
    def dimension(self):
        return len(self._lower)

    @property
    def span(self):
        return self._upper - self._lower

    @property
    def width(self):
        return int(self.span[0])

    @property
    def height(self):
        return int(self.span[1])

    @property
    def is_empty(self):
        return bool(numpy.any(self.span == 0))

    @property
    def bounds(self) -> Tuple[int, int, int, int]:
        """The bounds of the first two axes as (xmin, ymin, xmax, ymax)"""
        return (
            int(self._lower[0]),
            int(self._lower[1]),
            int(self._upper[0]),
            int(self._upper[1]),
        )

    def sub_range(self, lower, upper):
        return GridRange(self._lower[lower:upper], self._upper[lower:upper])

    def with_bounds_2d(self, bounds):
        """A copy of this range with the first two axes replaced by `bounds` (xmin, ymin, xmax, ymax)"""
        lower = self.lower
        upper = self.upper
        lower[:2] = bounds[:2]
        upper[:2] = bounds[2:]
        return GridRange(lower, upper)

    def contains(self, other):
        return bool(
            numpy.all(other._lower >= self._lower)
            and numpy.all(other._upper <= self._upper)
        )

    def intersection(self, other):
        lower = numpy.maximum(self._lower, other._lower)
        upper = numpy.maximum(numpy.minimum(self._upper, other._upper), lower)
        return GridRange(lower, upper)

    def __eq__(self, other):
        if not isinstance(other, GridRange):
            return NotImplemented
        return numpy.array_equal(self._lower, other._lower) and numpy.array_equal(
            self._upper, other._upper
        )

    def __hash__(self):
        return hash((tuple(self._lower), tuple(self._upper)))

    def __repr__(self):
        return f"{self.__class__.__name__}({self._lower.tolist()}, {self._upper.tolist()})"


class Envelope:
    """A box in real world coordinates spanning `lower` to `upper` on every axis."""

    def __init__(self, lower, upper):
        lower = numpy.asarray(lower, dtype=float)
        upper = numpy.asarray(upper, dtype=float)
        if lower.shape != upper.shape or lower.ndim != 1:
            raise MismatchedDimensionError(
                f"Lower and upper bounds differ in dimension: {lower} and {upper}"
            )
        self._lower = lower
        self._upper = upper

    @classmethod
    def from_bounds(cls, bounds):
        """Create a 2D envelope from a (minx, miny, maxx, maxy) tuple"""
        minx, miny, maxx, maxy = bounds
        return cls((minx, miny), (maxx, maxy))

    @property
    def lower(self):
        return self._lower.copy()

    @property
    def upper(self):
        return self._upper.copy()

    @property
    def dimension(self):
        return len(self._lower)

    @property
    def span(self):
        return self._upper - self._lower

    @property
    def center(self):
        return (self._lower + self._upper) / 2

    @property
    def bounds(self):
        """The extent of the first two axes as (minx, miny, maxx, maxy)"""
        return (
            float(self._lower[0]),
            float(self._lower[1]),
            float(self._upper[0]),
            float(self._upper[1]),
        )

    def sub_envelope(self, lower, upper):
        return Envelope(self._lower[lower:upper], self._upper[lower:upper])

    def with_sub_envelope(self, envelope, lower=0):
        """A copy of this envelope where the axes starting at `lower` are replaced by `envelope`"""
        new_lower = self.lower
        new_upper = self.upper
        new_lower[lower : lower + envelope.dimension] = envelope._lower
        new_upper[lower : lower + envelope.dimension] = envelope._upper
        return Envelope(new_lower, new_upper)

    def transformed(self, transform: MathTransform, densify_points=21):
        """The envelope that encloses this envelope after transforming it"""
        lower, upper = transform_bounds(
            transform, self._lower, self._upper, densify_points
        )
        return Envelope(lower, upper)

    def contains(self, other, tolerance=0):
        margin = tolerance * numpy.abs(self.span)
        return bool(
            numpy.all(other._lower >= self._lower - margin)
            and numpy.all(other._upper <= self._upper + margin)
        )

    def equals(self, other, tolerance=1e-6):
        """Compare envelopes, allowing a difference relative to the span of each axis"""
        if self.dimension != other.dimension:
            return False
        margin = tolerance * numpy.maximum(numpy.abs(self.span), numpy.abs(other.span))
        return bool(
            numpy.all(numpy.abs(self._lower - other._lower) <= margin)
            and numpy.all(numpy.abs(self._upper - other._upper) <= margin)
        )

    def to_shapely(self):
        """The first two axes as a `shapely.Polygon`"""
        return shapely.box(*self.bounds)

    def __repr__(self):
        return f"{self.__class__.__name__}({self._lower.tolist()}, {self._upper.tolist()})"


class GridGeometry:
    """A grid range together with the transform from pixel centers to real world coordinates.

    A grid geometry may be incomplete, having either a grid range or a transform.
    The missing part can be derived from an envelope, see :meth:`from_envelope`
    and :meth:`range_from_envelope`. The grid-to-crs transform maps the *center*
    of pixel ``(col, row)`` to the point ``grid_to_crs(col, row)``, so the pixel
    covers ``[col - 0.5, col + 0.5)`` in grid coordinates. The same convention is
    used both when deriving an envelope from a range and a range from an envelope.

    Parameters
    ----------
    grid_range: :class:`GridRange` (optional)
        The pixel index bounds
    grid_to_crs: :class:`~gridwarp.transform.MathTransform` (optional)
        The transform from pixel centers to coordinates in the CRS
    """

    def __init__(self, grid_range: GridRange = None, grid_to_crs: MathTransform = None):
        if grid_range is None and grid_to_crs is None:
            raise ValueError("Either a grid range or a grid-to-crs transform is required")
        if grid_range is not None and grid_to_crs is not None:
            if grid_range.dimension != grid_to_crs.dim_source:
                raise MismatchedDimensionError(
                    f"Grid range has {grid_range.dimension} dimensions but the transform "
                    f"expects {grid_to_crs.dim_source}."
                )
        self._grid_range = grid_range
        self._grid_to_crs = grid_to_crs

    @classmethod
    def from_envelope(cls, grid_range: GridRange, envelope: Envelope, flip_y=True):
        """Create the affine grid geometry that maps `grid_range` onto `envelope`.

        Parameters
        ----------
        grid_range: :class:`GridRange`
            The pixel index bounds
        envelope: :class:`Envelope`
            The area covered by the outer edges of the pixels
        flip_y: :class:`bool`
            Let the row index increase towards lower y values, as is common
            for images stored with the top row first. Default: True

        Returns
        -------
        :class:`GridGeometry`
        """
        if grid_range.dimension != envelope.dimension:
            raise MismatchedDimensionError(
                f"Grid range has {grid_range.dimension} dimensions, envelope has {envelope.dimension}."
            )
        span = grid_range.span
        if numpy.any(span == 0):
            raise ValueError(f"Can not map an empty grid range onto an envelope: {grid_range}")
        scale = envelope.span / span
        origin = envelope.lower
        if flip_y and grid_range.dimension >= 2:
            scale[1] = -scale[1]
            origin[1] = envelope.upper[1]
        translate = origin - scale * (grid_range.lower - 0.5)
        return cls(grid_range, AffineTransform.scale_translate(scale, translate))

    @staticmethod
    def range_from_envelope(
        grid_to_crs: MathTransform, envelope: Envelope, tolerance=1e-6, densify_points=21
    ):
        """The range of pixels that intersect `envelope`.

        Envelope edges within `tolerance` of a pixel edge are snapped to that edge,
        so an envelope that follows pixel edges yields exactly the pixels inside it.
        """
        grid_envelope = envelope.transformed(grid_to_crs.inverse(), densify_points)
        lower = numpy.floor(grid_envelope.lower + 0.5 + tolerance)
        upper = numpy.ceil(grid_envelope.upper + 0.5 - tolerance)
        return GridRange(lower.astype(int), numpy.maximum(upper, lower).astype(int))

    @property
    def grid_range(self):
        return self._grid_range

    @property
    def grid_to_crs(self):
        return self._grid_to_crs

    @property
    def dimension(self):
        if self._grid_range is not None:
            return self._grid_range.dimension
        return self._grid_to_crs.dim_source

    @property
    def is_complete(self):
        return self._grid_range is not None and self._grid_to_crs is not None

    @property
    def grid_to_crs_2d(self):
        """The part of the grid-to-crs transform governing the first two axes, or None if it can not be separated"""
        if self._grid_to_crs is None:
            return None
        return self._grid_to_crs.sub_transform(0, 2)

    @property
    def envelope(self):
        """The area covered by the outer edges of all pixels in the grid range"""
        if not self.is_complete:
            raise ValueError("An incomplete grid geometry has no envelope")
        return self.envelope_of(self._grid_range)

    def envelope_of(self, grid_range, densify_points=21):
        """The area covered by the outer edges of the pixels in `grid_range`"""
        lower, upper = transform_bounds(
            self._grid_to_crs,
            grid_range.lower - 0.5,
            grid_range.upper - 0.5,
            densify_points,
        )
        return Envelope(lower, upper)

    def is_equivalent(self, other, tolerance=1e-9):
        """Compare two grid geometries, ignoring the parts that are not specified in either of them"""
        if other is None:
            return True
        if self._grid_range is not None and other._grid_range is not None:
            if self._grid_range != other._grid_range:
                return False
        if self._grid_to_crs is not None and other._grid_to_crs is not None:
            if self._grid_to_crs is other._grid_to_crs:
                return True
            if not (
                isinstance(self._grid_to_crs, AffineTransform)
                and self._grid_to_crs.almost_equals(other._grid_to_crs, tolerance)
            ):
                return False
        return True

    def __repr__(self):
        return f"{self.__class__.__name__}({self._grid_range!r}, {self._grid_to_crs!r})"
