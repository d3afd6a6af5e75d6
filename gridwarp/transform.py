import abc
import functools
import itertools

import numpy
from pyproj import CRS, Transformer
from pyproj.exceptions import ProjError

from gridwarp.errors import (
    MismatchedDimensionError,
    NoninvertibleTransformError,
    TransformError,
)


class MathTransform(metaclass=abc.ABCMeta):
    """Abstraction base class of a transform between two coordinate spaces.

    Points are always supplied as a 2D array of shape (N, dim_source) and returned
    as an array of shape (N, dim_target). Axis order is x/y (east/north) first.
    """

    @property
    @abc.abstractmethod
    def dim_source(self) -> int:
        pass

    @property
    @abc.abstractmethod
    def dim_target(self) -> int:
        pass

    @abc.abstractmethod
    def transform(self, points):
        """Transform an array of points of shape (N, dim_source)"""

    @abc.abstractmethod
    def inverse(self):
        """The inverse of this transform

        Raises
        ------
        :class:`~gridwarp.errors.NoninvertibleTransformError`
            If the transform has no inverse
        """

    @abc.abstractmethod
    def sub_transform(self, lower, upper):
        """The part of this transform that governs the axes in range ``[lower, upper)``.

        Returns
        -------
        :class:`MathTransform` or None
            None if the requested axes can not be separated from the other axes.
        """

    @property
    def is_affine(self):
        return False

    def is_identity(self, tolerance=1e-12):
        return False

    def transform_point(self, point):
        """Transform a single point and return it as a 1D array"""
        return self.transform(numpy.atleast_2d(numpy.asarray(point, dtype=float)))[0]

    def concatenate(self, other):
        """A transform that first applies `self`, then `other`"""
        return concatenate(self, other)

    def _validate_points(self, points):
        points = numpy.atleast_2d(numpy.asarray(points, dtype=float))
        if points.shape[-1] != self.dim_source:
            raise MismatchedDimensionError(
                f"Expected points of dimension {self.dim_source}, got {points.shape[-1]}."
            )
        return points


class AffineTransform(MathTransform):
    """An affine transform represented by a square matrix in homogeneous coordinates.

    Parameters
    ----------
    matrix: `numpy.ndarray`
        A matrix of shape (dim+1, dim+1). The last row must be ``[0, ..., 0, 1]``.
    """

    def __init__(self, matrix):
        matrix = numpy.array(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise MismatchedDimensionError(
                f"Expected a square matrix, got one of shape {matrix.shape}"
            )
        self._matrix = matrix
        self._matrix.setflags(write=False)

    @classmethod
    def identity(cls, dim):
        return cls(numpy.eye(dim + 1))

    @classmethod
    def from_coefficients(cls, a, b, c, d, e, f):
        """Create a 2D transform from the six coefficients in the order also used by rasterio.

        ``x = a * col + b * row + c`` and ``y = d * col + e * row + f``
        """
        return cls([[a, b, c], [d, e, f], [0, 0, 1]])

    @classmethod
    def scale_translate(cls, scale, translate):
        scale = numpy.atleast_1d(numpy.asarray(scale, dtype=float))
        translate = numpy.atleast_1d(numpy.asarray(translate, dtype=float))
        dim = len(scale)
        matrix = numpy.eye(dim + 1)
        matrix[range(dim), range(dim)] = scale
        matrix[:dim, dim] = translate
        return cls(matrix)

    @property
    def matrix(self):
        return self._matrix

    @property
    def dim_source(self):
        return self._matrix.shape[0] - 1

    @property
    def dim_target(self):
        return self._matrix.shape[0] - 1

    @property
    def is_affine(self):
        return True

    @property
    def scale(self):
        """The diagonal of the linear part"""
        dim = self.dim_source
        return self._matrix[range(dim), range(dim)].copy()

    @property
    def translation(self):
        return self._matrix[: self.dim_source, -1].copy()

    def is_identity(self, tolerance=1e-12):
        return numpy.allclose(
            self._matrix, numpy.eye(self.dim_source + 1), rtol=0, atol=tolerance
        )

    def transform(self, points):
        points = self._validate_points(points)
        dim = self.dim_source
        return points @ self._matrix[:dim, :dim].T + self._matrix[:dim, dim]

    def inverse(self):
        if numpy.isclose(numpy.linalg.det(self._matrix[:-1, :-1]), 0, atol=1e-300):
            raise NoninvertibleTransformError(
                f"Affine transform is singular and has no inverse:\n{self._matrix}"
            )
        return AffineTransform(numpy.linalg.inv(self._matrix))

    def sub_transform(self, lower, upper):
        dim = self.dim_source
        if lower == 0 and upper == dim:
            return self
        inside = numpy.zeros(dim, dtype=bool)
        inside[lower:upper] = True
        linear = self._matrix[:dim, :dim]
        if numpy.any(linear[numpy.ix_(inside, ~inside)]) or numpy.any(
            linear[numpy.ix_(~inside, inside)]
        ):
            return None
        axes = list(range(lower, upper)) + [dim]
        return AffineTransform(self._matrix[numpy.ix_(axes, axes)])

    def __eq__(self, other):
        if not isinstance(other, AffineTransform):
            return NotImplemented
        return self._matrix.shape == other._matrix.shape and numpy.array_equal(
            self._matrix, other._matrix
        )

    def __hash__(self):
        return hash(self._matrix.tobytes())

    def almost_equals(self, other, tolerance=1e-9):
        return (
            isinstance(other, AffineTransform)
            and self._matrix.shape == other._matrix.shape
            and numpy.allclose(self._matrix, other._matrix, rtol=0, atol=tolerance)
        )

    def __repr__(self):
        rows = ", ".join(str(row) for row in self._matrix[:-1].tolist())
        return f"{self.__class__.__name__}({rows})"


def crs_dimension(crs):
    return len(CRS.from_user_input(crs).axis_info)


def horizontal_crs(crs):
    """The two dimensional horizontal part of a CRS."""
    crs = CRS.from_user_input(crs)
    if crs.is_compound:
        return crs.sub_crs_list[0]
    if len(crs.axis_info) > 2:
        return crs.to_2d()
    return crs


@functools.lru_cache(maxsize=64)
def _transformer(source_crs, target_crs):
    return Transformer.from_crs(source_crs, target_crs, always_xy=True)


class CRSTransform(MathTransform):
    """Transform coordinates from one CRS to another using pyproj.

    Parameters
    ----------
    source_crs: `pyproj.CRS`
        The CRS of the input coordinates.
        Can be anything accepted by :meth:`pyproj.CRS.from_user_input`.
    target_crs: `pyproj.CRS`
        The CRS of the output coordinates.
    """

    def __init__(self, source_crs, target_crs):
        self.source_crs = CRS.from_user_input(source_crs)
        self.target_crs = CRS.from_user_input(target_crs)
        self._dim_source = len(self.source_crs.axis_info)
        self._dim_target = len(self.target_crs.axis_info)

    @property
    def dim_source(self):
        return self._dim_source

    @property
    def dim_target(self):
        return self._dim_target

    def transform(self, points):
        points = self._validate_points(points)
        transformer = _transformer(self.source_crs, self.target_crs)
        try:
            result = transformer.transform(*points.T)
        except ProjError as e:
            raise TransformError(
                f"Could not transform points from {self.source_crs.name} to {self.target_crs.name}"
            ) from e
        result = numpy.column_stack(
            [numpy.asarray(axis, dtype=float) for axis in result]
        )
        if result.shape[1] < self.dim_target:  # pyproj omits axes it does not touch
            padding = numpy.zeros((len(result), self.dim_target - result.shape[1]))
            result = numpy.hstack([result, padding])
        return result[:, : self.dim_target]

    def inverse(self):
        return CRSTransform(self.target_crs, self.source_crs)

    def sub_transform(self, lower, upper):
        if lower == 0 and upper == self._dim_source == self._dim_target:
            return self
        if (lower, upper) != (0, 2):
            return None
        if self.source_crs.is_compound and self.target_crs.is_compound:
            if self.source_crs.sub_crs_list[1:] != self.target_crs.sub_crs_list[1:]:
                return None
        elif self._dim_source > 2 or self._dim_target > 2:
            if self._dim_source != self._dim_target:
                return None
        return CRSTransform(
            horizontal_crs(self.source_crs), horizontal_crs(self.target_crs)
        )

    def __repr__(self):
        return f"{self.__class__.__name__}({self.source_crs.name!r} -> {self.target_crs.name!r})"


class ConcatenatedTransform(MathTransform):
    """Apply `first`, then `second`. Use :func:`concatenate` to create one."""

    def __init__(self, first, second):
        if first.dim_target != second.dim_source:
            raise MismatchedDimensionError(
                f"Can not concatenate a transform with {first.dim_target} output dimensions "
                f"with a transform with {second.dim_source} input dimensions."
            )
        self.first = first
        self.second = second

    @property
    def dim_source(self):
        return self.first.dim_source

    @property
    def dim_target(self):
        return self.second.dim_target

    @property
    def is_affine(self):
        return self.first.is_affine and self.second.is_affine

    def transform(self, points):
        return self.second.transform(self.first.transform(points))

    def inverse(self):
        return concatenate(self.second.inverse(), self.first.inverse())

    def sub_transform(self, lower, upper):
        first = self.first.sub_transform(lower, upper)
        second = self.second.sub_transform(lower, upper)
        if first is None or second is None:
            return None
        return concatenate(first, second)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.first!r}, {self.second!r})"


class PassThroughTransform(MathTransform):
    """Apply `inner` to a range of axes, leaving the leading and trailing axes untouched.

    Parameters
    ----------
    first_affected: :class:`int`
        The number of leading axes that are passed through.
    inner: :class:`MathTransform`
        The transform to apply to the affected axes.
    num_trailing: :class:`int`
        The number of trailing axes that are passed through.
    """

    def __init__(self, first_affected, inner, num_trailing):
        if inner.dim_source != inner.dim_target:
            raise MismatchedDimensionError(
                "Only transforms that preserve dimensionality can be passed through"
            )
        self.first_affected = first_affected
        self.inner = inner
        self.num_trailing = num_trailing

    @property
    def dim_source(self):
        return self.first_affected + self.inner.dim_source + self.num_trailing

    @property
    def dim_target(self):
        return self.dim_source

    @property
    def is_affine(self):
        return self.inner.is_affine

    def is_identity(self, tolerance=1e-12):
        return self.inner.is_identity(tolerance)

    def transform(self, points):
        points = self._validate_points(points).copy()
        axes = slice(self.first_affected, self.first_affected + self.inner.dim_source)
        points[:, axes] = self.inner.transform(points[:, axes])
        return points

    def inverse(self):
        return PassThroughTransform(
            self.first_affected, self.inner.inverse(), self.num_trailing
        )

    def sub_transform(self, lower, upper):
        inner_lower = self.first_affected
        inner_upper = self.first_affected + self.inner.dim_source
        if upper <= inner_lower or lower >= inner_upper:
            return AffineTransform.identity(upper - lower)
        if lower == inner_lower and upper == inner_upper:
            return self.inner
        if lower <= inner_lower and upper >= inner_upper:
            return pass_through(inner_lower - lower, self.inner, upper - inner_upper)
        return None

    def __repr__(self):
        return f"{self.__class__.__name__}({self.first_affected}, {self.inner!r}, {self.num_trailing})"


def pass_through(first_affected, inner, num_trailing):
    """Create a transform that applies `inner` to the middle axes only."""
    if first_affected == 0 and num_trailing == 0:
        return inner
    if inner.is_affine and not isinstance(inner, ConcatenatedTransform):
        dim = first_affected + inner.dim_source + num_trailing
        matrix = numpy.eye(dim + 1)
        axes = list(range(first_affected, first_affected + inner.dim_source))
        matrix[numpy.ix_(axes, axes)] = inner.matrix[:-1, :-1]
        matrix[axes, dim] = inner.matrix[:-1, -1]
        return AffineTransform(matrix)
    return PassThroughTransform(first_affected, inner, num_trailing)


def concatenate(*transforms):
    """Combine transforms into one that applies them in the supplied order.

    Identity transforms are dropped and consecutive affine transforms are
    merged into a single matrix.
    """
    result = None
    for transform in transforms:
        if result is None:
            result = transform
            continue
        if result.dim_target != transform.dim_source:
            raise MismatchedDimensionError(
                f"Can not concatenate a transform with {result.dim_target} output dimensions "
                f"with a transform with {transform.dim_source} input dimensions."
            )
        if isinstance(transform, AffineTransform) and transform.is_identity(0):
            continue
        if isinstance(result, AffineTransform) and result.is_identity(0):
            result = transform
        elif isinstance(result, AffineTransform) and isinstance(
            transform, AffineTransform
        ):
            result = AffineTransform(transform.matrix @ result.matrix)
        elif isinstance(result, ConcatenatedTransform) and isinstance(
            result.second, AffineTransform
        ) and isinstance(transform, AffineTransform):
            result = ConcatenatedTransform(
                result.first, AffineTransform(transform.matrix @ result.second.matrix)
            )
        else:
            result = ConcatenatedTransform(result, transform)
    if result is None:
        raise ValueError("At least one transform is required")
    return result


def transform_bounds(transform, lower, upper, densify_points=21):
    """Transform the box spanned by `lower` and `upper` and return the bounding box of the result.

    The edges of the first two axes are densified so curved edges in the target
    space are accounted for. The remaining axes are sampled at their bounds only.

    Parameters
    ----------
    transform: :class:`MathTransform`
        The transform to apply
    lower: `numpy.ndarray`
        The minimum of every axis
    upper: `numpy.ndarray`
        The maximum of every axis
    densify_points: :class:`int`
        The number of points to sample along each edge

    Returns
    -------
    `Tuple(numpy.ndarray, numpy.ndarray)`
        The lower and upper bounds of the transformed box

    Raises
    ------
    :class:`~gridwarp.errors.TransformError`
        If none of the sampled points could be transformed
    """
    lower = numpy.asarray(lower, dtype=float)
    upper = numpy.asarray(upper, dtype=float)
    if transform.is_affine:
        points = numpy.array(list(itertools.product(*zip(lower, upper))))
    else:
        steps = numpy.linspace(0, 1, max(densify_points, 2))
        xs = lower[0] + steps * (upper[0] - lower[0])
        ys = lower[1] + steps * (upper[1] - lower[1])
        edges = numpy.vstack(
            [
                numpy.column_stack([xs, numpy.full_like(xs, lower[1])]),
                numpy.column_stack([xs, numpy.full_like(xs, upper[1])]),
                numpy.column_stack([numpy.full_like(ys, lower[0]), ys]),
                numpy.column_stack([numpy.full_like(ys, upper[0]), ys]),
            ]
        )
        extra = list(itertools.product(*zip(lower[2:], upper[2:])))
        if extra and extra[0]:
            points = numpy.vstack(
                [numpy.hstack([edges, numpy.tile(e, (len(edges), 1))]) for e in extra]
            )
        else:
            points = edges
    result = transform.transform(points)
    result = result[numpy.all(numpy.isfinite(result), axis=1)]
    if len(result) == 0:
        raise TransformError("None of the corners of the box could be transformed")
    return result.min(axis=0), result.max(axis=0)


class TransformFactory:
    """Creates transforms between pairs of CRSs.

    Parameters
    ----------
    densify_points: :class:`int`
        Number of points sampled per edge when transforming envelopes between CRSs.
    """

    def __init__(self, densify_points=21):
        self.densify_points = densify_points

    def create(self, source_crs, target_crs):
        """Create the transform from `source_crs` to `target_crs`.

        Returns an identity transform if both CRSs are equal and a pass-through
        transform if only the horizontal parts of two compound CRSs differ.
        """
        source_crs = CRS.from_user_input(source_crs)
        target_crs = CRS.from_user_input(target_crs)
        dim_source = len(source_crs.axis_info)
        if source_crs == target_crs:
            return AffineTransform.identity(dim_source)
        if (
            source_crs.is_compound
            and target_crs.is_compound
            and source_crs.sub_crs_list[1:] == target_crs.sub_crs_list[1:]
        ):
            horizontal = CRSTransform(
                source_crs.sub_crs_list[0], target_crs.sub_crs_list[0]
            )
            return PassThroughTransform(0, horizontal, dim_source - 2)
        return CRSTransform(source_crs, target_crs)


def affine_matrix(transform):
    """The matrix of an affine transform, or None if the transform is not affine.

    Works for any transform that reports itself as affine, such as pass-through
    or concatenated transforms built from affine parts.
    """
    if isinstance(transform, AffineTransform):
        return transform.matrix
    if not transform.is_affine or transform.dim_source != transform.dim_target:
        return None
    dim = transform.dim_source
    points = numpy.vstack([numpy.zeros(dim), numpy.eye(dim)])
    result = transform.transform(points)
    matrix = numpy.eye(dim + 1)
    matrix[:dim, dim] = result[0]
    matrix[:dim, :dim] = (result[1:] - result[0]).T
    return matrix
