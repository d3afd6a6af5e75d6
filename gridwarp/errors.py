class GridWarpError(Exception):
    """Base class of all errors raised by gridwarp"""


class AlignmentError(GridWarpError, ValueError):
    """Raised when coverages that need to share a grid are not aligned"""


class MismatchedDimensionError(GridWarpError, ValueError):
    """Raised when a grid range, transform, envelope or CRS disagree on dimensionality"""


class TransformError(GridWarpError, RuntimeError):
    """Raised when coordinates could not be transformed"""


class NoninvertibleTransformError(TransformError):
    """Raised when the inverse of a transform is requested but does not exist"""


class CannotReprojectError(GridWarpError, RuntimeError):
    """Raised when a coverage can not be projected onto the requested CRS or grid geometry.

    Parameters
    ----------
    coverage_name: :class:`str`
        The name of the coverage that could not be reprojected.
    reason: :class:`str`
        A description of what went wrong.
        The underlying transform failure, if any, is chained as ``__cause__``.
    """

    def __init__(self, coverage_name, reason):
        self.coverage_name = coverage_name
        self.reason = reason
        super().__init__(f"Can not reproject coverage '{coverage_name}': {reason}")


class CannotEvaluateError(GridWarpError, RuntimeError):
    """Raised when a coverage can not be evaluated at a point"""


class PointOutsideCoverageError(CannotEvaluateError):
    """Raised when a point falls outside the area covered by a coverage.

    This is raised for every pixel that falls outside while warping, so it stores
    the point and only builds the message when it is asked for.
    """

    def __init__(self, point):
        self.point = point
        super().__init__()

    def __str__(self):
        return f"Point {tuple(self.point)} is outside the coverage"


class UnknownInterpolationError(GridWarpError, ValueError):
    """Raised when an interpolation is requested by a name that is not supported"""


class OperationNotFoundError(GridWarpError, KeyError):
    """Raised when no operation is registered under the requested name"""

    def __str__(self):
        return str(self.args[0]) if self.args else ""


class DuplicateOperationError(GridWarpError, ValueError):
    """Raised when an operation is registered under a name that is already taken"""


class BoundsMismatchWarning(UserWarning):
    """Issued when the raster engine produced different bounds than the ones requested"""
