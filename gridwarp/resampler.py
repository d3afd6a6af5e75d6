import warnings

import numpy
from pyproj import CRS

from gridwarp.config import ProcessingConfig
from gridwarp.coverage import GridCoverage, cast_values
from gridwarp.errors import (
    BoundsMismatchWarning,
    CannotReprojectError,
    MismatchedDimensionError,
    NoninvertibleTransformError,
    TransformError,
)
from gridwarp.grid_geometry import GridGeometry
from gridwarp.interpolation import NearestInterpolation, get_interpolations
from gridwarp.interpolator import create_interpolator
from gridwarp.transform import AffineTransform, affine_matrix, concatenate
from gridwarp.warp import WarpTransform


class ResampledCoverage(GridCoverage):
    """A coverage produced by :func:`reproject`.

    Its only source is the coverage that was resampled.

    Parameters
    ----------
    interpolations: List[:class:`~gridwarp.interpolation.Interpolation`]
        The kernels used, in order of preference
    strategy: :class:`str`
        How the pixels were produced: "Crop", "Affine" or "Warp"
    """

    def __init__(self, *args, interpolations=(), strategy=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.interpolations = list(interpolations)
        self.strategy = strategy

    @property
    def source(self):
        return self.sources[0]


def _same_crs(left, right):
    if left is None or right is None:
        return left is right
    return left == right


def _is_equivalent(coverage, crs, grid_geometry, tolerance):
    if not _same_crs(coverage.crs, crs):
        return False
    return coverage.grid_geometry.is_equivalent(grid_geometry, tolerance)


def _flips_y(grid_to_crs_2d):
    matrix = affine_matrix(grid_to_crs_2d)
    return matrix is None or matrix[1, 1] < 0


def _complete_geometry(source, grid_geometry, target_envelope, config):
    """Fill in the grid range or the grid-to-crs transform of the target, if missing.

    Returns the completed geometry and whether any part of it was derived.
    """
    flip_y = _flips_y(source.grid_geometry.grid_to_crs_2d)
    if grid_geometry is None:
        return (
            GridGeometry.from_envelope(source.grid_range, target_envelope, flip_y),
            True,
        )
    if grid_geometry.grid_to_crs is None:
        return (
            GridGeometry.from_envelope(
                grid_geometry.grid_range, target_envelope, flip_y
            ),
            True,
        )
    if grid_geometry.grid_range is None:
        grid_range = GridGeometry.range_from_envelope(
            grid_geometry.grid_to_crs,
            target_envelope,
            config.tolerance,
            config.densify_points,
        )
        return GridGeometry(grid_range, grid_geometry.grid_to_crs), True
    return grid_geometry, False


def _convert_view(result, source, geophysics):
    """Express a resampled coverage in the same view (geophysics or packed) as its source"""
    sample_dimensions = [sd.geophysics(geophysics) for sd in result.sample_dimensions]
    if geophysics:
        bands = [sd.to_geophysics(band) for sd, band in zip(result.sample_dimensions, result.data)]
    else:
        bands = [
            sd.to_packed(band, source.dtype)
            for sd, band in zip(result.sample_dimensions, result.data)
        ]
    converted = ResampledCoverage(
        numpy.stack(bands),
        crs=result.crs,
        grid_geometry=result.grid_geometry,
        sample_dimensions=sample_dimensions,
        sources=result.sources,
        name=result.name,
        prevent_copy=True,
        interpolations=result.interpolations,
        strategy=result.strategy,
    )
    converted._companion = result
    result._companion = converted
    return converted


def reproject(
    source: GridCoverage,
    crs=None,
    grid_geometry: GridGeometry = None,
    interpolation=None,
    config: ProcessingConfig = None,
):
    """Resample a coverage onto another grid geometry and/or CRS.

    If the requested CRS and grid geometry are equivalent to those of `source`,
    `source` itself is returned. Otherwise the cheapest way to produce the pixels
    is used: a crop if the grids line up, an affine resample if the grids are related
    by an affine transform, or a warp evaluating every destination pixel through
    the interpolator.

    Parameters
    ----------
    source: :class:`~gridwarp.coverage.GridCoverage`
        The coverage to resample
    crs: `pyproj.CRS` (optional)
        The target CRS. Can be anything accepted by :meth:`pyproj.CRS.from_user_input`.
        Default: the CRS of `source`
    grid_geometry: :class:`~gridwarp.grid_geometry.GridGeometry` (optional)
        The target grid geometry. Missing parts are derived from the envelope of `source`
        in the target CRS. If not supplied, the target has as many pixels as `source`.
    interpolation: :class:`str` or :class:`~gridwarp.interpolation.Interpolation` or a list of either
        The kernels to use, in order of preference. Default: taken from `config`
    config: :class:`~gridwarp.config.ProcessingConfig` (optional)
        The settings to use

    Returns
    -------
    :class:`~gridwarp.coverage.GridCoverage`

    Raises
    ------
    :class:`~gridwarp.errors.CannotReprojectError`
        If only one of the CRSs is known, if the horizontal part of the transform can not be
        separated from the other axes, or if a transform could not be inverted or applied
    """
    if config is None:
        config = ProcessingConfig()
    interpolations = get_interpolations(
        interpolation if interpolation is not None else config.default_interpolation
    )
    target_crs = source.crs if crs is None else CRS.from_user_input(crs)

    if _is_equivalent(source, target_crs, grid_geometry, config.tolerance):
        return source
    if config.collapse_resampled_chain:
        while isinstance(source, ResampledCoverage):
            source = source.source
            if _is_equivalent(source, target_crs, grid_geometry, config.tolerance):
                return source

    name = source.name
    if (source.crs is None) != (target_crs is None):
        raise CannotReprojectError(
            name, "the CRS of both the source and the target must be known"
        )
    if source.crs is None:
        crs_transform = AffineTransform.identity(source.grid_to_crs.dim_target)
    else:
        crs_transform = config.transform_factory.create(source.crs, target_crs)

    # reduce to the first two axes and check the reduction holds for the source envelope
    crs_transform_2d = crs_transform.sub_transform(0, 2)
    source_grid_to_crs_2d = source.grid_geometry.grid_to_crs_2d
    if crs_transform_2d is None or source_grid_to_crs_2d is None:
        raise CannotReprojectError(name, "no 2-D transform available")
    source_envelope = source.envelope
    try:
        target_envelope = source_envelope.transformed(
            crs_transform, config.densify_points
        )
        target_envelope_2d = source_envelope.sub_envelope(0, 2).transformed(
            crs_transform_2d, config.densify_points
        )
    except TransformError as e:
        raise CannotReprojectError(
            name, "the envelope could not be transformed to the target CRS"
        ) from e
    if not target_envelope.sub_envelope(0, 2).equals(
        target_envelope_2d, config.tolerance
    ):
        raise CannotReprojectError(name, "no 2-D transform available")

    try:
        grid_geometry, automatic = _complete_geometry(
            source, grid_geometry, target_envelope, config
        )
    except (ValueError, TransformError) as e:
        raise CannotReprojectError(name, f"could not derive the target grid geometry: {e}") from e
    if grid_geometry.grid_to_crs.dim_target != crs_transform.dim_target:
        raise CannotReprojectError(
            name,
            f"the target grid geometry has {grid_geometry.grid_to_crs.dim_target} dimensions "
            f"but the target CRS has {crs_transform.dim_target}",
        )
    if _is_equivalent(source, target_crs, grid_geometry, config.tolerance):
        return source
    target_grid_to_crs_2d = grid_geometry.grid_to_crs_2d
    if target_grid_to_crs_2d is None:
        raise CannotReprojectError(name, "no 2-D transform available")

    # destination grid -> target CRS -> source CRS -> source grid
    try:
        grid_to_grid = concatenate(
            target_grid_to_crs_2d,
            crs_transform_2d.inverse(),
            source_grid_to_crs_2d.inverse(),
        )
    except (NoninvertibleTransformError, MismatchedDimensionError) as e:
        raise CannotReprojectError(name, "the grid-to-grid transform could not be built") from e

    # integer packed samples are only resampled by nearest neighbor
    nearest = isinstance(interpolations[0], NearestInterpolation)
    working = source.geophysics(not nearest)
    working_geophysics = working.is_geophysics
    background = numpy.array(
        [sd.background_value(working_geophysics) for sd in working.sample_dimensions],
        dtype=float,
    )

    engine = config.engine
    grid_range = grid_geometry.grid_range
    requested = grid_range.bounds
    source_range = working.grid_range
    x0, y0 = (int(value) for value in source_range.lower[:2])
    data = None
    if grid_to_grid.is_identity(config.tolerance) and source_range.sub_range(
        0, 2
    ).contains(grid_range.sub_range(0, 2)):
        strategy = "Crop"
        xmin, ymin, xmax, ymax = requested
        data, actual = engine.crop(
            working.data, (xmin - x0, ymin - y0, xmax - x0, ymax - y0)
        )
        actual = (actual[0] + x0, actual[1] + y0, actual[2] + x0, actual[3] + y0)
    else:
        matrix = affine_matrix(grid_to_grid)
        if matrix is not None:
            strategy = "Affine"
            to_array = AffineTransform.scale_translate((1, 1), (-x0, -y0)).matrix
            data, actual = engine.affine_resample(
                working.data, to_array @ matrix, interpolations[0], background, requested
            )
            if tuple(actual) != requested and not automatic:
                data = None
        if data is None:
            strategy = "Warp"
            sampler = create_interpolator(working, interpolations)
            warp = WarpTransform(grid_to_grid, (x0, y0))
            data, actual = engine.warp_resample(
                sampler.sample_grid, warp, background, requested
            )

    actual = tuple(int(value) for value in actual)
    if actual != requested:
        warnings.warn(
            f"{strategy} of coverage '{name}' produced pixels {actual} instead of the "
            f"requested {requested}. The grid range is adjusted to match.",
            BoundsMismatchWarning,
        )
        grid_geometry = GridGeometry(
            grid_range.with_bounds_2d(actual), grid_geometry.grid_to_crs
        )

    result = ResampledCoverage(
        cast_values(data, working.dtype),
        crs=target_crs,
        grid_geometry=grid_geometry,
        sample_dimensions=working.sample_dimensions,
        sources=(source,),
        name=name,
        prevent_copy=True,
        interpolations=interpolations,
        strategy=strategy,
    )
    if working_geophysics != source.is_geophysics:
        result = _convert_view(result, source, source.is_geophysics)
    return result
