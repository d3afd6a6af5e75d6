"""Operations on coverages.

An :class:`Operation` is a plain value. Its behaviour is made up of functions:
`compute` produces the result and, for operations that combine coverages pixel
by pixel, `derive_category` and `derive_unit` describe the values of every output
band. Operations that do not need a hook simply use the default functions in
this module.
"""

import itertools
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

import numpy
import scipy.ndimage
from astropy import units

from gridwarp.config import ProcessingConfig
from gridwarp.coverage import GridCoverage
from gridwarp.errors import AlignmentError
from gridwarp.interpolator import create_interpolator
from gridwarp.resampler import reproject
from gridwarp.sample_dimension import Category, SampleDimension
from gridwarp.transform import affine_matrix


def default_derive_category(categories, band, coverage, parameters):
    """Nothing is known about the output, so the band metadata becomes unknown"""
    return None


def default_derive_unit(units, band, coverage, parameters):
    return None


def derive_sample_dimensions(operation, sources, coverage, parameters):
    """Describe the bands of the result of an operation that combines coverages pixel by pixel.

    Sources with a single band are applied to every band of the other sources.
    Every band of every source needs exactly one quantitative category.

    Parameters
    ----------
    operation: :class:`Operation`
        The operation providing the `derive_category` and `derive_unit` hooks
    sources: List[List[:class:`~gridwarp.sample_dimension.SampleDimension`]]
        The sample dimensions of each source
    coverage: :class:`~gridwarp.coverage.GridCoverage`
        The first source, for the hooks that need its CRS or grid geometry
    parameters: :class:`dict`
        The parameters of the operation

    Returns
    -------
    List[:class:`~gridwarp.sample_dimension.SampleDimension`] or None
        None if the bands of the result could not be described
    """
    num_bands = max(len(sample_dimensions) for sample_dimensions in sources)
    if any(len(sample_dimensions) not in (1, num_bands) for sample_dimensions in sources):
        return None
    result = []
    for band in range(num_bands):
        band_sources = [
            sample_dimensions[0] if len(sample_dimensions) == 1 else sample_dimensions[band]
            for sample_dimensions in sources
        ]
        categories = []
        for sample_dimension in band_sources:
            quantitative = sample_dimension.quantitative_categories
            if len(quantitative) != 1:
                return None
            categories.append(quantitative[0])
        category = operation.derive_category(categories, band, coverage, parameters)
        if category is None:
            return None
        unit = operation.derive_unit(
            [sample_dimension.unit for sample_dimension in band_sources],
            band,
            coverage,
            parameters,
        )
        # walk backwards so the first source wins when several of them match
        derived = None
        for sample_dimension, source_category in zip(
            reversed(band_sources), reversed(categories)
        ):
            if source_category == category and sample_dimension.unit == unit:
                derived = sample_dimension
        if derived is None:
            derived = SampleDimension(
                [category], unit=unit, description=band_sources[0].description
            )
        result.append(derived)
    return result


@dataclass(frozen=True, eq=False)
class Operation:
    """A named operation on one or more coverages.

    Parameters
    ----------
    name: :class:`str`
        The name the operation is registered under
    compute: `Callable`
        ``compute(operation, sources, parameters, config)`` returns the result
    num_sources: :class:`int`
        The number of source coverages the operation takes
    parameters: :class:`dict`
        The names and default values of the parameters of the operation
    derive_category: `Callable`
        ``derive_category(categories, band, coverage, parameters)`` returns the quantitative
        category of an output band, given that category of every source
    derive_unit: `Callable`
        ``derive_unit(units, band, coverage, parameters)`` returns the unit of an output band
    derive_sample_dimensions: `Callable`
        ``derive_sample_dimensions(operation, sources, coverage, parameters)`` describes all
        output bands, see :func:`derive_sample_dimensions`
    description: :class:`str`
    """

    name: str
    compute: Callable
    num_sources: int = 1
    parameters: Mapping = field(default_factory=dict)
    derive_category: Callable = default_derive_category
    derive_unit: Callable = default_derive_unit
    derive_sample_dimensions: Callable = derive_sample_dimensions
    description: str = ""

    def apply(self, sources, config: Optional[ProcessingConfig] = None, **parameters):
        """Apply the operation to `sources`

        Raises
        ------
        ValueError
            For parameters the operation does not know or an unexpected number of sources
        """
        unknown = set(parameters) - set(self.parameters)
        if unknown:
            raise ValueError(
                f"Operation '{self.name}' has no parameter(s) {sorted(unknown)}, "
                f"expected any of {sorted(self.parameters)}"
            )
        sources = list(sources)
        if len(sources) != self.num_sources:
            raise ValueError(
                f"Operation '{self.name}' takes {self.num_sources} source(s), got {len(sources)}"
            )
        return self.compute(
            self, sources, {**self.parameters, **parameters}, config or ProcessingConfig()
        )


def elementwise(function):
    """Create the `compute` function of an operation that combines coverages pixel by pixel.

    Sources are taken in their geophysics view and have to share a CRS and grid geometry.

    Parameters
    ----------
    function: `Callable`
        ``function(arrays, coverage, parameters)`` computes the output pixels from the float
        arrays of the sources, each shaped (bands, rows, columns)
    """

    def compute(operation, sources, parameters, config):
        sources = [source.geophysics(True) for source in sources]
        master = sources[0]
        for other in sources[1:]:
            aligned, reason = master.is_aligned_with(other)
            if not aligned:
                raise AlignmentError(f"Coverages are not aligned. {reason}")
        band_counts = {source.num_bands for source in sources} - {1}
        if len(band_counts) > 1:
            raise AlignmentError(
                f"Can not combine coverages with {sorted(band_counts)} bands"
            )
        data = function(
            [source.data.astype(float) for source in sources], master, parameters
        )
        sample_dimensions = operation.derive_sample_dimensions(
            operation, [source.sample_dimensions for source in sources], master, parameters
        )
        if sample_dimensions is None or len(sample_dimensions) != len(data):
            sample_dimensions = [SampleDimension() for _ in range(len(data))]
        return GridCoverage(
            data,
            crs=master.crs,
            grid_geometry=master.grid_geometry,
            sample_dimensions=sample_dimensions,
            sources=tuple(sources),
            name=master.name,
            prevent_copy=True,
        )

    return compute


def _same_unit(units, band, coverage, parameters):
    return units[0] if all(unit == units[0] for unit in units) else None


def _first_unit(units, band, coverage, parameters):
    return units[0]


def _range_category(categories, bounds):
    values = [value for value in bounds if numpy.isfinite(value)]
    if len(values) != len(bounds):
        return None
    return Category.quantitative(categories[0].name, float(min(values)), float(max(values)))


def _corners(categories, op):
    ranges = [category.geophysics_range for category in categories]
    return [op(*combination) for combination in itertools.product(*ranges)]


def _add_category(categories, band, coverage, parameters):
    (low0, high0), (low1, high1) = (c.geophysics_range for c in categories)
    return _range_category(categories, (low0 + low1, high0 + high1))


def _subtract_category(categories, band, coverage, parameters):
    (low0, high0), (low1, high1) = (c.geophysics_range for c in categories)
    return _range_category(categories, (low0 - high1, high0 - low1))


def _multiply_category(categories, band, coverage, parameters):
    return _range_category(categories, _corners(categories, lambda a, b: a * b))


def _divide_category(categories, band, coverage, parameters):
    low, high = categories[1].geophysics_range
    if low <= 0 <= high:
        return None
    return _range_category(categories, _corners(categories, lambda a, b: a / b))


def _multiply_unit(units, band, coverage, parameters):
    if units[0] is None or units[1] is None:
        return None
    return units[0] * units[1]


def _divide_unit(units, band, coverage, parameters):
    if units[0] is None or units[1] is None:
        return None
    return units[0] / units[1]


def _per_band(value, band):
    value = numpy.atleast_1d(value)
    return value[0] if len(value) == 1 else value[band]


def _rescale(arrays, coverage, parameters):
    constants = numpy.atleast_1d(parameters["constants"]).astype(float)
    offsets = numpy.atleast_1d(parameters["offsets"]).astype(float)
    return arrays[0] * constants[:, None, None] + offsets[:, None, None]


def _rescale_category(categories, band, coverage, parameters):
    constant = _per_band(parameters["constants"], band)
    offset = _per_band(parameters["offsets"], band)
    if constant == 1 and offset == 0:
        return categories[0]
    low, high = categories[0].geophysics_range
    return _range_category(categories, (low * constant + offset, high * constant + offset))


def _absolute_category(categories, band, coverage, parameters):
    low, high = categories[0].geophysics_range
    if low >= 0:
        return categories[0]
    if high <= 0:
        return _range_category(categories, (-high, -low))
    return _range_category(categories, (0, max(-low, high)))


DEFAULT_RANGE_SCALE = 0.25


def _pixel_spacing(coverage):
    matrix = affine_matrix(coverage.grid_geometry.grid_to_crs_2d)
    if matrix is None:
        raise ValueError(
            f"Coverage '{coverage.name}' needs an affine grid-to-crs transform to compute gradients"
        )
    return numpy.hypot(matrix[0, 0], matrix[1, 0]), numpy.hypot(matrix[0, 1], matrix[1, 1])


def _gradient_magnitude(arrays, coverage, parameters):
    dx, dy = _pixel_spacing(coverage)
    result = []
    for band in arrays[0]:
        # the sobel mask sums to 8 times the difference between neighbouring pixels
        gx = scipy.ndimage.sobel(band, axis=1, mode="nearest") / (8 * dx)
        gy = scipy.ndimage.sobel(band, axis=0, mode="nearest") / (8 * dy)
        result.append(numpy.hypot(gx, gy))
    return numpy.stack(result)


def _gradient_category(categories, band, coverage, parameters):
    low, high = categories[0].geophysics_range
    spacing = min(_pixel_spacing(coverage))
    maximum = (high - low) * parameters["range_scale"] / spacing
    if not numpy.isfinite(maximum) or maximum <= 0:
        return None
    return Category.quantitative(categories[0].name, 0, maximum)


def _axis_unit(crs):
    if crs is None:
        return None
    names = {axis.unit_name for axis in crs.axis_info[:2]}
    if len(names) != 1:
        return None
    unit = units.Unit(names.pop().replace("metre", "meter"), parse_strict="silent")
    if isinstance(unit, units.UnrecognizedUnit):
        return None
    return unit


def _gradient_unit(units_, band, coverage, parameters):
    axis_unit = _axis_unit(coverage.crs)
    if units_[0] is None or axis_unit is None:
        return None
    return units_[0] / axis_unit


def _select_sample_dimensions(operation, sources, parameters, config):
    source = sources[0]
    indices = parameters["sample_dimensions"]
    if indices is None:
        return source
    indices = [int(index) for index in numpy.atleast_1d(indices)]
    if indices == list(range(source.num_bands)):
        return source
    return GridCoverage(
        source.data[indices],
        crs=source.crs,
        grid_geometry=source.grid_geometry,
        sample_dimensions=[source.sample_dimensions[index] for index in indices],
        sources=(source,),
        name=source.name,
    )


def _interpolate(operation, sources, parameters, config):
    return create_interpolator(sources[0], parameters["type"])


def _resample(operation, sources, parameters, config):
    return reproject(
        sources[0],
        crs=parameters["crs"],
        grid_geometry=parameters["grid_geometry"],
        interpolation=parameters["interpolation"],
        config=config,
    )


ADD = Operation(
    "Add",
    elementwise(lambda arrays, coverage, parameters: arrays[0] + arrays[1]),
    num_sources=2,
    derive_category=_add_category,
    derive_unit=_same_unit,
    description="Add the pixels of two coverages",
)
SUBTRACT = Operation(
    "Subtract",
    elementwise(lambda arrays, coverage, parameters: arrays[0] - arrays[1]),
    num_sources=2,
    derive_category=_subtract_category,
    derive_unit=_same_unit,
    description="Subtract the pixels of the second coverage from those of the first",
)
MULTIPLY = Operation(
    "Multiply",
    elementwise(lambda arrays, coverage, parameters: arrays[0] * arrays[1]),
    num_sources=2,
    derive_category=_multiply_category,
    derive_unit=_multiply_unit,
    description="Multiply the pixels of two coverages",
)
DIVIDE = Operation(
    "Divide",
    elementwise(lambda arrays, coverage, parameters: arrays[0] / arrays[1]),
    num_sources=2,
    derive_category=_divide_category,
    derive_unit=_divide_unit,
    description="Divide the pixels of the first coverage by those of the second",
)
RESCALE = Operation(
    "Rescale",
    elementwise(_rescale),
    parameters={"constants": 1.0, "offsets": 0.0},
    derive_category=_rescale_category,
    derive_unit=_first_unit,
    description="Multiply every band by a constant and add an offset, per band or for all bands",
)
ABSOLUTE = Operation(
    "Absolute",
    elementwise(lambda arrays, coverage, parameters: numpy.abs(arrays[0])),
    derive_category=_absolute_category,
    derive_unit=_first_unit,
    description="The absolute value of every pixel",
)
GRADIENT_MAGNITUDE = Operation(
    "GradientMagnitude",
    elementwise(_gradient_magnitude),
    parameters={"range_scale": DEFAULT_RANGE_SCALE},
    derive_category=_gradient_category,
    derive_unit=_gradient_unit,
    description="The magnitude of the gradient in value per CRS unit, using Sobel masks",
)
SELECT_SAMPLE_DIMENSION = Operation(
    "SelectSampleDimension",
    _select_sample_dimensions,
    parameters={"sample_dimensions": None},
    description="Keep a subset of the bands",
)
INTERPOLATE = Operation(
    "Interpolate",
    _interpolate,
    parameters={"type": "nearest"},
    description="Wrap a coverage in an interpolator",
)
RESAMPLE = Operation(
    "Resample",
    _resample,
    parameters={"crs": None, "grid_geometry": None, "interpolation": None},
    description="Resample a coverage onto another grid geometry and/or CRS",
)

BUILTIN_OPERATIONS = {
    operation.name: operation
    for operation in (
        ADD,
        SUBTRACT,
        MULTIPLY,
        DIVIDE,
        RESCALE,
        ABSOLUTE,
        GRADIENT_MAGNITUDE,
        SELECT_SAMPLE_DIMENSION,
        INTERPOLATE,
        RESAMPLE,
    )
}
