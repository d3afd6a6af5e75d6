import math
from typing import Tuple

import numpy
from astropy import units


class Category:
    """A range of sample values that share a meaning.

    A quantitative category has a linear transfer function that converts
    sample values into geophysical values: ``value = sample * scale + offset``.
    A qualitative category (such as "no data") has no transfer function and
    its samples have no geophysical value (NaN).

    Parameters
    ----------
    name: :class:`str`
        Name of the category, eg "temperature" or "no data"
    sample_range: `Tuple(float, float)`
        The minimum and maximum sample value of the category
    scale: :class:`float` (optional)
        The scale of the transfer function. The category is qualitative if not supplied.
    offset: :class:`float`
        The offset of the transfer function. Default: 0
    inclusive: `Tuple(bool, bool)`
        Whether the minimum and maximum are part of the category. Default: (True, True)
    """

    def __init__(
        self,
        name,
        sample_range: Tuple[float, float],
        scale=None,
        offset=0.0,
        inclusive=(True, True),
    ):
        minimum, maximum = sample_range
        if minimum > maximum:
            raise ValueError(
                f"Minimum of category '{name}' is larger than its maximum: {sample_range}"
            )
        if scale is not None and scale == 0:
            raise ValueError(f"Category '{name}' has a transfer function with a scale of 0")
        self.name = name
        self.sample_range = (minimum, maximum)
        self.scale = scale
        self.offset = offset if scale is not None else None
        self.inclusive = tuple(inclusive)

    @classmethod
    def quantitative(cls, name, minimum, maximum):
        """A quantitative category whose samples are already geophysical values"""
        return cls(name, (minimum, maximum), scale=1.0, offset=0.0)

    @property
    def is_quantitative(self):
        return self.scale is not None

    @property
    def is_identity(self):
        return self.is_quantitative and self.scale == 1 and self.offset == 0

    @property
    def geophysics_range(self):
        """The range of geophysical values this category describes, NaN for qualitative categories"""
        if not self.is_quantitative:
            return (math.nan, math.nan)
        bounds = [value * self.scale + self.offset for value in self.sample_range]
        return (min(bounds), max(bounds))

    def to_geophysics(self, samples):
        if not self.is_quantitative:
            return numpy.full(numpy.shape(samples), numpy.nan)
        return numpy.asarray(samples, dtype=float) * self.scale + self.offset

    def to_samples(self, values):
        return (numpy.asarray(values, dtype=float) - self.offset) / self.scale

    def geophysics(self):
        """This category expressed in geophysical values"""
        if self.is_identity:
            return self
        if not self.is_quantitative:
            return Category(self.name, (math.nan, math.nan))
        return Category(self.name, self.geophysics_range, scale=1.0, offset=0.0)

    def contains(self, samples):
        """Boolean mask of the samples that fall within this category"""
        samples = numpy.asarray(samples)
        minimum, maximum = self.sample_range
        if math.isnan(minimum):
            return numpy.isnan(samples)
        lower = samples >= minimum if self.inclusive[0] else samples > minimum
        upper = samples <= maximum if self.inclusive[1] else samples < maximum
        return lower & upper

    def rescale(self, minimum, maximum):
        """A copy of this category whose transfer function maps the sample range onto [minimum, maximum]"""
        low, high = self.sample_range
        if low == high:
            return Category(self.name, self.sample_range, scale=1.0, offset=minimum - low)
        scale = (maximum - minimum) / (high - low)
        return Category(
            self.name,
            self.sample_range,
            scale=scale,
            offset=minimum - low * scale,
            inclusive=self.inclusive,
        )

    def _key(self):
        return (self.name, self.sample_range, self.scale, self.offset, self.inclusive)

    def __eq__(self, other):
        if not isinstance(other, Category):
            return NotImplemented
        mine, theirs = self._key(), other._key()
        # NaN ranges of qualitative geophysics categories should compare equal
        return mine == theirs or (
            mine[0] == theirs[0]
            and mine[2:] == theirs[2:]
            and numpy.allclose(mine[1], theirs[1], equal_nan=True)
        )

    def __hash__(self):
        return hash((self.name, self.scale, self.offset))

    def __repr__(self):
        if self.is_quantitative:
            return f"{self.__class__.__name__}({self.name!r}, {self.sample_range}, scale={self.scale}, offset={self.offset})"
        return f"{self.__class__.__name__}({self.name!r}, {self.sample_range})"


class SampleDimension:
    """Describes the meaning of the values of a single band.

    A sample dimension without categories describes a band of which nothing is
    known. Its values are treated as geophysical values.

    Parameters
    ----------
    categories: List[:class:`Category`]
        The categories the sample values of the band are divided into
    unit: `astropy.units.Unit` (optional)
        The unit of the geophysical values. Strings are parsed by astropy.
    description: :class:`str` (optional)
        A description of the band
    """

    def __init__(self, categories=(), unit=None, description=None):
        self.categories = tuple(categories)
        self.unit = None if unit is None else units.Unit(unit)
        self.description = description
        self._packed = None
        self._geophysics = None

    @classmethod
    def from_nodata(cls, nodata_value, unit=None, description=None):
        """A band described by a single "no data" value. Everything else is taken as is."""
        if nodata_value is None:
            return cls(unit=unit, description=description)
        return cls(
            [Category("no data", (nodata_value, nodata_value))],
            unit=unit,
            description=description,
        )

    @property
    def quantitative_categories(self):
        return [category for category in self.categories if category.is_quantitative]

    @property
    def qualitative_categories(self):
        return [category for category in self.categories if not category.is_quantitative]

    @property
    def is_identity(self):
        """True if the samples of this band already are geophysical values"""
        return all(category.is_identity for category in self.quantitative_categories) and (
            not self.qualitative_categories
            or all(
                math.isnan(category.sample_range[0])
                for category in self.qualitative_categories
            )
        )

    @property
    def is_geophysics(self):
        return self._packed is not None or self.is_identity

    @property
    def background_category(self):
        qualitative = self.qualitative_categories
        return qualitative[0] if qualitative else None

    def background_value(self, geophysics=False):
        """The value used for pixels that fall outside of the source data.

        That is the inclusive bound of the first qualitative category, or the middle
        of its range if neither bound is inclusive. Without a qualitative category
        this is NaN for geophysical values and 0 for samples.
        """
        if geophysics and not self.is_geophysics:
            return self.geophysics(True).background_value(True)
        category = self.background_category
        if category is None:
            return math.nan if geophysics else 0
        minimum, maximum = category.sample_range
        if category.inclusive[0]:
            return minimum
        if category.inclusive[1]:
            return maximum
        return (minimum + maximum) / 2

    def geophysics(self, geophysics=True):
        """The view of this band as geophysical values (True) or as packed samples (False)"""
        if geophysics:
            if self.is_geophysics:
                return self
            if self._geophysics is None:
                companion = SampleDimension(
                    [category.geophysics() for category in self.categories],
                    unit=self.unit,
                    description=self.description,
                )
                companion._packed = self
                self._geophysics = companion
            return self._geophysics
        if self._packed is not None:
            return self._packed
        return self

    def to_geophysics(self, samples):
        """Convert packed samples of this band into geophysical values"""
        samples = numpy.asarray(samples)
        if self.is_identity:
            return samples
        if self.quantitative_categories:
            values = numpy.full(samples.shape, numpy.nan)
        else:
            # only "no data" like categories, everything else is taken as is
            values = samples.astype(float)
        assigned = numpy.zeros(samples.shape, dtype=bool)
        for category in self.categories:
            mask = category.contains(samples) & ~assigned
            values[mask] = category.to_geophysics(samples[mask])
            assigned |= mask
        return values

    def to_packed(self, values, dtype):
        """Convert geophysical values into packed samples of this band.

        The packed view must be known, see :meth:`geophysics`.
        """
        packed = self.geophysics(False)
        values = numpy.asarray(values, dtype=float)
        background = packed.background_value(False)
        if packed.quantitative_categories:
            samples = numpy.full(values.shape, background, dtype=float)
        else:
            samples = numpy.where(numpy.isnan(values), background, values)
        for category in packed.quantitative_categories:
            low, high = category.geophysics_range
            mask = (values >= low) & (values <= high)
            samples[mask] = category.to_samples(values[mask])
        if numpy.issubdtype(dtype, numpy.integer):
            info = numpy.iinfo(dtype)
            samples = numpy.clip(numpy.floor(samples + 0.5), info.min, info.max)
        return samples.astype(dtype)

    def __eq__(self, other):
        if not isinstance(other, SampleDimension):
            return NotImplemented
        return (
            self.categories == other.categories
            and self.unit == other.unit
            and self.description == other.description
        )

    def __hash__(self):
        return hash((self.categories, self.description))

    def __repr__(self):
        return f"{self.__class__.__name__}({list(self.categories)}, unit={self.unit})"
