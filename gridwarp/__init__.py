from gridwarp.config import ProcessingConfig
from gridwarp.coverage import GridCoverage
from gridwarp.engine import RasterEngine
from gridwarp.errors import (
    AlignmentError,
    BoundsMismatchWarning,
    CannotEvaluateError,
    CannotReprojectError,
    PointOutsideCoverageError,
)
from gridwarp.grid_geometry import Envelope, GridGeometry, GridRange
from gridwarp.interpolation import get_interpolation
from gridwarp.interpolator import BASE_CASE, Interpolator, create_interpolator
from gridwarp.io import read_raster, write_raster
from gridwarp.operation import Operation
from gridwarp.processor import GridCoverageProcessor
from gridwarp.resampler import ResampledCoverage, reproject
from gridwarp.sample_dimension import Category, SampleDimension
from gridwarp.transform import AffineTransform, CRSTransform, TransformFactory
from gridwarp.version import __version__
