from dataclasses import dataclass, field

from gridwarp.engine import RasterEngine
from gridwarp.transform import TransformFactory


@dataclass(frozen=True)
class ProcessingConfig:
    """Settings shared by the resampler, the interpolators and the processor.

    Build one at startup and pass it along, there is no global default.

    Parameters
    ----------
    transform_factory: :class:`~gridwarp.transform.TransformFactory`
        Creates the transforms between two CRSs
    engine: :class:`~gridwarp.engine.RasterEngine`
        Executes the crop, affine and warp primitives
    collapse_resampled_chain: :class:`bool`
        When resampling the output of an earlier resample, start from the
        original source instead. Default: True
    tolerance: :class:`float`
        Tolerance used when comparing geometries and when rounding envelopes
        to grid ranges. Default: 1e-6
    densify_points: :class:`int`
        Points sampled along each edge when transforming envelopes. Default: 21
    default_interpolation: :class:`str`
        Interpolation used when none is requested. Default: "nearest"
    """

    transform_factory: TransformFactory = field(default_factory=TransformFactory)
    engine: RasterEngine = field(default_factory=RasterEngine)
    collapse_resampled_chain: bool = True
    tolerance: float = 1e-6
    densify_points: int = 21
    default_interpolation: str = "nearest"
