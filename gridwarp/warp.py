import numpy

from gridwarp.transform import MathTransform


class WarpTransform:
    """Maps the pixels of a destination grid onto fractional positions in the source data.

    Parameters
    ----------
    transform: :class:`~gridwarp.transform.MathTransform`
        Two dimensional transform from destination grid coordinates to source grid coordinates
    source_origin: `Tuple(int, int)`
        The grid coordinates of the first pixel of the source data.
        Warped positions are returned relative to this pixel.
    """

    def __init__(self, transform: MathTransform, source_origin=(0, 0)):
        if transform.dim_source != 2 or transform.dim_target != 2:
            raise ValueError(
                f"A warp needs a two dimensional transform, got {transform.dim_source} to {transform.dim_target} dimensions"
            )
        self.transform = transform
        self.source_origin = numpy.asarray(source_origin, dtype=float)

    def warp_points(self, cols, rows):
        """The source positions of destination positions `cols` and `rows`"""
        points = numpy.column_stack(
            [numpy.ravel(cols).astype(float), numpy.ravel(rows).astype(float)]
        )
        result = self.transform.transform(points) - self.source_origin
        return result[:, 0], result[:, 1]

    def warp_point(self, col, row):
        cols, rows = self.warp_points([col], [row])
        return cols[0], rows[0]

    def warp_rect(self, bounds):
        """The source positions of every destination pixel within `bounds` (xmin, ymin, xmax, ymax).

        Returns
        -------
        `Tuple(numpy.ndarray, numpy.ndarray)`
            The source columns and rows, each with shape (ymax - ymin, xmax - xmin)
        """
        xmin, ymin, xmax, ymax = bounds
        cols, rows = numpy.meshgrid(numpy.arange(xmin, xmax), numpy.arange(ymin, ymax))
        if cols.size == 0:
            return cols.astype(float), rows.astype(float)
        src_cols, src_rows = self.warp_points(cols, rows)
        return src_cols.reshape(cols.shape), src_rows.reshape(rows.shape)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.transform!r})"
