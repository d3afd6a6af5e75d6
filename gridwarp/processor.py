from gridwarp.config import ProcessingConfig
from gridwarp.coverage import GridCoverage
from gridwarp.errors import DuplicateOperationError, OperationNotFoundError
from gridwarp.interpolator import Interpolator, create_interpolator
from gridwarp.operation import BUILTIN_OPERATIONS, Operation


class GridCoverageProcessor:
    """A registry of operations that applies them by name.

    Names are case insensitive. Operations are registered while setting up the
    processor, after that the registry is only read from.

    Parameters
    ----------
    config: :class:`~gridwarp.config.ProcessingConfig` (optional)
        The settings passed to every operation
    operations: List[:class:`~gridwarp.operation.Operation`]
        The operations to register
    """

    def __init__(self, config: ProcessingConfig = None, operations=()):
        self.config = config if config is not None else ProcessingConfig()
        self._operations = {}
        for operation in operations:
            self.add_operation(operation)

    @classmethod
    def default(cls, config: ProcessingConfig = None):
        """A processor with all built-in operations registered"""
        return cls(config, BUILTIN_OPERATIONS.values())

    @property
    def operations(self):
        return list(self._operations.values())

    def add_operation(self, operation: Operation):
        """Register an operation

        Raises
        ------
        :class:`~gridwarp.errors.DuplicateOperationError`
            If an operation with the same name is registered already
        """
        key = operation.name.casefold()
        if key in self._operations:
            raise DuplicateOperationError(
                f"An operation named '{self._operations[key].name}' is registered already"
            )
        self._operations[key] = operation

    def get_operation(self, name) -> Operation:
        """Get a registered operation by name

        Raises
        ------
        :class:`~gridwarp.errors.OperationNotFoundError`
            If no operation goes by that name
        """
        try:
            return self._operations[name.casefold()]
        except KeyError:
            raise OperationNotFoundError(
                f"No operation named '{name}', choose from {[op.name for op in self.operations]}"
            ) from None

    def do_operation(self, name, *sources, **parameters):
        """Apply the operation called `name` to `sources`.

        Interpolators are replaced by the coverage they wrap. If all interpolator sources
        share the same chain of interpolations, the result is wrapped in that
        chain as well and operations with an 'interpolation' parameter use it
        unless told otherwise.

        Parameters
        ----------
        name: :class:`str`
            The name of the operation
        *sources: :class:`~gridwarp.coverage.GridCoverage` or :class:`~gridwarp.interpolator.Interpolator`
            The coverages to apply the operation to
        **parameters:
            The parameters of the operation

        Returns
        -------
        The result of the operation, usually a :class:`~gridwarp.coverage.GridCoverage`
        """
        operation = self.get_operation(name)
        chains = []
        coverages = []
        for source in sources:
            if isinstance(source, Interpolator):
                chains.append(tuple(source.interpolations))
                coverages.append(source.coverage)
            else:
                coverages.append(source)
        # plain coverages do not affect the chain
        chain = chains[0] if chains and all(c == chains[0] for c in chains) else None
        if chain is not None and "interpolation" in operation.parameters:
            parameters.setdefault("interpolation", list(chain))
        result = operation.apply(coverages, self.config, **parameters)
        if chain is not None and isinstance(result, GridCoverage):
            result = create_interpolator(result, list(chain))
        return result
