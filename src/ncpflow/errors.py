__all__ = [
    "NCPFlowError",
    "ValidationError",
    "DeserializationError",
    "SolverError",
    "ComputationError",
    "SimulationError",
    "TimingError",
]


class NCPFlowError(Exception):
    """Base class for all ncpflow errors."""

    pass


class ValidationError(NCPFlowError, ValueError):
    """Raised when input data fails validation checks."""

    pass


class DeserializationError(NCPFlowError):
    """Raised when settings cannot be loaded into a configuration object."""

    pass


class SolverError(NCPFlowError):
    """Raised when a linear solver fails to solve the Newton update system."""

    pass


class ComputationError(NCPFlowError):
    """Raised when there is an error during numerical computations."""

    pass


class SimulationError(NCPFlowError):
    """Base class for simulation-related errors."""

    pass


class TimingError(SimulationError):
    """Raised when there is an error related to simulation timing."""

    pass
