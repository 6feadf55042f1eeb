import logging
import typing

import attrs

from ncpflow.errors import TimingError, ValidationError

__all__ = ["Timer"]

logger = logging.getLogger(__name__)


def _check_min_step_size(
    instance: "Timer", attribute: attrs.Attribute, value: float
) -> None:
    if value > instance.max_step_size:
        raise ValidationError(
            f"min_step_size ({value}) must not exceed max_step_size ({instance.max_step_size})"
        )


@attrs.define
class Timer:
    """
    Simulation time manager for adaptive time stepping.

    The size of each accepted step's successor is suggested by the Newton
    controller and clamped to the step size bounds here. Rejected steps are
    retried with a reduced size.
    """

    initial_step_size: float = attrs.field(validator=attrs.validators.gt(0.0))
    """Initial time step size in seconds."""
    max_step_size: float = attrs.field(validator=attrs.validators.gt(0.0))
    """Maximum allowable time step size in seconds."""
    min_step_size: float = attrs.field(
        validator=attrs.validators.and_(attrs.validators.gt(0.0), _check_min_step_size)
    )
    """Minimum allowable time step size in seconds."""
    simulation_time: float = attrs.field(validator=attrs.validators.gt(0.0))
    """Total simulation time in seconds."""
    backoff_factor: float = attrs.field(
        default=0.5,
        validator=attrs.validators.and_(
            attrs.validators.gt(0.0), attrs.validators.lt(1.0)
        ),
    )
    """Factor by which to reduce time step size on failed steps."""
    aggressive_backoff_factor: float = attrs.field(
        default=0.25,
        validator=attrs.validators.and_(
            attrs.validators.gt(0.0), attrs.validators.lt(1.0)
        ),
    )
    """Factor by which to reduce time step size when the nonlinear solve broke down."""
    max_steps: typing.Optional[int] = None
    """Maximum number of time steps to run for."""
    max_rejects: int = attrs.field(default=10, validator=attrs.validators.ge(0))
    """Maximum number of consecutive time step rejections allowed."""

    elapsed_time: float = attrs.field(init=False, default=0.0)
    """Current simulation time in seconds (sum of all accepted steps)."""
    step_size: float = attrs.field(init=False, default=0.0)
    """The time step size (in seconds) that was used for the most recently accepted step."""
    next_step_size: float = attrs.field(init=False, default=0.0)
    """Time step size (in seconds) to propose for the next step."""
    step: int = attrs.field(init=False, default=0)
    """Number of accepted time steps completed so far."""
    rejection_count: int = attrs.field(init=False, default=0)
    """Count of consecutive time step rejections."""

    def __attrs_post_init__(self) -> None:
        self.next_step_size = min(
            max(self.initial_step_size, self.min_step_size), self.max_step_size
        )
        self.step_size = self.next_step_size

    @property
    def next_step(self) -> int:
        """Returns the next time step count."""
        return self.step + 1

    def done(self) -> bool:
        """Checks if the simulation has reached its end criteria."""
        if self.elapsed_time >= self.simulation_time:
            return True
        if self.max_steps is not None and self.step >= self.max_steps:
            return True
        return False

    @property
    def time_remaining(self) -> float:
        """Calculates the remaining simulation time in seconds."""
        return max(self.simulation_time - self.elapsed_time, 0.0)

    @property
    def is_last_step(self) -> bool:
        """Determines if the latest accepted step completed the simulation."""
        return self.done()

    def propose_step_size(self) -> float:
        """Proposes the next time step size without updating state."""
        dt = min(self.next_step_size, self.time_remaining)
        logger.debug(
            f"Proposing time step of size {dt} for time step {self.next_step} "
            f"at elapsed time {self.elapsed_time}."
        )
        return dt

    def reject_step(self, step_size: float, aggressive: bool = False) -> float:
        """
        Registers a rejected time step and reduces the next time step size.

        :param step_size: The step size that was rejected.
        :param aggressive: Whether to use the aggressive backoff factor. Used when
            the step failed on a non-finite residual or a linear solver failure
            rather than on slow convergence.
        :return: The reduced time step size in seconds.
        :raises TimingError: If too many consecutive steps were rejected, or the
            step size cannot be reduced any further.
        """
        if self.rejection_count >= self.max_rejects:
            raise TimingError(
                f"Maximum number of consecutive time step rejections ({self.max_rejects}) exceeded"
            )
        if step_size <= self.min_step_size:
            raise TimingError(
                f"Time step of size {step_size} failed at the minimum step size {self.min_step_size}"
            )

        factor = self.aggressive_backoff_factor if aggressive else self.backoff_factor
        self.next_step_size = max(step_size * factor, self.min_step_size)
        self.rejection_count += 1

        logger.debug(
            f"Time step of size {step_size} rejected for time step {self.next_step} "
            f"at elapsed time {self.elapsed_time}. New size: {self.next_step_size}"
        )
        return self.next_step_size

    def accept_step(
        self,
        step_size: float,
        suggested_step_size: typing.Optional[float] = None,
    ) -> float:
        """
        Registers an accepted time step and sets the size of the next one.

        :param step_size: The time step size that was just accepted.
        :param suggested_step_size: Size proposed for the next step, usually by
            the Newton controller. Keeps the current size if not given.
        :return: The next proposed time step size.
        """
        if step_size > self.time_remaining * (1.0 + 1e-12):
            raise TimingError(
                f"Step size {step_size} exceeds remaining time {self.time_remaining}."
            )

        self.elapsed_time += step_size
        # Snap to the end time so round-off cannot leave a sliver of a step
        if self.simulation_time - self.elapsed_time <= 1e-12 * self.simulation_time:
            self.elapsed_time = self.simulation_time
        self.step_size = step_size
        self.step += 1

        dt = suggested_step_size if suggested_step_size is not None else step_size
        dt = min(dt, self.max_step_size)
        dt = max(dt, self.min_step_size)
        self.next_step_size = dt
        self.rejection_count = 0

        logger.debug(
            f"Time step of size {step_size} accepted for time step {self.step} "
            f"at elapsed time {self.elapsed_time}. Next size: {self.next_step_size:.6f}"
        )
        return self.next_step_size
