"""Implicit time stepping driver."""

import logging
import typing

import attrs
import numpy as np

from ncpflow.errors import SimulationError, TimingError
from ncpflow.newton.method import NewtonMethod
from ncpflow.timing import Timer
from ncpflow.types import JacobianFunc, ResidualFunc, SolutionVector

__all__ = ["TransientModel", "SimulationState", "run"]

logger = logging.getLogger(__name__)


class TransientModel(typing.Protocol):
    """Discretized model advanced in time by `run`."""

    def residual_func(
        self, previous_solution: SolutionVector, time_step_size: float
    ) -> ResidualFunc:
        """
        Returns the residual function of one time step.

        :param previous_solution: Solution at the start of the time step.
        :param time_step_size: Size of the time step.
        """
        ...

    def jacobian_func(
        self, previous_solution: SolutionVector, time_step_size: float
    ) -> typing.Optional[JacobianFunc]:
        """Returns the Jacobian function of one time step, or None for finite differences."""
        ...


@attrs.frozen(slots=True, eq=False)
class SimulationState:
    """Snapshot of the solution after an accepted time step."""

    step: int
    """Number of accepted time steps (0 for the initial state)."""
    time: float
    """Elapsed simulation time (s)."""
    step_size: float
    """Size of the time step that led to this state (s)."""
    solution: SolutionVector
    newton_iterations: int = 0


def run(
    model: TransientModel,
    initial_solution: SolutionVector,
    timer: Timer,
    newton_method: NewtonMethod,
    output_frequency: int = 1,
) -> typing.Generator[SimulationState, None, None]:
    """
    Advance a model in time with implicit Euler steps solved by Newton's method.

    Converged steps are accepted, and the Newton controller suggests the size
    of the next one. Failed steps are retried with a reduced size, reduced
    further when the Newton iteration broke down instead of running out of
    iterations.

    :param model: The model providing residual (and optionally Jacobian) functions.
    :param initial_solution: Solution at time zero, shaped (num_dofs, num_eq).
    :param timer: The time manager for controlling simulation time steps.
    :param newton_method: Newton solver used for every time step.
    :param output_frequency: Yield a state every this many accepted steps.
        The last state is always yielded.
    :yield: The initial state, then states at the output interval.
    :raises SimulationError: If a time step cannot be completed with any step size.
    """
    if output_frequency < 1:
        raise SimulationError("output_frequency must be at least 1")

    solution = np.array(initial_solution, copy=True)
    controller = newton_method.controller
    logger.info("Starting simulation...")
    logger.debug(f"Total simulation time: {timer.simulation_time} seconds")
    logger.debug(f"Degrees of freedom: {solution.shape[0]}")

    yield SimulationState(step=0, time=0.0, step_size=0.0, solution=solution.copy())

    while not timer.done():
        new_step = timer.next_step
        step_size = timer.propose_step_size()
        logger.debug(f"Attempting time step {new_step} with size {step_size} seconds...")

        result = newton_method.execute(
            solution,
            residual_func=model.residual_func(solution, step_size),
            jacobian_func=model.jacobian_func(solution, step_size),
        )
        if not result.converged:
            logger.warning(
                f"Time step {new_step} failed. Retrying with smaller time step."
            )
            try:
                timer.reject_step(step_size=step_size, aggressive=result.breakdown)
            except TimingError as exc:
                raise SimulationError(
                    f"Simulation failed at time step {new_step} and cannot reduce time step further. {exc}."
                    f"\n{result.message}"
                ) from exc
            continue

        solution = result.solution
        next_step_size = timer.accept_step(
            step_size=step_size,
            suggested_step_size=controller.suggest_time_step_size(step_size),
        )
        logger.info(
            f"Time step {timer.step} converged in {result.iterations} iterations "
            f"(t = {timer.elapsed_time:.6g} s, next step size = {next_step_size:.6g} s)"
        )

        if timer.step % output_frequency == 0 or timer.is_last_step:
            yield SimulationState(
                step=timer.step,
                time=timer.elapsed_time,
                step_size=step_size,
                solution=solution.copy(),
                newton_iterations=result.iterations,
            )

    logger.info(f"Simulation completed after {timer.step} time steps.")
