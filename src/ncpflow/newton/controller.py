"""Convergence control and time step size proposals for Newton's method."""

import logging
import threading
import typing

import numpy as np

from ncpflow.config import NewtonConfig
from ncpflow.types import SolutionVector

__all__ = ["NewtonController", "RelativeDefectNewtonController"]

logger = logging.getLogger(__name__)

UNCONVERGED_ERROR = 1e100
"""Error sentinel before the first iteration. Never satisfies any tolerance."""


class NewtonController:
    """
    Decides when Newton's method stops and which time step size to try next.

    The error is the largest relative change of any primary variable in the
    last update, normalized by the magnitude of the variable (at least one).

    The time step size proposal grows the step if the last time step needed
    fewer iterations than the target, and shrinks it otherwise.

    Hooks are called by `NewtonMethod` in the order::

        newton_begin
        while newton_proceed:
            newton_begin_step
            ... assemble, solve, update ...
            newton_end_step
        newton_end
        newton_succeed | newton_fail
    """

    def __init__(self, config: typing.Optional[NewtonConfig] = None) -> None:
        self.config = config if config is not None else NewtonConfig()
        self.tolerance = self.config.tolerance
        self.target_steps = self.config.target_iterations
        self.max_steps = self.config.max_iterations
        self.num_steps = 0
        self.error = UNCONVERGED_ERROR
        self.last_error = UNCONVERGED_ERROR
        self._lock = threading.Lock()

    def newton_begin(self, u: SolutionVector) -> None:
        """Called once before the first iteration of a time step."""
        self.num_steps = 0
        self.error = UNCONVERGED_ERROR
        self.last_error = UNCONVERGED_ERROR
        logger.debug(f"Starting Newton iteration for {u.shape[0]} degrees of freedom")

    def newton_begin_step(self) -> None:
        """Called before each iteration."""
        self.last_error = self.error

    def newton_end_step(self, u: SolutionVector, u_old: SolutionVector) -> None:
        """
        Called after each update of the solution.

        :param u: Solution after the update, shaped (num_dofs, num_eq).
        :param u_old: Solution before the update, same shape.
        """
        with self._lock:
            self.num_steps += 1
            self.error = self.update_relative_error(u, u_old)
        logger.debug(
            f"Newton iteration {self.num_steps}: relative update error = {self.error:.4e}"
        )

    @staticmethod
    def update_relative_error(u: SolutionVector, u_old: SolutionVector) -> float:
        """
        Largest change of any primary variable relative to its mean magnitude.

        :param u: Solution after the update.
        :param u_old: Solution before the update.
        :return: The maximum relative change.
        """
        u = np.asarray(u)
        u_old = np.asarray(u_old)
        if u.size == 0:
            return 0.0
        norm = np.maximum(1.0, np.abs(u + u_old) / 2.0)
        return float(np.max(np.abs(u_old - u) / norm))

    @property
    def convergence_error(self) -> float:
        """The quantity compared against the tolerance."""
        return self.error

    def newton_converged(self) -> bool:
        """Returns True if the current solution is accurate enough."""
        return self.error <= self.tolerance

    def newton_proceed(self, u: SolutionVector) -> bool:
        """
        Returns True if another iteration should be done.

        At least two iterations are always done, so that the first update of a
        time step cannot be mistaken for convergence.
        """
        if self.num_steps < 2:
            return True
        if self.newton_converged():
            return False
        if self.num_steps >= self.max_steps:
            logger.debug(
                f"Newton iteration stopped after reaching {self.max_steps} iterations"
            )
            return False
        if (
            self.num_steps >= 4
            and self.error > self.last_error * self.config.divergence_factor
        ):
            logger.debug(
                f"Newton iteration diverged: error grew from {self.last_error:.4e} "
                f"to {self.error:.4e}"
            )
            return False
        return True

    def newton_end(self) -> None:
        """Called once after the last iteration of a time step."""
        pass

    def newton_fail(self) -> None:
        """Called if the time step did not converge."""
        logger.debug(
            f"Newton iteration failed after {self.num_steps} iterations "
            f"(error = {self.error:.4e})"
        )

    def newton_succeed(self) -> None:
        """Called if the time step converged."""
        logger.debug(f"Newton iteration converged after {self.num_steps} iterations")

    def suggest_time_step_size(self, old_time_step_size: float) -> float:
        """
        Propose the size of the next time step from the number of iterations of
        the last one.

        :param old_time_step_size: Size of the last time step.
        :return: Proposed size of the next time step.
        """
        if self.num_steps > self.target_steps:
            percent = (self.num_steps - self.target_steps) / self.target_steps
            return old_time_step_size / (1.0 + percent)

        percent = (self.target_steps - self.num_steps) / self.target_steps
        return old_time_step_size * (1.0 + percent / 1.2)


class RelativeDefectNewtonController(NewtonController):
    """
    Newton controller tracking the relative change of two primary variables
    of very different magnitude.

    One primary variable is large-scale (e.g. a pressure of order 1e5 Pa), the
    other small-scale (e.g. a mole fraction). Each change is normalized by the
    magnitude of the variable, but at least by a floor of matching scale, so
    that changes close to zero are not amplified. Proposed time step sizes
    never exceed `max_time_step_size`.
    """

    def __init__(
        self,
        config: typing.Optional[NewtonConfig] = None,
        large_scale_eq_idx: int = 0,
        small_scale_eq_idx: int = 1,
        large_scale_floor: float = 1e3,
        small_scale_floor: float = 1e-3,
    ) -> None:
        """
        :param config: Newton configuration. Its `max_time_step_size` is the
            upper bound of proposed time step sizes.
        :param large_scale_eq_idx: Primary variable index of the large-scale quantity.
        :param small_scale_eq_idx: Primary variable index of the small-scale quantity.
        :param large_scale_floor: Minimum normalization of large-scale changes.
        :param small_scale_floor: Minimum normalization of small-scale changes.
        """
        super().__init__(config)
        self.large_scale_eq_idx = large_scale_eq_idx
        self.small_scale_eq_idx = small_scale_eq_idx
        self.large_scale_floor = large_scale_floor
        self.small_scale_floor = small_scale_floor
        self.relative_defect = UNCONVERGED_ERROR
        self.max_time_step_size = self.config.max_time_step_size

    def newton_begin(self, u: SolutionVector) -> None:
        super().newton_begin(u)
        self.relative_defect = UNCONVERGED_ERROR

    def newton_end_step(self, u: SolutionVector, u_old: SolutionVector) -> None:
        super().newton_end_step(u, u_old)
        with self._lock:
            self.relative_defect = self.compute_relative_defect(u, u_old)
        logger.debug(
            f"Newton iteration {self.num_steps}: relative defect = {self.relative_defect:.4e}"
        )

    def compute_relative_defect(
        self, u: SolutionVector, u_old: SolutionVector
    ) -> float:
        """
        Largest floor-clamped relative change of the two tracked variables.

        :param u: Solution after the update, shaped (num_dofs, num_eq).
        :param u_old: Solution before the update, same shape.
        :return: The relative defect.
        """
        u = np.asarray(u)
        u_old = np.asarray(u_old)
        relative_defect = 0.0
        for dof_idx in range(u.shape[0]):
            for eq_idx, floor in (
                (self.large_scale_eq_idx, self.large_scale_floor),
                (self.small_scale_eq_idx, self.small_scale_floor),
            ):
                value = u[dof_idx, eq_idx]
                old_value = u_old[dof_idx, eq_idx]
                norm = max(floor, abs(value), abs(old_value))
                relative_defect = max(relative_defect, abs(value - old_value) / norm)
        return float(relative_defect)

    @property
    def convergence_error(self) -> float:
        return self.relative_defect

    def newton_converged(self) -> bool:
        return self.relative_defect <= self.tolerance

    def suggest_time_step_size(self, old_time_step_size: float) -> float:
        return min(
            self.max_time_step_size,
            super().suggest_time_step_size(old_time_step_size),
        )
