"""
Newton's method for the discretized, complementarity-constrained system.
"""

import logging
import typing

import attrs
import numpy as np

from ncpflow._precision import get_dtype
from ncpflow.errors import SolverError
from ncpflow.newton.controller import NewtonController
from ncpflow.newton.jacobian import numerical_jacobian
from ncpflow.newton.linear import solve_linear_system
from ncpflow.types import (
    JacobianFunc,
    LinearSolverFunc,
    ResidualFunc,
    SolutionVector,
)

__all__ = ["NewtonResult", "NewtonMethod"]

logger = logging.getLogger(__name__)


@attrs.frozen(slots=True, eq=False)
class NewtonResult:
    """Outcome of solving one time step."""

    solution: SolutionVector
    """Last iterate, shaped like the initial guess."""
    converged: bool
    iterations: int
    error: float
    """Convergence measure of the controller after the last iteration."""
    residual_norm: float
    """Euclidean norm of the residual at the last linearization point."""
    message: typing.Optional[str] = None
    breakdown: bool = False
    """True if the iteration stopped on a non-finite residual or a linear solver failure."""


class NewtonMethod:
    """
    Solves R(u) = 0 for one time step.

    Each iteration linearizes the residual at the current iterate, which also
    serves as the evaluation point fixing the complementarity branches, and
    updates ``u ← u - J⁻¹ R``. The controller decides when to stop.
    """

    def __init__(
        self,
        controller: NewtonController,
        linear_solver: typing.Optional[LinearSolverFunc] = None,
    ) -> None:
        """
        :param controller: Controller deciding convergence and step sizes.
        :param linear_solver: Function solving ``A·x = b``. Defaults to a direct sparse solve.
        """
        self.controller = controller
        self.linear_solver = linear_solver or solve_linear_system

    def execute(
        self,
        u: SolutionVector,
        residual_func: ResidualFunc,
        jacobian_func: typing.Optional[JacobianFunc] = None,
    ) -> NewtonResult:
        """
        Run Newton's method from an initial guess.

        :param u: Initial guess, shaped (num_dofs, num_eq).
        :param residual_func: Residual function ``(u, eval_point) -> R`` with R shaped like u.
        :param jacobian_func: Function returning the Jacobian of the flattened
            residual at u. Finite differences are used if not given.
        :return: `NewtonResult` with the last iterate.
        """
        controller = self.controller
        u = np.array(u, dtype=get_dtype(), copy=True)
        residual_norm = float("nan")
        message = None
        breakdown = False

        controller.newton_begin(u)
        while controller.newton_proceed(u):
            controller.newton_begin_step()
            u_old = u

            residual = np.asarray(residual_func(u_old, u_old), dtype=u.dtype)
            residual_norm = float(np.linalg.norm(residual))
            if not np.isfinite(residual_norm):
                message = f"Non-finite residual at iteration {controller.num_steps}"
                logger.error(message)
                breakdown = True
                break

            if jacobian_func is not None:
                jacobian = jacobian_func(u_old)
            else:
                jacobian = numerical_jacobian(
                    residual_func, u_old, eval_point=u_old, residual=residual
                )

            try:
                delta = self.linear_solver(jacobian, residual.ravel())
            except SolverError as exc:
                message = f"Linear solver failure during Newton iteration. {exc}"
                logger.error(
                    f"Linear solver failed at iteration {controller.num_steps} with error: {exc}"
                )
                breakdown = True
                break

            u = u_old - np.asarray(delta, dtype=u.dtype).reshape(u_old.shape)
            controller.newton_end_step(u, u_old)
            logger.info(
                f"Iteration {controller.num_steps}: residual norm = {residual_norm:.4e}, "
                f"error = {controller.convergence_error:.4e}"
            )

        controller.newton_end()
        converged = message is None and controller.newton_converged()
        if converged:
            controller.newton_succeed()
        else:
            controller.newton_fail()
            if message is None:
                message = (
                    f"Newton iteration did not converge within {controller.num_steps} iterations"
                )

        return NewtonResult(
            solution=u,
            converged=converged,
            iterations=controller.num_steps,
            error=controller.convergence_error,
            residual_norm=residual_norm,
            message=message,
            breakdown=breakdown,
        )
