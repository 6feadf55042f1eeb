"""
Global residual assembly from element-local residuals.
"""

import contextvars
import logging
import typing
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from ncpflow._precision import get_dtype
from ncpflow.errors import ValidationError
from ncpflow.residual.base import BoxLocalResidual
from ncpflow.residual.ncp import NcpLocalResidual
from ncpflow.types import (
    ElementContextLike,
    JacobianFunc,
    ResidualFunc,
    SolutionVector,
)

__all__ = [
    "GlobalResidualAssembler",
    "BoxModel",
    "ContextFactory",
    "compute_phase_storage_totals",
]

logger = logging.getLogger(__name__)

ContextFactory = typing.Callable[
    [SolutionVector, SolutionVector, SolutionVector, float],
    typing.Sequence[ElementContextLike],
]
"""
Builds the element contexts of the whole grid from
``(solution, eval_point, previous_solution, time_step_size)``.
"""


class GlobalResidualAssembler:
    """
    Evaluates the local residual of every element and adds the rows of each
    sub-control volume to its global degree of freedom.

    Elements can be evaluated concurrently. Scattering into the global
    residual is always sequential.
    """

    def __init__(
        self,
        local_residual: BoxLocalResidual,
        max_workers: typing.Optional[int] = None,
    ) -> None:
        """
        :param local_residual: Local residual evaluated for every element.
        :param max_workers: Number of worker threads. Elements are evaluated in
            the calling thread if None or 1.
        """
        if max_workers is not None and max_workers < 1:
            raise ValidationError("max_workers must be at least 1")
        self.local_residual = local_residual
        self.max_workers = max_workers

    def _evaluate_elements(
        self, element_contexts: typing.Sequence[ElementContextLike]
    ) -> typing.List[typing.Tuple[np.typing.NDArray, np.typing.NDArray]]:
        evaluate = self.local_residual.eval
        if self.max_workers is None or self.max_workers == 1 or len(element_contexts) < 2:
            return [evaluate(context) for context in element_contexts]

        # Workers run in a copy of the caller's context so they see its precision
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(contextvars.copy_context().run, evaluate, context)
                for context in element_contexts
            ]
            return [future.result() for future in futures]

    def assemble(
        self, element_contexts: typing.Sequence[ElementContextLike], num_dofs: int
    ) -> np.typing.NDArray:
        """
        Assemble the global residual.

        :param element_contexts: Contexts of all elements of the grid.
        :param num_dofs: Number of global degrees of freedom.
        :return: Global residual shaped (num_dofs, num_eq).
        """
        residual = np.zeros(
            (num_dofs, self.local_residual.indices.num_eq), dtype=get_dtype()
        )
        local_residuals = self._evaluate_elements(element_contexts)
        for context, (local_residual, _) in zip(element_contexts, local_residuals):
            for scv_idx in range(context.num_scv()):
                dof_idx = context.global_index(scv_idx)
                if not 0 <= dof_idx < num_dofs:
                    raise IndexError(
                        f"Global index {dof_idx} out of range for {num_dofs} degrees of freedom"
                    )
                residual[dof_idx] += local_residual[scv_idx]

        logger.debug(
            f"Assembled residual of {len(element_contexts)} elements into {num_dofs} degrees of freedom"
        )
        return residual


def compute_phase_storage_totals(
    local_residual: NcpLocalResidual,
    element_contexts: typing.Iterable[ElementContextLike],
) -> np.typing.NDArray:
    """
    Total amount of each conserved quantity held by each phase in the grid,
    at the current time level.

    Sub-control volumes shared by several elements are counted once per element.

    :param local_residual: Local residual providing `add_phase_storage`.
    :param element_contexts: Contexts of the elements to sum over.
    :return: Array shaped (num_phases, num_eq).
    """
    indices = local_residual.indices
    totals = np.zeros((indices.num_phases, indices.num_eq), dtype=get_dtype())
    for context in element_contexts:
        for phase_idx in range(indices.num_phases):
            local_residual.add_phase_storage(totals[phase_idx], context, phase_idx)
    return totals


class BoxModel:
    """
    Discretized model combining a local residual with a grid layer that
    builds element contexts from global solution vectors.

    Implements the interface expected by `ncpflow.simulate.run`.
    """

    def __init__(
        self,
        local_residual: BoxLocalResidual,
        context_factory: ContextFactory,
        num_dofs: int,
        assembler: typing.Optional[GlobalResidualAssembler] = None,
    ) -> None:
        """
        :param local_residual: Local residual evaluated for every element.
        :param context_factory: Builds element contexts from global solutions.
        :param num_dofs: Number of global degrees of freedom.
        :param assembler: Assembler to use. Defaults to sequential assembly.
        """
        self.local_residual = local_residual
        self.context_factory = context_factory
        self.num_dofs = num_dofs
        self.assembler = assembler or GlobalResidualAssembler(local_residual)

    @property
    def num_eq(self) -> int:
        return self.local_residual.indices.num_eq

    def residual(
        self,
        solution: SolutionVector,
        eval_point: SolutionVector,
        previous_solution: SolutionVector,
        time_step_size: float,
    ) -> np.typing.NDArray:
        """
        Global residual of one implicit Euler step.

        :param solution: Solution at the end of the step, shaped (num_dofs, num_eq).
        :param eval_point: Evaluation point fixing the complementarity branches.
        :param previous_solution: Solution at the start of the step.
        :param time_step_size: Size of the time step.
        :return: Global residual shaped (num_dofs, num_eq).
        """
        solution = np.asarray(solution)
        expected_shape = (self.num_dofs, self.num_eq)
        if solution.shape != expected_shape:
            raise ValidationError(
                f"Solution must have shape {expected_shape}, got {solution.shape}"
            )
        contexts = self.context_factory(
            solution, eval_point, previous_solution, time_step_size
        )
        return self.assembler.assemble(contexts, self.num_dofs)

    def residual_func(
        self, previous_solution: SolutionVector, time_step_size: float
    ) -> ResidualFunc:
        def _residual(
            solution: SolutionVector, eval_point: SolutionVector
        ) -> np.typing.NDArray:
            return self.residual(solution, eval_point, previous_solution, time_step_size)

        return _residual

    def jacobian_func(
        self, previous_solution: SolutionVector, time_step_size: float
    ) -> typing.Optional[JacobianFunc]:
        return None
