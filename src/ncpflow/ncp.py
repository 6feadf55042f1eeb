r"""
Nonlinear complementarity conditions for phase appearance and disappearance.

For every phase α the model requires

.. math::
    \min\left(S_\alpha,\; 1 - \sum_\kappa x_\alpha^\kappa\right) = 0

i.e. either the phase is present (its mole fractions sum to one and its
saturation may be positive), or it is absent (its saturation is zero and its
mole fractions may sum to less than one). Instead of a hard ``min``, the
active branch is picked from the evaluation point (the previous Newton
iterate) and only that branch is evaluated at the current state. The
residual therefore stays smooth within one Newton step, and the branch
decision is piecewise constant between steps (semismooth Newton).
"""

import typing

import numba
import numpy as np

from ncpflow._precision import get_dtype
from ncpflow.errors import ValidationError
from ncpflow.types import FluidStateAccessor

__all__ = [
    "phase_present_ineq",
    "phase_not_present_ineq",
    "is_phase_present",
    "phase_ncp",
    "compute_phase_ncp_grid",
]


def phase_present_ineq(fluid_state: FluidStateAccessor, phase_idx: int) -> float:
    """
    Value of the inequality which holds if the phase is present.

    :param fluid_state: Fluid state to evaluate.
    :param phase_idx: Phase index.
    :return: The saturation of the phase.
    """
    return fluid_state.saturation(phase_idx)


def phase_not_present_ineq(
    fluid_state: FluidStateAccessor, phase_idx: int, num_components: int
) -> float:
    """
    Value of the inequality which holds if the phase is absent.

    :param fluid_state: Fluid state to evaluate.
    :param phase_idx: Phase index.
    :param num_components: Number of components in the system.
    :return: Difference of the sum of the phase's mole fractions from one.
    """
    a = 1.0
    for component_idx in range(num_components):
        a -= fluid_state.mole_fraction(phase_idx, component_idx)
    return a


def is_phase_present(
    eval_fluid_state: FluidStateAccessor, phase_idx: int, num_components: int
) -> bool:
    """
    Decide which complementarity branch is active at the evaluation point.

    Ties resolve to the absent branch.

    :param eval_fluid_state: Fluid state at the evaluation point.
    :param phase_idx: Phase index.
    :param num_components: Number of components in the system.
    :return: True if the phase is judged present.
    """
    a_eval = phase_not_present_ineq(eval_fluid_state, phase_idx, num_components)
    b_eval = phase_present_ineq(eval_fluid_state, phase_idx)
    return bool(a_eval > b_eval)


def phase_ncp(
    eval_fluid_state: FluidStateAccessor,
    fluid_state: FluidStateAccessor,
    phase_idx: int,
    num_components: int,
) -> float:
    """
    Residual of the complementarity condition of one phase.

    :param eval_fluid_state: Fluid state at the evaluation point. Only used
        to pick the branch.
    :param fluid_state: Fluid state at which the active branch is evaluated.
    :param phase_idx: Phase index.
    :param num_components: Number of components in the system.
    :return: The value of the active inequality at `fluid_state`.
    """
    if is_phase_present(eval_fluid_state, phase_idx, num_components):
        return phase_present_ineq(fluid_state, phase_idx)
    return phase_not_present_ineq(fluid_state, phase_idx, num_components)


@numba.njit(cache=True)
def _compute_phase_ncp_grid(
    eval_saturations: np.ndarray,
    eval_mole_fractions: np.ndarray,
    saturations: np.ndarray,
    mole_fractions: np.ndarray,
    out: np.ndarray,
) -> None:
    num_scv, num_phases = saturations.shape
    num_components = mole_fractions.shape[2]
    for scv_idx in range(num_scv):
        for phase_idx in range(num_phases):
            # Same summation order as `phase_not_present_ineq`
            a_eval = 1.0
            for component_idx in range(num_components):
                a_eval -= eval_mole_fractions[scv_idx, phase_idx, component_idx]
            b_eval = eval_saturations[scv_idx, phase_idx]

            if a_eval > b_eval:
                out[scv_idx, phase_idx] = saturations[scv_idx, phase_idx]
            else:
                a = 1.0
                for component_idx in range(num_components):
                    a -= mole_fractions[scv_idx, phase_idx, component_idx]
                out[scv_idx, phase_idx] = a


def compute_phase_ncp_grid(
    eval_saturations: np.typing.ArrayLike,
    eval_mole_fractions: np.typing.ArrayLike,
    saturations: np.typing.ArrayLike,
    mole_fractions: np.typing.ArrayLike,
) -> np.typing.NDArray:
    """
    Evaluate the complementarity residual of every phase in many control volumes.

    :param eval_saturations: Saturations at the evaluation point, shape (num_scv, num_phases).
    :param eval_mole_fractions: Mole fractions at the evaluation point,
        shape (num_scv, num_phases, num_components).
    :param saturations: Current saturations, shape (num_scv, num_phases).
    :param mole_fractions: Current mole fractions, shape (num_scv, num_phases, num_components).
    :return: Residuals, shape (num_scv, num_phases).
    """
    dtype = get_dtype()
    arrays: typing.List[np.ndarray] = [
        np.ascontiguousarray(arr, dtype=dtype)
        for arr in (eval_saturations, eval_mole_fractions, saturations, mole_fractions)
    ]
    eval_s, eval_x, s, x = arrays
    if s.ndim != 2 or x.ndim != 3:
        raise ValidationError(
            "Saturations must be 2D (num_scv, num_phases) and mole fractions "
            "3D (num_scv, num_phases, num_components)"
        )
    if eval_s.shape != s.shape or eval_x.shape != x.shape:
        raise ValidationError(
            "Evaluation point and current state must have the same shape"
        )
    if x.shape[:2] != s.shape:
        raise ValidationError(
            f"Mole fractions shape {x.shape} does not match saturations shape {s.shape}"
        )

    out = np.empty_like(s)
    _compute_phase_ncp_grid(eval_s, eval_x, s, x, out)
    return out
