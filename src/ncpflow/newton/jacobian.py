import logging
import typing

import numpy as np
from scipy.sparse import csr_matrix, lil_matrix

from ncpflow._precision import get_dtype
from ncpflow.types import ResidualFunc, SolutionVector

__all__ = ["numerical_jacobian"]

logger = logging.getLogger(__name__)


def numerical_jacobian(
    residual_func: ResidualFunc,
    u: SolutionVector,
    eval_point: typing.Optional[SolutionVector] = None,
    residual: typing.Optional[np.typing.NDArray] = None,
    epsilon: float = 1e-8,
) -> csr_matrix:
    """
    Approximate the Jacobian of the flattened residual with forward differences.

    The evaluation point is held fixed while the solution is perturbed, so the
    complementarity branches do not switch within the approximation.

    :param residual_func: Residual function ``(u, eval_point) -> R``.
    :param u: Solution at which to linearize, shaped (num_dofs, num_eq).
    :param eval_point: Evaluation point. Defaults to `u`.
    :param residual: Residual at `u`, if already known.
    :param epsilon: Relative perturbation size.
    :return: Sparse Jacobian of shape (u.size, u.size).
    """
    dtype = get_dtype()
    u = np.asarray(u, dtype=dtype)
    if eval_point is None:
        eval_point = u
    if residual is None:
        residual = residual_func(u, eval_point)
    r0 = np.asarray(residual, dtype=dtype).ravel()

    n = u.size
    jacobian = lil_matrix((r0.size, n), dtype=dtype)
    u_flat = u.ravel()
    for j in range(n):
        h = epsilon * max(1.0, abs(u_flat[j]))
        u_perturbed = u_flat.copy()
        u_perturbed[j] += h
        r = np.asarray(
            residual_func(u_perturbed.reshape(u.shape), eval_point), dtype=dtype
        ).ravel()
        column = (r - r0) / h
        nonzero = np.flatnonzero(column)
        for i in nonzero:
            jacobian[i, j] = column[i]

    logger.debug(f"Assembled finite-difference Jacobian with {jacobian.nnz} non-zeros")
    return jacobian.tocsr()
