import logging
import typing

import numpy as np
from scipy.sparse import csr_matrix, issparse
from scipy.sparse.linalg import (
    LinearOperator,
    bicgstab,
    gmres,
    lgmres,
    spilu,
    spsolve,
)

from ncpflow.errors import SolverError, ValidationError

__all__ = ["solve_linear_system", "build_ilu_preconditioner"]

logger = logging.getLogger(__name__)

LinearSolverName = typing.Literal["direct", "bicgstab", "gmres", "lgmres"]

_ITERATIVE_SOLVERS = {
    "bicgstab": bicgstab,
    "gmres": gmres,
    "lgmres": lgmres,
}


def build_ilu_preconditioner(A_csr: csr_matrix) -> LinearOperator:
    """
    Build an incomplete LU preconditioner for `A_csr`.

    :param A_csr: Coefficient matrix in CSR format.
    :return: Preconditioner as a linear operator.
    """
    ilu = spilu(A_csr.tocsc(), drop_tol=1e-5, fill_factor=10)
    return LinearOperator(A_csr.shape, matvec=ilu.solve, dtype=A_csr.dtype)


def solve_linear_system(
    A: typing.Any,
    b: np.typing.NDArray,
    solver: typing.Union[LinearSolverName, typing.Iterable[LinearSolverName]] = "direct",
    max_iterations: int = 500,
    rtol: float = 1e-8,
    atol: typing.Optional[float] = None,
    use_preconditioner: bool = True,
    fallback_to_direct: bool = True,
) -> np.typing.NDArray:
    """
    Solve the linear system A·x = b.

    Iterative solvers are tried in the given order until one converges. If
    all fail, the system is solved directly (when `fallback_to_direct`).

    :param A: Coefficient matrix (sparse or dense).
    :param b: Right-hand side vector.
    :param solver: "direct", or an iterative solver name or sequence of names
        ("bicgstab", "gmres", "lgmres").
    :param max_iterations: Maximum number of iterations for each iterative solver.
    :param rtol: Relative tolerance for iterative solvers.
    :param atol: Absolute tolerance for iterative solvers. Defaults to `rtol * |b|`.
    :param use_preconditioner: Whether to precondition iterative solvers with ILU.
    :param fallback_to_direct: Whether to fall back to a direct solve.
    :return: The solution vector x.
    :raises SolverError: If the system could not be solved.
    """
    A_csr = A if issparse(A) and A.format == "csr" else csr_matrix(A)
    b = np.asarray(b)
    if A_csr.shape[0] != A_csr.shape[1] or A_csr.shape[0] != b.shape[0]:
        raise ValidationError(
            f"Incompatible system: matrix {A_csr.shape}, right-hand side {b.shape}"
        )

    solvers = [solver] if isinstance(solver, str) else list(solver)
    iterative = [name for name in solvers if name != "direct"]
    for name in iterative:
        if name not in _ITERATIVE_SOLVERS:
            raise ValidationError(f"Unknown linear solver {name!r}")

    if iterative:
        M = None
        if use_preconditioner:
            try:
                M = build_ilu_preconditioner(A_csr)
            except RuntimeError as exc:
                logger.warning(f"Could not build ILU preconditioner: {exc}")

        b_norm = float(np.linalg.norm(b))
        atol = atol if atol is not None else rtol * b_norm
        for name in iterative:
            x, info = _ITERATIVE_SOLVERS[name](
                A_csr, b, M=M, rtol=rtol, atol=atol, maxiter=max_iterations
            )
            if info == 0 and np.all(np.isfinite(x)):
                return np.ascontiguousarray(x)
            logger.warning(
                f"Solver {name!r} failed to converge within {max_iterations} iterations. Info: {info}"
            )

        if not fallback_to_direct and "direct" not in solvers:
            raise SolverError(
                f"All solvers failed to converge within {max_iterations} iterations."
            )
        logger.info("Falling back to direct solver (spsolve).")

    try:
        x = spsolve(A_csr.tocsc(), b)
    except Exception as exc:
        raise SolverError("Direct solver failed to solve the system.") from exc

    x = np.atleast_1d(np.asarray(x))
    if not np.all(np.isfinite(x)):
        raise SolverError("Direct solver returned a non-finite solution (singular matrix?).")
    return np.ascontiguousarray(x)
