import numpy as np
import pytest
from scipy.sparse import csr_array, csr_matrix, identity

from ncpflow import (
    NewtonController,
    NewtonMethod,
    RelativeDefectNewtonController,
    SolverError,
    ValidationError,
    numerical_jacobian,
    solve_linear_system,
)


def quadratic_residual(u, eval_point):
    return np.array([[u[0, 0] ** 2 - 4.0, u[0, 1] - 3.0]])


def test_converges_with_finite_differences():
    method = NewtonMethod(NewtonController())
    result = method.execute(np.array([[1.0, 0.0]]), quadratic_residual)

    assert result.converged
    assert result.message is None
    assert not result.breakdown
    assert 2 <= result.iterations <= 18
    np.testing.assert_allclose(result.solution, [[2.0, 3.0]], rtol=1e-8)


def test_converges_with_analytic_jacobian():
    def jacobian(u):
        return csr_matrix(np.array([[2.0 * u[0, 0], 0.0], [0.0, 1.0]]))

    controller = RelativeDefectNewtonController()
    result = NewtonMethod(controller).execute(
        np.array([[1.0, 0.0]]), quadratic_residual, jacobian_func=jacobian
    )
    assert result.converged
    assert result.error <= controller.tolerance
    np.testing.assert_allclose(result.solution, [[2.0, 3.0]], rtol=1e-8)


def test_complementarity_row_drives_saturation_to_zero():
    # Phase row with a fixed mole fraction sum of 0.4, branch picked at the evaluation point
    def residual(u, eval_point):
        s = u[0, 0]
        if 1.0 - 0.4 > eval_point[0, 0]:
            return np.array([[s]])
        return np.array([[1.0 - 0.4]])

    result = NewtonMethod(NewtonController()).execute(
        np.array([[0.2]]), residual
    )
    assert result.converged
    assert result.solution[0, 0] == pytest.approx(0.0, abs=1e-12)


def test_linear_solver_failure_fails_the_step():
    def failing_solver(A, b):
        raise SolverError("singular")

    result = NewtonMethod(NewtonController(), linear_solver=failing_solver).execute(
        np.array([[1.0, 0.0]]), quadratic_residual
    )
    assert not result.converged
    assert result.iterations == 0
    assert "Linear solver failure" in result.message
    assert result.breakdown


def test_non_finite_residual_fails_the_step():
    def residual(u, eval_point):
        return np.full_like(u, np.nan)

    result = NewtonMethod(NewtonController()).execute(np.ones((2, 2)), residual)
    assert not result.converged
    assert "Non-finite" in result.message
    assert result.breakdown


def test_max_iterations():
    def residual(u, eval_point):
        # Newton's method cycles for x³ - 2x + 2 started at 0
        x = u[0, 0]
        return np.array([[x**3 - 2.0 * x + 2.0]])

    def jacobian(u):
        return csr_matrix([[3.0 * u[0, 0] ** 2 - 2.0]])

    controller = NewtonController()
    result = NewtonMethod(controller).execute(
        np.zeros((1, 1)), residual, jacobian_func=jacobian
    )
    assert not result.converged
    assert result.iterations == controller.max_steps
    assert not result.breakdown


def test_numerical_jacobian_keeps_evaluation_point_fixed():
    seen = []

    def residual(u, eval_point):
        seen.append(eval_point)
        return u * eval_point

    u = np.array([[1.0, 2.0]])
    eval_point = np.array([[3.0, 4.0]])
    jacobian = numerical_jacobian(residual, u, eval_point=eval_point)

    np.testing.assert_allclose(jacobian.toarray(), np.diag([3.0, 4.0]), rtol=1e-6)
    assert all(point is eval_point for point in seen)


def test_solve_linear_system():
    A = csr_matrix(np.array([[4.0, 1.0], [1.0, 3.0]]))
    b = np.array([1.0, 2.0])
    expected = np.linalg.solve(A.toarray(), b)

    np.testing.assert_allclose(solve_linear_system(A, b), expected)
    np.testing.assert_allclose(
        solve_linear_system(A, b, solver=["bicgstab", "gmres"]), expected, rtol=1e-6
    )
    np.testing.assert_allclose(
        solve_linear_system(identity(3, format="csr"), np.ones(3)), np.ones(3)
    )


def test_solve_linear_system_errors():
    A = csr_matrix(np.eye(2))
    with pytest.raises(ValidationError):
        solve_linear_system(A, np.ones(3))
    with pytest.raises(ValidationError):
        solve_linear_system(A, np.ones(2), solver="cholesky")
    with pytest.raises(SolverError):
        solve_linear_system(csr_matrix(np.zeros((2, 2))), np.ones(2))


def test_solve_linear_system_accepts_sparse_arrays():
    A = csr_array(np.array([[4.0, 1.0], [1.0, 3.0]]))
    b = np.array([1.0, 2.0])
    expected = np.linalg.solve(A.toarray(), b)

    np.testing.assert_allclose(solve_linear_system(A, b), expected)
    np.testing.assert_allclose(
        solve_linear_system(A, b, solver="gmres"), expected, rtol=1e-6
    )
    np.testing.assert_allclose(
        solve_linear_system(np.array([[2.0, 0.0], [0.0, 4.0]]), b), [0.5, 0.5]
    )
