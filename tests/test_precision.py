import contextvars

import numpy as np
from scipy.sparse import identity

from ncpflow import NewtonController, NewtonMethod, get_dtype, set_dtype, with_precision


def test_default_precision():
    assert get_dtype() == np.float64


def test_with_precision_restores_dtype():
    with with_precision(np.float32):
        assert get_dtype() == np.float32
        with with_precision(np.float16):
            assert get_dtype() == np.float16
        assert get_dtype() == np.float32
    assert get_dtype() == np.float64


def test_set_dtype_is_local_to_context():
    def change():
        set_dtype(np.float32)
        return get_dtype()

    assert contextvars.copy_context().run(change) == np.float32
    assert get_dtype() == np.float64


def test_newton_iterates_use_current_precision():
    def residual(u, eval_point):
        return u - 2.0

    def jacobian(u):
        return identity(1, dtype=np.float32, format="csr")

    with with_precision(np.float32):
        result = NewtonMethod(NewtonController()).execute(
            np.zeros((1, 1)), residual, jacobian_func=jacobian
        )
    assert result.solution.dtype == np.float32
    assert result.converged
