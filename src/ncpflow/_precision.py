from contextlib import contextmanager
from contextvars import ContextVar

import numpy as np


__all__ = [
    "get_dtype",
    "set_dtype",
    "with_precision",
]

_ncpflow_dtype: ContextVar[np.typing.DTypeLike] = ContextVar(
    "_ncpflow_dtype", default=np.float64
)


def get_dtype() -> np.typing.DTypeLike:
    """
    Get the floating point type used for equation, rate and solution vectors.

    :return: The current data type.
    """
    return _ncpflow_dtype.get()


def set_dtype(dtype: np.typing.DTypeLike) -> None:
    """
    Set the floating point type for the current context.

    :param dtype: The data type to use.
    """
    _ncpflow_dtype.set(dtype)


@contextmanager
def with_precision(dtype: np.typing.DTypeLike):
    """
    Context manager to temporarily change the floating point type.

    :param dtype: The data type to use within the context.
    """
    token = _ncpflow_dtype.set(dtype)
    try:
        yield
    finally:
        _ncpflow_dtype.reset(token)
