from .controller import *  # noqa
from .controller import __all__ as _controller_all
from .jacobian import *  # noqa
from .jacobian import __all__ as _jacobian_all
from .linear import *  # noqa
from .linear import __all__ as _linear_all
from .method import *  # noqa
from .method import __all__ as _method_all

__all__ = [*_controller_all, *_jacobian_all, *_linear_all, *_method_all]
