"""
*NCPFLOW*

Local residual and Newton control for compositional multiphase flow in
porous media, with phase appearance and disappearance handled by
nonlinear complementarity conditions.
"""

from ._precision import *  # noqa
from .errors import *  # noqa
from .types import *  # noqa
from .indices import *  # noqa
from .fluid_state import *  # noqa
from .ncp import *  # noqa
from .context import *  # noqa
from .config import *  # noqa
from .residual import *  # noqa
from .newton import *  # noqa
from .timing import *  # noqa
from .assembly import *  # noqa
from .simulate import *  # noqa

__version__ = "0.1.0"
