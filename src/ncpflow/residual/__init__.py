from .base import *  # noqa
from .base import __all__ as _base_all
from .energy import *  # noqa
from .energy import __all__ as _energy_all
from .mass import *  # noqa
from .mass import __all__ as _mass_all
from .ncp import *  # noqa
from .ncp import __all__ as _ncp_all

__all__ = [*_base_all, *_energy_all, *_mass_all, *_ncp_all]
