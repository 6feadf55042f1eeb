import typing

import numpy as np
from scipy.sparse import csr_matrix, spmatrix
from typing_extensions import TypeAlias


__all__ = [
    "EqVector",
    "RateVector",
    "SolutionVector",
    "TimeLevel",
    "FluidStateAccessor",
    "VolumeVariablesLike",
    "FluxVariablesLike",
    "SubControlVolumeLike",
    "ElementGeometryLike",
    "ProblemLike",
    "ElementContextLike",
    "ResidualFunc",
    "JacobianFunc",
    "LinearSolverFunc",
]

EqVector: TypeAlias = np.typing.NDArray[np.floating]
"""Amount of each conserved quantity, one entry per primary equation."""
RateVector: TypeAlias = np.typing.NDArray[np.floating]
"""Rate of each conserved quantity, one entry per primary equation."""
SolutionVector: TypeAlias = np.typing.NDArray[np.floating]
"""Primary variables of all degrees of freedom, shaped (num_dofs, num_eq)."""

TimeLevel = typing.Literal[0, 1]
"""
Time index convention

- 0: current time level (the one being solved for)
- 1: previous time level (the last accepted solution)
"""


class FluidStateAccessor(typing.Protocol):
    """Read-only view of the thermodynamic state in one control volume."""

    def saturation(self, phase_idx: int) -> float:
        """Returns the saturation of a phase."""
        ...

    def mole_fraction(self, phase_idx: int, component_idx: int) -> float:
        """Returns the mole fraction of a component in a phase."""
        ...

    def molar_density(self, phase_idx: int) -> float:
        """Returns the molar density of a phase (mol/m³)."""
        ...

    def density(self, phase_idx: int) -> float:
        """Returns the mass density of a phase (kg/m³)."""
        ...

    def internal_energy(self, phase_idx: int) -> float:
        """Returns the specific internal energy of a phase (J/kg)."""
        ...

    def enthalpy(self, phase_idx: int) -> float:
        """Returns the specific enthalpy of a phase (J/kg)."""
        ...

    @property
    def temperature(self) -> float:
        """Returns the temperature (K)."""
        ...


class VolumeVariablesLike(typing.Protocol):
    """Secondary variables of one sub-control volume at one time level."""

    @property
    def fluid_state(self) -> FluidStateAccessor: ...

    @property
    def porosity(self) -> float: ...

    @property
    def extrusion_factor(self) -> float: ...

    @property
    def rock_density(self) -> float: ...

    @property
    def rock_heat_capacity(self) -> float: ...

    def component_source(self, component_idx: int) -> float:
        """Returns the internal molar source of a component (e.g. interphase transfer)."""
        ...


class FluxVariablesLike(typing.Protocol):
    """Quantities needed to evaluate the flux over one sub-control volume face."""

    @property
    def inside_idx(self) -> int: ...

    @property
    def outside_idx(self) -> int: ...

    def volume_flux(self, phase_idx: int) -> float:
        """Returns the volumetric flux of a phase over the face (m³/s), positive from inside to outside."""
        ...

    def upstream_idx(self, phase_idx: int) -> int:
        """Returns the local index of the upstream sub-control volume for a phase."""
        ...

    def diffusive_molar_flux(self, phase_idx: int, component_idx: int) -> float:
        """Returns the diffusive molar flux of a component in a phase (mol/s)."""
        ...

    def conductive_heat_flux(self) -> float:
        """Returns the conductive heat flux over the face (W)."""
        ...


class SubControlVolumeLike(typing.Protocol):
    @property
    def volume(self) -> float: ...


class ElementGeometryLike(typing.Protocol):
    @property
    def sub_control_volumes(self) -> typing.Sequence[SubControlVolumeLike]: ...

    @property
    def num_boundary_faces(self) -> int: ...


class ProblemLike(typing.Protocol):
    """Problem definition consumed by the local residual."""

    def source(
        self, element_context: "ElementContextLike", scv_idx: int, time_idx: int
    ) -> RateVector:
        """Returns the external source term per unit volume."""
        ...

    def neumann(
        self,
        element_context: "ElementContextLike",
        boundary_face_idx: int,
        time_idx: int,
    ) -> RateVector:
        """Returns the outward boundary flux over a boundary face (already integrated over its area)."""
        ...

    def dirichlet(
        self, element_context: "ElementContextLike", scv_idx: int
    ) -> typing.Optional[typing.Mapping[int, float]]:
        """Returns fixed values keyed by equation index, or None if the scv is not constrained."""
        ...


class ElementContextLike(typing.Protocol):
    """Everything the local residual needs to know about one grid element."""

    def num_scv(self) -> int: ...

    def num_faces(self) -> int: ...

    def vol_vars(self, scv_idx: int, time_idx: int) -> VolumeVariablesLike: ...

    def eval_point_vol_vars(
        self, scv_idx: int, time_idx: int
    ) -> VolumeVariablesLike: ...

    def fv_elem_geom(self, time_idx: int) -> ElementGeometryLike: ...

    def flux_vars(self, face_idx: int, time_idx: int) -> FluxVariablesLike: ...

    def boundary_face_scv(self, boundary_face_idx: int) -> int: ...

    def primary_vars(self, scv_idx: int, time_idx: int) -> EqVector: ...

    def problem(self) -> ProblemLike: ...

    def time_step_size(self) -> float: ...

    def global_index(self, scv_idx: int) -> int: ...


ResidualFunc = typing.Callable[[SolutionVector, SolutionVector], SolutionVector]
"""
Callable returning the global residual for a solution, given the evaluation
point (previous Newton iterate) that fixes the complementarity branches.
"""

JacobianFunc = typing.Callable[[SolutionVector], typing.Union[spmatrix, csr_matrix]]
"""Callable returning the Jacobian of the flattened residual at a solution."""


class LinearSolverFunc(typing.Protocol):
    """Protocol for a function solving A·x = b."""

    def __call__(
        self, A: typing.Any, b: np.typing.NDArray
    ) -> np.typing.NDArray: ...
