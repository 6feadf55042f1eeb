"""
Plain data containers describing one grid element to the local residual.

The grid, the discretization geometry and the constitutive relations live
outside this package. These records only carry their results into the
residual, and are what a grid layer (or a test) hands to
`NcpLocalResidual.eval`.
"""

import typing

import attrs
import numpy as np

from ncpflow._precision import get_dtype
from ncpflow.errors import ValidationError
from ncpflow.fluid_state import FluidState, _check_index
from ncpflow.indices import ModelIndices
from ncpflow.types import EqVector, ProblemLike, RateVector

__all__ = [
    "SubControlVolume",
    "ElementGeometry",
    "VolumeVariables",
    "FluxVariables",
    "Problem",
    "ElementContext",
]

NUM_TIME_LEVELS = 2
"""Current and previous time level."""


@attrs.frozen(slots=True)
class SubControlVolume:
    """Finite-volume cell fragment of an element."""

    volume: float = attrs.field(validator=attrs.validators.gt(0.0))
    """Volume measure (m³ before extrusion)."""


@attrs.frozen(slots=True)
class ElementGeometry:
    """Finite-volume geometry of one element."""

    sub_control_volumes: typing.Tuple[SubControlVolume, ...] = attrs.field(
        converter=tuple
    )
    boundary_face_scvs: typing.Tuple[int, ...] = attrs.field(
        default=(), converter=tuple
    )
    """Local index of the sub-control volume owning each boundary face."""

    @property
    def num_boundary_faces(self) -> int:
        return len(self.boundary_face_scvs)


@attrs.frozen(slots=True, eq=False)
class VolumeVariables:
    """Secondary variables of one sub-control volume at one time level."""

    fluid_state: FluidState
    porosity: float = attrs.field(
        default=1.0,
        validator=attrs.validators.and_(
            attrs.validators.ge(0.0), attrs.validators.le(1.0)
        ),
    )
    extrusion_factor: float = 1.0
    """Factor scaling the sub-control volume, e.g. 2πr for radially symmetric domains."""
    rock_density: float = 0.0
    """Density of the solid matrix (kg/m³)."""
    rock_heat_capacity: float = 0.0
    """Specific heat capacity of the solid matrix (J/(kg·K))."""
    component_sources: typing.Optional[np.typing.NDArray] = attrs.field(
        default=None,
        converter=attrs.converters.optional(
            lambda value: np.asarray(value, dtype=get_dtype())
        ),
    )
    """Internal molar source of each component (mol/(m³·s)), e.g. from interphase transfer."""

    def component_source(self, component_idx: int) -> float:
        _check_index(component_idx, self.fluid_state.num_components, "Component")
        if self.component_sources is None:
            return 0.0
        return self.component_sources[component_idx]


@attrs.frozen(slots=True, eq=False)
class FluxVariables:
    """Fluxes over one interior face between two sub-control volumes."""

    inside_idx: int
    outside_idx: int
    volume_fluxes: np.typing.NDArray = attrs.field(
        converter=lambda value: np.asarray(value, dtype=get_dtype())
    )
    """Volumetric flux of each phase (m³/s), positive from inside to outside."""
    diffusive_fluxes: typing.Optional[np.typing.NDArray] = attrs.field(
        default=None,
        converter=attrs.converters.optional(
            lambda value: np.asarray(value, dtype=get_dtype())
        ),
    )
    """Diffusive molar flux of each component in each phase (mol/s)."""
    heat_flux: float = 0.0
    """Conductive heat flux (W), positive from inside to outside."""

    def volume_flux(self, phase_idx: int) -> float:
        _check_index(phase_idx, len(self.volume_fluxes), "Phase")
        return self.volume_fluxes[phase_idx]

    def upstream_idx(self, phase_idx: int) -> int:
        if self.volume_flux(phase_idx) >= 0.0:
            return self.inside_idx
        return self.outside_idx

    def diffusive_molar_flux(self, phase_idx: int, component_idx: int) -> float:
        _check_index(phase_idx, len(self.volume_fluxes), "Phase")
        if self.diffusive_fluxes is None:
            return 0.0
        num_components = self.diffusive_fluxes.shape[1]
        return self.diffusive_fluxes[
            phase_idx, _check_index(component_idx, num_components, "Component")
        ]

    def conductive_heat_flux(self) -> float:
        return self.heat_flux


class Problem:
    """
    Problem definition without sources and with closed boundaries.

    Subclass and override `source`, `neumann` or `dirichlet` to describe a
    concrete setup.
    """

    def __init__(self, indices: ModelIndices) -> None:
        self.indices = indices

    def source(
        self, element_context: "ElementContext", scv_idx: int, time_idx: int
    ) -> RateVector:
        return np.zeros(self.indices.num_eq, dtype=get_dtype())

    def neumann(
        self, element_context: "ElementContext", boundary_face_idx: int, time_idx: int
    ) -> RateVector:
        return np.zeros(self.indices.num_eq, dtype=get_dtype())

    def dirichlet(
        self, element_context: "ElementContext", scv_idx: int
    ) -> typing.Optional[typing.Mapping[int, float]]:
        return None


@attrs.define
class ElementContext:
    """
    State of one grid element at the current and the previous time level.
    """

    geometry: ElementGeometry
    volume_variables: typing.Sequence[typing.Sequence[VolumeVariables]]
    """Volume variables indexed as ``[time_idx][scv_idx]``."""
    flux_variables: typing.Sequence[FluxVariables]
    """Flux variables of every interior face at the current time level."""
    _problem: ProblemLike
    _time_step_size: float = attrs.field(validator=attrs.validators.gt(0.0))
    eval_point_volume_variables: typing.Optional[
        typing.Sequence[VolumeVariables]
    ] = None
    """
    Volume variables at the evaluation point (previous Newton iterate) of the
    current time level. Defaults to the current volume variables.
    """
    primary_variables: typing.Optional[typing.Sequence[EqVector]] = None
    """Primary variables of each sub-control volume at the current time level."""
    global_indices: typing.Optional[typing.Sequence[int]] = None
    """Global degree of freedom of each sub-control volume."""

    def __attrs_post_init__(self) -> None:
        num_scv = len(self.geometry.sub_control_volumes)
        if len(self.volume_variables) != 2:
            raise ValidationError(
                "Volume variables must be given for the current and previous time level"
            )
        for time_idx, vol_vars in enumerate(self.volume_variables):
            if len(vol_vars) != num_scv:
                raise ValidationError(
                    f"Expected {num_scv} volume variables at time level {time_idx}, got {len(vol_vars)}"
                )
        if (
            self.eval_point_volume_variables is not None
            and len(self.eval_point_volume_variables) != num_scv
        ):
            raise ValidationError(
                f"Expected {num_scv} evaluation point volume variables"
            )
        if self.global_indices is not None and len(self.global_indices) != num_scv:
            raise ValidationError(f"Expected {num_scv} global indices")

    def num_scv(self) -> int:
        return len(self.geometry.sub_control_volumes)

    def num_faces(self) -> int:
        return len(self.flux_variables)

    def vol_vars(self, scv_idx: int, time_idx: int) -> VolumeVariables:
        return self.volume_variables[_check_index(time_idx, NUM_TIME_LEVELS, "Time")][
            _check_index(scv_idx, self.num_scv(), "Sub-control volume")
        ]

    def eval_point_vol_vars(self, scv_idx: int, time_idx: int) -> VolumeVariables:
        if time_idx == 0 and self.eval_point_volume_variables is not None:
            return self.eval_point_volume_variables[
                _check_index(scv_idx, self.num_scv(), "Sub-control volume")
            ]
        return self.vol_vars(scv_idx, time_idx)

    def fv_elem_geom(self, time_idx: int) -> ElementGeometry:
        # The grid does not move, so both time levels share one geometry
        _check_index(time_idx, NUM_TIME_LEVELS, "Time")
        return self.geometry

    def flux_vars(self, face_idx: int, time_idx: int) -> FluxVariables:
        if time_idx != 0:
            raise IndexError(
                f"Flux variables are only available at the current time level, not {time_idx}"
            )
        return self.flux_variables[_check_index(face_idx, self.num_faces(), "Face")]

    def boundary_face_scv(self, boundary_face_idx: int) -> int:
        return self.geometry.boundary_face_scvs[
            _check_index(
                boundary_face_idx, self.geometry.num_boundary_faces, "Boundary face"
            )
        ]

    def primary_vars(self, scv_idx: int, time_idx: int) -> EqVector:
        if self.primary_variables is None:
            raise ValidationError(
                "Primary variables are required to apply Dirichlet conditions"
            )
        if time_idx != 0:
            raise IndexError(
                f"Primary variables are only available at the current time level, not {time_idx}"
            )
        return self.primary_variables[
            _check_index(scv_idx, self.num_scv(), "Sub-control volume")
        ]

    def problem(self) -> ProblemLike:
        return self._problem

    def time_step_size(self) -> float:
        return self._time_step_size

    def global_index(self, scv_idx: int) -> int:
        _check_index(scv_idx, self.num_scv(), "Sub-control volume")
        if self.global_indices is None:
            return scv_idx
        return self.global_indices[scv_idx]
