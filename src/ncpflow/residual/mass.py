"""Component mass conservation terms of the compositional model."""

from ncpflow.indices import ModelIndices
from ncpflow.residual.energy import EnergyResidual
from ncpflow.types import (
    ElementContextLike,
    EqVector,
    RateVector,
    VolumeVariablesLike,
)

__all__ = ["MassResidual"]


class MassResidual:
    r"""
    Storage, flux and source of the molar component balances.

    The amount of component κ stored in a control volume is

    .. math::
        \phi \sum_\alpha S_\alpha \rho_{mol,\alpha} x_\alpha^\kappa

    and its advective flux over a face is the phase volume flux times the
    upstream molar concentration. The enthalpy transported with each phase
    flux is added by the energy sub-model from within `compute_flux`, since
    it needs the same upstream decision.
    """

    def __init__(self, indices: ModelIndices, energy: EnergyResidual) -> None:
        self.indices = indices
        self.energy = energy

    def add_phase_storage(
        self, storage: EqVector, vol_vars: VolumeVariablesLike, phase_idx: int
    ) -> None:
        """
        Add the amount of every component held by one phase.

        :param storage: Equation vector to add to.
        :param vol_vars: Volume variables of the control volume.
        :param phase_idx: Phase index.
        """
        fluid_state = vol_vars.fluid_state
        phase_molar_concentration = (
            vol_vars.porosity
            * fluid_state.saturation(phase_idx)
            * fluid_state.molar_density(phase_idx)
        )
        for component_idx in range(self.indices.num_components):
            storage[self.indices.conti_eq_idx(component_idx)] += (
                phase_molar_concentration
                * fluid_state.mole_fraction(phase_idx, component_idx)
            )

    def compute_storage(self, storage: EqVector, vol_vars: VolumeVariablesLike) -> None:
        """Add the amount of every component held by all phases."""
        for phase_idx in range(self.indices.num_phases):
            self.add_phase_storage(storage, vol_vars, phase_idx)

    def compute_flux(
        self,
        flux: RateVector,
        element_context: ElementContextLike,
        face_idx: int,
        time_idx: int,
    ) -> None:
        """
        Add the advective and diffusive component fluxes over a face, and the
        energy they carry.

        :param flux: Rate vector to add to.
        :param element_context: Element context.
        :param face_idx: Index of the sub-control volume face.
        :param time_idx: Time level.
        """
        flux_vars = element_context.flux_vars(face_idx, time_idx)
        for phase_idx in range(self.indices.num_phases):
            volume_flux = flux_vars.volume_flux(phase_idx)
            upstream = element_context.vol_vars(
                flux_vars.upstream_idx(phase_idx), time_idx
            )
            upstream_fluid_state = upstream.fluid_state
            molar_flux = volume_flux * upstream_fluid_state.molar_density(phase_idx)

            for component_idx in range(self.indices.num_components):
                eq_idx = self.indices.conti_eq_idx(component_idx)
                flux[eq_idx] += molar_flux * upstream_fluid_state.mole_fraction(
                    phase_idx, component_idx
                )
                flux[eq_idx] += flux_vars.diffusive_molar_flux(
                    phase_idx, component_idx
                )

            self.energy.add_advective_flux(flux, upstream, phase_idx, volume_flux)

        self.energy.add_diffusive_flux(flux, flux_vars)

    def compute_source(
        self,
        source: RateVector,
        element_context: ElementContextLike,
        scv_idx: int,
        time_idx: int,
    ) -> None:
        """Add the internal component sources, e.g. interphase mass transfer."""
        vol_vars = element_context.vol_vars(scv_idx, time_idx)
        for component_idx in range(self.indices.num_components):
            source[self.indices.conti_eq_idx(component_idx)] += (
                vol_vars.component_source(component_idx)
            )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(num_phases={self.indices.num_phases}, "
            f"num_components={self.indices.num_components}, energy={self.energy!r})"
        )

