"""Energy balance terms of the compositional model."""

from ncpflow.errors import ValidationError
from ncpflow.indices import ModelIndices
from ncpflow.types import (
    EqVector,
    FluxVariablesLike,
    RateVector,
    VolumeVariablesLike,
)

__all__ = ["EnergyResidual", "ThermalEnergyResidual", "make_energy_residual"]


class EnergyResidual:
    """
    Energy sub-model of an isothermal system. Every hook is a no-op.

    There is no source hook. The local residual only adds mass sources.
    """

    def __init__(self, indices: ModelIndices) -> None:
        self.indices = indices

    def compute_storage(self, storage: EqVector, vol_vars: VolumeVariablesLike) -> None:
        pass

    def add_phase_storage(
        self, storage: EqVector, vol_vars: VolumeVariablesLike, phase_idx: int
    ) -> None:
        pass

    def add_advective_flux(
        self,
        flux: RateVector,
        upstream_vol_vars: VolumeVariablesLike,
        phase_idx: int,
        volume_flux: float,
    ) -> None:
        pass

    def add_diffusive_flux(
        self, flux: RateVector, flux_vars: FluxVariablesLike
    ) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ThermalEnergyResidual(EnergyResidual):
    """
    Energy balance of the fluid phases and the solid matrix.

    Stored energy is the internal energy of each phase in the pore space plus
    the heat held by the rock. Energy is carried by the phase volume fluxes
    (upstream enthalpy) and conducted through the porous medium.
    """

    def __init__(self, indices: ModelIndices) -> None:
        if not indices.enable_energy:
            raise ValidationError(
                "Thermal energy residual requires a model with energy enabled"
            )
        super().__init__(indices)
        self.energy_eq_idx: int = indices.energy_eq_idx  # type: ignore[assignment]

    def compute_storage(self, storage: EqVector, vol_vars: VolumeVariablesLike) -> None:
        for phase_idx in range(self.indices.num_phases):
            self.add_phase_storage(storage, vol_vars, phase_idx)

        # Heat stored in the solid matrix
        storage[self.energy_eq_idx] += (
            (1.0 - vol_vars.porosity)
            * vol_vars.rock_density
            * vol_vars.rock_heat_capacity
            * vol_vars.fluid_state.temperature
        )

    def add_phase_storage(
        self, storage: EqVector, vol_vars: VolumeVariablesLike, phase_idx: int
    ) -> None:
        fluid_state = vol_vars.fluid_state
        storage[self.energy_eq_idx] += (
            vol_vars.porosity
            * fluid_state.saturation(phase_idx)
            * fluid_state.density(phase_idx)
            * fluid_state.internal_energy(phase_idx)
        )

    def add_advective_flux(
        self,
        flux: RateVector,
        upstream_vol_vars: VolumeVariablesLike,
        phase_idx: int,
        volume_flux: float,
    ) -> None:
        fluid_state = upstream_vol_vars.fluid_state
        flux[self.energy_eq_idx] += (
            volume_flux
            * fluid_state.density(phase_idx)
            * fluid_state.enthalpy(phase_idx)
        )

    def add_diffusive_flux(
        self, flux: RateVector, flux_vars: FluxVariablesLike
    ) -> None:
        flux[self.energy_eq_idx] += flux_vars.conductive_heat_flux()


def make_energy_residual(indices: ModelIndices) -> EnergyResidual:
    """
    Build the energy sub-model matching the model's energy switch.

    :param indices: Equation index convention of the model.
    :return: `ThermalEnergyResidual` if energy is enabled, else the no-op `EnergyResidual`.
    """
    if indices.enable_energy:
        return ThermalEnergyResidual(indices)
    return EnergyResidual(indices)
