"""
Local residual of the compositional M-phase, N-component model with
complementarity conditions for phase presence.
"""

import typing

import numpy as np

from ncpflow._precision import get_dtype
from ncpflow.errors import ValidationError
from ncpflow.indices import ModelIndices
from ncpflow.ncp import compute_phase_ncp_grid, phase_ncp
from ncpflow.residual.base import BoxLocalResidual
from ncpflow.residual.energy import EnergyResidual, make_energy_residual
from ncpflow.residual.mass import MassResidual
from ncpflow.types import ElementContextLike, EqVector, RateVector

__all__ = ["NcpLocalResidual"]


class NcpLocalResidual(BoxLocalResidual):
    """
    Fills in the storage, flux and source terms of the box scheme for the
    compositional model, and replaces the M phase rows of the residual with
    the phases' complementarity conditions.
    """

    def __init__(
        self,
        indices: ModelIndices,
        mass: typing.Optional[MassResidual] = None,
        energy: typing.Optional[EnergyResidual] = None,
    ) -> None:
        """
        :param indices: Equation index convention of the model.
        :param mass: Mass sub-model. Built from `indices` and `energy` if not given.
        :param energy: Energy sub-model. Chosen from `indices.enable_energy` if not given.
        """
        super().__init__(indices)
        if energy is None:
            energy = (
                mass.energy if mass is not None else make_energy_residual(indices)
            )
        if mass is None:
            mass = MassResidual(indices, energy)
        if mass.indices != indices or energy.indices != indices:
            raise ValidationError(
                "Mass and energy sub-models must share the residual's indices"
            )
        self.mass = mass
        self.energy = energy

    def compute_storage(
        self, element_context: ElementContextLike, scv_idx: int, time_idx: int
    ) -> EqVector:
        """
        Amount of all conserved quantities in a sub-control volume, per unit volume.

        :param element_context: Element context.
        :param scv_idx: Local sub-control volume index.
        :param time_idx: Time level (0 for current, 1 for previous).
        :return: The storage equation vector.
        """
        vol_vars = element_context.vol_vars(scv_idx, time_idx)
        storage = np.zeros(self.indices.num_eq, dtype=get_dtype())
        self.mass.compute_storage(storage, vol_vars)
        self.energy.compute_storage(storage, vol_vars)
        return storage

    def add_phase_storage(
        self,
        storage: EqVector,
        element_context: ElementContextLike,
        phase_idx: int,
    ) -> None:
        """
        Add the total amount of conserved quantities held by one phase in all
        sub-control volumes of an element, at the current time level.

        Only used for diagnostics such as mass balance reports.

        :param storage: Equation vector to add to.
        :param element_context: Element context.
        :param phase_idx: Phase index.
        """
        if not 0 <= phase_idx < self.indices.num_phases:
            raise IndexError(f"Phase index {phase_idx} out of range")

        for scv_idx in range(element_context.num_scv()):
            vol_vars = element_context.vol_vars(scv_idx, 0)
            phase_storage = np.zeros(self.indices.num_eq, dtype=get_dtype())
            self.mass.add_phase_storage(phase_storage, vol_vars, phase_idx)
            self.energy.add_phase_storage(phase_storage, vol_vars, phase_idx)

            phase_storage *= (
                vol_vars.extrusion_factor
                * element_context.fv_elem_geom(0).sub_control_volumes[scv_idx].volume
            )
            storage += phase_storage

    def compute_source(
        self, element_context: ElementContextLike, scv_idx: int, time_idx: int
    ) -> RateVector:
        """
        External source of the problem plus internal mass sources.

        Energy sources are not included.
        """
        problem_source = element_context.problem().source(
            element_context, scv_idx, time_idx
        )
        source = np.array(problem_source, dtype=get_dtype())
        self.mass.compute_source(source, element_context, scv_idx, time_idx)
        return source

    def compute_flux(
        self, element_context: ElementContextLike, face_idx: int, time_idx: int
    ) -> RateVector:
        """
        Total flux of all conserved quantities over a face.

        The energy flux is added by the mass sub-model, because energy is
        carried by the component-wise phase fluxes.
        """
        flux = np.zeros(self.indices.num_eq, dtype=get_dtype())
        self.mass.compute_flux(flux, element_context, face_idx, time_idx)
        return flux

    def eval(
        self, element_context: ElementContextLike
    ) -> typing.Tuple[np.typing.NDArray, np.typing.NDArray]:
        """
        Evaluate the local residual, then overwrite the phase rows with the
        complementarity conditions at the current time level.

        :param element_context: Element to evaluate.
        :return: A tuple (residual, storage_term), both shaped (num_scv, num_eq).
        """
        residual, storage_term = super().eval(element_context)

        eval_saturations, eval_mole_fractions = self._gather_fluid_states(
            element_context, eval_point=True
        )
        saturations, mole_fractions = self._gather_fluid_states(
            element_context, eval_point=False
        )
        ncp = compute_phase_ncp_grid(
            eval_saturations, eval_mole_fractions, saturations, mole_fractions
        )
        phase0_ncp_idx = self.indices.phase0_ncp_idx
        residual[:, phase0_ncp_idx : phase0_ncp_idx + self.indices.num_phases] = ncp
        return residual, storage_term

    def phase_ncp(
        self,
        element_context: ElementContextLike,
        scv_idx: int,
        time_idx: int,
        phase_idx: int,
    ) -> float:
        """
        Value of the complementarity function of a phase in one sub-control volume.
        """
        eval_fluid_state = element_context.eval_point_vol_vars(
            scv_idx, time_idx
        ).fluid_state
        fluid_state = element_context.vol_vars(scv_idx, time_idx).fluid_state
        return phase_ncp(
            eval_fluid_state, fluid_state, phase_idx, self.indices.num_components
        )

    def _gather_fluid_states(
        self, element_context: ElementContextLike, eval_point: bool
    ) -> typing.Tuple[np.typing.NDArray, np.typing.NDArray]:
        num_scv = element_context.num_scv()
        num_phases = self.indices.num_phases
        num_components = self.indices.num_components
        dtype = get_dtype()
        saturations = np.empty((num_scv, num_phases), dtype=dtype)
        mole_fractions = np.empty((num_scv, num_phases, num_components), dtype=dtype)

        for scv_idx in range(num_scv):
            if eval_point:
                vol_vars = element_context.eval_point_vol_vars(scv_idx, 0)
            else:
                vol_vars = element_context.vol_vars(scv_idx, 0)
            fluid_state = vol_vars.fluid_state
            for phase_idx in range(num_phases):
                saturations[scv_idx, phase_idx] = fluid_state.saturation(phase_idx)
                for component_idx in range(num_components):
                    mole_fractions[scv_idx, phase_idx, component_idx] = (
                        fluid_state.mole_fraction(phase_idx, component_idx)
                    )
        return saturations, mole_fractions
