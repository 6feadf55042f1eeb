"""Equation index convention shared by the local residual and the solver."""

import typing

import attrs

__all__ = ["ModelIndices"]


@attrs.frozen(slots=True)
class ModelIndices:
    """
    Layout of the equation vector of an M-phase, N-component model.

    Rows are ordered as::

        [conti0 ... conti(N-1) | ncp0 ... ncp(M-1) | energy]

    The component conservation rows come first, then one complementarity
    row per phase, and finally the energy balance when energy is enabled.
    """

    num_phases: int = attrs.field(validator=attrs.validators.ge(1))
    """Number of fluid phases."""
    num_components: int = attrs.field(validator=attrs.validators.ge(1))
    """Number of chemical components."""
    enable_energy: bool = False
    """Whether the energy balance is part of the system."""

    @property
    def conti0_eq_idx(self) -> int:
        """Index of the first component conservation equation."""
        return 0

    @property
    def phase0_ncp_idx(self) -> int:
        """Index of the complementarity row of the first phase."""
        return self.conti0_eq_idx + self.num_components

    @property
    def energy_eq_idx(self) -> typing.Optional[int]:
        """Index of the energy balance, or None if energy is disabled."""
        if not self.enable_energy:
            return None
        return self.phase0_ncp_idx + self.num_phases

    @property
    def num_eq(self) -> int:
        """Total number of primary equations per degree of freedom."""
        return self.num_components + self.num_phases + int(self.enable_energy)

    def conti_eq_idx(self, component_idx: int) -> int:
        """Row of the conservation equation of a component."""
        if not 0 <= component_idx < self.num_components:
            raise IndexError(f"Component index {component_idx} out of range")
        return self.conti0_eq_idx + component_idx

    def ncp_idx(self, phase_idx: int) -> int:
        """Row of the complementarity condition of a phase."""
        if not 0 <= phase_idx < self.num_phases:
            raise IndexError(f"Phase index {phase_idx} out of range")
        return self.phase0_ncp_idx + phase_idx
