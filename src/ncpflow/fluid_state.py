"""Array-backed fluid state for a single control volume."""

import typing

import attrs
import numpy as np

from ncpflow._precision import get_dtype
from ncpflow.errors import ValidationError

__all__ = ["FluidState"]


def _as_vector(value: typing.Any) -> np.typing.NDArray:
    return np.asarray(value, dtype=get_dtype())


def _check_index(index: int, size: int, name: str) -> int:
    # Negative indices would silently wrap around in numpy
    if not 0 <= index < size:
        raise IndexError(f"{name} index {index} out of range [0, {size})")
    return index


@attrs.frozen(slots=True, eq=False)
class FluidState:
    """
    Thermodynamic state of all phases in one control volume.

    Saturations are stored as given. They are not normalized to sum to one,
    since that is exactly what the complementarity conditions test for.
    """

    saturations: np.typing.NDArray = attrs.field(converter=_as_vector)
    """Saturation of each phase, shape (num_phases,)."""
    mole_fractions: np.typing.NDArray = attrs.field(converter=_as_vector)
    """Mole fraction of each component in each phase, shape (num_phases, num_components)."""
    molar_densities: typing.Optional[np.typing.NDArray] = attrs.field(
        default=None, converter=attrs.converters.optional(_as_vector)
    )
    """Molar density of each phase (mol/m³). Defaults to one."""
    densities: typing.Optional[np.typing.NDArray] = attrs.field(
        default=None, converter=attrs.converters.optional(_as_vector)
    )
    """Mass density of each phase (kg/m³). Defaults to one."""
    internal_energies: typing.Optional[np.typing.NDArray] = attrs.field(
        default=None, converter=attrs.converters.optional(_as_vector)
    )
    """Specific internal energy of each phase (J/kg). Defaults to zero."""
    enthalpies: typing.Optional[np.typing.NDArray] = attrs.field(
        default=None, converter=attrs.converters.optional(_as_vector)
    )
    """Specific enthalpy of each phase (J/kg). Defaults to zero."""
    temperature: float = 293.15
    """Temperature (K)."""

    def __attrs_post_init__(self) -> None:
        if self.saturations.ndim != 1:
            raise ValidationError("Saturations must be a one-dimensional array")
        if self.mole_fractions.ndim != 2:
            raise ValidationError(
                "Mole fractions must be a (num_phases, num_components) array"
            )
        num_phases = self.saturations.shape[0]
        if self.mole_fractions.shape[0] != num_phases:
            raise ValidationError(
                f"Mole fractions given for {self.mole_fractions.shape[0]} phases, "
                f"saturations for {num_phases}"
            )

        dtype = get_dtype()
        defaults = {
            "molar_densities": 1.0,
            "densities": 1.0,
            "internal_energies": 0.0,
            "enthalpies": 0.0,
        }
        for name, fill in defaults.items():
            value = getattr(self, name)
            if value is None:
                object.__setattr__(self, name, np.full(num_phases, fill, dtype=dtype))
            elif value.shape != (num_phases,):
                raise ValidationError(
                    f"{name} must have shape ({num_phases},), got {value.shape}"
                )

    @property
    def num_phases(self) -> int:
        return self.saturations.shape[0]

    @property
    def num_components(self) -> int:
        return self.mole_fractions.shape[1]

    def saturation(self, phase_idx: int) -> float:
        return self.saturations[_check_index(phase_idx, self.num_phases, "Phase")]

    def mole_fraction(self, phase_idx: int, component_idx: int) -> float:
        return self.mole_fractions[
            _check_index(phase_idx, self.num_phases, "Phase"),
            _check_index(component_idx, self.num_components, "Component"),
        ]

    def molar_density(self, phase_idx: int) -> float:
        return self.molar_densities[_check_index(phase_idx, self.num_phases, "Phase")]  # type: ignore[index]

    def density(self, phase_idx: int) -> float:
        return self.densities[_check_index(phase_idx, self.num_phases, "Phase")]  # type: ignore[index]

    def internal_energy(self, phase_idx: int) -> float:
        return self.internal_energies[  # type: ignore[index]
            _check_index(phase_idx, self.num_phases, "Phase")
        ]

    def enthalpy(self, phase_idx: int) -> float:
        return self.enthalpies[_check_index(phase_idx, self.num_phases, "Phase")]  # type: ignore[index]
