import typing

import pytest

from ncpflow import (
    ElementContext,
    ElementGeometry,
    FluidState,
    FluxVariables,
    ModelIndices,
    Problem,
    SubControlVolume,
    VolumeVariables,
)


@pytest.fixture
def indices() -> ModelIndices:
    return ModelIndices(num_phases=2, num_components=2)


@pytest.fixture
def thermal_indices() -> ModelIndices:
    return ModelIndices(num_phases=2, num_components=2, enable_energy=True)


def volume_variables(
    saturations,
    mole_fractions,
    porosity: float = 0.5,
    extrusion_factor: float = 1.0,
    component_sources=None,
    rock_density: float = 0.0,
    rock_heat_capacity: float = 0.0,
    **fluid_kwargs,
) -> VolumeVariables:
    return VolumeVariables(
        fluid_state=FluidState(
            saturations=saturations, mole_fractions=mole_fractions, **fluid_kwargs
        ),
        porosity=porosity,
        extrusion_factor=extrusion_factor,
        component_sources=component_sources,
        rock_density=rock_density,
        rock_heat_capacity=rock_heat_capacity,
    )


@pytest.fixture
def make_volume_variables():
    return volume_variables


@pytest.fixture
def make_context():
    def _make(
        indices: ModelIndices,
        current: typing.Sequence[VolumeVariables],
        previous: typing.Optional[typing.Sequence[VolumeVariables]] = None,
        eval_point: typing.Optional[typing.Sequence[VolumeVariables]] = None,
        faces: typing.Sequence[typing.Tuple[int, int, typing.Any]] = (),
        problem=None,
        time_step_size: float = 1.0,
        volumes: typing.Optional[typing.Sequence[float]] = None,
        boundary_face_scvs: typing.Sequence[int] = (),
        primary_variables=None,
        global_indices=None,
        heat_flux: float = 0.0,
    ) -> ElementContext:
        volumes = volumes if volumes is not None else [1.0] * len(current)
        geometry = ElementGeometry(
            sub_control_volumes=[SubControlVolume(volume) for volume in volumes],
            boundary_face_scvs=boundary_face_scvs,
        )
        flux_variables = [
            FluxVariables(
                inside_idx=inside,
                outside_idx=outside,
                volume_fluxes=volume_fluxes,
                heat_flux=heat_flux,
            )
            for inside, outside, volume_fluxes in faces
        ]
        return ElementContext(
            geometry=geometry,
            volume_variables=[current, previous if previous is not None else current],
            flux_variables=flux_variables,
            problem=problem if problem is not None else Problem(indices),
            time_step_size=time_step_size,
            eval_point_volume_variables=eval_point,
            primary_variables=primary_variables,
            global_indices=global_indices,
        )

    return _make
