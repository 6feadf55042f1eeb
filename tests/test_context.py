import numpy as np
import pytest

from ncpflow import FluxVariables, NcpLocalResidual, ValidationError


@pytest.fixture
def context(indices, make_volume_variables, make_context):
    current = [
        make_volume_variables([0.3, 0.7], [[0.6, 0.4], [0.1, 0.9]]),
        make_volume_variables([0.9, 0.1], [[0.2, 0.8], [0.3, 0.7]]),
    ]
    previous = [
        make_volume_variables([0.4, 0.6], [[0.5, 0.5], [0.2, 0.8]]),
        make_volume_variables([0.5, 0.5], [[0.5, 0.5], [0.2, 0.8]]),
    ]
    return make_context(
        indices,
        current,
        previous,
        faces=[(0, 1, [1.0, -0.5])],
        boundary_face_scvs=[1],
        primary_variables=[np.zeros(indices.num_eq), np.ones(indices.num_eq)],
    )


@pytest.mark.parametrize("scv_idx", [-1, 2])
def test_bad_scv_index_raises(indices, context, scv_idx):
    residual = NcpLocalResidual(indices)
    with pytest.raises(IndexError):
        residual.compute_storage(context, scv_idx, 0)
    with pytest.raises(IndexError):
        residual.phase_ncp(context, scv_idx, 0, 0)
    with pytest.raises(IndexError):
        context.eval_point_vol_vars(scv_idx, 0)
    with pytest.raises(IndexError):
        context.primary_vars(scv_idx, 0)
    with pytest.raises(IndexError):
        context.global_index(scv_idx)


@pytest.mark.parametrize("time_idx", [-1, 2, 7])
def test_bad_time_index_raises(indices, context, time_idx):
    residual = NcpLocalResidual(indices)
    with pytest.raises(IndexError):
        residual.compute_storage(context, 0, time_idx)
    with pytest.raises(IndexError):
        residual.phase_ncp(context, 0, time_idx, 0)
    with pytest.raises(IndexError):
        residual.compute_flux(context, 0, time_idx)
    with pytest.raises(IndexError):
        context.fv_elem_geom(time_idx)


def test_previous_time_level_is_not_wrapped(indices, context):
    # Index 1 is the previous level, never the last entry of some other sequence
    assert context.vol_vars(1, 1).fluid_state.saturation(0) == 0.5
    assert context.vol_vars(1, 0).fluid_state.saturation(0) == 0.9
    assert context.fv_elem_geom(1) is context.fv_elem_geom(0)


def test_fluxes_and_primary_variables_only_at_current_level(indices, context):
    assert context.flux_vars(0, 0).inside_idx == 0
    with pytest.raises(IndexError):
        context.flux_vars(0, 1)
    with pytest.raises(IndexError):
        context.flux_vars(1, 0)
    with pytest.raises(IndexError):
        context.flux_vars(-1, 0)
    with pytest.raises(IndexError):
        context.primary_vars(0, 1)


def test_bad_boundary_face_index_raises(context):
    assert context.boundary_face_scv(0) == 1
    with pytest.raises(IndexError):
        context.boundary_face_scv(1)
    with pytest.raises(IndexError):
        context.boundary_face_scv(-1)


def test_missing_primary_variables(indices, make_volume_variables, make_context):
    context = make_context(indices, [make_volume_variables([1.0, 0.0], [[1, 0], [0, 1]])])
    with pytest.raises(ValidationError):
        context.primary_vars(0, 0)


def test_component_source_index(make_volume_variables):
    without_sources = make_volume_variables([1.0, 0.0], [[1, 0], [0, 1]])
    assert without_sources.component_source(1) == 0.0
    with pytest.raises(IndexError):
        without_sources.component_source(2)

    with_sources = make_volume_variables(
        [1.0, 0.0], [[1, 0], [0, 1]], component_sources=[3.0, 4.0]
    )
    assert with_sources.component_source(1) == 4.0
    with pytest.raises(IndexError):
        with_sources.component_source(-1)
    with pytest.raises(IndexError):
        with_sources.component_source(2)


def test_flux_variable_indices():
    flux_vars = FluxVariables(
        inside_idx=0,
        outside_idx=1,
        volume_fluxes=[1.0, -2.0],
        diffusive_fluxes=[[0.1, 0.2], [0.3, 0.4]],
    )
    assert flux_vars.volume_flux(1) == -2.0
    assert flux_vars.upstream_idx(1) == 1
    assert flux_vars.diffusive_molar_flux(1, 0) == pytest.approx(0.3)

    with pytest.raises(IndexError):
        flux_vars.volume_flux(-1)
    with pytest.raises(IndexError):
        flux_vars.upstream_idx(2)
    with pytest.raises(IndexError):
        flux_vars.diffusive_molar_flux(-1, 0)
    with pytest.raises(IndexError):
        flux_vars.diffusive_molar_flux(0, 2)

    advective_only = FluxVariables(inside_idx=0, outside_idx=1, volume_fluxes=[1.0, 1.0])
    assert advective_only.diffusive_molar_flux(1, 1) == 0.0
    with pytest.raises(IndexError):
        advective_only.diffusive_molar_flux(2, 0)
