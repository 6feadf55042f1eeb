import numpy as np
import pytest

from ncpflow import (
    FluidState,
    ValidationError,
    compute_phase_ncp_grid,
    is_phase_present,
    phase_ncp,
    phase_not_present_ineq,
    phase_present_ineq,
)


def test_inequalities():
    fs = FluidState(saturations=[0.3, 0.7], mole_fractions=[[0.6, 0.3], [0.5, 0.5]])
    assert phase_present_ineq(fs, 0) == 0.3
    assert phase_not_present_ineq(fs, 0, 2) == pytest.approx(0.1)
    assert phase_not_present_ineq(fs, 1, 2) == 0.0


def test_tie_resolves_to_absent_branch():
    eval_fs = FluidState(
        saturations=[0.5, 0.5], mole_fractions=[[0.25, 0.25], [0.25, 0.25]]
    )
    assert not is_phase_present(eval_fs, 0, 2)

    fs = FluidState(saturations=[0.9, 0.1], mole_fractions=[[0.3, 0.3], [0.5, 0.5]])
    assert phase_ncp(eval_fs, fs, 0, 2) == pytest.approx(0.4)


def test_present_phase_uses_saturation():
    eval_fs = FluidState(saturations=[0.1, 0.9], mole_fractions=[[0.4, 0.4], [0.1, 0.1]])
    fs = FluidState(saturations=[0.75, 0.25], mole_fractions=[[0.5, 0.4], [0.1, 0.1]])
    assert is_phase_present(eval_fs, 0, 2)
    assert phase_ncp(eval_fs, fs, 0, 2) == 0.75


def test_branch_depends_on_evaluation_point_only():
    fs = FluidState(saturations=[0.2, 0.8], mole_fractions=[[0.5, 0.2], [0.5, 0.5]])
    present = FluidState(saturations=[0.1, 0.9], mole_fractions=[[0.4, 0.4], [0.5, 0.5]])
    absent = FluidState(saturations=[0.5, 0.5], mole_fractions=[[0.4, 0.4], [0.5, 0.5]])

    assert phase_ncp(present, fs, 0, 2) == 0.2
    assert phase_ncp(absent, fs, 0, 2) == pytest.approx(0.3)
    # Only one of the two inequalities is returned, never a mix
    assert phase_ncp(fs, fs, 0, 2) in (
        phase_present_ineq(fs, 0),
        phase_not_present_ineq(fs, 0, 2),
    )


def test_out_of_range_phase_raises():
    fs = FluidState(saturations=[0.5, 0.5], mole_fractions=[[0.5, 0.5], [0.5, 0.5]])
    with pytest.raises(IndexError):
        phase_ncp(fs, fs, 2, 2)
    with pytest.raises(IndexError):
        phase_ncp(fs, fs, -1, 2)


def test_grid_kernel_matches_scalar_rule():
    rng = np.random.default_rng(42)
    num_scv, num_phases, num_components = 7, 3, 4
    eval_s = rng.uniform(0.0, 1.0, (num_scv, num_phases))
    eval_x = rng.uniform(0.0, 0.5, (num_scv, num_phases, num_components))
    s = rng.uniform(0.0, 1.0, (num_scv, num_phases))
    x = rng.uniform(0.0, 0.5, (num_scv, num_phases, num_components))
    # Force a tie in one control volume
    eval_x[3, 1] = [0.125, 0.125, 0.125, 0.125]
    eval_s[3, 1] = 0.5

    result = compute_phase_ncp_grid(eval_s, eval_x, s, x)

    expected = np.empty((num_scv, num_phases))
    for scv_idx in range(num_scv):
        eval_fs = FluidState(saturations=eval_s[scv_idx], mole_fractions=eval_x[scv_idx])
        fs = FluidState(saturations=s[scv_idx], mole_fractions=x[scv_idx])
        for phase_idx in range(num_phases):
            expected[scv_idx, phase_idx] = phase_ncp(
                eval_fs, fs, phase_idx, num_components
            )
    np.testing.assert_array_equal(result, expected)


def test_grid_kernel_validates_shapes():
    s = np.zeros((2, 2))
    x = np.zeros((2, 2, 3))
    with pytest.raises(ValidationError):
        compute_phase_ncp_grid(s, x, s, x[:, :, :2])
    with pytest.raises(ValidationError):
        compute_phase_ncp_grid(s, x, s.ravel(), x)
    with pytest.raises(ValidationError):
        compute_phase_ncp_grid(s, x[:1], s, x[:1])
