import pytest

from ncpflow import Timer, TimingError, ValidationError


def test_accept_clamps_suggestion():
    timer = Timer(
        initial_step_size=1.0, max_step_size=10.0, min_step_size=0.1, simulation_time=5.0
    )
    assert timer.propose_step_size() == 1.0

    assert timer.accept_step(1.0, suggested_step_size=100.0) == 10.0
    assert timer.step == 1
    assert timer.elapsed_time == 1.0
    # Last step is cut to the remaining time
    assert timer.propose_step_size() == 4.0

    assert timer.accept_step(4.0, suggested_step_size=1e-6) == 0.1
    assert timer.done()
    assert timer.is_last_step


def test_reject_reduces_step_size():
    timer = Timer(
        initial_step_size=4.0, max_step_size=10.0, min_step_size=0.5, simulation_time=100.0
    )
    assert timer.reject_step(4.0) == 2.0
    assert timer.reject_step(2.0, aggressive=True) == 0.5
    assert timer.rejection_count == 2

    timer.accept_step(0.5)
    assert timer.rejection_count == 0


def test_reject_limits():
    timer = Timer(
        initial_step_size=1.0,
        max_step_size=1.0,
        min_step_size=1e-6,
        simulation_time=10.0,
        max_rejects=2,
    )
    timer.reject_step(1.0)
    timer.reject_step(0.5)
    with pytest.raises(TimingError):
        timer.reject_step(0.25)

    timer = Timer(
        initial_step_size=1.0, max_step_size=1.0, min_step_size=1.0, simulation_time=10.0
    )
    with pytest.raises(TimingError):
        timer.reject_step(1.0)


def test_max_steps():
    timer = Timer(
        initial_step_size=1.0,
        max_step_size=1.0,
        min_step_size=0.1,
        simulation_time=10.0,
        max_steps=2,
    )
    timer.accept_step(1.0)
    assert not timer.done()
    timer.accept_step(1.0)
    assert timer.done()


def test_invalid_bounds():
    with pytest.raises(ValidationError):
        Timer(
            initial_step_size=1.0, max_step_size=1.0, min_step_size=2.0, simulation_time=1.0
        )
    with pytest.raises(ValueError):
        Timer(
            initial_step_size=0.0, max_step_size=1.0, min_step_size=0.1, simulation_time=1.0
        )
