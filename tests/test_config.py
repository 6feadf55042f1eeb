import math

import pytest

from ncpflow import (
    DeserializationError,
    NewtonConfig,
    RelativeDefectNewtonController,
    ValidationError,
    load_newton_config,
)


def test_defaults():
    config = NewtonConfig()
    assert config.tolerance == 1e-7
    assert config.target_iterations == 9
    assert config.max_iterations == 18
    assert math.isinf(config.max_time_step_size)
    assert config.divergence_factor == 1e3


def test_validation():
    with pytest.raises(ValidationError):
        NewtonConfig(target_iterations=10, max_iterations=5)
    with pytest.raises(ValueError):
        NewtonConfig(tolerance=0.0)
    with pytest.raises(ValueError):
        NewtonConfig(max_time_step_size=-1.0)


def test_load_from_mapping_with_settings_names():
    config = load_newton_config(
        {"RelTolerance": 1e-6, "TargetSteps": 5, "max_iterations": 10, "Foo": 1},
        section=None,
    )
    assert config.tolerance == 1e-6
    assert config.target_iterations == 5
    assert config.max_iterations == 10


def test_load_from_yaml_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "TimeManager:\n"
        "  TEnd: 1000.0\n"
        "Newton:\n"
        "  MaxTimeStepSize: 100.0\n"
        "  RelTolerance: 1.0e-8\n",
        encoding="utf-8",
    )
    config = load_newton_config(path)
    assert config.max_time_step_size == 100.0
    assert config.tolerance == 1e-8
    assert config.target_iterations == 9

    controller = RelativeDefectNewtonController(config)
    assert controller.max_time_step_size == 100.0
    assert controller.tolerance == 1e-8


def test_load_errors(tmp_path):
    with pytest.raises(DeserializationError):
        load_newton_config(tmp_path / "missing.yaml")

    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(DeserializationError):
        load_newton_config(path)

    with pytest.raises(DeserializationError):
        load_newton_config({"MaxSteps": 3, "TargetSteps": 9})
    with pytest.raises(DeserializationError):
        load_newton_config({"RelTolerance": "tight"})
