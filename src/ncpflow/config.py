import logging
import math
import typing
from os import PathLike
from pathlib import Path

import attrs
import cattrs
import yaml

from ncpflow.errors import DeserializationError, ValidationError

__all__ = ["NewtonConfig", "load_newton_config", "SETTINGS_KEYS"]

logger = logging.getLogger(__name__)


def _check_max_iterations(
    instance: "NewtonConfig", attribute: attrs.Attribute, value: int
) -> None:
    if value < instance.target_iterations:
        raise ValidationError(
            f"max_iterations ({value}) must not be smaller than "
            f"target_iterations ({instance.target_iterations})"
        )


@attrs.frozen
class NewtonConfig:
    """Newton iteration and time step size control parameters."""

    tolerance: float = attrs.field(
        default=1e-7,
        validator=attrs.validators.and_(
            attrs.validators.gt(0.0), attrs.validators.le(1e-1)
        ),
    )
    """Convergence tolerance on the relative change of the solution between iterations."""
    target_iterations: int = attrs.field(default=9, validator=attrs.validators.ge(1))
    """
    Number of Newton iterations considered optimal.

    Time steps converging in fewer iterations grow the next step, steps
    needing more shrink it.
    """
    max_iterations: int = attrs.field(
        default=18,
        validator=attrs.validators.and_(
            attrs.validators.ge(1), _check_max_iterations
        ),
    )
    """Maximum number of Newton iterations before the time step is considered failed."""
    max_time_step_size: float = attrs.field(
        default=math.inf, validator=attrs.validators.gt(0.0)
    )
    """Hard upper bound on proposed time step sizes (s)."""
    divergence_factor: float = attrs.field(
        default=1e3, validator=attrs.validators.gt(1.0)
    )
    """
    Iteration stops early if the error grows by more than this factor from one
    iteration to the next, after the first few iterations.
    """


SETTINGS_KEYS: typing.Dict[str, str] = {
    "RelTolerance": "tolerance",
    "TargetSteps": "target_iterations",
    "MaxSteps": "max_iterations",
    "MaxTimeStepSize": "max_time_step_size",
    "DivergenceFactor": "divergence_factor",
}
"""Names under which `NewtonConfig` fields may appear in a settings source."""

_converter = cattrs.Converter()


def load_newton_config(
    source: typing.Union[str, PathLike, typing.Mapping[str, typing.Any]],
    section: typing.Optional[str] = "Newton",
) -> NewtonConfig:
    """
    Build a `NewtonConfig` from a settings mapping or a YAML settings file.

    Keys may be given either as field names (``max_time_step_size``) or
    under their settings names (``MaxTimeStepSize``, see `SETTINGS_KEYS`).
    Missing keys keep their defaults.

    :param source: A mapping of settings, or the path to a YAML file.
    :param section: Name of the section holding the Newton settings. If the
        section is absent, the top level of the source is used.
    :return: The Newton configuration.
    :raises DeserializationError: If the settings cannot be read or are invalid.
    """
    if isinstance(source, (str, PathLike)):
        path = Path(source)
        logger.debug(f"Loading Newton settings from {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                settings = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise DeserializationError(
                f"Failed to read settings file {path}"
            ) from exc
    else:
        settings = source

    if not isinstance(settings, typing.Mapping):
        raise DeserializationError(
            f"Settings must be a mapping, got {type(settings).__name__}"
        )
    if section is not None and isinstance(settings.get(section), typing.Mapping):
        settings = settings[section]

    data = {SETTINGS_KEYS.get(key, key): value for key, value in settings.items()}
    field_names = {field.name for field in attrs.fields(NewtonConfig)}
    unknown = sorted(set(data) - field_names)
    if unknown:
        logger.warning(f"Ignoring unknown Newton settings: {', '.join(unknown)}")
        data = {key: value for key, value in data.items() if key in field_names}

    try:
        return _converter.structure(data, NewtonConfig)
    except Exception as exc:
        raise DeserializationError("Failed to load Newton settings") from exc
