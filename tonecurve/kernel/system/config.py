import logging
import os
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Mapping

from tonecurve.domain.constants import (
    DEFAULT_CUBE_DIMENSION,
    DEFAULT_LUT_RESOLUTION,
)


class BackendPreference(StrEnum):
    LUT_PREFERRED = "lut"
    CUBE_ONLY = "cube"


@dataclass(frozen=True)
class EngineConfig:
    lut_resolution: int
    cube_dimension: int
    preview_cube_dimension: int
    backend: BackendPreference
    log_level: str


def validate_int(val: Any, default: int = 0) -> int:
    """Ensures a value is an int, providing a default if None or unparsable."""
    if val is None:
        return default
    try:
        return int(val)
    except (TypeError, ValueError):
        return default


def validate_backend(val: Any, default: BackendPreference = BackendPreference.LUT_PREFERRED) -> BackendPreference:
    if val is None:
        return default
    try:
        return BackendPreference(str(val).strip().lower())
    except ValueError:
        return default


def validate_log_level(val: Any, default: str = "INFO") -> str:
    if val is None:
        return default
    name = str(val).strip().upper()
    return name if name in logging.getLevelNamesMapping() else default


def load_config(env: Mapping[str, str] | None = None) -> EngineConfig:
    """
    Builds the engine configuration from TONECURVE_* environment variables.
    """
    env = os.environ if env is None else env
    return EngineConfig(
        lut_resolution=validate_int(env.get("TONECURVE_LUT_RESOLUTION"), DEFAULT_LUT_RESOLUTION),
        cube_dimension=validate_int(env.get("TONECURVE_CUBE_DIMENSION"), DEFAULT_CUBE_DIMENSION),
        preview_cube_dimension=validate_int(env.get("TONECURVE_PREVIEW_CUBE_DIMENSION"), 16),
        backend=validate_backend(env.get("TONECURVE_BACKEND")),
        log_level=validate_log_level(env.get("TONECURVE_LOG_LEVEL")),
    )


# Global engine constants
APP_CONFIG = load_config()
