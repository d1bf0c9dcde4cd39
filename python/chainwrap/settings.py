"""Engine settings and package priority resolution.

Settings are held in a pydantic model so they can be built in code, loaded
from a YAML file, or assembled from environment variables.

Example:
    >>> settings = EngineSettings(priorities={"package:my-pkg": 10})
    >>> PriorityTable(settings).resolve(PackageInfo("my-pkg"))
    10.0

YAML layout::

    debug: false
    high_performance: true
    priorities:
      package:my-pkg: 10
      other-pkg: -5
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationError
from .logging import log_debug
from .package_info import PackageInfo

SETTINGS_ENV_VAR = "CHAINWRAP_SETTINGS"
DEBUG_ENV_VAR = "CHAINWRAP_DEBUG"
HIGH_PERFORMANCE_ENV_VAR = "CHAINWRAP_HIGH_PERFORMANCE"

MAX_PRIORITY = sys.float_info.max

_TRUTHY = {"1", "true", "yes", "on"}


class EngineSettings(BaseModel):
    """Runtime settings for the wrapping engine."""

    debug: bool = Field(
        default=False,
        description="Log and publish events for the engine's own registrations.",
    )
    high_performance: bool = Field(
        default=False,
        description="Resolve AUTO perf_mode to FAST instead of NORMAL.",
    )
    slots_configurable: bool = Field(
        default=True,
        description="Allow empty wrappers to be torn down and the original restored.",
    )
    priorities: dict[str, float] = Field(
        default_factory=dict,
        description="Package key (or id) to priority. Unlisted packages get 0.",
    )

    model_config = {"extra": "forbid", "validate_assignment": True}

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> EngineSettings:
        """Validate settings from a plain mapping.

        Raises:
            ConfigurationError: If the mapping does not validate.
        """
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid chainwrap settings: {e}") from e

    @classmethod
    def from_yaml(cls, path: str | Path) -> EngineSettings:
        """Load settings from a YAML file.

        Args:
            path: Path to a YAML file holding a top-level mapping.

        Raises:
            ConfigurationError: If the file cannot be read or does not validate.
        """
        settings_file = Path(path)
        try:
            with settings_file.open() as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load settings from {settings_file}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {settings_file} must contain a mapping")

        log_debug(f"Loaded chainwrap settings from {settings_file}")
        return cls.from_mapping(data)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> EngineSettings:
        """Build settings from environment variables.

        CHAINWRAP_SETTINGS names a YAML file to start from; CHAINWRAP_DEBUG and
        CHAINWRAP_HIGH_PERFORMANCE override the matching flags.
        """
        env = os.environ if environ is None else environ

        path = env.get(SETTINGS_ENV_VAR)
        settings = cls.from_yaml(path) if path else cls()

        overrides: dict[str, Any] = {}
        if DEBUG_ENV_VAR in env:
            overrides["debug"] = env[DEBUG_ENV_VAR].strip().lower() in _TRUTHY
        if HIGH_PERFORMANCE_ENV_VAR in env:
            overrides["high_performance"] = env[HIGH_PERFORMANCE_ENV_VAR].strip().lower() in _TRUTHY

        if overrides:
            settings = settings.model_copy(update=overrides)
        return settings


class PriorityTable:
    """Resolves the priority a package registers with.

    The engine's own package always resolves to the maximum priority. Other
    packages are looked up in the settings by key, then by bare id, and
    default to 0.
    """

    def __init__(self, settings: EngineSettings) -> None:
        self._settings = settings

    def resolve(self, package_info: PackageInfo) -> float:
        if package_info.is_engine:
            return MAX_PRIORITY

        priorities = self._settings.priorities
        if package_info.key in priorities:
            return priorities[package_info.key]
        return priorities.get(package_info.id, 0)


__all__ = [
    "EngineSettings",
    "PriorityTable",
    "MAX_PRIORITY",
    "SETTINGS_ENV_VAR",
    "DEBUG_ENV_VAR",
    "HIGH_PERFORMANCE_ENV_VAR",
]
