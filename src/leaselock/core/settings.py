"""Runtime settings loader."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import Field, ValidationError, field_validator

from leaselock.utils.env import redis_url_from_env

from .errors import ConfigurationError
from .models import DEFAULT_SPACE, StoreSettings, SweeperSettings, ValidatedSettings, as_configuration_error


class LockSettings(ValidatedSettings):
    redis_url: str = Field(default_factory=redis_url_from_env)
    space: str = DEFAULT_SPACE
    log_level: str = "INFO"
    store: StoreSettings = Field(default_factory=StoreSettings)
    sweeper: SweeperSettings = Field(default_factory=SweeperSettings)

    @field_validator("space")
    @classmethod
    def _check_space(cls, value: str) -> str:
        if not value:
            raise ValueError("Space should be defined")
        return value

    @classmethod
    def from_file(cls, path: Path) -> "LockSettings":
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Unable to read lock settings from {path}: {exc}") from exc
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise as_configuration_error(exc) from exc
