from __future__ import annotations

import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ppstats_client import __version__
from ppstats_client.errors import ConfigError
from ppstats_exporter.settings import ExporterConfig

DEFAULT_CONFIG_FILE = "ppstats.toml"
# last breaking change was moving the prometheus port into [[cluster]] in 0.20
COMPATIBLE_CONFIG_VERSIONS = frozenset(f"0.{minor}" for minor in range(20, 29))


class Settings(BaseSettings):
    """Process-level settings; command line options take precedence."""

    model_config = SettingsConfigDict(env_prefix="PPSTATS_", env_file=".env", case_sensitive=False, extra="ignore")

    config_file: str = DEFAULT_CONFIG_FILE
    logfile: str | None = None
    log_level: str = "INFO"
    log_to_stdout: bool = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def load_config(path: str | Path) -> ExporterConfig:
    """Read and validate the exporter TOML config file."""
    path = Path(path)
    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config file {path} not found") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"unable to parse config file {path}: {e}") from e
    return parse_config(raw, str(path))


def parse_config(raw: dict, source: str = "<config>") -> ExporterConfig:
    try:
        config = ExporterConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"invalid config in {source}: {e}") from e
    validate_config_version(config.global_.version)
    return config


def validate_config_version(version: str | None) -> None:
    """Reject config files written for an incompatible collector release."""
    if not version:
        raise ConfigError("the collector requires a versioned config file (see the example config)")
    if version.lstrip("vV") not in COMPATIBLE_CONFIG_VERSIONS:
        raise ConfigError(f"config file version {version!r} is not compatible with this collector version {__version__}")
