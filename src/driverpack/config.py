"""Configuration models and loading logic."""

from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from driverpack.errors import SettingsError

DEFAULT_SETTINGS_FILE = Path("configs/driverpack.yaml")
SETTINGS_FILE_ENV = "DRIVERPACK_SETTINGS_FILE"


class ToolsConfig(BaseModel):
    """Executable names (or absolute paths) for every external tool."""

    cargo: str = "cargo"
    rustc: str = "rustc"
    stampinf: str = "stampinf"
    inf2cat: str = "inf2cat"
    signtool: str = "signtool"
    certmgr: str = "certmgr.exe"
    makecert: str = "makecert"
    infverif: str = "infverif"


class CertificateConfig(BaseModel):
    """Test-signing certificate settings."""

    test_signing: bool = True
    store_name: str = "WDRTestCertStore"
    subject_name: str = "WDRLocalTestCert"
    timestamp_url: str = "http://timestamp.digicert.com"
    hash_algorithm: str = "SHA256"
    enhanced_key_usage: str = "1.3.6.1.5.5.7.3.3"


class WdkConfig(BaseModel):
    """WDK discovery settings."""

    content_root: Path | None = None
    # InfVerif from this build onwards lacks the samples flag.
    missing_sample_flag_min_build: int = Field(default=25798, ge=0)
    extend_tool_path: bool = True


class LoggingConfig(BaseModel):
    """Optional file logging in addition to the console."""

    log_file: Path | None = None


class AppSettings(BaseSettings):
    """Top-level application settings."""

    _yaml_file_override: ClassVar[Path | None] = None

    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    certificate: CertificateConfig = Field(default_factory=CertificateConfig)
    wdk: WdkConfig = Field(default_factory=WdkConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="DRIVERPACK_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Use YAML defaults while allowing env vars to override values."""

        yaml_file = resolve_settings_file(cls._yaml_file_override)
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def as_dict(self) -> dict[str, object]:
        """Return settings as a standard nested dictionary."""

        return self.model_dump(mode="json")


def find_project_root(start: Path | None = None) -> Path:
    """Locate the project root by traversing upward for the settings file."""

    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / DEFAULT_SETTINGS_FILE).exists():
            return candidate
    return current


def resolve_settings_file(override: Path | None = None, start: Path | None = None) -> Path:
    """Resolve settings file from explicit override, env var, or default.

    The file does not have to exist; built-in defaults apply when it is absent.
    """

    chosen = override
    if chosen is None:
        env_value = os.getenv(SETTINGS_FILE_ENV)
        if env_value:
            chosen = Path(env_value)
    if chosen is None:
        chosen = DEFAULT_SETTINGS_FILE

    if not chosen.is_absolute():
        chosen = (find_project_root(start) / chosen).resolve()
    return chosen


def load_settings(config_file: Path | None = None, start: Path | None = None) -> AppSettings:
    """Load settings with YAML defaults and environment variable overrides.

    A malformed YAML file or an invalid value raises ``SettingsError``.
    """

    settings_file = resolve_settings_file(config_file, start=start)
    AppSettings._yaml_file_override = settings_file
    try:
        settings = AppSettings()
    except (ValidationError, yaml.YAMLError) as exc:
        raise SettingsError(settings_file, str(exc)) from exc
    finally:
        AppSettings._yaml_file_override = None
    return settings
