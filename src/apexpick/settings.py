"""Process-level settings read from the environment."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApexSettings(BaseSettings):
    """Settings for running apexpick as a process."""

    # Configuration files
    config_path: Path = Field(
        default=Path("config/apexpick.yaml"),
        description="Base YAML configuration file",
        alias="APEXPICK_CONFIG",
    )

    environment: str | None = Field(
        default=None,
        description="Environment overlay name, e.g. 'production'",
        alias="APEXPICK_ENV",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root log level",
        alias="APEXPICK_LOG_LEVEL",
    )

    # Request settings
    http_timeout: float = Field(
        default=10.0,
        description="HTTP request timeout in seconds",
        alias="APEXPICK_HTTP_TIMEOUT",
    )

    user_agent: str = Field(
        default="apexpick/0.1.0",
        description="User agent for HTTP requests",
        alias="APEXPICK_USER_AGENT",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


def load_settings(**overrides) -> ApexSettings:
    """Read settings from the environment, applying keyword ``overrides``."""
    settings = ApexSettings()
    for key, value in overrides.items():
        if not hasattr(settings, key):
            raise ValueError(f"Unknown settings option: {key}")
        setattr(settings, key, value)
    return settings
