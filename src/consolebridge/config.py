"""Configuration management with pydantic-settings."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from consolebridge.types import DEFAULT_MAX_DEPTH, FUNCTION_SOURCE_LIMIT


class ConsoleBridgeSettings(BaseSettings):
    """consolebridge settings loaded from environment variables.

    All settings use the CONSOLEBRIDGE_ prefix for environment variables.
    """

    # Serialization configuration
    max_depth: int = Field(
        default=DEFAULT_MAX_DEPTH,
        ge=0,
        description="Levels below each logged argument that are serialized",
    )
    function_source_limit: int = Field(
        default=FUNCTION_SOURCE_LIMIT,
        ge=0,
        description="Maximum characters of function source kept in Function records",
    )

    # Parent context configuration
    parent: Literal["stderr", "stdout", "none"] = Field(
        default="none",
        description="Channel to the parent context: stderr, stdout, none",
    )
    url: str | None = Field(
        default=None,
        description="Location reported as the origin of relayed envelopes",
    )

    # Logging configuration
    log_level: str = Field(default="WARNING", description="Logging level")
    json_logs: bool = Field(default=False, description="Render local logs as JSON")

    model_config = SettingsConfigDict(
        env_prefix="CONSOLEBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Global settings instance
_settings: ConsoleBridgeSettings | None = None


def get_settings() -> ConsoleBridgeSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = ConsoleBridgeSettings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None
