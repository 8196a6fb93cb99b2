"""
Base configuration for all modgraph components.

Uses Pydantic Settings for environment-based configuration.
Each component extends BaseAppSettings with its own prefix.
"""

from pydantic_settings import BaseSettings


class BaseAppSettings(BaseSettings):
    """Base settings shared by every modgraph component."""

    app_name: str = "modgraph"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
