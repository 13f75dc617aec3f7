"""Main settings and configuration management.

This module composes the settings from the different modules (app, network,
cache, resolution) into a single `Settings` class.

It loads settings from environment variables and .env files and provides a
single `settings` object for the application entry points. Library code never
reads `settings` directly; it receives plain constructor arguments wired by
`geo_resolver.infrastructure.dependency_injection`.

Environment Support:
- Development: Uses .env
- Test: Uses .env.test
- Staging: Uses .env.staging
- Production: Uses .env.production
"""

import logging
import os
from pathlib import Path

from pydantic_settings import SettingsConfigDict

from .app import AppSettings
from .cache import CacheSettings
from .network import NetworkSettings
from .resolution import ResolutionSettings

logger = logging.getLogger(__name__)


class Settings(AppSettings, NetworkSettings, CacheSettings, ResolutionSettings):
    """The main settings class that aggregates all configuration.

    It inherits from all the specialized settings classes, providing a unified
    interface to all configuration parameters.

    Usage:
        - Access settings via the singleton instance `settings` at entry points,
          or build a fresh `Settings(...)` in tests for isolation.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )


def create_settings() -> Settings:
    """Create settings instance with environment-specific configuration.

    Returns:
        Settings: Configured settings instance
    """
    env = os.getenv("APP_ENV", "development")

    env_files = {
        "development": ".env",
        "test": ".env.test",
        "staging": ".env.staging",
        "production": ".env.production",
    }

    env_file = env_files.get(env, ".env")

    if env != "development" and Path(env_file).exists():
        logger.info(f"Loading environment configuration from {env_file}")
        return Settings(_env_file=env_file)
    if Path(".env").exists():
        logger.info(f"Loading environment configuration from .env (environment: {env})")
        return Settings()
    logger.debug(f"No .env file found, using environment variables only (environment: {env})")
    return Settings()


settings = create_settings()
