"""
Application-wide settings.
"""
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """
    Defines application-wide settings like project name, environment and logging.

    Performance Note:
        - LOG_JSON should stay enabled outside development; the console renderer
          is considerably slower and meant for humans reading a terminal.
    """
    PROJECT_NAME: str = "geo-resolver"
    VERSION: str = "0.1.0"
    APP_ENV: str = "development"
    DEBUG: bool = False

    API_HOST: str = "0.0.0.0"
    API_PORT: int = Field(ge=1, le=65535, default=8000)

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """
        Upper-cases the log level so `info` and `INFO` are equivalent.

        Args:
            v: Raw log level from the environment.

        Returns:
            The normalized log level name.
        """
        if isinstance(v, str):
            return v.strip().upper()
        return v
