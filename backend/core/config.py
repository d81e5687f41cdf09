"""
Application settings loaded from the environment.

Values can be overridden through environment variables or a local `.env`
file; names are case-insensitive.
"""

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the attendance and payroll pipeline."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./timekeeping.db", description="SQLAlchemy database URL"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    log_sql_queries: bool = False

    # Environment Settings
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Payroll Configuration
    payroll_time_zone: str = Field(
        default="America/Los_Angeles",
        description="Organization time zone used for every calendar computation",
    )

    @field_validator("payroll_time_zone")
    @classmethod
    def validate_time_zone(cls, v: str) -> str:
        """Reject unknown IANA zone names."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {v}") from exc
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
