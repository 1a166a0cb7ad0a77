import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path.cwd()
PACKAGE_SCHEDULES_DIR = Path(__file__).resolve().parent / "data" / "schedules"


class Settings(BaseSettings):
    env: str = Field(default="dev", description="Deployment environment")
    log_level: str = "INFO"
    schedules_dir: Path = Field(default=PACKAGE_SCHEDULES_DIR, description="Directory of schedule documents")
    schedule_version: str = Field(default="ph_2025", description="Schedule version used when none is given")
    database_url: str = Field(default="sqlite:///paysheet.db", description="Payslip store connection string")
    max_workers: Optional[int] = Field(default=None, description="Batch worker threads; None lets the pool decide")
    sentry_dsn: Optional[str] = Field(default=None, description="Sentry DSN for error monitoring")
    otlp_endpoint: Optional[str] = Field(default=None, description="OTLP endpoint for traces/metrics")

    model_config = SettingsConfigDict(env_prefix="PAYSHEET_", extra="ignore")

    @field_validator("max_workers")
    @classmethod
    def positive_workers(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError("max_workers must be at least 1")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings(_env_file=get_settings_env_file())


def get_settings_env_file() -> Optional[str]:
    """Resolve environment-specific env file if it exists."""
    env = os.getenv("PAYSHEET_ENV", "dev")
    env_file = BASE_DIR / f".env.{env}"
    default_file = BASE_DIR / ".env"
    if env_file.exists():
        return str(env_file)
    if default_file.exists():
        return str(default_file)
    return None
