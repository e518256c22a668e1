"""Configuration settings for the daily settlement engine."""

from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flat settings read from environment variables or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Back-office API
    backoffice_api_url: str = Field(
        default="http://localhost:8000", validation_alias="BACKOFFICE_API_URL"
    )
    backoffice_username: str | None = Field(
        default=None, validation_alias="BACKOFFICE_USERNAME"
    )
    backoffice_password: SecretStr | None = Field(
        default=None, validation_alias="BACKOFFICE_PASSWORD"
    )
    backoffice_timeout: float = Field(default=30.0, validation_alias="BACKOFFICE_TIMEOUT")
    backoffice_max_retries: int = Field(default=3, validation_alias="BACKOFFICE_MAX_RETRIES")

    # Business rules
    business_timezone: str = Field(default="Asia/Seoul", validation_alias="BUSINESS_TIMEZONE")
    cash_markers: list[str] = Field(
        default_factory=lambda: ["현금"],
        validation_alias="CASH_MARKERS",
        description="Description keywords that mark an expense as paid in cash",
    )
    outsource_marker: str = Field(default="외부발주", validation_alias="OUTSOURCE_MARKER")
    branches_file: Path | None = Field(default=None, validation_alias="BRANCHES_FILE")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    @property
    def tzinfo(self) -> ZoneInfo:
        """Timezone that defines business-day boundaries."""
        return ZoneInfo(self.business_timezone)

    @property
    def has_credentials(self) -> bool:
        return bool(self.backoffice_username and self.backoffice_password)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
