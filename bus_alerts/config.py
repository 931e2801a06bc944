import logging
import logging.config
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal, Optional

import pytz
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# -------------------------
# Feeds
# -------------------------
SIRI_FEED_URL = "https://api.prod.obanyc.com/api/siri/vehicle-monitoring.json"

CACHE_TTL_SECONDS = 15 * 60


# -------------------------
# Render config
# -------------------------
@dataclass(frozen=True)
class RenderConfig:
    max_chars_per_line: int
    lines_per_screen: int
    max_total_screens: Optional[int] = None
    max_alerts: Optional[int] = None

    def __post_init__(self):
        if self.max_chars_per_line <= 0:
            raise ValueError("max_chars_per_line must be positive")
        if self.lines_per_screen <= 0:
            raise ValueError("lines_per_screen must be positive")
        if self.max_total_screens is not None and self.max_total_screens <= 0:
            raise ValueError("max_total_screens must be positive when set")
        if self.max_alerts is not None and self.max_alerts <= 0:
            raise ValueError("max_alerts must be positive when set")


# -------------------------
# Settings
# -------------------------
class Settings(BaseSettings):
    """Service settings, read from the environment or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: Optional[SecretStr] = Field(
        default=None,
        alias="NOSHADOWS_NYC_BUS_SERVICE_ALERTS_API_KEY",
        description="Key clients must pass as ?apiKey=",
    )
    feed_api_key: Optional[SecretStr] = Field(
        default=None,
        alias="MTA_BUS_TIME_API_KEY",
        description="Upstream MTA Bus Time key",
    )
    feed_url: str = Field(default=SIRI_FEED_URL, alias="FEED_URL")
    feed_format: Literal["siri", "gtfs-rt"] = Field(default="siri", alias="FEED_FORMAT")
    cache_ttl_seconds: int = Field(default=CACHE_TTL_SECONDS, alias="CACHE_TTL_SECONDS", ge=1)
    timezone: str = Field(default="America/New_York", alias="DISPLAY_TIMEZONE")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
    )
    default_max_characters: int = Field(default=20, alias="DEFAULT_MAX_CHARACTERS", ge=1)
    default_lines_per_screen: int = Field(default=4, alias="DEFAULT_LINES_PER_SCREEN", ge=1)

    @field_validator("feed_url")
    @classmethod
    def validate_feed_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("FEED_URL must be an HTTP(S) endpoint")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            pytz.timezone(v)
        except pytz.UnknownTimeZoneError as e:
            raise ValueError(f"unknown timezone: {v}") from e
        return v

    @property
    def tz(self):
        return pytz.timezone(self.timezone)

    def get_logging_level(self) -> int:
        level: int = getattr(logging, self.log_level)
        return level


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    get_settings.cache_clear()


def configure_logging(level: str) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": "standard",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {"level": level, "handlers": ["console"]},
            "loggers": {
                "httpx": {"level": "WARNING"},
                "httpcore": {"level": "WARNING"},
            },
        }
    )
