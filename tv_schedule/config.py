from pathlib import Path
import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    database_path: str = "./data/tv_schedule.db"

    tvss_api_key: str | None = None
    tvss_call_sign: str | None = None
    tvss_base_uri: str = "https://services.pbs.org/tvss/"
    tvss_timeout_sec: float = 30.0
    tvss_max_retries: int = 3
    tvss_backoff_factor: float = 2.0

    sync_cron: str = "*/15 * * * *"  # Every 15 minutes
    sync_misfire_grace_sec: int = 600
    day_update_interval_sec: int = 3600  # Re-sync today at most hourly
    full_update_interval_sec: int = 86400  # Full forward crawl daily
    prune_interval_sec: int = 86400

    prune_max_age_days: int = 30
    prune_batch_size: int = 50
    prune_worker_time_limit_sec: int = 60
    full_update_max_days: int = 0  # 0 crawls until the feed runs dry

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("tvss_base_uri")
    @classmethod
    def validate_base_uri(cls, value: str) -> str:
        """Validate API base URI is HTTP/HTTPS and ends with a slash."""
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"TVSS base URI must be HTTP/HTTPS: {value}")
        return value if value.endswith("/") else f"{value}/"

    @field_validator("tvss_api_key", "tvss_call_sign", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        """Treat blank credentials as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Validate database path is accessible."""
        path = Path(value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access database path '{value}': {exc}") from exc

    @field_validator(
        "tvss_max_retries",
        "prune_batch_size",
        "prune_max_age_days",
    )
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator(
        "sync_misfire_grace_sec",
        "day_update_interval_sec",
        "full_update_interval_sec",
        "prune_interval_sec",
        "prune_worker_time_limit_sec",
        "full_update_max_days",
    )
    @classmethod
    def validate_non_negative_ints(cls, value: int, info) -> int:
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("tvss_timeout_sec", "tvss_backoff_factor")
    @classmethod
    def validate_positive_floats(cls, value: float, info) -> float:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @field_validator("sync_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @model_validator(mode="after")
    def validate_api_configuration(self):
        """Warn about missing API credentials."""
        if not self.tvss_api_key or not self.tvss_call_sign:
            logger.warning(
                "TVSS API key or call sign not configured - schedule sync will not run"
            )
        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Database: %s", self.database_path)
        logger.info("  TVSS Base URI: %s", self.tvss_base_uri)
        logger.info("  TVSS Call Sign: %s", self.tvss_call_sign or "not set")
        logger.info("  TVSS API Key: %s", "set" if self.tvss_api_key else "not set")
        logger.info("  Sync Schedule: %s", self.sync_cron)
        logger.info(
            "  Update Intervals: day=%ss full=%ss prune=%ss",
            self.day_update_interval_sec,
            self.full_update_interval_sec,
            self.prune_interval_sec,
        )
        logger.info(
            "  Prune: max age %s days, batch size %s",
            self.prune_max_age_days,
            self.prune_batch_size,
        )
        logger.info(
            "  Full Update Limit: %s",
            f"{self.full_update_max_days} days" if self.full_update_max_days else "until feed is exhausted",
        )


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
