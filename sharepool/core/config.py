"""Process-level configuration for the share pool service."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

_FALSE_VALUES = {"0", "false", "False", "no", "off"}


@dataclass(slots=True)
class DatabaseSettings:
    """Connection details for the ledger store."""

    driver: str
    host: str
    port: int
    user: str
    password: str
    name: str
    url_override: str | None = None

    @property
    def sqlalchemy_url(self) -> str:
        """Build a SQLAlchemy compatible URL."""

        if self.url_override:
            return self.url_override
        if self.password:
            credentials = f"{self.user}:{self.password}"
        else:
            credentials = self.user
        return f"{self.driver}://{credentials}@{self.host}:{self.port}/{self.name}"


@dataclass(slots=True)
class LockSettings:
    """Bounds for the serializing locks guarding queue and booking mutations."""

    acquire_timeout_seconds: float = 10.0
    conflict_retry_attempts: int = 3


@dataclass(slots=True)
class SchedulerSettings:
    """Cadence of the background market jobs."""

    enabled: bool = False
    pricing_interval_minutes: int = 60
    settlement_interval_minutes: int = 30
    expiry_interval_minutes: int = 60
    timezone: str = "UTC"


@dataclass(slots=True)
class LoggingSettings:
    level: str = "INFO"
    log_dir: str | None = "logs"


@dataclass(slots=True)
class Settings:
    """Top-level application configuration container.

    Business bounds (price caps, buyback limits, down payment rules) are not
    part of this object; they live in the ledger store and are loaded per
    operation by :class:`sharepool.services.settings_service.SettingsService`.
    """

    database: DatabaseSettings
    locks: LockSettings
    scheduler: SchedulerSettings
    logging: LoggingSettings
    sqlalchemy_echo: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Load configuration values from environment variables."""

        def _get_env(name: str, default: str) -> str:
            return os.getenv(name, default)

        def _get_flag(name: str, default: str) -> bool:
            return _get_env(name, default) not in _FALSE_VALUES

        db = DatabaseSettings(
            driver=_get_env("DB_DRIVER", "mysql+pymysql"),
            host=_get_env("DB_HOST", "127.0.0.1"),
            port=int(_get_env("DB_PORT", "3306")),
            user=_get_env("DB_USER", "sharepool"),
            password=_get_env("DB_PASSWORD", "sharepool"),
            name=_get_env("DB_NAME", "sharepool"),
            url_override=os.getenv("DATABASE_URL") or None,
        )
        locks = LockSettings(
            acquire_timeout_seconds=float(_get_env("LOCK_TIMEOUT_SECONDS", "10")),
            conflict_retry_attempts=int(_get_env("CONFLICT_RETRY_ATTEMPTS", "3")),
        )
        if locks.acquire_timeout_seconds <= 0:
            raise ValueError("LOCK_TIMEOUT_SECONDS must be greater than zero.")
        if locks.conflict_retry_attempts < 1:
            raise ValueError("CONFLICT_RETRY_ATTEMPTS must be at least 1.")

        scheduler = SchedulerSettings(
            enabled=_get_flag("SCHEDULER_ENABLED", "0"),
            pricing_interval_minutes=int(_get_env("PRICING_INTERVAL_MINUTES", "60")),
            settlement_interval_minutes=int(_get_env("SETTLEMENT_INTERVAL_MINUTES", "30")),
            expiry_interval_minutes=int(_get_env("EXPIRY_INTERVAL_MINUTES", "60")),
            timezone=_get_env("SCHEDULER_TIMEZONE", "UTC"),
        )
        log_dir = _get_env("LOG_DIR", "logs")
        logging_settings = LoggingSettings(
            level=_get_env("LOG_LEVEL", "INFO"),
            log_dir=log_dir or None,
        )
        return cls(
            database=db,
            locks=locks,
            scheduler=scheduler,
            logging=logging_settings,
            sqlalchemy_echo=_get_flag("SQLALCHEMY_ECHO", "0"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance."""

    settings = Settings.from_env()

    # Import locally to avoid circular dependencies during module import time.
    from .logger import get_logger

    logger = get_logger(__name__)
    logger.debug(
        "Settings initialised",
        extra={
            "sqlalchemy_echo": settings.sqlalchemy_echo,
            "database": {
                "driver": settings.database.driver,
                "host": settings.database.host,
                "port": settings.database.port,
                "name": settings.database.name,
                "user": settings.database.user,
            },
            "locks": {
                "timeout": settings.locks.acquire_timeout_seconds,
                "retries": settings.locks.conflict_retry_attempts,
            },
            "scheduler": {
                "enabled": settings.scheduler.enabled,
                "pricing_interval": settings.scheduler.pricing_interval_minutes,
                "settlement_interval": settings.scheduler.settlement_interval_minutes,
            },
        },
    )
    return settings
