"""Database engine factories."""
from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from sharepool.core.config import get_settings
from sharepool.core.logger import get_logger

LOGGER = get_logger(__name__)


def get_sqlalchemy_url() -> str:
    """Return the configured SQLAlchemy URL."""

    settings = get_settings()
    return settings.database.sqlalchemy_url


def create_sync_engine(url: str | None = None, **kwargs) -> Engine:
    """Create a synchronous SQLAlchemy engine using configured defaults."""

    settings = get_settings()
    resolved_url = url or settings.database.sqlalchemy_url

    options = dict(kwargs)
    options.setdefault("echo", settings.sqlalchemy_echo)
    if not resolved_url.startswith("sqlite"):
        options.setdefault("pool_pre_ping", True)

    if url is None and not settings.database.url_override:
        masked_url = "{driver}://{user}:{pwd}@{host}:{port}/{name}".format(
            driver=settings.database.driver,
            user=settings.database.user,
            pwd="***" if settings.database.password else "",
            host=settings.database.host,
            port=settings.database.port,
            name=settings.database.name,
        )
    else:
        masked_url = resolved_url.split("@")[-1]
    LOGGER.debug("Creating SQLAlchemy engine", extra={"url": masked_url, "options": options})
    return create_engine(resolved_url, future=True, **options)


@lru_cache(maxsize=None)
def get_shared_engine(url: str | None = None) -> Engine:
    """Return one engine per URL for the lifetime of the process."""

    return create_sync_engine(url)
