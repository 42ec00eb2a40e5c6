# --------------------------------------------------------------------------------
# pim_sync/db.py
from __future__ import annotations

import pathlib
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    async_sessionmaker,
    AsyncSession,
)
from sqlalchemy.orm import DeclarativeBase

from pim_sync.config import settings

logger = logging.getLogger("uvicorn.error")

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


class Base(DeclarativeBase):
    pass


def _resolve_dsn(dsn: str | None = None) -> str:
    """
    Prefer an explicit DSN, then settings.DATABASE_URL,
    else default to a local SQLite database under ./data/.
    """
    dsn = dsn or settings.DATABASE_URL or "sqlite+aiosqlite:///./data/pim_sync.db"

    # If using SQLite, make sure the folder exists so SQLAlchemy can create the file.
    if dsn.startswith("sqlite") and ":memory:" not in dsn:
        sep = "///" if "///" in dsn else "//"
        path_part = dsn.split(sep, 1)[1] if sep in dsn else ""
        if path_part:
            try:
                pathlib.Path(path_part).resolve().parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("[DB] Could not ensure SQLite directory exists: %s", e)

    return dsn


def configure_engine(dsn: str | None = None) -> AsyncEngine:
    """
    (Re)create the global AsyncEngine and sessionmaker for the given DSN.
    """
    global _engine, _sessionmaker
    url = _resolve_dsn(dsn)
    _engine = create_async_engine(url, echo=False, future=True)
    _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
    logger.info("[DB] engine initialized for %s", url)
    return _engine


def get_engine() -> AsyncEngine:
    """
    Lazily create a global AsyncEngine and sessionmaker.
    """
    if _engine is None:
        return configure_engine()
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        get_engine()
    return _sessionmaker  # type: ignore[return-value]


async def init_db() -> None:
    """
    Create tables for every model registered on Base.
    """
    # Register models on Base.metadata
    from pim_sync.models import style_cache  # noqa: F401

    eng = get_engine()
    try:
        async with eng.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error("[DB] initial connect failed: %s", e)
        raise
