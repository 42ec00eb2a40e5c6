# pim_sync/pim/style_cache_store.py
# Persisted published-style listing, one row per (shop, language), with expiry.
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select

from pim_sync.config import settings
from pim_sync.db import get_sessionmaker
from pim_sync.models.style_cache import StyleCacheEntry, utcnow

logger = logging.getLogger("uvicorn.error")


async def get_cached_styles(shop: str, language: str, *, now: datetime | None = None) -> Optional[List[Dict[str, Any]]]:
    """Cached rows, or None when missing or expired."""
    now = now or utcnow()
    async with get_sessionmaker()() as session:
        row = (await session.execute(
            select(StyleCacheEntry).where(
                StyleCacheEntry.shop == shop,
                StyleCacheEntry.language == language,
            )
        )).scalar_one_or_none()
    if row is None:
        return None
    if row.expires_at <= now:
        logger.info("[CACHE] styles for %s/%s expired at %s", shop, language, row.expires_at)
        return None
    return json.loads(row.payload)


async def store_styles(
    shop: str,
    language: str,
    rows: List[Dict[str, Any]],
    *,
    ttl_seconds: int | None = None,
    now: datetime | None = None,
) -> None:
    now = now or utcnow()
    ttl = settings.STYLE_CACHE_TTL if ttl_seconds is None else ttl_seconds
    async with get_sessionmaker()() as session:
        async with session.begin():
            row = (await session.execute(
                select(StyleCacheEntry).where(
                    StyleCacheEntry.shop == shop,
                    StyleCacheEntry.language == language,
                )
            )).scalar_one_or_none()
            if row is None:
                row = StyleCacheEntry(shop=shop, language=language)
                session.add(row)
            row.payload = json.dumps(rows)
            row.style_count = len(rows)
            row.cached_at = now
            row.expires_at = now + timedelta(seconds=ttl)
    logger.info("[CACHE] stored %d styles for %s/%s (ttl=%ss)", len(rows), shop, language, ttl)


async def clear_cache(shop: str | None = None) -> int:
    async with get_sessionmaker()() as session:
        async with session.begin():
            stmt = delete(StyleCacheEntry)
            if shop:
                stmt = stmt.where(StyleCacheEntry.shop == shop)
            res = await session.execute(stmt)
    removed = res.rowcount or 0
    logger.info("[CACHE] cleared %d cache rows (shop=%s)", removed, shop or "*")
    return removed


async def cache_info(shop: str, *, now: datetime | None = None) -> Dict[str, Any]:
    now = now or utcnow()
    async with get_sessionmaker()() as session:
        rows = (await session.execute(
            select(StyleCacheEntry).where(StyleCacheEntry.shop == shop)
        )).scalars().all()
    if not rows:
        return {"cached": False, "shop": shop, "entries": []}
    return {
        "cached": True,
        "shop": shop,
        "entries": [
            {
                "language": r.language,
                "count": r.style_count,
                "cachedAt": r.cached_at.isoformat(),
                "expiresAt": r.expires_at.isoformat(),
                "expired": r.expires_at <= now,
            }
            for r in rows
        ],
    }
