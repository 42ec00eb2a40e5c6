# pim_sync/models/style_cache.py
from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import String, Integer, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from pim_sync.db import Base


def utcnow() -> datetime:
    """Naive UTC, the form the DateTime columns hold."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StyleCacheEntry(Base):
    __tablename__ = "style_cache"
    __table_args__ = (UniqueConstraint("shop", "language", name="uq_style_cache_shop_language"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop: Mapped[str] = mapped_column(String(255), index=True)
    language: Mapped[str] = mapped_column(String(16), default="en_US")
    payload: Mapped[str] = mapped_column(Text)                 # json list of style rows
    style_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cached_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime)
