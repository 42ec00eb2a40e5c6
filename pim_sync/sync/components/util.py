# pim_sync/sync/components/util.py
from __future__ import annotations

import asyncio
import re
import unicodedata
from typing import Any, Awaitable, Callable, Iterable, List

Sleeper = Callable[[float], Awaitable[Any]]


def slugify(text: str) -> str:
    """Shopify-style handle: lowercase ascii words joined by dashes."""
    norm = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "-", norm.lower()).strip("-")

def dedupe_preserve_order(items: Iterable[Any]) -> List[Any]:
    seen = set()
    out = []
    for x in items or []:
        if not x or x in seen:
            continue
        seen.add(x)
        out.append(x)
    return out

def contains_any(text: str, needles: Iterable[str]) -> bool:
    low = (text or "").lower()
    return any(n in low for n in needles)

async def pause_ms(ms: int, sleep: Sleeper = asyncio.sleep) -> None:
    if ms and ms > 0:
        await sleep(ms / 1000.0)
