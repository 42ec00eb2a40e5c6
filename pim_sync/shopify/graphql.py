#==========================================================================================
# pim_sync/shopify/graphql.py
# Shopify Admin GraphQL transport.
# Retries THROTTLED responses and transport errors; callers inspect userErrors themselves.
#==========================================================================================
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from pim_sync.config import settings

logger = logging.getLogger("uvicorn.error")

MAX_ATTEMPTS = 3


class ShopifyError(Exception):
    """Transport failure or top-level GraphQL errors."""
    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


def _throttled(errors: List[Dict[str, Any]]) -> bool:
    return any((err.get("extensions") or {}).get("code") == "THROTTLED" for err in errors or [])


def dig(data: Any, *path: str) -> Any:
    """Walk nested dicts, returning None on the first missing key."""
    cur = data
    for key in path:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def user_errors(data: Dict[str, Any] | None, root: str) -> List[Dict[str, Any]]:
    """userErrors of a mutation payload (data[root].userErrors)."""
    return list(dig(data, root, "userErrors") or [])


def error_messages(errors: List[Dict[str, Any]]) -> str:
    return "; ".join(str(e.get("message") or e) for e in errors or [])


def edges(data: Any, *path: str) -> List[Dict[str, Any]]:
    return [e.get("node") or {} for e in (dig(data, *path, "edges") or [])]


class ShopifyGraphQL:
    def __init__(
        self,
        shop: str | None = None,
        access_token: str | None = None,
        api_version: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 60.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.shop = (shop or settings.SHOPIFY_SHOP or "").replace("https://", "").rstrip("/")
        self.access_token = access_token or settings.SHOPIFY_ACCESS_TOKEN
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "X-Shopify-Access-Token": self.access_token,
                "Content-Type": "application/json",
            },
        )

    @property
    def endpoint(self) -> str:
        return f"https://{self.shop}/admin/api/{self.api_version}/graphql.json"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ShopifyGraphQL":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run one GraphQL document and return its `data` object.
        Raises ShopifyError on transport failure or top-level `errors`.
        """
        payload = {"query": query, "variables": variables or {}}
        last_error: Exception | None = None
        for attempt in range(MAX_ATTEMPTS):
            try:
                resp = await self._client.post(self.endpoint, json=payload)
                resp.raise_for_status()
                body = resp.json()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                last_error = e
                if status == 401:
                    logger.error("[SHOPIFY] authentication failed (401) for %s", self.shop)
                    raise ShopifyError("Shopify authentication failed (401)") from e
                logger.warning("[SHOPIFY] HTTP %s (attempt %d/%d)", status, attempt + 1, MAX_ATTEMPTS)
                if status < 500 and status != 429:
                    raise ShopifyError(f"HTTP {status}: {e.response.text[:300]}") from e
            except (httpx.TransportError, ValueError) as e:
                last_error = e
                logger.warning("[SHOPIFY] request error (attempt %d/%d): %s", attempt + 1, MAX_ATTEMPTS, e)
            else:
                errors = body.get("errors") or []
                if _throttled(errors):
                    wait = (attempt + 1) * 5
                    logger.warning("[SHOPIFY] throttled, waiting %ss", wait)
                    await self._sleep(wait)
                    last_error = ShopifyError("Throttled", errors)
                    continue
                if errors:
                    raise ShopifyError(error_messages(errors), errors)
                return body.get("data") or {}

            if attempt < MAX_ATTEMPTS - 1:
                await self._sleep((attempt + 1) * 2)

        raise ShopifyError(f"Max retries exceeded: {last_error}")
