#==========================================================================================
# pim_sync/pim/pim_client.py
# PIM JSON-RPC connector.
# Probes the configured partitions in order; the first one that yields records wins.
#==========================================================================================
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from pim_sync.config import settings
from pim_sync.pim.fields import to_pim_language
from pim_sync.pim.grouping import group_flattened_items, is_flattened

logger = logging.getLogger("uvicorn.error")

PRODUCTS_PATH = "/webrequest/productsV2/get_json"
IMAGES_PATH = "/webrequest/products_images/get_json"

# Substrings that mark a connectivity problem worth re-probing for
TRANSIENT_MARKERS = ("operationalerror", "database", "connection", "timeout", "timed out")

MAX_PROBE_ATTEMPTS = 3
PROBE_RETRY_DELAY_S = 2.0
PARTITION_COOLDOWN_S = 1.0


class SourceUnavailableError(Exception):
    """No partition returned data, even after retries."""


class _PartitionRejected(Exception):
    def __init__(self, reason: str, transient: bool = False):
        super().__init__(reason)
        self.transient = transient


def _is_transient(text: str) -> bool:
    low = (text or "").lower()
    return any(m in low for m in TRANSIENT_MARKERS)


class SourceConnector:
    def __init__(
        self,
        hostname: str | None = None,
        user: str | None = None,
        password: str | None = None,
        partitions: List[str] | None = None,
        language: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        max_attempts: int = MAX_PROBE_ATTEMPTS,
    ):
        self.hostname = (hostname or settings.PIM_HOSTNAME or "").replace("https://", "").rstrip("/")
        self.user = user if user is not None else settings.PIM_USER
        self.password = password if password is not None else settings.PIM_PASSWORD
        self.partitions = list(partitions or settings.PIM_PARTITIONS)
        self.language = to_pim_language(language or settings.PIM_LANGUAGE)
        self.timeout = timeout or settings.PIM_TIMEOUT
        self._transport = transport
        self._sleep = sleep
        self.max_attempts = max_attempts

    # ---- request plumbing ----

    def _url(self, path: str) -> str:
        return f"https://{self.hostname}{path}"

    def _payload(self, partition: str, style_code: str | None) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "db_name": partition,
            "user": self.user,
            "password": self.password,
            "LanguageCode": self.language,
        }
        if style_code:
            params["StyleCode"] = style_code
        return {"jsonrpc": "2.0", "method": "call", "params": params, "id": 0}

    async def _request_partition(
        self, client: httpx.AsyncClient, path: str, partition: str, style_code: str | None
    ) -> List[Dict[str, Any]]:
        try:
            resp = await client.post(self._url(path), json=self._payload(partition, style_code))
        except httpx.TransportError as e:
            raise _PartitionRejected(f"request failed: {e!r}", transient=True) from e

        if resp.status_code != 200:
            raise _PartitionRejected(f"HTTP {resp.status_code}", transient=resp.status_code >= 500)
        if not resp.content:
            raise _PartitionRejected("empty response")

        try:
            body = resp.json()
        except ValueError as e:
            raise _PartitionRejected(f"invalid JSON envelope: {e}") from e

        if not isinstance(body, dict):
            raise _PartitionRejected("unexpected envelope")
        if body.get("error"):
            err = body["error"]
            text = json.dumps(err) if not isinstance(err, str) else err
            raise _PartitionRejected(f"application error: {text[:300]}", transient=_is_transient(text))

        raw = body.get("result")
        if not raw:
            raise _PartitionRejected("empty result")
        # result is JSON-encoded JSON
        if isinstance(raw, str):
            try:
                data = json.loads(raw)
            except ValueError as e:
                raise _PartitionRejected(f"result is not JSON: {e}") from e
        else:
            data = raw
        if not isinstance(data, list) or not data:
            raise _PartitionRejected("no records in result")
        return data

    async def _probe(self, path: str, style_code: str | None = None) -> List[Dict[str, Any]]:
        label = style_code or "<all>"
        attempt = 0
        while True:
            attempt += 1
            transient_seen = False
            reasons: List[str] = []
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                for partition in self.partitions:
                    try:
                        data = await self._request_partition(client, path, partition, style_code)
                    except _PartitionRejected as e:
                        reasons.append(f"{partition}: {e}")
                        logger.info("[PIM] %s rejected partition %s: %s", label, partition, e)
                        if e.transient:
                            transient_seen = True
                            await self._sleep(PARTITION_COOLDOWN_S)
                        continue
                    logger.info("[PIM] %s: %d records from partition %s", label, len(data), partition)
                    return data

            if transient_seen and attempt < self.max_attempts:
                delay = attempt * PROBE_RETRY_DELAY_S
                logger.warning("[PIM] %s: connectivity issue, retrying probe in %.0fs (attempt %d/%d)",
                               label, delay, attempt, self.max_attempts)
                await self._sleep(delay)
                continue

            raise SourceUnavailableError(
                f"No data found in any partition for {label} ({'; '.join(reasons)})"
            )

    # ---- public API ----

    async def fetch_style(self, style_code: str) -> List[Dict[str, Any]]:
        """Style items for one style code, always with a nested Variants list."""
        items = await self._probe(PRODUCTS_PATH, style_code)
        if is_flattened(items):
            items = group_flattened_items(items)
        return items

    async def fetch_all(self) -> List[Dict[str, Any]]:
        return await self._probe(PRODUCTS_PATH)

    async def fetch_images(self, style_code: Optional[str] = None) -> List[Dict[str, Any]]:
        """Image rows; only rows carrying an HTMLPath are usable."""
        items = await self._probe(IMAGES_PATH, style_code)
        return [it for it in items if isinstance(it, dict) and str(it.get("HTMLPath") or "").strip()]
