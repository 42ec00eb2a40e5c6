# pim_sync/sync/components/attach.py
# Attach an uploaded file to a product, riding out the platform's processing lag.
from __future__ import annotations

import asyncio
import logging
from typing import Any

from pim_sync.shopify import queries
from pim_sync.shopify.graphql import error_messages, user_errors
from pim_sync.sync.components.util import Sleeper, contains_any

logger = logging.getLogger("uvicorn.error")

MAX_ATTEMPTS = 5
INITIAL_WAIT_S = 3.0
NOT_READY_BACKOFF_S = 3.0
EXCEPTION_BACKOFF_S = 1.0

ALREADY_MARKERS = ("already",)
NOT_READY_MARKERS = ("processing", "non-ready", "not ready")


class AttachmentRetryEngine:
    def __init__(self, client, *, sleep: Sleeper = asyncio.sleep, max_attempts: int = MAX_ATTEMPTS):
        self.client = client
        self._sleep = sleep
        self.max_attempts = max_attempts

    async def _attach_once(self, asset_id: str, target_id: str) -> Any:
        return await self.client.execute(
            queries.FILE_ATTACH,
            {"files": [{"id": asset_id, "referencesToAdd": [target_id]}]},
        )

    async def attach(self, asset_id: str, target_id: str) -> bool:
        """
        True when the asset is (or already was) attached to the target.
        """
        await self._sleep(INITIAL_WAIT_S)
        for attempt in range(1, self.max_attempts + 1):
            try:
                data = await self._attach_once(asset_id, target_id)
            except Exception as e:
                logger.warning("[ATTACH] %s → %s raised on attempt %d/%d: %s",
                               asset_id, target_id, attempt, self.max_attempts, e)
                if attempt < self.max_attempts:
                    await self._sleep(attempt * EXCEPTION_BACKOFF_S)
                continue

            errs = user_errors(data, "fileUpdate")
            if not errs:
                logger.info("[ATTACH] %s → %s attached (attempt %d)", asset_id, target_id, attempt)
                return True

            msg = error_messages(errs)
            if contains_any(msg, ALREADY_MARKERS):
                logger.info("[ATTACH] %s already on %s", asset_id, target_id)
                return True
            if contains_any(msg, NOT_READY_MARKERS):
                logger.info("[ATTACH] %s not ready yet (attempt %d/%d): %s",
                            asset_id, attempt, self.max_attempts, msg)
                if attempt < self.max_attempts:
                    await self._sleep(attempt * NOT_READY_BACKOFF_S)
                continue

            logger.error("[ATTACH] %s → %s failed: %s", asset_id, target_id, msg)
            return False

        logger.error("[ATTACH] %s → %s gave up after %d attempts", asset_id, target_id, self.max_attempts)
        return False
