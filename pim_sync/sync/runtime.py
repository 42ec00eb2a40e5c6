# pim_sync/sync/runtime.py
# Per-run wiring: one GraphQL client, one media cache, one of each stage component.
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from pim_sync.config import settings
from pim_sync.pim.pim_client import SourceConnector
from pim_sync.shopify.graphql import ShopifyGraphQL
from pim_sync.sync.components.attach import AttachmentRetryEngine
from pim_sync.sync.components.grouping_reference import GroupingReferenceStore
from pim_sync.sync.components.image_matcher import VariantImageMatcher
from pim_sync.sync.components.media_cache import MediaCache
from pim_sync.sync.components.metafields import MetafieldProvisioner
from pim_sync.sync.components.util import Sleeper
from pim_sync.sync.reconciler import CatalogReconciler


@dataclass
class SyncRuntime:
    client: object
    connector: SourceConnector
    media: MediaCache
    attacher: AttachmentRetryEngine
    matcher: VariantImageMatcher
    provisioner: MetafieldProvisioner
    grouping: GroupingReferenceStore
    reconciler: CatalogReconciler
    sleep: Sleeper = asyncio.sleep
    attach_delay_ms: int = 100
    owns_client: bool = False

    @classmethod
    def build(
        cls,
        *,
        client=None,
        connector: Optional[SourceConnector] = None,
        language: str | None = None,
        sleep: Sleeper = asyncio.sleep,
        update_existing: bool = True,
    ) -> "SyncRuntime":
        owns = client is None
        if client is None:
            client = ShopifyGraphQL(sleep=sleep)
        return cls(
            client=client,
            connector=connector or SourceConnector(language=language, sleep=sleep),
            media=MediaCache(client),
            attacher=AttachmentRetryEngine(client, sleep=sleep),
            matcher=VariantImageMatcher(client, sleep=sleep),
            provisioner=MetafieldProvisioner(client, sleep=sleep),
            grouping=GroupingReferenceStore(client),
            reconciler=CatalogReconciler(client, sleep=sleep, update_existing=update_existing),
            sleep=sleep,
            attach_delay_ms=settings.ATTACH_DELAY_MS,
            owns_client=owns,
        )

    async def aclose(self) -> None:
        if self.owns_client and hasattr(self.client, "aclose"):
            await self.client.aclose()
