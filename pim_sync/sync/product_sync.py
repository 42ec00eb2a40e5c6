# pim_sync/sync/product_sync.py
# =======================================================
# PIM → Shopify product import orchestrator
# - metafield schema provisioned once per run
# - per style: fetch → group → split → reconcile
# - per product: metafields, media attach, variant main images
# - published-style listing with persisted cache
# =======================================================
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pim_sync.config import settings
from pim_sync.models.catalog import TargetProduct
from pim_sync.models.records import ProductGroup
from pim_sync.models.summary import ReconcileResult, RunSummary
from pim_sync.pim.fields import to_pim_language
from pim_sync.pim.grouping import groups_from_items, published_style_rows, split_if_oversized
from pim_sync.pim.pim_client import SourceConnector, SourceUnavailableError
from pim_sync.pim.style_cache_store import get_cached_styles, store_styles
from pim_sync.shopify import queries
from pim_sync.shopify.graphql import ShopifyError, dig
from pim_sync.sync.components.grouping_reference import GroupingReferenceError
from pim_sync.sync.components.metafields import PRODUCT, VARIANT, ProvisionedSchema
from pim_sync.sync.components.util import dedupe_preserve_order, pause_ms
from pim_sync.sync.components.variants import record_sku
from pim_sync.sync.runtime import SyncRuntime

logger = logging.getLogger("uvicorn.error")


# ------------------------------------------------------------------------------
# Per-product stages
# ------------------------------------------------------------------------------

async def _write_metafields(
    rt: SyncRuntime,
    schema: ProvisionedSchema,
    group: ProductGroup,
    result: ReconcileResult,
    summary: RunSummary,
) -> None:
    product_id = result.target_product_ids[0]
    res = await rt.provisioner.write_values(
        schema, product_id, rt.provisioner.values_for(PRODUCT, group.attributes), owner=PRODUCT,
    )
    errors = list(res.errors)
    for rec in group.records:
        variant_id = result.variant_ids_by_sku.get(record_sku(group.style_code, rec)) or result.variant_ids_by_sku.get(rec.sku)
        if not variant_id:
            continue
        values = rt.provisioner.values_for(VARIANT, rec.raw)
        if not values:
            continue
        res = await rt.provisioner.write_values(schema, variant_id, values, owner=VARIANT)
        errors.extend(res.errors)
    for e in errors:
        summary.add_error(f"Metafield error for {group.style_code}: {e}")


async def _attach_style_media(rt: SyncRuntime, group: ProductGroup, product_id: str, summary: RunSummary) -> None:
    for desc in group.images:
        try:
            ref, source = await rt.media.resolve_traced(desc, alt=group.style_name or group.style_code)
        except Exception as e:
            logger.error("[PRODUCT][MEDIA] %s: %s", desc.filename or desc.url, e)
            summary.add_error(f"Image error for {group.style_code} ({desc.filename or desc.url}): {e}")
            continue
        if source == "upload":
            summary.images_uploaded += 1
        if await rt.attacher.attach(ref.asset_id, product_id):
            summary.images_attached += 1
        else:
            summary.add_error(f"Could not attach {desc.filename or ref.asset_id} to {product_id}")
        await pause_ms(rt.attach_delay_ms, rt.sleep)


async def load_product(client, product_id: str) -> Optional[TargetProduct]:
    data = await client.execute(queries.PRODUCT_WITH_MEDIA, {"id": product_id})
    node = dig(data, "product")
    return TargetProduct.from_node(node) if node else None


async def _assign_variant_images(rt: SyncRuntime, product_id: str, summary: RunSummary) -> None:
    product = await load_product(rt.client, product_id)
    if product is None or not product.media:
        logger.info("[PRODUCT][VARIANT-IMG] %s has no media; nothing to assign", product_id)
        return
    report = await rt.matcher.assign_product(product)
    summary.variant_images_assigned += report.images_assigned


async def _finish_product(
    rt: SyncRuntime,
    schema: Optional[ProvisionedSchema],
    group: ProductGroup,
    result: ReconcileResult,
    summary: RunSummary,
) -> None:
    if result.outcome == "skipped" or not result.target_product_ids:
        return
    product_id = result.target_product_ids[0]
    if schema is not None:
        await _write_metafields(rt, schema, group, result, summary)
    if group.images:
        await _attach_style_media(rt, group, product_id, summary)
        await _assign_variant_images(rt, product_id, summary)


async def _sync_group(
    rt: SyncRuntime,
    group: ProductGroup,
    schema: Optional[ProvisionedSchema],
    summary: RunSummary,
) -> None:
    parts = split_if_oversized(group)
    if not parts:
        result = await rt.reconciler.reconcile(group)
        summary.absorb(result)
        await _finish_product(rt, schema, group, result, summary)
        return

    # grouping entry first, so every size product can be linked as it appears
    grouping = await rt.grouping.ensure(group.style_name or group.style_code)
    for part in parts:
        result = await rt.reconciler.reconcile_partition(part, grouping)
        summary.absorb(result)
        for product_id in result.target_product_ids:
            try:
                await rt.grouping.add_product(grouping, product_id)
            except (GroupingReferenceError, ShopifyError) as e:
                logger.error("[GROUPING] could not link %s to %s: %s", product_id, grouping.name, e)
                summary.add_error(f"Grouping link failed for {group.style_code} size {part.size}: {e}")
        await _finish_product(rt, schema, part, result, summary)


# ------------------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------------------

async def import_products(
    style_codes: List[str],
    *,
    language: str | None = None,
    update_existing: bool = True,
    runtime: SyncRuntime | None = None,
) -> Dict[str, Any]:
    """
    Import the given styles into the catalog, strictly one after another.
    Always returns a run summary; per-style failures land in its errors list.
    """
    codes = dedupe_preserve_order(str(c).strip() for c in style_codes or [])
    rt = runtime or SyncRuntime.build(language=language, update_existing=update_existing)
    summary = RunSummary()
    logger.info("[PRODUCT] import run for %d styles: %s", len(codes), ", ".join(codes))

    try:
        schema: Optional[ProvisionedSchema] = None
        if settings.WRITE_METAFIELDS:
            schema = await rt.provisioner.ensure_definitions()
            summary.metafields_created = schema.created
            for e in schema.errors:
                summary.add_error(f"Metafield definition error: {e}")

        for code in codes:
            try:
                items = await rt.connector.fetch_style(code)
                groups = [g for g in groups_from_items(items) if g.style_code == code] or groups_from_items(items)
                if not groups:
                    summary.add_error(f"No variant records for style {code}")
                    continue
                for group in groups:
                    await _sync_group(rt, group, schema, summary)
                summary.processed_styles.append(code)
            except SourceUnavailableError as e:
                logger.error("[PRODUCT] %s: source unavailable: %s", code, e)
                summary.add_error(f"Could not fetch style {code}: {e}")
            except Exception as e:
                logger.exception("[PRODUCT] %s failed", code)
                summary.add_error(f"Error processing style {code}: {e}")
    finally:
        if runtime is None:
            await rt.aclose()

    logger.info(
        "[PRODUCT] run done: %d created, %d updated, %d skipped, %d errors",
        summary.products_created, summary.products_updated, summary.products_skipped, len(summary.errors),
    )
    return summary.to_dict()


async def fetch_published_styles(
    *,
    language: str | None = None,
    force_refresh: bool = False,
    connector: SourceConnector | None = None,
    shop: str | None = None,
) -> Dict[str, Any]:
    """Published styles sorted by name, served from the persisted cache while fresh."""
    lang = to_pim_language(language or settings.PIM_LANGUAGE)
    shop = shop or settings.SHOPIFY_SHOP or "default"

    if not force_refresh:
        cached = await get_cached_styles(shop, lang)
        if cached is not None:
            logger.info("[STYLES] %d styles for %s/%s from cache", len(cached), shop, lang)
            return {"styles": cached, "count": len(cached), "cached": True, "language": lang}

    connector = connector or SourceConnector(language=lang)
    rows = published_style_rows(await connector.fetch_all())
    await store_styles(shop, lang, rows)
    logger.info("[STYLES] %d published styles fetched for %s", len(rows), lang)
    return {"styles": rows, "count": len(rows), "cached": False, "language": lang}
