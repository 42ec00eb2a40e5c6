# pim_sync/sync/image_sync.py
# =======================================================
# PIM image import
# - image rows per style (HTMLPath only), optional FName filter
# - color-aware product targeting, split siblings included
# - resolve through the run media cache, attach with retries
# - one AttachmentLog per image, variant images matched afterwards
# =======================================================
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from pim_sync.models.catalog import TargetProduct
from pim_sync.models.records import ImageDescriptor
from pim_sync.models.summary import AttachmentLog, RunSummary
from pim_sync.pim.pim_client import SourceUnavailableError
from pim_sync.shopify import queries
from pim_sync.shopify.graphql import edges
from pim_sync.sync.components.image_matcher import color_name_of
from pim_sync.sync.components.util import dedupe_preserve_order, pause_ms
from pim_sync.sync.product_sync import load_product
from pim_sync.sync.runtime import SyncRuntime

logger = logging.getLogger("uvicorn.error")

PRODUCT_SEARCH_PAGE = 50


async def find_style_products(client, style_code: str, style_name: str) -> List[TargetProduct]:
    """Products whose title carries the style name or whose SKUs carry the style code."""
    found: Dict[str, TargetProduct] = {}
    name = (style_name or "").strip().lower()
    code = (style_code or "").strip().lower()
    queries_to_try = [f"title:*{style_name}*"] if style_name else []
    queries_to_try.append(f"sku:*{style_code}*")
    for q in queries_to_try:
        data = await client.execute(queries.PRODUCTS_SEARCH, {"q": q, "first": PRODUCT_SEARCH_PAGE})
        for node in edges(data, "products"):
            p = TargetProduct.from_node(node)
            if not p.id or p.id in found:
                continue
            title_hit = bool(name) and name in (p.title or "").lower()
            sku_hit = bool(code) and any(code in (v.sku or "").lower() for v in p.variants)
            if title_hit or sku_hit:
                found[p.id] = p
    logger.info("[IMAGES] %s: %d target products", style_code, len(found))
    return list(found.values())


def products_for_image(products: Iterable[TargetProduct], desc: ImageDescriptor) -> List[TargetProduct]:
    """Products with a variant in the image's color; every product when the image has no color."""
    products = list(products)
    if not desc.color and not desc.color_code:
        return products
    label = desc.color_alt.lower()
    code = desc.color_code.lower()
    name = color_name_of(desc.color)
    out = []
    for p in products:
        for color in (c.lower() for c in p.colors()):
            if color == label or (code and code in color) or (name and name in color):
                out.append(p)
                break
    return out


def _image_alt(desc: ImageDescriptor) -> str:
    if desc.color or desc.color_code:
        return desc.color_alt
    return desc.style_name or desc.filename


async def _import_image(
    rt: SyncRuntime,
    desc: ImageDescriptor,
    products: List[TargetProduct],
    summary: RunSummary,
) -> None:
    log_key = desc.filename or desc.url
    targets = products_for_image(products, desc)
    if not targets:
        reason = f"no product has a variant in color '{desc.color_alt}'"
        logger.warning("[IMAGES] %s skipped: %s", log_key, reason)
        summary.image_processing_log[log_key] = AttachmentLog(action="FAILED", reason=reason)
        return

    try:
        ref, source = await rt.media.resolve_traced(desc, alt=_image_alt(desc))
    except Exception as e:
        logger.error("[IMAGES] %s could not be resolved: %s", log_key, e)
        summary.add_error(f"Error processing image {log_key}: {e}")
        summary.image_processing_log[log_key] = AttachmentLog(
            action="FAILED", reason=str(e), expected_products=len(targets),
        )
        return

    if source == "upload":
        summary.images_uploaded += 1

    attached = 0
    for p in targets:
        if await rt.attacher.attach(ref.asset_id, p.id):
            attached += 1
        await pause_ms(rt.attach_delay_ms, rt.sleep)
    summary.images_attached += attached

    action = AttachmentLog.action_for(source)
    reason = f"{source}: attached to {attached}/{len(targets)} products"
    summary.image_processing_log[log_key] = AttachmentLog(
        action=action,
        reason=reason,
        media_id=ref.asset_id,
        expected_products=len(targets),
        attached_products=attached,
    )
    if attached < len(targets):
        summary.add_error(f"Image {log_key} attached to {attached} of {len(targets)} products")
    logger.info("[IMAGES] %s %s (%s)", log_key, action, reason)


async def import_images(
    style_codes: List[str],
    *,
    image_names: Optional[List[str]] = None,
    runtime: SyncRuntime | None = None,
) -> Dict[str, Any]:
    """Attach PIM images to the products of each style, then match variant main images."""
    codes = dedupe_preserve_order(str(c).strip() for c in style_codes or [])
    wanted = {n.strip() for n in image_names or [] if n and n.strip()}
    rt = runtime or SyncRuntime.build()
    summary = RunSummary()
    logger.info("[IMAGES] image run for %d styles (filter=%s)", len(codes), sorted(wanted) or "-")

    try:
        for code in codes:
            try:
                rows = await rt.connector.fetch_images(code)
                descriptors = [ImageDescriptor.from_raw(r, style_code=code) for r in rows]
                if wanted:
                    descriptors = [d for d in descriptors if d.filename in wanted]
                if not descriptors:
                    summary.add_error(f"No images found for style {code}")
                    continue

                style_name = next((d.style_name for d in descriptors if d.style_name), "")
                products = await find_style_products(rt.client, code, style_name)
                if not products:
                    summary.add_error(f"No products found in catalog for style {code}")
                    continue

                for desc in descriptors:
                    try:
                        await _import_image(rt, desc, products, summary)
                    except Exception as e:
                        logger.exception("[IMAGES] %s failed", desc.filename)
                        summary.add_error(f"Error processing image {desc.filename or desc.url}: {e}")

                for p in products:
                    fresh = await load_product(rt.client, p.id)
                    if fresh is None:
                        continue
                    report = await rt.matcher.assign_product(fresh)
                    summary.variant_images_assigned += report.images_assigned
                summary.processed_styles.append(code)
            except SourceUnavailableError as e:
                logger.error("[IMAGES] %s: source unavailable: %s", code, e)
                summary.add_error(f"Could not fetch images for style {code}: {e}")
            except Exception as e:
                logger.exception("[IMAGES] %s failed", code)
                summary.add_error(f"Error processing images for style {code}: {e}")
    finally:
        if runtime is None:
            await rt.aclose()

    logger.info(
        "[IMAGES] run done: %d uploaded, %d attachments, %d errors",
        summary.images_uploaded, summary.images_attached, len(summary.errors),
    )
    return summary.to_dict()
