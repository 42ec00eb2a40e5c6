# pim_sync/sync/reconciler.py
# =======================================================
# Product create-vs-update against the target catalog
# - ordered search queries, plausibility predicates via first_match
# - productCreate + one productVariantsBulkCreate per product
# - productUpdate for existing products, missing variants filled in
# =======================================================
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pim_sync.config import settings
from pim_sync.models.catalog import TargetProduct
from pim_sync.models.records import GroupingReference, ProductGroup, SplitProductGroup
from pim_sync.models.summary import ReconcileResult
from pim_sync.pim.fields import get_str
from pim_sync.shopify import queries
from pim_sync.shopify.graphql import dig, edges, error_messages, user_errors
from pim_sync.sync.components.cascade import Strategy, first_match
from pim_sync.sync.components.categories import product_type_for, resolve_category_id
from pim_sync.sync.components.util import Sleeper, contains_any, pause_ms, slugify
from pim_sync.sync.components.variants import build_product_options, build_variant_inputs

logger = logging.getLogger("uvicorn.error")

SEARCH_PAGE = 10
DUPLICATE_MARKERS = ("already exists", "has already been taken")


class GroupingNotReadyError(Exception):
    """Raised when a size product is reconciled before its grouping entry exists."""


# ------------------------------------------------------------------------------
# Search plan + plausibility
# ------------------------------------------------------------------------------

@dataclass(frozen=True)
class SearchContext:
    style_code: str
    title: str
    size: str = ""


def product_title(group: ProductGroup) -> str:
    base = group.style_name or group.style_code
    if isinstance(group, SplitProductGroup):
        return f"{base} - {group.size}"
    return base


def search_plan(group: ProductGroup) -> List[Tuple[str, str]]:
    """(strategy name, products query) in the order they are tried."""
    title = product_title(group)
    code = group.style_code
    if isinstance(group, SplitProductGroup):
        return [
            ("title_size", f'title:"{title}"'),
            ("handle", f'handle:"{slugify(title)}"'),
            ("title_style_size", f"title:*{code}*{group.size}*"),
            ("sku", f"sku:*{code}*"),
        ]
    return [
        ("title", f'title:"{title}"'),
        ("handle", f'handle:"{slugify(title)}"'),
        ("sku", f"sku:*{code}*"),
        ("title_contains", f"title:*{code}*"),
    ]


def _title_equals(p: TargetProduct, ctx: SearchContext) -> bool:
    return (p.title or "").strip().lower() == ctx.title.strip().lower()


def _sku_contains_style(p: TargetProduct, ctx: SearchContext) -> bool:
    code = ctx.style_code.lower()
    return bool(code) and any(code in (v.sku or "").lower() for v in p.variants)


def _title_has_style_and_size(p: TargetProduct, ctx: SearchContext) -> bool:
    title = (p.title or "").lower()
    return bool(ctx.size) and ctx.style_code.lower() in title and ctx.size.lower() in title


WHOLE_STYLE_MATCHERS = [
    Strategy("exact_title", _title_equals),
    Strategy("sku_contains_style", _sku_contains_style),
]

SPLIT_MATCHERS = [
    Strategy("exact_title", _title_equals),
    Strategy("title_style_size", _title_has_style_and_size),
]


# ------------------------------------------------------------------------------
# Reconciler
# ------------------------------------------------------------------------------

class CatalogReconciler:
    def __init__(
        self,
        client,
        *,
        sleep: Sleeper = asyncio.sleep,
        mutation_delay_ms: int | None = None,
        vendor: str | None = None,
        tags: List[str] | None = None,
        status: str | None = None,
        update_existing: bool = True,
    ):
        self.client = client
        self._sleep = sleep
        self.mutation_delay_ms = settings.MUTATION_DELAY_MS if mutation_delay_ms is None else mutation_delay_ms
        self.vendor = vendor or settings.VENDOR
        self.tags = list(tags or settings.PRODUCT_TAGS)
        self.status = status or settings.PRODUCT_STATUS
        self.update_existing = update_existing

    async def _pause(self) -> None:
        await pause_ms(self.mutation_delay_ms, self._sleep)

    # ---- search ----

    async def find_existing(self, group: ProductGroup) -> Optional[TargetProduct]:
        ctx = SearchContext(
            style_code=group.style_code,
            title=product_title(group),
            size=group.size if isinstance(group, SplitProductGroup) else "",
        )
        matchers = SPLIT_MATCHERS if isinstance(group, SplitProductGroup) else WHOLE_STYLE_MATCHERS
        for name, q in search_plan(group):
            data = await self.client.execute(queries.PRODUCTS_SEARCH, {"q": q, "first": SEARCH_PAGE})
            candidates = [TargetProduct.from_node(n) for n in edges(data, "products")]
            hit = first_match(matchers, candidates, ctx)
            if hit.matched:
                logger.info("[RECONCILE] %s found via %s/%s → %s", ctx.title, name, hit.strategy, hit.candidate.id)
                return hit.candidate
            logger.debug("[RECONCILE] %s: %s returned %d candidates, none plausible", ctx.title, name, len(candidates))
        logger.info("[RECONCILE] %s not in catalog (tried %s)", ctx.title, ", ".join(n for n, _ in search_plan(group)))
        return None

    # ---- payloads ----

    def product_input(self, group: ProductGroup, category_id: Optional[str]) -> Dict[str, Any]:
        style = group.attributes
        data: Dict[str, Any] = {
            "title": product_title(group),
            "descriptionHtml": get_str(style, "Description") or str(style.get("LongDescription") or ""),
            "vendor": self.vendor,
            "productType": product_type_for(style),
            "tags": list(self.tags),
        }
        if category_id:
            data["category"] = category_id
        return data

    # ---- variants ----

    async def _bulk_create(self, product_id: str, inputs: List[Dict[str, Any]], strategy: str) -> Tuple[Dict[str, str], List[str]]:
        data = await self.client.execute(
            queries.VARIANTS_BULK_CREATE,
            {"productId": product_id, "variants": inputs, "strategy": strategy},
        )
        await self._pause()
        created = {
            (v.get("sku") or ""): v.get("id")
            for v in (dig(data, "productVariantsBulkCreate", "productVariants") or [])
            if v.get("id")
        }
        errors: List[str] = []
        for err in user_errors(data, "productVariantsBulkCreate"):
            msg = err.get("message") or ""
            if contains_any(msg, DUPLICATE_MARKERS):
                logger.info("[RECONCILE] %s: duplicate variant ignored: %s", product_id, msg)
                continue
            errors.append(f"{product_id} variants: {msg}")
        return created, errors

    async def _bulk_update(self, product_id: str, inputs: List[Dict[str, Any]]) -> Tuple[int, List[str]]:
        data = await self.client.execute(queries.VARIANTS_BULK_UPDATE, {"productId": product_id, "variants": inputs})
        await self._pause()
        errs = user_errors(data, "productVariantsBulkUpdate")
        updated = len(dig(data, "productVariantsBulkUpdate", "productVariants") or [])
        return updated, [f"{product_id} variant update: {error_messages(errs)}"] if errs else []

    async def create_variants(self, product_id: str, group: ProductGroup, default_variant_id: Optional[str]) -> Tuple[Dict[str, str], List[str]]:
        inputs = build_variant_inputs(group)
        if len(inputs) == 1 and "optionValues" not in inputs[0] and default_variant_id:
            # option-less product: fill in the variant productCreate already made
            _, errors = await self._bulk_update(product_id, [{"id": default_variant_id, **inputs[0]}])
            sku = inputs[0]["inventoryItem"]["sku"]
            return ({sku: default_variant_id} if not errors else {}), errors
        return await self._bulk_create(product_id, inputs, "REMOVE_STANDALONE_VARIANT")

    async def refresh_variants(self, product: TargetProduct, group: ProductGroup) -> Tuple[Dict[str, str], int, List[str]]:
        """Create combinations the product lacks; refresh weight/price on the ones it has."""
        desired = build_variant_inputs(group)
        by_sku = {v.sku: v for v in product.variants if v.sku}
        by_options = {(v.size, v.color): v for v in product.variants}

        missing: List[Dict[str, Any]] = []
        updates: List[Dict[str, Any]] = []
        for inp in desired:
            sku = inp["inventoryItem"]["sku"]
            opts = {o["optionName"]: o["name"] for o in inp.get("optionValues") or []}
            existing = by_sku.get(sku) or by_options.get((opts.get("Size", ""), opts.get("Color", "")))
            if existing is None and inp.get("optionValues"):
                missing.append(inp)
            elif existing is not None:
                upd = {"id": existing.id, "inventoryItem": inp["inventoryItem"]}
                if "price" in inp:
                    upd["price"] = inp["price"]
                updates.append(upd)

        created: Dict[str, str] = {}
        errors: List[str] = []
        if missing:
            created, errs = await self._bulk_create(product.id, missing, "DEFAULT")
            errors.extend(errs)
        updated = 0
        if updates:
            updated, errs = await self._bulk_update(product.id, updates)
            errors.extend(errs)
        ids = {v.sku: v.id for v in product.variants if v.sku}
        ids.update(created)
        return ids, updated, errors

    # ---- create / update ----

    async def create(self, group: ProductGroup, category_id: Optional[str]) -> ReconcileResult:
        payload = self.product_input(group, category_id)
        payload["status"] = self.status
        options = build_product_options(group)
        if options:
            payload["productOptions"] = options

        data = await self.client.execute(queries.PRODUCT_CREATE, {"input": payload})
        await self._pause()
        errs = user_errors(data, "productCreate")
        product_id = dig(data, "productCreate", "product", "id")
        if errs or not product_id:
            msg = error_messages(errs) or "no product returned"
            logger.error("[RECONCILE] productCreate failed for %s: %s", payload["title"], msg)
            return ReconcileResult(outcome="skipped", errors=[f"Product creation failed for {payload['title']}: {msg}"])

        default_variant = edges(data, "productCreate", "product", "variants")
        default_id = default_variant[0].get("id") if default_variant else None
        variant_ids, errors = await self.create_variants(product_id, group, default_id)
        logger.info("[RECONCILE] created %s (%s) with %d variants", payload["title"], product_id, len(variant_ids))
        return ReconcileResult(
            outcome="created",
            target_product_ids=[product_id],
            variants_created=len(variant_ids),
            categories_assigned=1 if category_id else 0,
            variant_ids_by_sku=variant_ids,
            errors=errors,
        )

    async def update(self, product: TargetProduct, group: ProductGroup, category_id: Optional[str]) -> ReconcileResult:
        payload = {"id": product.id, **self.product_input(group, category_id)}
        data = await self.client.execute(queries.PRODUCT_UPDATE, {"input": payload})
        await self._pause()
        errs = user_errors(data, "productUpdate")
        if errs:
            msg = error_messages(errs)
            logger.error("[RECONCILE] productUpdate failed for %s: %s", product.id, msg)
            return ReconcileResult(
                outcome="skipped",
                target_product_ids=[product.id],
                errors=[f"Product update failed for {payload['title']}: {msg}"],
            )
        variant_ids, updated, errors = await self.refresh_variants(product, group)
        created = len(variant_ids) - len([v for v in product.variants if v.sku])
        logger.info("[RECONCILE] updated %s (%s)", payload["title"], product.id)
        return ReconcileResult(
            outcome="updated",
            target_product_ids=[product.id],
            variants_created=max(created, 0),
            variants_updated=updated,
            categories_assigned=1 if category_id else 0,
            variant_ids_by_sku=variant_ids,
            errors=errors,
        )

    async def reconcile(self, group: ProductGroup) -> ReconcileResult:
        if not group.records:
            return ReconcileResult(outcome="skipped", errors=[f"{group.style_code}: no variant records"])

        category_id = resolve_category_id(group.attributes, product_type_for(group.attributes))
        existing = await self.find_existing(group)
        if existing is not None:
            if not self.update_existing:
                logger.info("[RECONCILE] %s exists, updates disabled → skipped", existing.title)
                return ReconcileResult(outcome="skipped", target_product_ids=[existing.id])
            return await self.update(existing, group, category_id)
        return await self.create(group, category_id)

    async def reconcile_partition(self, part: SplitProductGroup, grouping: GroupingReference) -> ReconcileResult:
        """Size products are only reconciled once their grouping entry is in hand."""
        if not isinstance(grouping, GroupingReference) or not grouping.id:
            raise GroupingNotReadyError(f"{part.style_code} {part.size}: grouping reference not ensured")
        return await self.reconcile(part)
