# pim_sync/sync/components/image_matcher.py
# =======================================================
# Variant main-image assignment
# - color code extraction from "Name - CODE" labels
# - ordered matching strategies (first match wins)
# - one image per color, only for variants without an image
# - assignment with three mutation fallbacks + retry on "still processing"
# =======================================================
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from pim_sync.models.catalog import AssetRef, MediaNode, TargetProduct, TargetVariant
from pim_sync.shopify import queries
from pim_sync.shopify.graphql import dig, error_messages, user_errors
from pim_sync.sync.components.cascade import Strategy, first_match
from pim_sync.sync.components.util import Sleeper, contains_any

logger = logging.getLogger("uvicorn.error")

# ------------------------------------------------------------------------------
# Color codes
# ------------------------------------------------------------------------------

COLOR_CODE_PREFIXES = ("C", "B", "G", "R", "Y", "P", "N", "O", "W", "K")
COLOR_CODE_PATTERNS = [re.compile(rf"{p}\d+") for p in COLOR_CODE_PREFIXES] + [re.compile(r"\b\d{3,4}\b")]


def extract_color_code(label: str | None) -> str:
    """
    'Bubble Pink - C129' → 'C129'. Falls back to the trailing ' - CODE' token
    (3 to 6 chars), else ''.
    """
    if not label:
        return ""
    for pat in COLOR_CODE_PATTERNS:
        m = pat.search(label)
        if m:
            return m.group(0)
    if " - " in label:
        tail = label.split(" - ")[-1].strip()
        if 3 <= len(tail) <= 6:
            return tail
    return ""


def color_name_of(label: str | None) -> str:
    return (label or "").split(" - ")[0].strip().lower()


# ------------------------------------------------------------------------------
# Matching strategies
# ------------------------------------------------------------------------------

COLOR_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "burgundy": ("bordeaux", "wine", "maroon", "crimson"),
    "navy": ("darkblue", "dark blue", "midnight"),
    "grey": ("gray", "silver"),
    "black": ("noir", "dark"),
    "white": ("blanc", "cream", "ivory"),
    "yellow": ("gold", "amber"),
    "orange": ("coral", "peach"),
    "green": ("lime", "olive", "forest"),
    "red": ("crimson", "cherry", "ruby"),
    "blue": ("azure", "royal", "sky"),
    "pink": ("rose", "blush", "magenta"),
}

_WORD_SPLIT = re.compile(r"[\s_\-\.]+")


@dataclass(frozen=True)
class ColorContext:
    label: str
    code: str
    name: str
    style_code: str = ""


def _haystacks(node: MediaNode) -> Tuple[str, str]:
    return (node.alt or "").lower(), (node.url or "").lower()


def _style_code_match(node: MediaNode, ctx: ColorContext) -> bool:
    if not (ctx.style_code and ctx.code):
        return False
    needle = f"{ctx.style_code}_{ctx.code}".lower()
    return any(needle in h for h in _haystacks(node))


def _delimited_code_match(node: MediaNode, ctx: ColorContext) -> bool:
    if not ctx.code:
        return False
    code = re.escape(ctx.code.lower())
    patterns = (rf"_{code}[\.\s_]", rf"{code}[\.\s_]", rf"_{code}$", rf"{code}$")
    return any(re.search(p, h) for h in _haystacks(node) for p in patterns)


def _color_name_match(node: MediaNode, ctx: ColorContext) -> bool:
    if not ctx.name:
        return False
    alt, url = _haystacks(node)
    if ctx.name in alt or ctx.name in url:
        return True
    return len(alt) > 2 and alt in ctx.name


def _color_word_match(node: MediaNode, ctx: ColorContext) -> bool:
    words = [w for w in ctx.name.split() if len(w) >= 3]
    return any(w in h for h in _haystacks(node) for w in words)


def _synonym_match(node: MediaNode, ctx: ColorContext) -> bool:
    if not ctx.name:
        return False
    alt, url = _haystacks(node)
    for base, syns in COLOR_SYNONYMS.items():
        family = (base,) + syns
        if any(f in ctx.name for f in family):
            if any(f in alt or f in url for f in family):
                return True
    return False


def _exact_label_match(node: MediaNode, ctx: ColorContext) -> bool:
    alt = (node.alt or "").strip().lower()
    if not alt or not ctx.name:
        return False
    return alt == ctx.name or alt == ctx.name.replace(" ", "")


def _single_word_match(node: MediaNode, ctx: ColorContext) -> bool:
    name_words = ctx.name.split()
    if len(name_words) != 1:
        return False
    alt, url = _haystacks(node)
    tokens = set(_WORD_SPLIT.split(alt)) | set(_WORD_SPLIT.split(url.rsplit("/", 1)[-1]))
    return name_words[0] in tokens


MATCH_STRATEGIES: List[Strategy[MediaNode, ColorContext]] = [
    Strategy("style_code", _style_code_match),
    Strategy("delimited_code", _delimited_code_match),
    Strategy("color_name", _color_name_match),
    Strategy("color_word", _color_word_match),
    Strategy("synonym", _synonym_match),
    Strategy("exact_label", _exact_label_match),
    Strategy("single_word", _single_word_match),
]


def color_context(label: str, style_code: str = "") -> ColorContext:
    return ColorContext(label=label, code=extract_color_code(label), name=color_name_of(label), style_code=style_code)


def find_image_for_color(
    media: List[MediaNode], label: str, style_code: str = ""
) -> Tuple[Optional[MediaNode], Optional[str], List[str]]:
    result = first_match(MATCH_STRATEGIES, media, color_context(label, style_code))
    return result.candidate, result.strategy, result.tried


def style_code_of(product: TargetProduct) -> str:
    """Common SKU prefix before the color code, e.g. STTU964 from STTU964C1292XS."""
    for v in product.variants:
        m = re.match(r"^([A-Z]{3,5}\d{3,4})", v.sku or "")
        if m:
            return m.group(1)
    m = re.search(r"\b([A-Z]{3,5}\d{3,4})\b", product.title or "")
    return m.group(1) if m else ""


# ------------------------------------------------------------------------------
# Assignment
# ------------------------------------------------------------------------------

# first try + 3 retries (2s, 4s, 6s)
ASSIGN_MAX_ATTEMPTS = 4
ASSIGN_RETRY_MARKERS = ("processing", "not found", "unavailable")


@dataclass
class VariantImageReport:
    assignments: Dict[str, AssetRef] = field(default_factory=dict)
    variants_processed: int = 0
    images_assigned: int = 0
    errors: List[str] = field(default_factory=list)


class VariantImageMatcher:
    def __init__(self, client, *, sleep: Sleeper = asyncio.sleep, max_attempts: int = ASSIGN_MAX_ATTEMPTS):
        self.client = client
        self._sleep = sleep
        self.max_attempts = max_attempts

    def match_one_image_per_color(self, product: TargetProduct) -> Dict[str, AssetRef]:
        """
        variant id → image for every variant that has no image yet.
        All variants of one color share the single image chosen for that color.
        """
        plan, _ = self._plan(product)
        return plan

    def _plan(self, product: TargetProduct) -> Tuple[Dict[str, AssetRef], List[str]]:
        style_code = style_code_of(product)
        by_color: Dict[str, List[TargetVariant]] = {}
        for v in product.variants:
            if not v.color:
                continue
            by_color.setdefault(v.color, []).append(v)

        plan: Dict[str, AssetRef] = {}
        errors: List[str] = []
        for label, variants in by_color.items():
            needing = [v for v in variants if not v.image_id]
            if not needing:
                logger.info("[VARIANT-IMG] %s: all %s variants already have images", product.title, label)
                continue
            node, strategy, tried = find_image_for_color(product.media, label, style_code)
            if node is None:
                ctx = color_context(label, style_code)
                msg = (
                    f"No image found for color '{label}' on {product.title} "
                    f"(code={ctx.code or '-'}, strategies={','.join(tried)}, "
                    f"candidates={[m.alt or m.filename for m in product.media][:10]})"
                )
                logger.error("[VARIANT-IMG] %s", msg)
                errors.append(msg)
                continue
            logger.info("[VARIANT-IMG] %s: color %s → %s via %s", product.title, label, node.id, strategy)
            ref = AssetRef(asset_id=node.id, url=node.url, alt=node.alt, source="library")
            for v in needing:
                plan[v.id] = ref
        return plan, errors

    async def _try_mutations(self, product_id: str, variant_id: str, media_id: str) -> Tuple[bool, str]:
        attempts = (
            ("productVariantAppendMedia", queries.VARIANT_APPEND_MEDIA,
             {"productId": product_id, "variantMedia": [{"variantId": variant_id, "mediaIds": [media_id]}]}),
            ("productVariantsBulkUpdate", queries.VARIANTS_BULK_UPDATE,
             {"productId": product_id, "variants": [{"id": variant_id, "imageId": media_id}]}),
            ("productVariantUpdate", queries.VARIANT_UPDATE_IMAGE,
             {"input": {"id": variant_id, "imageId": media_id}}),
        )
        messages: List[str] = []
        for root, doc, variables in attempts:
            data = await self.client.execute(doc, variables)
            errs = user_errors(data, root)
            if not errs and dig(data, root) is not None:
                return True, root
            msg = error_messages(errs) or f"{root} returned no result"
            messages.append(f"{root}: {msg}")
            # processing errors apply to every mutation alike
            if contains_any(msg, ASSIGN_RETRY_MARKERS):
                return False, msg
        return False, " | ".join(messages)

    async def assign(self, product_id: str, variant_id: str, media_id: str) -> Tuple[bool, str]:
        last = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                ok, detail = await self._try_mutations(product_id, variant_id, media_id)
            except Exception as e:
                last = str(e)
                logger.warning("[VARIANT-IMG] assign %s raised (attempt %d/%d): %s", variant_id, attempt, self.max_attempts, e)
                if attempt < self.max_attempts:
                    await self._sleep(attempt * 1.0)
                continue
            if ok:
                logger.info("[VARIANT-IMG] %s ← %s via %s (attempt %d)", variant_id, media_id, detail, attempt)
                return True, detail
            last = detail
            if contains_any(detail, ASSIGN_RETRY_MARKERS) and attempt < self.max_attempts:
                wait = attempt * 2.0
                logger.info("[VARIANT-IMG] media %s still processing, waiting %.0fs", media_id, wait)
                await self._sleep(wait)
                continue
            break
        logger.warning("[VARIANT-IMG] could not assign %s to %s: %s", media_id, variant_id, last)
        return False, last

    async def assign_product(self, product: TargetProduct, *, delay_s: float = 0.0) -> VariantImageReport:
        """Plan and apply main images; one variant failing never stops the others."""
        plan, errors = self._plan(product)
        report = VariantImageReport(errors=list(errors))
        for variant_id, ref in plan.items():
            report.variants_processed += 1
            ok, detail = await self.assign(product.id, variant_id, ref.asset_id)
            if ok:
                report.assignments[variant_id] = ref
                report.images_assigned += 1
            else:
                report.errors.append(f"{product.title} {variant_id}: {detail}")
            if delay_s:
                await self._sleep(delay_s)
        return report
