# pim_sync/pim/grouping.py
# =======================================================
# PIM records → product groups
# - flattened-response detection + regrouping
# - group_by_style (style-level fields from first record)
# - split_if_oversized (per-size partitions, full color set each)
# - published-style listing rows
# =======================================================
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List

from pim_sync.config import settings
from pim_sync.models.records import ProductGroup, SourceVariantRecord, SplitProductGroup
from pim_sync.pim.fields import get_str

logger = logging.getLogger("uvicorn.error")

# Keys containing any of these belong to a variant, not to the style
VARIANT_KEY_MARKERS = ("ColorCode", "SizeCode", "Color", "Size", "Stock", "WeightPerUnit", "Price")
VARIANT_IDENTITY_KEYS = ("ColorCode", "SizeCode", "Color", "Size")
NO_SIZE = "One Size"


def _threshold(threshold: int | None) -> int:
    return settings.SPLIT_THRESHOLD if threshold is None else threshold


def is_flattened(items: List[Dict[str, Any]], threshold: int | None = None) -> bool:
    """Many flat variant rows and no nested Variants list on the first item."""
    if not items or not isinstance(items[0], dict):
        return False
    first = items[0]
    has_nested = isinstance(first.get("Variants"), list)
    return not has_nested and len(items) > _threshold(threshold)


def _style_fields(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        k: v for k, v in record.items()
        if not any(marker in k for marker in VARIANT_KEY_MARKERS)
    }


def group_flattened_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Rebuild style items with a nested Variants list out of flat variant rows.
    """
    grouped: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for rec in items:
        if not isinstance(rec, dict):
            continue
        code = get_str(rec, "StyleCode")
        if not code:
            continue
        style = grouped.get(code)
        if style is None:
            style = _style_fields(rec)
            style["Variants"] = []
            grouped[code] = style
        if any(rec.get(k) for k in VARIANT_IDENTITY_KEYS):
            style["Variants"].append(rec)
    logger.info("[PIM] regrouped %d flat rows into %d styles", len(items), len(grouped))
    return list(grouped.values())


def records_from_items(items: Iterable[Dict[str, Any]]) -> List[SourceVariantRecord]:
    records: List[SourceVariantRecord] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        variants = item.get("Variants")
        if isinstance(variants, list) and variants:
            for v in variants:
                if isinstance(v, dict):
                    records.append(SourceVariantRecord.from_raw(v, style=item))
        else:
            records.append(SourceVariantRecord.from_raw(item))
    return [r for r in records if r.style_code]


def group_by_style(records: Iterable[SourceVariantRecord]) -> List[ProductGroup]:
    """
    Group records by style id; style-level fields come from the first record seen.
    """
    groups: "OrderedDict[str, ProductGroup]" = OrderedDict()
    seen_images: Dict[str, set] = {}
    for rec in records:
        group = groups.get(rec.style_code)
        if group is None:
            group = ProductGroup(
                style_code=rec.style_code,
                style_name=rec.style_name,
                attributes=_style_fields(rec.raw),
            )
            groups[rec.style_code] = group
            seen_images[rec.style_code] = set()
        group.records.append(rec)
        for img in rec.images:
            key = (img.dedup_key(), img.url)
            if key in seen_images[rec.style_code]:
                continue
            seen_images[rec.style_code].add(key)
            group.images.append(img)
    return list(groups.values())


def groups_from_items(items: Iterable[Dict[str, Any]]) -> List[ProductGroup]:
    return group_by_style(records_from_items(items))


def split_if_oversized(group: ProductGroup, threshold: int | None = None) -> List[SplitProductGroup]:
    """
    Partition an oversized group by size. Returns [] when the group fits in one product.
    Each partition carries every color of the whole group.
    """
    if group.member_count <= _threshold(threshold):
        return []

    all_colors = group.colors()
    by_size: "OrderedDict[str, List[SourceVariantRecord]]" = OrderedDict()
    for rec in group.records:
        by_size.setdefault(rec.size_value or NO_SIZE, []).append(rec)

    sizes = list(by_size.keys())
    parts = [
        SplitProductGroup(
            style_code=group.style_code,
            style_name=group.style_name,
            attributes=dict(group.attributes),
            records=recs,
            images=list(group.images),
            size=size,
            all_colors=list(all_colors),
            sibling_sizes=sizes,
        )
        for size, recs in by_size.items()
    ]
    logger.info(
        "[SPLIT] %s: %d records → %d size products (%d colors each)",
        group.style_code, group.member_count, len(parts), len(all_colors),
    )
    return parts


# ------------------------------------------------------------------------------
# Published listing
# ------------------------------------------------------------------------------

def filter_published(groups: Iterable[ProductGroup]) -> List[ProductGroup]:
    return [g for g in groups if g.is_published]


def style_summary(group: ProductGroup) -> Dict[str, Any]:
    return {
        "styleCode": group.style_code,
        "styleName": group.style_name,
        "type": group.type_code,
        "category": get_str(group.attributes, "Category"),
        "variantCount": group.member_count,
        "colors": group.colors(),
        "sizes": group.sizes(),
        "imageCount": len(group.images),
    }


def published_style_rows(items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    groups = filter_published(groups_from_items(items))
    groups.sort(key=lambda g: (g.style_name or "").lower())
    return [style_summary(g) for g in groups]
