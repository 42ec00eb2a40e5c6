# pim_sync/sync/components/variants.py
# Option sets and size×color variant inputs for productCreate / productVariantsBulkCreate.
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pim_sync.models.records import ProductGroup, SourceVariantRecord, SplitProductGroup

logger = logging.getLogger("uvicorn.error")

SIZE_OPTION = "Size"
COLOR_OPTION = "Color"


def _option(name: str, values: List[str]) -> Dict[str, Any]:
    return {"name": name, "values": [{"name": v} for v in values]}


def build_product_options(group: ProductGroup) -> List[Dict[str, Any]]:
    """
    Split products always carry Size (their one size) and Color when there is a choice.
    Whole-style products get Size / Color only where more than one value exists.
    """
    sizes = group.sizes()
    colors = group.colors()
    options: List[Dict[str, Any]] = []
    if isinstance(group, SplitProductGroup):
        options.append(_option(SIZE_OPTION, [group.size]))
        if len(colors) > 1:
            options.append(_option(COLOR_OPTION, colors))
        return options
    if len(sizes) > 1:
        options.append(_option(SIZE_OPTION, sizes))
    if len(colors) > 1:
        options.append(_option(COLOR_OPTION, colors))
    return options


def color_code_of(label: str) -> str:
    """'Bubble Pink - C129' → 'C129'."""
    if " - " in label:
        return label.split(" - ")[-1].strip()
    return label.strip()


def find_record(records: List[SourceVariantRecord], size: str, color: str) -> tuple[Optional[SourceVariantRecord], bool]:
    """
    Exact (size, color) record, else same size, else same color, else the first record.
    Second value is True only for the exact match.
    """
    for r in records:
        if r.size_value == size and r.color_label == color:
            return r, True
    for r in records:
        if r.size_value == size:
            return r, False
    for r in records:
        if r.color_label == color:
            return r, False
    return (records[0] if records else None), False


def record_sku(style_code: str, record: SourceVariantRecord) -> str:
    return f"{style_code}{record.color_code}{record.sku_size_code}"


def derive_sku(style_code: str, size: str, color: str, record: Optional[SourceVariantRecord], exact: bool) -> str:
    if exact and record is not None:
        return record_sku(style_code, record)
    return f"{style_code}{color_code_of(color) if color else ''}{size}"


def _weight_grams(record: Optional[SourceVariantRecord]) -> Optional[float]:
    if record is None or record.weight_grams is None:
        return None
    return round(float(record.weight_grams), 2)


def _variant_input(
    style_code: str,
    size: str,
    color: str,
    records: List[SourceVariantRecord],
    option_names: List[str],
) -> Dict[str, Any]:
    record, exact = find_record(records, size, color)
    sku = derive_sku(style_code, size, color, record, exact)
    data: Dict[str, Any] = {"inventoryItem": {"sku": sku, "tracked": False}}
    # no weight in the source: leave the catalog weight alone
    grams = _weight_grams(record)
    if grams is not None:
        data["inventoryItem"]["measurement"] = {"weight": {"value": grams, "unit": "GRAMS"}}
    option_values = []
    if SIZE_OPTION in option_names:
        option_values.append({"optionName": SIZE_OPTION, "name": size})
    if COLOR_OPTION in option_names:
        option_values.append({"optionName": COLOR_OPTION, "name": color})
    if option_values:
        data["optionValues"] = option_values
    if record is not None and record.price is not None:
        data["price"] = f"{record.price:.2f}"
    return data


def build_variant_inputs(group: ProductGroup) -> List[Dict[str, Any]]:
    """
    One input per size×color combination, or a single option-less variant
    when the style has exactly one size and one color.
    """
    option_names = [o["name"] for o in build_product_options(group)]
    colors = group.colors() or [""]
    sizes = [group.size] if isinstance(group, SplitProductGroup) else (group.sizes() or [""])

    if len(sizes) == 1 and len(colors) == 1 and not option_names:
        return [_variant_input(group.style_code, sizes[0], colors[0], group.records, [])]

    out: List[Dict[str, Any]] = []
    for size in sizes:
        for color in colors:
            out.append(_variant_input(group.style_code, size, color, group.records, option_names))
    logger.debug("[VARIANTS] %s: %d sizes × %d colors = %d inputs", group.style_code, len(sizes), len(colors), len(out))
    return out
