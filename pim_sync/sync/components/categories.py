# pim_sync/sync/components/categories.py
# PIM type/category values → Shopify standard taxonomy category GIDs.
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pim_sync.config import settings
from pim_sync.pim.fields import get_str

logger = logging.getLogger("uvicorn.error")

TAXONOMY_PREFIX = "gid://shopify/TaxonomyCategory/"

# TypeCode (upper-cased) → taxonomy node
TYPE_CODE_CATEGORIES: Dict[str, str] = {
    "HOODIES": "aa-1-13-13",
    "SWEATS": "aa-1-13-14",
    "SWEATSHIRTS": "aa-1-13-14",
    "TEES": "aa-1-13-8",
    "TSHIRTS": "aa-1-13-8",
    "TOPS": "aa-1-13-8",
    "SHIRTS": "aa-1-13-7",
    "TANKS": "aa-1-13-9",
    "TANKTOPS": "aa-1-13-9",
    "POLO": "aa-1-13-6",
    "POLOS": "aa-1-13-6",
    "SWEATERS": "aa-1-13-12",
    "TUNICS": "aa-1-13-11",
    "OVERSHIRTS": "aa-1-13-5",
    "CARDIGANS": "aa-1-13-3",
    "BODYSUITS": "aa-1-13-2",
    "BLOUSES": "aa-1-13-1",
    "PANTS": "aa-1-12-11",
    "TROUSERS": "aa-1-12-11",
    "CARGO_PANTS": "aa-1-12-2",
    "CHINOS": "aa-1-12-3",
    "JEANS": "aa-1-12-4",
    "JEGGINGS": "aa-1-12-5",
    "JOGGERS": "aa-1-12-7",
    "LEGGINGS": "aa-1-12-8",
    "SHORTS": "aa-1-14-2",
    "BERMUDAS": "aa-1-14-1",
    "JACKETS": "aa-1-10-2",
    "COATS": "aa-1-10-2",
    "BOMBER_JACKETS": "aa-1-10-2-2",
    "PARKAS": "aa-1-10-2-6",
    "PUFFER_JACKETS": "aa-1-10-2-9",
    "WINDBREAKERS": "aa-1-10-2-16",
    "DRESSES": "aa-1-15-1",
    "SKIRTS": "aa-1-15-2",
    "UNDERWEAR": "aa-1-16-1",
    "SOCKS": "aa-1-17-1",
    "BAGS": "lb-11",
    "HATS": "aa-2-17-16",
    "CAPS": "aa-2-17-1",
    "BEANIES": "aa-2-17-2",
    "BUCKET_HATS": "aa-2-17-5",
    "BABY_TODDLER_TOPS": "aa-1-2-9",
    "BABY_ONE_PIECES": "aa-1-2-10",
}

# Category field values as they come out of the PIM
CATEGORY_FIELD_CATEGORIES: Dict[str, str] = {
    "Hoodies": "aa-1-13-13",
    "Sweatshirts": "aa-1-13-14",
    "Sweaters": "aa-1-13-12",
    "T-shirts": "aa-1-13-8",
    "Tank Tops": "aa-1-13-9",
    "Shirts": "aa-1-13-7",
    "Polos": "aa-1-13-6",
    "Overshirts": "aa-1-13-5",
    "Cardigans": "aa-1-13-3",
    "Trousers": "aa-1-12-11",
    "Pants": "aa-1-12-11",
    "Joggers": "aa-1-12-7",
    "Jeans": "aa-1-12-4",
    "Shorts": "aa-1-14-2",
    "Jackets": "aa-1-10-2",
    "Bags": "lb-11",
    "Caps": "aa-2-17-1",
    "Beanies": "aa-2-17-2",
}

# Free-text Type values (singular and plural)
GENERAL_TYPE_CATEGORIES: Dict[str, str] = {
    "Hoodie": "aa-1-13-13",
    "Sweatshirt": "aa-1-13-14",
    "Sweater": "aa-1-13-12",
    "Shirt": "aa-1-13-7",
    "T-shirt": "aa-1-13-8",
    "Tee": "aa-1-13-8",
    "Tank": "aa-1-13-9",
    "Polo": "aa-1-13-6",
    "Pant": "aa-1-12-11",
    "Trouser": "aa-1-12-11",
    "Jogger": "aa-1-12-7",
    "Jean": "aa-1-12-4",
    "Short": "aa-1-14-2",
    "Jacket": "aa-1-10-2",
    "Bag": "lb-11",
    "Cap": "aa-2-17-1",
    "Beanie": "aa-2-17-2",
}


def _gid(node: str) -> str:
    return node if node.startswith("gid://") else f"{TAXONOMY_PREFIX}{node}"


def _general_lookup(value: str) -> Optional[str]:
    if not value:
        return None
    if value in GENERAL_TYPE_CATEGORIES:
        return GENERAL_TYPE_CATEGORIES[value]
    if value.endswith("s") and value[:-1] in GENERAL_TYPE_CATEGORIES:
        return GENERAL_TYPE_CATEGORIES[value[:-1]]
    return None


def resolve_category_id(style: Dict[str, Any], product_type: str | None = None) -> Optional[str]:
    """
    TypeCode first, then the Category field, then the Type field, then the product type.
    """
    type_code = get_str(style, "TypeCode")
    category = get_str(style, "Category")
    type_field = str(style.get("Type") or style.get("type") or "").strip()

    overrides = {k.upper(): v for k, v in (settings.CATEGORY_OVERRIDES or {}).items()}
    table = {**TYPE_CODE_CATEGORIES, **overrides}

    node: Optional[str] = None
    source = ""
    if type_code and type_code.upper() in table:
        node, source = table[type_code.upper()], f"TypeCode {type_code}"
    elif category and category in CATEGORY_FIELD_CATEGORIES:
        node, source = CATEGORY_FIELD_CATEGORIES[category], f"Category {category}"
    elif _general_lookup(type_field):
        node, source = _general_lookup(type_field), f"Type {type_field}"
    elif product_type and _general_lookup(product_type):
        node, source = _general_lookup(product_type), f"ProductType {product_type}"

    if not node:
        logger.info("[CATEGORY] no mapping for TypeCode=%r Category=%r Type=%r", type_code, category, type_field)
        return None
    logger.debug("[CATEGORY] %s → %s", source, node)
    return _gid(node)


def product_type_for(style: Dict[str, Any]) -> str:
    return (
        get_str(style, "TypeCode")
        or get_str(style, "Category")
        or str(style.get("Type") or "").strip()
        or "Apparel"
    )
