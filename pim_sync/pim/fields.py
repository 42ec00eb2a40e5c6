# pim_sync/pim/fields.py
# Field-name variations seen in PIM payloads, plus language code mapping.
from __future__ import annotations

from typing import Any, Dict, Iterable

FIELD_VARIATIONS: Dict[str, tuple[str, ...]] = {
    "StyleCode": ("StyleCode", "stylecode", "Style_Code", "style_code"),
    "StyleName": ("StyleName", "stylename", "Style_Name", "style_name"),
    "ColorCode": ("ColorCode", "colourcode", "Color_Code", "colour_code", "colorcode"),
    "SizeCode": ("SizeCode", "sizecode", "Size_Code", "size_code", "SizeCodeNavision"),
    "Color": ("Color", "colour", "ColorName", "colourname", "color"),
    "Size": ("Size", "size", "SizeName", "sizename"),
    "SKU": ("SKU", "sku", "Sku"),
    "Price": ("Price", "price", "UnitPrice", "unitprice"),
    "Weight": ("Weight", "weight", "WeightPerUnit", "weight_per_unit", "Weight per unit"),
    "Description": ("Description", "description", "DescriptionHTML", "descriptionhtml", "ShortDescription"),
    "TypeCode": ("TypeCode", "typecode", "Type_Code", "type_code", "ProductType", "producttype"),
    "Category": ("Category", "category", "CategoryName", "categoryname"),
    "HTMLPath": ("HTMLPath", "htmlpath", "URL", "Url", "url"),
}

LANGUAGE_MAP: Dict[str, str] = {
    "EN": "en_US",
    "FI": "fi_FI",
    "SV": "sv_SE",
    "DE": "de_DE",
    "FR": "fr_FR",
    "ES": "es_ES",
    "IT": "it_IT",
    "NL": "nl_NL",
    "DA": "da_DK",
    "NO": "no_NO",
}
DEFAULT_LANGUAGE = "en_US"


def _present(v: Any) -> bool:
    if v is None:
        return False
    if isinstance(v, str) and not v.strip():
        return False
    return True


def get_field(record: Dict[str, Any] | None, name: str, default: Any = None) -> Any:
    """
    Read a logical field from a PIM record, trying every known spelling.
    Unknown logical names are read verbatim.
    """
    if not record:
        return default
    for key in FIELD_VARIATIONS.get(name, (name,)):
        v = record.get(key)
        if _present(v):
            return v
    return default


def get_str(record: Dict[str, Any] | None, name: str) -> str:
    v = get_field(record, name, "")
    return str(v).strip() if v is not None else ""


def first_present(record: Dict[str, Any] | None, keys: Iterable[str]) -> Any:
    for k in keys:
        v = (record or {}).get(k)
        if _present(v):
            return v
    return None


def to_pim_language(code: str | None) -> str:
    """EN → en_US etc. Codes already in locale form pass through."""
    if not code:
        return DEFAULT_LANGUAGE
    code = code.strip()
    if "_" in code:
        return code
    return LANGUAGE_MAP.get(code.upper(), DEFAULT_LANGUAGE)
