# pim_sync/models/records.py
# Source-side shapes: PIM variant records, image descriptors and the groups built from them.
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from pim_sync.pim.fields import first_present, get_field, get_str


def _as_flag(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v == 1
    return str(v).strip().lower() in {"1", "true", "yes", "y"}


def _as_float(v: Any) -> Optional[float]:
    if v is None or v == "":
        return None
    try:
        return float(str(v).replace(",", "."))
    except ValueError:
        return None


class ImageDescriptor(BaseModel):
    url: str
    filename: str = ""
    style_code: str = ""
    style_name: str = ""
    color: str = ""
    color_code: str = ""
    photo_type_code: str = ""
    photo_style: str = ""
    photo_shoot_code: str = ""
    size: str = ""

    class Config:
        extra = "allow"

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], *, style_code: str = "", style_name: str = "") -> "ImageDescriptor":
        def _val(key: str) -> str:
            v = raw.get(key)
            if v is None or str(v).strip() in {"", "Unknown"}:
                return ""
            return str(v).strip()

        return cls(
            url=get_str(raw, "HTMLPath"),
            filename=_val("FName") or _val("filename"),
            style_code=get_str(raw, "StyleCode") or style_code,
            style_name=_val("StyleName") or style_name,
            color=get_str(raw, "Color"),
            color_code=get_str(raw, "ColorCode"),
            photo_type_code=_val("PhotoTypeCode"),
            photo_style=_val("PhotoStyle"),
            photo_shoot_code=_val("PhotoShootCode"),
            size=get_str(raw, "Size") or get_str(raw, "SizeCode"),
        )

    def dedup_key(self) -> str:
        """
        (style, color, photo type, photo style, shoot) when the photo is color-specific,
        else the style name alone.
        """
        if self.style_code and self.color_code:
            return "-".join([
                self.style_code,
                self.color_code,
                self.photo_type_code,
                self.photo_style,
                self.photo_shoot_code,
            ])
        return self.style_name or self.filename or self.url

    @property
    def color_alt(self) -> str:
        return f"{self.color} - {self.color_code}"


class SourceVariantRecord(BaseModel):
    style_code: str
    style_name: str = ""
    type_code: str = ""
    category: str = ""
    style_published: bool = False
    published: bool = False
    color: str = ""
    color_code: str = ""
    size: str = ""
    size_code: str = ""
    size_code_navision: str = ""
    weight_grams: Optional[float] = None
    price: Optional[float] = None
    sku: str = ""
    images: List[ImageDescriptor] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], style: Dict[str, Any] | None = None) -> "SourceVariantRecord":
        """
        Build a record from a PIM variant dict; `style` supplies style-level fields
        when the variant is nested under a style item.
        """
        merged: Dict[str, Any] = dict(style or {})
        merged.pop("Variants", None)
        merged.pop("MainPicture", None)
        merged.update(raw or {})

        # "Weight" is grams; WeightPerUnit is kilograms
        weight = _as_float(first_present(merged, ("Weight", "weight")))
        if weight is None:
            wpu = _as_float(first_present(merged, ("WeightPerUnit", "weight_per_unit", "Weight per unit")))
            weight = wpu * 1000 if wpu is not None else None

        pictures = (
            (raw or {}).get("Pictures") or (raw or {}).get("MainPicture")
            or (style or {}).get("MainPicture") or []
        )
        style_code = get_str(merged, "StyleCode")
        style_name = get_str(merged, "StyleName")
        return cls(
            style_code=style_code,
            style_name=style_name,
            type_code=get_str(merged, "TypeCode") or str(merged.get("Type") or "").strip(),
            category=get_str(merged, "Category"),
            style_published=_as_flag(merged.get("StylePublished")),
            published=_as_flag(merged.get("Published")),
            color=get_str(merged, "Color"),
            color_code=get_str(merged, "ColorCode"),
            size=get_str(merged, "Size"),
            size_code=str(merged.get("SizeCode") or "").strip(),
            size_code_navision=str(merged.get("SizeCodeNavision") or "").strip(),
            weight_grams=weight,
            price=_as_float(get_field(merged, "Price")),
            sku=get_str(merged, "SKU"),
            images=[
                ImageDescriptor.from_raw(p, style_code=style_code, style_name=style_name)
                for p in pictures
                if isinstance(p, dict) and get_str(p, "HTMLPath")
            ],
            raw=merged,
        )

    @property
    def size_value(self) -> str:
        return self.size_code or self.size or self.size_code_navision

    @property
    def color_label(self) -> str:
        """Variant Color option value, e.g. 'Bubble Pink - C129'."""
        if self.color and self.color_code:
            return f"{self.color} - {self.color_code}"
        return self.color or self.color_code

    @property
    def sku_size_code(self) -> str:
        return self.size_code_navision or self.size_code or self.size


class ProductGroup(BaseModel):
    style_code: str
    style_name: str = ""
    attributes: Dict[str, Any] = Field(default_factory=dict)
    records: List[SourceVariantRecord] = Field(default_factory=list)
    images: List[ImageDescriptor] = Field(default_factory=list)

    @property
    def member_count(self) -> int:
        return len(self.records)

    @property
    def is_published(self) -> bool:
        style_flag = _as_flag(self.attributes.get("StylePublished"))
        if not style_flag and self.records:
            style_flag = self.records[0].style_published
        return style_flag and any(r.published for r in self.records)

    def sizes(self) -> List[str]:
        return _ordered_unique(r.size_value for r in self.records)

    def colors(self) -> List[str]:
        return _ordered_unique(r.color_label for r in self.records)

    @property
    def type_code(self) -> str:
        return get_str(self.attributes, "TypeCode") or str(self.attributes.get("Type") or "").strip()


class SplitProductGroup(ProductGroup):
    size: str
    # Every color of the original group, even ones absent for this size
    all_colors: List[str] = Field(default_factory=list)
    sibling_sizes: List[str] = Field(default_factory=list)

    def colors(self) -> List[str]:
        return list(self.all_colors) or super().colors()


class GroupingReference(BaseModel):
    id: str
    name: str
    product_ids: List[str] = Field(default_factory=list)


def _ordered_unique(values) -> List[str]:
    seen = set()
    out: List[str] = []
    for v in values:
        if not v or v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out
