# pim_sync/models/catalog.py
# Target-catalog shapes parsed out of Shopify GraphQL nodes.
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field


class AssetRef(BaseModel):
    asset_id: str
    url: str = ""
    alt: str = ""
    # where the asset was first obtained: library | upload
    source: str = "upload"

    @property
    def filename(self) -> str:
        return url_filename(self.url)


class MediaNode(BaseModel):
    id: str
    alt: str = ""
    url: str = ""

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "MediaNode":
        image = node.get("image") or (node.get("preview") or {}).get("image") or {}
        return cls(id=node.get("id") or "", alt=node.get("alt") or "", url=image.get("url") or "")

    @property
    def filename(self) -> str:
        return url_filename(self.url)


class TargetVariant(BaseModel):
    id: str
    sku: str = ""
    title: str = ""
    options: Dict[str, str] = Field(default_factory=dict)
    image_id: Optional[str] = None

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "TargetVariant":
        opts = {o.get("name", ""): o.get("value", "") for o in node.get("selectedOptions") or []}
        image = node.get("image") or {}
        media = [e.get("node") or {} for e in ((node.get("media") or {}).get("edges") or [])]
        image_id = image.get("id") or (media[0].get("id") if media else None)
        return cls(
            id=node.get("id") or "",
            sku=node.get("sku") or "",
            title=node.get("title") or "",
            options=opts,
            image_id=image_id,
        )

    def option(self, name: str) -> str:
        for k, v in self.options.items():
            if k.lower() == name.lower():
                return v or ""
        return ""

    @property
    def color(self) -> str:
        return self.option("Color")

    @property
    def size(self) -> str:
        return self.option("Size")


class TargetProduct(BaseModel):
    id: str
    title: str = ""
    handle: str = ""
    variants: List[TargetVariant] = Field(default_factory=list)
    media: List[MediaNode] = Field(default_factory=list)

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "TargetProduct":
        variants = [TargetVariant.from_node(e.get("node") or {}) for e in ((node.get("variants") or {}).get("edges") or [])]
        media = [MediaNode.from_node(e.get("node") or {}) for e in ((node.get("media") or {}).get("edges") or [])]
        return cls(
            id=node.get("id") or "",
            title=node.get("title") or "",
            handle=node.get("handle") or "",
            variants=variants,
            media=media,
        )

    def colors(self) -> List[str]:
        out: List[str] = []
        for v in self.variants:
            c = v.color
            if c and c not in out:
                out.append(c)
        return out


def url_filename(url: str) -> str:
    if not url:
        return ""
    path = urlparse(url).path if url.startswith(("http://", "https://")) else url
    return os.path.basename(path)
