# pim_sync/sync/components/media_cache.py
# =======================================================
# Run-scoped media cache + uploader
# Lookup order for an image descriptor:
#   1. dedup-key map      (no network)
#   2. source-URL map     (no network)
#   3. files library search: exact filename, filename-<uuid>, containment
#   4. fileCreate upload
# Library hits and uploads are written to both maps.
# =======================================================
from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, List, Optional

from pim_sync.models.catalog import AssetRef, MediaNode
from pim_sync.models.records import ImageDescriptor
from pim_sync.shopify import queries
from pim_sync.shopify.graphql import edges, error_messages, user_errors

logger = logging.getLogger("uvicorn.error")

IMAGE_EXTENSIONS = (".jpg", ".png", ".jpeg")
UUID_SUFFIX = r"-[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"


class MediaUploadError(Exception):
    pass


def _stem(name: str) -> str:
    base, ext = os.path.splitext(name or "")
    return base if ext.lower() in IMAGE_EXTENSIONS else (name or "")


def _exact_filename(node: MediaNode, filename: str) -> bool:
    wanted = {filename} | {f"{filename}{ext}" for ext in IMAGE_EXTENSIONS}
    return node.filename in wanted or node.alt in wanted


def _uuid_suffixed(node: MediaNode, filename: str) -> bool:
    pattern = re.compile(f"^{re.escape(filename)}{UUID_SUFFIX}", re.IGNORECASE)
    return bool(pattern.search(node.filename) or pattern.search(node.alt))


def _contains(node: MediaNode, filename: str) -> bool:
    low = filename.lower()
    return low in node.filename.lower() or low in node.alt.lower()


LIBRARY_MATCHERS = (
    ("exact filename", _exact_filename),
    ("uuid suffix", _uuid_suffixed),
    ("contains", _contains),
)


def match_library_node(nodes: List[MediaNode], filename: str) -> tuple[Optional[MediaNode], Optional[str]]:
    """Pick the first node matching the strongest filename rule."""
    filename = _stem(filename)
    if not filename:
        return None, None
    for label, matcher in LIBRARY_MATCHERS:
        for node in nodes:
            if node.id and matcher(node, filename):
                return node, label
    return None, None


class MediaCache:
    """
    One instance per import run. Only this object writes cache entries;
    stages look assets up through resolve().
    """

    def __init__(self, client):
        self.client = client
        self.by_key: Dict[str, AssetRef] = {}
        self.by_url: Dict[str, AssetRef] = {}
        self.uploads = 0
        self.library_hits = 0

    def lookup(self, descriptor: ImageDescriptor) -> tuple[Optional[AssetRef], Optional[str]]:
        key = descriptor.dedup_key()
        if key in self.by_key:
            return self.by_key[key], "cache"
        if descriptor.url and descriptor.url in self.by_url:
            return self.by_url[descriptor.url], "url_cache"
        return None, None

    def remember(self, descriptor: ImageDescriptor, ref: AssetRef) -> None:
        self.by_key[descriptor.dedup_key()] = ref
        if descriptor.url:
            self.by_url[descriptor.url] = ref

    async def resolve(self, descriptor: ImageDescriptor, *, alt: str | None = None) -> AssetRef:
        ref, _ = await self.resolve_traced(descriptor, alt=alt)
        return ref

    async def resolve_traced(self, descriptor: ImageDescriptor, *, alt: str | None = None) -> tuple[AssetRef, str]:
        """resolve() plus where the asset came from: cache, url_cache, library or upload."""
        cached, hit = self.lookup(descriptor)
        if cached is not None:
            logger.info("[MEDIA] %s reused from run %s (%s)", descriptor.filename or descriptor.url, hit, cached.asset_id)
            return cached, hit

        found = await self.search_library(descriptor)
        if found is not None:
            self.library_hits += 1
            self.remember(descriptor, found)
            return found, "library"

        uploaded = await self.upload(descriptor, alt=alt)
        self.uploads += 1
        self.remember(descriptor, uploaded)
        return uploaded, "upload"

    async def search_library(self, descriptor: ImageDescriptor) -> Optional[AssetRef]:
        filename = _stem(descriptor.filename)
        if not filename:
            return None
        nodes: List[MediaNode] = []
        seen: set[str] = set()
        for q in (f'filename:"{filename}"', f'"{filename}"'):
            data = await self.client.execute(queries.FILES_SEARCH, {"q": q})
            for raw in edges(data, "files"):
                node = MediaNode.from_node(raw)
                if node.id and node.id not in seen:
                    seen.add(node.id)
                    nodes.append(node)
            node, rule = match_library_node(nodes, filename)
            if node is not None:
                logger.info("[MEDIA] %s found in library by %s (%s)", filename, rule, node.id)
                return AssetRef(asset_id=node.id, url=node.url or descriptor.url, alt=node.alt, source="library")
        logger.debug("[MEDIA] %s not in library (%d candidates checked)", filename, len(nodes))
        return None

    async def upload(self, descriptor: ImageDescriptor, *, alt: str | None = None) -> AssetRef:
        alt_text = alt or descriptor.style_name or descriptor.filename
        file_input: Dict[str, Any] = {
            "originalSource": descriptor.url,
            "alt": alt_text,
            "contentType": "IMAGE",
        }
        if descriptor.filename:
            name = descriptor.filename
            if not os.path.splitext(name)[1]:
                name = f"{name}{os.path.splitext(descriptor.url)[1] or '.jpg'}"
            file_input["filename"] = name

        data = await self.client.execute(queries.FILE_CREATE, {"files": [file_input]})
        errs = user_errors(data, "fileCreate")
        if errs:
            raise MediaUploadError(f"fileCreate failed for {descriptor.filename or descriptor.url}: {error_messages(errs)}")
        files = (data.get("fileCreate") or {}).get("files") or []
        if not files or not files[0].get("id"):
            raise MediaUploadError(f"fileCreate returned no file for {descriptor.filename or descriptor.url}")
        node = MediaNode.from_node(files[0])
        logger.info("[MEDIA] uploaded %s → %s", descriptor.filename or descriptor.url, node.id)
        return AssetRef(asset_id=node.id, url=node.url or descriptor.url, alt=node.alt or alt_text, source="upload")
