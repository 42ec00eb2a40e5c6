import re
from typing import Any, Dict, List, Tuple

import pytest

from pim_sync.pim.pim_client import SourceUnavailableError

_ROOT_RE = re.compile(r"\{\s*(\w+)")


def root_of(query: str) -> str:
    m = _ROOT_RE.search(query)
    return m.group(1) if m else ""


class FakeShopify:
    """
    Scripted stand-in for ShopifyGraphQL.execute().
    Responses are keyed by the document's root field; a list is consumed in
    order with the last entry repeating, a callable gets the variables.
    """

    def __init__(self, responses: Dict[str, Any] | None = None):
        self.responses: Dict[str, Any] = dict(responses or {})
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def on(self, root: str, response: Any) -> "FakeShopify":
        self.responses[root] = response
        return self

    async def execute(self, query: str, variables: Dict[str, Any] | None = None) -> Dict[str, Any]:
        root = root_of(query)
        variables = variables or {}
        self.calls.append((root, variables))
        resp = self.responses.get(root)
        if isinstance(resp, list):
            resp = resp.pop(0) if len(resp) > 1 else (resp[0] if resp else None)
        if callable(resp):
            resp = resp(variables)
        if isinstance(resp, Exception):
            raise resp
        return resp if resp is not None else {}

    def calls_for(self, root: str) -> List[Dict[str, Any]]:
        return [v for r, v in self.calls if r == root]

    def roots(self) -> List[str]:
        return [r for r, _ in self.calls]


class FakeConnector:
    """In-memory SourceConnector: style items and image rows per style code."""

    def __init__(self, styles=None, images=None, unavailable=()):
        self.styles = styles or {}
        self.images = images or {}
        self.unavailable = set(unavailable)

    async def fetch_style(self, style_code):
        if style_code in self.unavailable:
            raise SourceUnavailableError(f"No data found in any partition for {style_code}")
        return self.styles[style_code]

    async def fetch_images(self, style_code=None):
        if style_code in self.unavailable:
            raise SourceUnavailableError(f"No data found in any partition for {style_code}")
        return self.images.get(style_code, [])

    async def fetch_all(self):
        return [item for items in self.styles.values() for item in items]


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def product_node(pid: str, title: str, variants=(), media=()) -> Dict[str, Any]:
    """Build a products/product node in the shape the queries return."""
    return {
        "id": pid,
        "title": title,
        "handle": title.lower().replace(" ", "-"),
        "variants": {"edges": [{"node": v} for v in variants]},
        "media": {"edges": [{"node": m} for m in media]},
    }


def variant_node(vid: str, sku: str, size: str = "", color: str = "", image_id: str | None = None) -> Dict[str, Any]:
    opts = []
    if size:
        opts.append({"name": "Size", "value": size})
    if color:
        opts.append({"name": "Color", "value": color})
    return {
        "id": vid,
        "sku": sku,
        "title": " / ".join(o["value"] for o in opts),
        "selectedOptions": opts,
        "image": {"id": image_id} if image_id else None,
    }


def media_node(mid: str, url: str, alt: str = "") -> Dict[str, Any]:
    return {"id": mid, "alt": alt, "image": {"url": url}}


def search_result(*nodes: Dict[str, Any]) -> Dict[str, Any]:
    return {"products": {"edges": [{"node": n} for n in nodes]}}


@pytest.fixture
def fake_shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
