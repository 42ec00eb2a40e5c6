# pim_sync/sync/components/grouping_reference.py
# Metaobject that ties split size-products of one style together.
from __future__ import annotations

import json
import logging
from typing import Optional

from pim_sync.models.records import GroupingReference
from pim_sync.shopify import queries
from pim_sync.shopify.graphql import dig, edges, error_messages, user_errors

logger = logging.getLogger("uvicorn.error")

GROUPING_TYPE = "product_grouping_option_1_entries"
NAME_FIELD = "grouping_name"
PRODUCTS_FIELD = "product_grouping"
LOOKUP_PAGE = 250


class GroupingReferenceError(Exception):
    pass


class GroupingReferenceStore:
    def __init__(self, client, *, metaobject_type: str = GROUPING_TYPE):
        self.client = client
        self.type = metaobject_type
        self._definition_ready = False

    async def ensure_definition(self) -> None:
        if self._definition_ready:
            return
        data = await self.client.execute(queries.METAOBJECT_DEFINITION, {"type": self.type})
        if not dig(data, "metaobjectDefinitionByType", "id"):
            data = await self.client.execute(queries.METAOBJECT_DEFINITION_CREATE, {
                "definition": {
                    "name": "Product grouping",
                    "type": self.type,
                    "displayNameKey": NAME_FIELD,
                    "fieldDefinitions": [
                        {"key": NAME_FIELD, "name": "Grouping name", "type": "single_line_text_field", "required": True},
                        {"key": PRODUCTS_FIELD, "name": "Product grouping", "type": "list.product_reference"},
                    ],
                },
            })
            errs = user_errors(data, "metaobjectDefinitionCreate")
            if errs and "taken" not in error_messages(errs).lower() and "already" not in error_messages(errs).lower():
                raise GroupingReferenceError(f"metaobject definition failed: {error_messages(errs)}")
            logger.info("[GROUPING] metaobject definition %s ready", self.type)
        self._definition_ready = True

    async def find(self, name: str) -> Optional[GroupingReference]:
        after = None
        while True:
            data = await self.client.execute(
                queries.METAOBJECTS_BY_TYPE, {"type": self.type, "first": LOOKUP_PAGE, "after": after},
            )
            for node in edges(data, "metaobjects"):
                fields = {f.get("key"): f.get("value") for f in node.get("fields") or []}
                if (fields.get(NAME_FIELD) or "").strip() == name.strip():
                    try:
                        ids = json.loads(fields.get(PRODUCTS_FIELD) or "[]")
                    except ValueError:
                        ids = []
                    return GroupingReference(id=node["id"], name=name, product_ids=list(ids))
            page = dig(data, "metaobjects", "pageInfo") or {}
            after = page.get("endCursor")
            if not page.get("hasNextPage") or not after:
                return None

    async def ensure(self, name: str) -> GroupingReference:
        """Reuse the grouping entry for this style name or create an empty one."""
        await self.ensure_definition()
        existing = await self.find(name)
        if existing is not None:
            logger.info("[GROUPING] reusing %s for %s (%d products)", existing.id, name, len(existing.product_ids))
            return existing
        data = await self.client.execute(queries.METAOBJECT_CREATE, {
            "metaobject": {"type": self.type, "fields": [{"key": NAME_FIELD, "value": name}]},
        })
        errs = user_errors(data, "metaobjectCreate")
        mo_id = dig(data, "metaobjectCreate", "metaobject", "id")
        if errs or not mo_id:
            raise GroupingReferenceError(f"metaobjectCreate failed for {name}: {error_messages(errs)}")
        logger.info("[GROUPING] created %s for %s", mo_id, name)
        return GroupingReference(id=mo_id, name=name)

    async def add_product(self, ref: GroupingReference, product_id: str) -> GroupingReference:
        if product_id not in ref.product_ids:
            ref.product_ids.append(product_id)
        await self._write(ref)
        return ref

    async def _write(self, ref: GroupingReference) -> None:
        data = await self.client.execute(queries.METAOBJECT_UPDATE, {
            "id": ref.id,
            "metaobject": {"fields": [
                {"key": NAME_FIELD, "value": ref.name},
                {"key": PRODUCTS_FIELD, "value": json.dumps(ref.product_ids)},
            ]},
        })
        errs = user_errors(data, "metaobjectUpdate")
        if errs:
            raise GroupingReferenceError(f"metaobjectUpdate failed for {ref.name}: {error_messages(errs)}")
