import asyncio
import json

import pytest

from conftest import FakeShopify
from pim_sync.sync.components.grouping_reference import GroupingReferenceError, GroupingReferenceStore


def _entry(mid, name, ids):
    return {"node": {"id": mid, "fields": [
        {"key": "grouping_name", "value": name},
        {"key": "product_grouping", "value": json.dumps(ids)},
    ]}}


def test_existing_entry_is_reused_and_extended():
    fake = FakeShopify({
        "metaobjectDefinitionByType": {"metaobjectDefinitionByType": {"id": "gid://shopify/MetaobjectDefinition/1"}},
        "metaobjects": {"metaobjects": {"edges": [
            _entry("gid://shopify/Metaobject/1", "Other", []),
            _entry("gid://shopify/Metaobject/2", "Creator 2.0", ["gid://shopify/Product/S"]),
        ]}},
        "metaobjectUpdate": {"metaobjectUpdate": {"metaobject": {"id": "gid://shopify/Metaobject/2"}, "userErrors": []}},
    })
    store = GroupingReferenceStore(fake)

    async def scenario():
        ref = await store.ensure("Creator 2.0")
        await store.add_product(ref, "gid://shopify/Product/S")
        await store.add_product(ref, "gid://shopify/Product/M")
        await store.ensure("Creator 2.0")
        return ref

    ref = asyncio.run(scenario())
    assert ref.id == "gid://shopify/Metaobject/2"
    assert ref.product_ids == ["gid://shopify/Product/S", "gid://shopify/Product/M"]
    assert "metaobjectCreate" not in fake.roots()
    # definition looked up once per store
    assert len(fake.calls_for("metaobjectDefinitionByType")) == 1
    written = fake.calls_for("metaobjectUpdate")[-1]["metaobject"]["fields"]
    assert json.loads(written[1]["value"]) == ref.product_ids


def test_missing_definition_is_created():
    fake = FakeShopify({
        "metaobjectDefinitionByType": {"metaobjectDefinitionByType": None},
        "metaobjectDefinitionCreate": {"metaobjectDefinitionCreate": {"metaobjectDefinition": {"id": "d"}, "userErrors": []}},
        "metaobjects": {"metaobjects": {"edges": []}},
        "metaobjectCreate": {"metaobjectCreate": {"metaobject": {"id": "gid://shopify/Metaobject/9"}, "userErrors": []}},
    })
    ref = asyncio.run(GroupingReferenceStore(fake).ensure("Creator 2.0"))
    assert ref.id == "gid://shopify/Metaobject/9"
    assert ref.product_ids == []
    definition = fake.calls_for("metaobjectDefinitionCreate")[0]["definition"]
    assert [f["key"] for f in definition["fieldDefinitions"]] == ["grouping_name", "product_grouping"]


def test_create_failure_raises():
    fake = FakeShopify({
        "metaobjectDefinitionByType": {"metaobjectDefinitionByType": {"id": "d"}},
        "metaobjects": {"metaobjects": {"edges": []}},
        "metaobjectCreate": {"metaobjectCreate": {"metaobject": None, "userErrors": [{"field": ["type"], "message": "Type is invalid"}]}},
    })
    with pytest.raises(GroupingReferenceError):
        asyncio.run(GroupingReferenceStore(fake).ensure("Creator 2.0"))


def test_lookup_follows_pages():
    def metaobjects(variables):
        if variables.get("after") is None:
            return {"metaobjects": {
                "edges": [_entry(f"gid://shopify/Metaobject/{i}", f"Style {i}", []) for i in range(250)],
                "pageInfo": {"hasNextPage": True, "endCursor": "cursor-250"},
            }}
        assert variables["after"] == "cursor-250"
        return {"metaobjects": {
            "edges": [_entry("gid://shopify/Metaobject/900", "Creator 2.0", ["gid://shopify/Product/S"])],
            "pageInfo": {"hasNextPage": False, "endCursor": "cursor-251"},
        }}

    fake = FakeShopify({
        "metaobjectDefinitionByType": {"metaobjectDefinitionByType": {"id": "d"}},
        "metaobjects": metaobjects,
    })
    ref = asyncio.run(GroupingReferenceStore(fake).ensure("Creator 2.0"))
    assert ref.id == "gid://shopify/Metaobject/900"
    assert ref.product_ids == ["gid://shopify/Product/S"]
    assert len(fake.calls_for("metaobjects")) == 2
    assert "metaobjectCreate" not in fake.roots()
