import asyncio
import json

import pytest

from conftest import FakeConnector, FakeShopify, RecordingSleep, media_node, product_node, search_result, variant_node
from pim_sync.config import settings
from pim_sync.sync.components.metafields import FIELD_MAPPING
from pim_sync.sync.product_sync import import_products
from pim_sync.sync.runtime import SyncRuntime


def bulk_create(variables):
    return {"productVariantsBulkCreate": {
        "productVariants": [
            {"id": f"gid://shopify/ProductVariant/{v['inventoryItem']['sku']}", "sku": v["inventoryItem"]["sku"]}
            for v in variables["variants"]
        ],
        "userErrors": [],
    }}


def base_shopify(**extra):
    responses = {
        "metafieldDefinitions": {"metafieldDefinitions": {"edges": []}},
        "metafieldDefinitionCreate": {"metafieldDefinitionCreate": {"createdDefinition": {"id": "d"}, "userErrors": []}},
        "metafieldsSet": {"metafieldsSet": {"metafields": [{"id": "m"}], "userErrors": []}},
        "products": search_result(),
        "productVariantsBulkCreate": bulk_create,
        "files": {"files": {"edges": []}},
        "fileUpdate": {"fileUpdate": {"files": [{"id": "f"}], "userErrors": []}},
        "productVariantAppendMedia": {"productVariantAppendMedia": {"productVariants": [{"id": "v"}], "userErrors": []}},
    }
    responses.update(extra)
    return FakeShopify(responses)


STYLE = {
    "StyleCode": "STTU755",
    "StyleName": "Creator 2.0",
    "StylePublished": 1,
    "TypeCode": "TEES",
    "Gender": "Unisex",
    "Variants": [
        {"Color": "Black", "ColorCode": "C002", "SizeCode": "S", "SizeCodeNavision": "S", "Published": 1,
         "Pictures": [{"HTMLPath": "https://cdn.pim/STTU755_C002_MAIN.jpg", "FName": "STTU755_C002_MAIN",
                       "ColorCode": "C002", "PhotoTypeCode": "MAIN"}]},
        {"Color": "White", "ColorCode": "C001", "SizeCode": "M", "SizeCodeNavision": "M", "Published": 1},
    ],
}


@pytest.fixture
def metafields_on(monkeypatch):
    monkeypatch.setattr(settings, "WRITE_METAFIELDS", True)


@pytest.fixture
def metafields_off(monkeypatch):
    monkeypatch.setattr(settings, "WRITE_METAFIELDS", False)


def test_full_style_import(metafields_on):
    created = product_node(
        "gid://shopify/Product/10", "Creator 2.0",
        variants=[
            variant_node("gid://shopify/ProductVariant/1", "STTU755C002S", "S", "Black - C002"),
            variant_node("gid://shopify/ProductVariant/2", "STTU755C001M", "M", "White - C001"),
        ],
        media=[media_node("gid://shopify/MediaImage/5", "https://cdn.shopify.com/files/STTU755_C002_MAIN.jpg")],
    )
    fake = base_shopify(
        productCreate={"productCreate": {"product": {"id": "gid://shopify/Product/10", "variants": {"edges": []}}, "userErrors": []}},
        fileCreate={"fileCreate": {"files": [{"id": "gid://shopify/MediaImage/5", "image": {"url": "https://cdn.shopify.com/files/STTU755_C002_MAIN.jpg"}}], "userErrors": []}},
        product={"product": created},
    )
    rt = SyncRuntime.build(client=fake, connector=FakeConnector({"STTU755": [STYLE]}), sleep=RecordingSleep())
    summary = asyncio.run(import_products(["STTU755"], runtime=rt))

    assert summary["errors"] == []
    assert summary["processed_styles"] == ["STTU755"]
    assert summary["products_created"] == 1
    assert summary["variants_created"] == 4
    assert summary["categories_assigned"] == 1
    assert summary["metafields_created"] == len(FIELD_MAPPING)
    assert summary["images_uploaded"] == 1
    assert summary["images_attached"] == 1
    assert summary["variant_images_assigned"] == 1

    # schema first, values after, both on product and variants
    roots = fake.roots()
    assert roots.index("metafieldDefinitionCreate") < roots.index("productCreate") < roots.index("metafieldsSet")
    owners = {m["ownerId"] for call in fake.calls_for("metafieldsSet") for m in call["metafields"]}
    assert "gid://shopify/Product/10" in owners
    assert "gid://shopify/ProductVariant/STTU755C002S" in owners


def test_unavailable_style_does_not_stop_the_run(metafields_off):
    fake = base_shopify(
        productCreate={"productCreate": {"product": {"id": "gid://shopify/Product/10", "variants": {"edges": []}}, "userErrors": []}},
    )
    style = dict(STYLE, Variants=[dict(STYLE["Variants"][1])])
    rt = SyncRuntime.build(
        client=fake,
        connector=FakeConnector({"STTU755": [style]}, unavailable={"STTU999"}),
        sleep=RecordingSleep(),
    )
    summary = asyncio.run(import_products(["STTU999", "STTU755"], runtime=rt))
    assert summary["processed_styles"] == ["STTU755"]
    assert summary["products_created"] == 1
    assert len(summary["errors"]) == 1
    assert summary["errors"][0].startswith("Could not fetch style STTU999")


def test_unexpected_exception_is_caught_per_style(metafields_off):
    fake = base_shopify(productCreate=RuntimeError("connection reset"))
    rt = SyncRuntime.build(client=fake, connector=FakeConnector({"STTU755": [STYLE]}), sleep=RecordingSleep())
    summary = asyncio.run(import_products(["STTU755"], runtime=rt))
    assert summary["processed_styles"] == []
    assert summary["errors"] == ["Error processing style STTU755: connection reset"]


def test_oversized_style_is_split_and_grouped(metafields_off):
    variants = [
        {"Color": f"Color{i}", "ColorCode": f"C{i:03d}", "SizeCode": s, "Published": 1}
        for i in range(30) for s in ("S", "M", "L", "XL")
    ]
    style = dict(STYLE, Variants=variants)

    def create(variables):
        size = variables["input"]["title"].rsplit(" - ", 1)[1]
        return {"productCreate": {"product": {"id": f"gid://shopify/Product/{size}", "variants": {"edges": []}}, "userErrors": []}}

    fake = base_shopify(
        productCreate=create,
        metaobjectDefinitionByType={"metaobjectDefinitionByType": {"id": "gid://shopify/MetaobjectDefinition/1"}},
        metaobjects={"metaobjects": {"edges": []}},
        metaobjectCreate={"metaobjectCreate": {"metaobject": {"id": "gid://shopify/Metaobject/7"}, "userErrors": []}},
        metaobjectUpdate={"metaobjectUpdate": {"metaobject": {"id": "gid://shopify/Metaobject/7"}, "userErrors": []}},
    )
    rt = SyncRuntime.build(client=fake, connector=FakeConnector({"STTU755": [style]}), sleep=RecordingSleep())
    summary = asyncio.run(import_products(["STTU755"], runtime=rt))

    assert summary["errors"] == []
    assert summary["products_created"] == 4
    assert summary["variants_created"] == 120
    roots = fake.roots()
    assert roots.index("metaobjectCreate") < roots.index("productCreate")
    titles = [c["input"]["title"] for c in fake.calls_for("productCreate")]
    assert titles == ["Creator 2.0 - S", "Creator 2.0 - M", "Creator 2.0 - L", "Creator 2.0 - XL"]
    last = fake.calls_for("metaobjectUpdate")[-1]["metaobject"]["fields"]
    ids = json.loads(next(f["value"] for f in last if f["key"] == "product_grouping"))
    assert ids == [f"gid://shopify/Product/{s}" for s in ("S", "M", "L", "XL")]


def test_grouping_link_failure_does_not_stop_other_sizes(metafields_on):
    variants = [
        {"Color": f"Color{i}", "ColorCode": f"C{i:03d}", "SizeCode": s, "Published": 1}
        for i in range(30) for s in ("S", "M", "L", "XL")
    ]
    style = dict(STYLE, Variants=variants)

    def create(variables):
        size = variables["input"]["title"].rsplit(" - ", 1)[1]
        return {"productCreate": {"product": {"id": f"gid://shopify/Product/{size}", "variants": {"edges": []}}, "userErrors": []}}

    ok = {"metaobjectUpdate": {"metaobject": {"id": "gid://shopify/Metaobject/7"}, "userErrors": []}}
    fake = base_shopify(
        productCreate=create,
        metaobjectDefinitionByType={"metaobjectDefinitionByType": {"id": "gid://shopify/MetaobjectDefinition/1"}},
        metaobjects={"metaobjects": {"edges": []}},
        metaobjectCreate={"metaobjectCreate": {"metaobject": {"id": "gid://shopify/Metaobject/7"}, "userErrors": []}},
        metaobjectUpdate=[
            {"metaobjectUpdate": {"metaobject": None, "userErrors": [{"field": ["fields"], "message": "Value is invalid"}]}},
            ok,
        ],
    )
    rt = SyncRuntime.build(client=fake, connector=FakeConnector({"STTU755": [style]}), sleep=RecordingSleep())
    summary = asyncio.run(import_products(["STTU755"], runtime=rt))

    assert summary["processed_styles"] == ["STTU755"]
    assert summary["products_created"] == 4
    assert summary["errors"] == [
        "Grouping link failed for STTU755 size S: metaobjectUpdate failed for Creator 2.0: Value is invalid",
    ]
    # the size product whose link failed is still finished
    owners = {m["ownerId"] for call in fake.calls_for("metafieldsSet") for m in call["metafields"]}
    assert "gid://shopify/Product/S" in owners
    last = fake.calls_for("metaobjectUpdate")[-1]["metaobject"]["fields"]
    ids = json.loads(next(f["value"] for f in last if f["key"] == "product_grouping"))
    assert ids == [f"gid://shopify/Product/{s}" for s in ("S", "M", "L", "XL")]
