import asyncio

from conftest import FakeConnector, FakeShopify, RecordingSleep, media_node, product_node, search_result, variant_node
from pim_sync.models.catalog import TargetProduct
from pim_sync.models.records import ImageDescriptor
from pim_sync.sync.image_sync import import_images, products_for_image
from pim_sync.sync.runtime import SyncRuntime


def _rows():
    base = {"StyleCode": "STTU755", "StyleName": "Creator 2.0", "PhotoTypeCode": "MAIN", "PhotoStyle": "FLAT"}
    return [
        dict(base, FName="STTU755_C002_MAIN", HTMLPath="https://cdn.pim/STTU755_C002_MAIN.jpg", Color="Black", ColorCode="C002"),
        dict(base, FName="STTU755_C129_MAIN", HTMLPath="https://cdn.pim/STTU755_C129_MAIN.jpg", Color="Bubble Pink", ColorCode="C129"),
    ]


def _products():
    size_s = product_node("gid://shopify/Product/S", "Creator 2.0 - S", [
        variant_node("vs1", "STTU755C002S", "S", "Black - C002"),
        variant_node("vs2", "STTU755C001S", "S", "White - C001"),
    ])
    size_m = product_node("gid://shopify/Product/M", "Creator 2.0 - M", [
        variant_node("vm1", "STTU755C002M", "M", "Black - C002"),
    ])
    return size_s, size_m


def test_image_targets_follow_variant_colors():
    products = [TargetProduct.from_node(n) for n in _products()]
    black = ImageDescriptor(url="u", color="Black", color_code="C002")
    white = ImageDescriptor(url="u", color="White", color_code="C001")
    pink = ImageDescriptor(url="u", color="Bubble Pink", color_code="C129")
    plain = ImageDescriptor(url="u")
    assert [p.id for p in products_for_image(products, black)] == ["gid://shopify/Product/S", "gid://shopify/Product/M"]
    assert [p.id for p in products_for_image(products, white)] == ["gid://shopify/Product/S"]
    assert products_for_image(products, pink) == []
    assert len(products_for_image(products, plain)) == 2


def test_image_run_logs_each_image():
    size_s, size_m = _products()
    with_media = dict(size_s, media={"edges": [{"node": media_node("gid://shopify/MediaImage/1", "https://cdn.shopify.com/files/STTU755_C002_MAIN.jpg")}]})

    fake = FakeShopify({
        "products": search_result(size_s, size_m),
        "files": {"files": {"edges": []}},
        "fileCreate": {"fileCreate": {"files": [{"id": "gid://shopify/MediaImage/1", "image": {"url": "https://cdn.shopify.com/files/STTU755_C002_MAIN.jpg"}}], "userErrors": []}},
        "fileUpdate": {"fileUpdate": {"files": [{"id": "f"}], "userErrors": []}},
        "product": lambda v: {"product": with_media if v["id"].endswith("/S") else size_m},
        "productVariantAppendMedia": {"productVariantAppendMedia": {"productVariants": [{"id": "v"}], "userErrors": []}},
    })
    rt = SyncRuntime.build(client=fake, connector=FakeConnector(images={"STTU755": _rows()}), sleep=RecordingSleep())
    summary = asyncio.run(import_images(["STTU755"], runtime=rt))

    log = summary["image_processing_log"]
    assert log["STTU755_C002_MAIN"]["action"] == "UPLOADED_NEW"
    assert log["STTU755_C002_MAIN"]["expected_products"] == 2
    assert log["STTU755_C002_MAIN"]["attached_products"] == 2
    assert log["STTU755_C129_MAIN"]["action"] == "FAILED"
    assert summary["images_uploaded"] == 1
    assert summary["images_attached"] == 2
    assert summary["variant_images_assigned"] == 1
    assert summary["processed_styles"] == ["STTU755"]
    assert summary["errors"] == []
    alt = fake.calls_for("fileCreate")[0]["files"][0]["alt"]
    assert alt == "Black - C002"


def test_image_name_filter_and_missing_products():
    fake = FakeShopify({"products": search_result()})
    rt = SyncRuntime.build(client=fake, connector=FakeConnector(images={"STTU755": _rows()}), sleep=RecordingSleep())
    summary = asyncio.run(import_images(["STTU755"], image_names=["STTU755_C129_MAIN"], runtime=rt))
    assert summary["errors"] == ["No products found in catalog for style STTU755"]
    assert summary["image_processing_log"] == {}


def test_unavailable_images_are_reported():
    rt = SyncRuntime.build(client=FakeShopify(), connector=FakeConnector(unavailable={"STTU755"}), sleep=RecordingSleep())
    summary = asyncio.run(import_images(["STTU755"], runtime=rt))
    assert summary["errors"][0].startswith("Could not fetch images for style STTU755")
