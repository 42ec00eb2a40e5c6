import asyncio

import pytest

from conftest import FakeShopify, RecordingSleep
from pim_sync.sync.components.metafields import (
    PRODUCT,
    VARIANT,
    FieldDef,
    MetafieldProvisioner,
    SchemaNotReadyError,
    serialize_value,
)

FIELDS = {
    "StyleCode": FieldDef("StyleCode", "stylecode", "single_line_text_field", PRODUCT),
    "Gauge": FieldDef("Gauge", "gauge", "number_integer", PRODUCT),
    "ColorCode": FieldDef("ColorCode", "colorcode", "single_line_text_field", VARIANT),
}


def _definitions(type_name=None, key="", namespace=""):
    if type_name is None:
        return {"metafieldDefinitions": {"edges": []}}
    return {"metafieldDefinitions": {"edges": [{"node": {"id": "d", "namespace": namespace, "key": key, "type": {"name": type_name}}}]}}


def _provisioner(fake, sleep):
    return MetafieldProvisioner(fake, sleep=sleep, namespace="ss", variant_namespace="ssv", fields=FIELDS)


def test_definitions_created_then_propagation_wait():
    fake = FakeShopify({
        "metafieldDefinitions": _definitions(),
        "metafieldDefinitionCreate": {"metafieldDefinitionCreate": {"createdDefinition": {"id": "x"}, "userErrors": []}},
    })
    sleep = RecordingSleep()
    schema = asyncio.run(_provisioner(fake, sleep).ensure_definitions())
    assert schema.ok
    assert schema.created == 3
    assert sleep.delays == [5.0]
    assert schema.target(VARIANT, "ColorCode").namespace == "ssv"
    owners = {c["definition"]["ownerType"] for c in fake.calls_for("metafieldDefinitionCreate")}
    assert owners == {"PRODUCT", "PRODUCTVARIANT"}


def test_existing_definitions_need_no_wait():
    def existing(variables):
        types = {"stylecode": "single_line_text_field", "gauge": "number_integer", "colorcode": "single_line_text_field"}
        return _definitions(types[variables["key"]], variables["key"], variables["namespace"])

    fake = FakeShopify({"metafieldDefinitions": existing})
    sleep = RecordingSleep()
    schema = asyncio.run(_provisioner(fake, sleep).ensure_definitions())
    assert schema.existing == 3
    assert schema.created == 0
    assert sleep.delays == []
    assert fake.calls_for("metafieldDefinitionCreate") == []


def test_type_mismatch_moves_to_versioned_key():
    def lookup(variables):
        if variables["key"] == "gauge":
            return _definitions("single_line_text_field", "gauge", variables["namespace"])
        return _definitions()

    fake = FakeShopify({
        "metafieldDefinitions": lookup,
        "metafieldDefinitionCreate": {"metafieldDefinitionCreate": {"createdDefinition": {"id": "x"}, "userErrors": []}},
    })
    schema = asyncio.run(_provisioner(fake, RecordingSleep()).ensure_definitions())
    assert schema.target(PRODUCT, "Gauge").key == "gauge_v2"
    assert schema.ok


def test_write_requires_provisioned_schema():
    prov = _provisioner(FakeShopify(), RecordingSleep())
    with pytest.raises(SchemaNotReadyError):
        asyncio.run(prov.write_values(None, "gid://shopify/Product/1", {"StyleCode": "X"}))


def test_write_only_provisioned_fields_and_collects_errors():
    fake = FakeShopify({
        "metafieldDefinitions": _definitions(),
        "metafieldDefinitionCreate": [
            {"metafieldDefinitionCreate": {"createdDefinition": {"id": "x"}, "userErrors": []}},
            {"metafieldDefinitionCreate": {"userErrors": [{"message": "Access denied"}]}},
            {"metafieldDefinitionCreate": {"createdDefinition": {"id": "y"}, "userErrors": []}},
        ],
        "metafieldsSet": {"metafieldsSet": {"metafields": [], "userErrors": [{"field": ["metafields", "0"], "message": "Value is invalid"}]}},
    })

    async def go():
        prov = _provisioner(fake, RecordingSleep())
        schema = await prov.ensure_definitions()
        res = await prov.write_values(schema, "gid://shopify/Product/1", {"StyleCode": "STTU755", "Gauge": "24"})
        return schema, res

    schema, res = asyncio.run(go())
    assert not schema.ok
    assert schema.target(PRODUCT, "Gauge") is None
    sent = fake.calls_for("metafieldsSet")[0]["metafields"]
    assert [m["key"] for m in sent] == ["stylecode"]
    assert res.skipped == 1
    assert res.errors == ["gid://shopify/Product/1 metafields.0: Value is invalid"]


def test_serialize_value_per_type():
    assert serialize_value("24,0", "number_integer") == "24"
    assert serialize_value("0.18", "number_decimal") == "0.18"
    assert serialize_value(1, "boolean") == "true"
    assert serialize_value("ftp://x", "url") is None
    assert serialize_value("  a \n b ", "single_line_text_field") == "a b"
    assert serialize_value("   ", "multi_line_text_field") is None
    assert serialize_value("n/a", "number_integer") is None
