# pim_sync/sync/components/metafields.py
# =======================================================
# Metafield schema + values
# - ensure_definitions(): query / create definitions, resolve type clashes
# - write_values(): best-effort metafieldsSet per owner, only for provisioned keys
# =======================================================
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pim_sync.config import settings
from pim_sync.shopify import queries
from pim_sync.shopify.graphql import edges, error_messages, user_errors
from pim_sync.sync.components.util import Sleeper, contains_any

logger = logging.getLogger("uvicorn.error")

PRODUCT = "PRODUCT"
VARIANT = "PRODUCTVARIANT"

PROPAGATION_WAIT_S = 5.0
SET_BATCH_SIZE = 25
EXISTS_MARKERS = ("already exists", "taken", "in use")


@dataclass(frozen=True)
class FieldDef:
    source: str
    key: str
    type: str
    owner: str


def _defs(owner: str, type_: str, *sources: str) -> Dict[str, FieldDef]:
    return {
        s: FieldDef(source=s, key=s.lower().replace(" ", "_"), type=type_, owner=owner)
        for s in sources
    }


# PIM field → metafield definition
FIELD_MAPPING: Dict[str, FieldDef] = {
    **_defs(PRODUCT, "multi_line_text_field", "LongDescription", "LongNote"),
    **_defs(PRODUCT, "single_line_text_field",
             "LanguageCode", "StyleCode", "Type", "Category", "Gender", "Fit", "Neckline", "Sleeve",
             "ShortNote", "Bleaching", "Washing", "Cleaning", "Drying", "Ironing",
             "StyleSegment", "ProductLifecycle", "CountryOfOrigin", "CategoryCode", "TypeCode", "StyleNotice"),
    **_defs(PRODUCT, "number_integer", "Gauge", "PiecesPerBox", "PiecesPerPolybag"),
    **_defs(PRODUCT, "boolean", "StylePublished"),
    **_defs(VARIANT, "number_integer",
             "GOTS", "OCS100", "OCSBlended", "OEKOTexRecycled", "CarbonNeutral", "FSC", "REACH",
             "GRS100poly", "GOTS85", "Published", "SequenceStyle", "NewStyle", "NewProduct", "NewItem",
             "Stock", "NewColor", "NewSize"),
    **_defs(VARIANT, "single_line_text_field",
             "SKU_Start_Date", "FitID", "GenderID", "CategoryID", "TypeID", "NecklineID", "SleeveID",
             "B2BSKUREF", "ColorCode", "SizeCodeNavision", "SizeCode", "Color", "ColorGroup", "HSCode"),
    **_defs(VARIANT, "number_decimal",
             "WeightPerUnit", "HalfChest", "BodyLength", "SleeveLength", "Width", "Length", "Waist"),
    **_defs(VARIANT, "url",
             "VEGAN_URL", "VEGANCertificatePDF", "Fairwear_URL", "FairwearCertificatePDF",
             "OEKOTexLogoURL", "OEKOTexCertificatePDF", "EcoClassLogoURL", "EcoClassCertificatePDF"),
}


class SchemaNotReadyError(Exception):
    """Raised when values are written without a provisioned schema."""


@dataclass(frozen=True)
class ResolvedField:
    namespace: str
    key: str
    type: str


@dataclass
class ProvisionedSchema:
    """Output of ensure_definitions(); the only way to obtain write targets."""
    fields: Dict[Tuple[str, str], ResolvedField] = field(default_factory=dict)
    created: int = 0
    existing: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def target(self, owner: str, source: str) -> Optional[ResolvedField]:
        return self.fields.get((owner, source))


@dataclass
class WriteResult:
    written: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


def serialize_value(value: Any, type_: str) -> Optional[str]:
    """String form Shopify expects for the type, or None when the value is unusable."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        if type_ == "number_integer":
            return str(int(float(str(value).replace(",", "."))))
        if type_ == "number_decimal":
            return str(float(str(value).replace(",", ".")))
    except ValueError:
        return None
    if type_ == "boolean":
        if isinstance(value, bool):
            return "true" if value else "false"
        return "true" if str(value).strip().lower() in {"1", "true", "yes", "y"} else "false"
    if type_ == "url":
        s = str(value)
        return s if s.startswith(("http://", "https://")) else None
    if type_ == "single_line_text_field":
        return " ".join(str(value).split())
    return str(value)


class MetafieldProvisioner:
    def __init__(
        self,
        client,
        *,
        sleep: Sleeper = asyncio.sleep,
        namespace: str | None = None,
        variant_namespace: str | None = None,
        fields: Dict[str, FieldDef] | None = None,
        propagation_wait: float = PROPAGATION_WAIT_S,
    ):
        self.client = client
        self._sleep = sleep
        self.namespaces = {
            PRODUCT: namespace or settings.METAFIELD_NAMESPACE,
            VARIANT: variant_namespace or settings.METAFIELD_VARIANT_NAMESPACE,
        }
        self.fields = dict(fields if fields is not None else FIELD_MAPPING)
        self.propagation_wait = propagation_wait

    # ---- definitions ----

    async def _existing_type(self, namespace: str, key: str, owner: str) -> Optional[str]:
        data = await self.client.execute(
            queries.METAFIELD_DEFINITIONS,
            {"namespace": namespace, "key": key, "ownerType": owner},
        )
        for node in edges(data, "metafieldDefinitions"):
            if node.get("namespace") == namespace and node.get("key") == key:
                return ((node.get("type") or {}).get("name")) or ""
        return None

    async def _create(self, namespace: str, key: str, type_: str, owner: str, name: str) -> Tuple[str, str]:
        """('created'|'existing'|'error', message)."""
        data = await self.client.execute(
            queries.METAFIELD_DEFINITION_CREATE,
            {"definition": {"namespace": namespace, "key": key, "type": type_, "ownerType": owner, "name": name}},
        )
        errs = user_errors(data, "metafieldDefinitionCreate")
        if not errs:
            return "created", ""
        msg = error_messages(errs)
        if contains_any(msg, EXISTS_MARKERS):
            return "existing", msg
        return "error", msg

    async def _ensure_key(self, namespace: str, key: str, type_: str, owner: str, name: str) -> Tuple[str, str]:
        current = await self._existing_type(namespace, key, owner)
        if current is None:
            return await self._create(namespace, key, type_, owner, name)
        if current == type_:
            return "existing", ""
        return "mismatch", f"{namespace}.{key} is {current}, wanted {type_}"

    async def _ensure_field(self, fdef: FieldDef, schema: ProvisionedSchema) -> None:
        ns = self.namespaces[fdef.owner]
        status, msg = await self._ensure_key(ns, fdef.key, fdef.type, fdef.owner, fdef.source)

        resolved = ResolvedField(ns, fdef.key, fdef.type)
        if status == "mismatch":
            logger.warning("[METAFIELDS] %s; trying versioned key", msg)
            status, msg = await self._ensure_key(ns, f"{fdef.key}_v2", fdef.type, fdef.owner, f"{fdef.source} v2")
            resolved = ResolvedField(ns, f"{fdef.key}_v2", fdef.type)
            if status in ("mismatch", "error"):
                text_type = "single_line_text_field"
                status, msg = await self._ensure_key(ns, f"{fdef.key}_as_text", text_type, fdef.owner, f"{fdef.source} (text)")
                resolved = ResolvedField(ns, f"{fdef.key}_as_text", text_type)

        if status == "created":
            schema.created += 1
        elif status == "existing":
            schema.existing += 1
        else:
            schema.errors.append(f"{ns}.{fdef.key} ({fdef.owner}): {msg}")
            logger.error("[METAFIELDS] definition failed for %s.%s: %s", ns, fdef.key, msg)
            return
        schema.fields[(fdef.owner, fdef.source)] = resolved

    async def ensure_definitions(self) -> ProvisionedSchema:
        schema = ProvisionedSchema()
        for fdef in self.fields.values():
            try:
                await self._ensure_field(fdef, schema)
            except Exception as e:
                schema.errors.append(f"{fdef.source}: {e}")
                logger.error("[METAFIELDS] definition %s raised: %s", fdef.source, e)
        logger.info(
            "[METAFIELDS] definitions: %d created, %d existing, %d errors",
            schema.created, schema.existing, len(schema.errors),
        )
        if schema.created:
            # new definitions need time to propagate before values reference them
            await self._sleep(self.propagation_wait)
        return schema

    # ---- values ----

    def values_for(self, owner: str, record: Dict[str, Any]) -> Dict[str, Any]:
        return {
            fdef.source: record.get(fdef.source)
            for fdef in self.fields.values()
            if fdef.owner == owner and record.get(fdef.source) not in (None, "")
        }

    async def write_values(
        self,
        schema: ProvisionedSchema,
        owner_id: str,
        values: Dict[str, Any],
        owner: str = PRODUCT,
    ) -> WriteResult:
        if not isinstance(schema, ProvisionedSchema):
            raise SchemaNotReadyError("metafield definitions must be ensured before writing values")

        result = WriteResult()
        inputs: List[Dict[str, Any]] = []
        for source, raw in values.items():
            target = schema.target(owner, source)
            if target is None:
                result.skipped += 1
                continue
            value = serialize_value(raw, target.type)
            if value is None:
                result.skipped += 1
                continue
            inputs.append({
                "ownerId": owner_id,
                "namespace": target.namespace,
                "key": target.key,
                "type": target.type,
                "value": value,
            })

        for i in range(0, len(inputs), SET_BATCH_SIZE):
            batch = inputs[i:i + SET_BATCH_SIZE]
            try:
                data = await self.client.execute(queries.METAFIELDS_SET, {"metafields": batch})
            except Exception as e:
                result.errors.append(f"{owner_id}: {e}")
                logger.error("[METAFIELDS] metafieldsSet raised for %s: %s", owner_id, e)
                continue
            errs = user_errors(data, "metafieldsSet")
            written = (data.get("metafieldsSet") or {}).get("metafields") or []
            if written:
                result.written += len(written)
            elif not errs:
                result.written += len(batch)
            for err in errs:
                result.errors.append(f"{owner_id} {'.'.join(map(str, err.get('field') or []))}: {err.get('message')}")
        if result.errors:
            logger.warning("[METAFIELDS] %s: %d written, %d errors", owner_id, result.written, len(result.errors))
        return result
