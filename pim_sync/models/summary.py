# pim_sync/models/summary.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

AttachmentAction = Literal["REUSED_FROM_CACHE", "REUSED_FROM_LIBRARY", "UPLOADED_NEW", "FAILED"]
ReconcileOutcome = Literal["created", "updated", "skipped"]

_ACTION_BY_SOURCE: Dict[str, AttachmentAction] = {
    "cache": "REUSED_FROM_CACHE",
    "url_cache": "REUSED_FROM_CACHE",
    "library": "REUSED_FROM_LIBRARY",
    "upload": "UPLOADED_NEW",
}


class AttachmentLog(BaseModel):
    action: AttachmentAction
    reason: str = ""
    media_id: Optional[str] = None
    expected_products: int = 0
    attached_products: int = 0

    @staticmethod
    def action_for(source: str) -> AttachmentAction:
        return _ACTION_BY_SOURCE.get(source, "UPLOADED_NEW")


class ReconcileResult(BaseModel):
    outcome: ReconcileOutcome
    target_product_ids: List[str] = Field(default_factory=list)
    variants_created: int = 0
    variants_updated: int = 0
    categories_assigned: int = 0
    variant_ids_by_sku: Dict[str, str] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)


class RunSummary(BaseModel):
    """Accumulates counts and errors for one import run."""
    products_created: int = 0
    products_updated: int = 0
    products_skipped: int = 0
    variants_created: int = 0
    variants_updated: int = 0
    images_uploaded: int = 0
    images_attached: int = 0
    variant_images_assigned: int = 0
    metafields_created: int = 0
    categories_assigned: int = 0
    processed_styles: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    image_processing_log: Dict[str, AttachmentLog] = Field(default_factory=dict)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def absorb(self, result: ReconcileResult) -> None:
        if result.outcome == "created":
            self.products_created += len(result.target_product_ids) or 1
        elif result.outcome == "updated":
            self.products_updated += len(result.target_product_ids) or 1
        else:
            self.products_skipped += 1
        self.variants_created += result.variants_created
        self.variants_updated += result.variants_updated
        self.categories_assigned += result.categories_assigned
        self.errors.extend(result.errors)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()
