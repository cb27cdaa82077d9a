"""Requests for products that are not in the catalog."""

from __future__ import annotations
import logging
from typing import Any, Optional

from storefront.database import create_document, delete_document, get_documents, update_document
from storefront.errors import ValidationFailed
from storefront.pricing import delivery_charge_for
from storefront.schemas import CUSTOM_ORDER_STATUSES, DELIVERY_ZONES

logger = logging.getLogger(__name__)

COLLECTION = "customorder"

REQUIRED_FIELDS = ("customer_name", "phone", "product_name", "product_category")
OPTIONAL_TEXT_FIELDS = ("email", "product_description", "reference_link", "product_image_url", "additional_notes")


async def submit(fields: dict[str, Any]) -> dict[str, Any]:
    if fields.get("delivery_zone") not in DELIVERY_ZONES:
        raise ValidationFailed("Please select your delivery location", details={"missing": ["delivery_zone"]})

    missing = [name for name in REQUIRED_FIELDS if not str(fields.get(name) or "").strip()]
    budget = fields.get("expected_budget")
    if budget is None or float(budget) <= 0:
        missing.append("expected_budget")
    if missing:
        raise ValidationFailed("Please fill in all required fields", details={"missing": missing})

    data: dict[str, Any] = {name: str(fields[name]).strip() for name in REQUIRED_FIELDS}
    data.update({
        "expected_budget": float(budget),
        "quantity": int(fields.get("quantity") or 1),
        "urgency_level": fields.get("urgency_level") or "normal",
        "delivery_zone": fields["delivery_zone"],
        "delivery_charge": delivery_charge_for(fields["delivery_zone"]),
        "status": "pending",
    })
    # Empty optional fields are left out of the document entirely
    for name in OPTIONAL_TEXT_FIELDS:
        value = str(fields.get(name) or "").strip()
        if value:
            data[name] = value

    saved = await create_document(COLLECTION, data)
    logger.info("Custom order %s submitted for %r", saved["id"], data["product_name"])
    return saved


async def list_custom_orders(status: Optional[str] = None) -> list[dict[str, Any]]:
    filt = {"status": status} if status else {}
    return await get_documents(COLLECTION, filt, sort=[("created_at", -1)])


async def update_status(order_id: str, status: str) -> dict[str, Any]:
    if status not in CUSTOM_ORDER_STATUSES:
        raise ValidationFailed(f"Unknown custom order status {status!r}")
    updated = await update_document(COLLECTION, order_id, {"status": status}, "Custom order")
    logger.info("Custom order %s moved to %s", order_id, status)
    return updated


async def set_admin_notes(order_id: str, notes: str) -> dict[str, Any]:
    return await update_document(COLLECTION, order_id, {"admin_notes": (notes or "").strip()}, "Custom order")


async def delete(order_id: str) -> None:
    await delete_document(COLLECTION, order_id, "Custom order")
    logger.info("Custom order %s deleted", order_id)
