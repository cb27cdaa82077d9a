"""
Order lifecycle: checkout, stock reservation, status changes and lookups.

Creating an order touches two collections without a transaction. Stock is
reserved first under the order id generated up front, then the order is
inserted, then the reservations are committed. A crash between those steps
leaves ledger entries behind that ``reconcile_reservations`` settles: it
commits entries whose order exists and releases the rest.
"""

from __future__ import annotations
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from storefront import catalog
from storefront.config import settings
from storefront.database import (
    as_utc,
    create_document,
    delete_document,
    get_db,
    get_document,
    get_documents,
    update_document,
    utcnow,
)
from storefront.errors import BackendUnavailable, InsufficientStock, NotFound, ValidationFailed
from storefront.pricing import PriceLine, quote, resolve_coupon
from storefront.schemas import DELIVERY_ZONES, ORDER_STATUSES, Order, migrate_order_status

logger = logging.getLogger(__name__)

COLLECTION = "order"


def order_out(doc: dict[str, Any]) -> dict[str, Any]:
    doc["status"] = migrate_order_status(doc.get("status", "placed"))
    return doc


def _require(value: Optional[str], label: str, missing: list[str]) -> str:
    value = (value or "").strip()
    if not value:
        missing.append(label)
    return value


async def _load_lines(items: list[dict[str, Any]]) -> list[tuple[dict[str, Any], dict[str, Any]]]:
    """Pair every requested line with its current catalog record."""
    loaded = []
    for line in items:
        kind = line.get("kind") or "product"
        record = await catalog.get_item(kind, line["product_id"])
        loaded.append((line, record))
    return loaded


def _snapshot(line: dict[str, Any], record: dict[str, Any]) -> dict[str, Any]:
    kind = line.get("kind") or "product"
    item = {
        "kind": kind,
        "product_id": record["id"],
        "product_name": record["title"] if kind == "offer" else record["name"],
        "price": float(record["combo_price"] if kind == "offer" else record["price"]),
        "qty": int(line["qty"]),
    }
    if line.get("color"):
        item["color"] = line["color"]
    if record.get("warranty"):
        item["warranty"] = record["warranty"]
    return item


async def price_items(items: list[dict[str, Any]], delivery_zone: str, coupon_code: Optional[str] = None):
    """Snapshot the catalog for ``items`` and price them. Nothing is written."""
    loaded = await _load_lines(items)
    snapshots = [_snapshot(line, record) for line, record in loaded]
    coupon = resolve_coupon(coupon_code, [record.get("coupon_codes") for _, record in loaded])
    priced = quote([PriceLine(s["price"], s["qty"]) for s in snapshots], delivery_zone, coupon)
    return snapshots, priced


def _reservation_totals(snapshots: list[dict[str, Any]]) -> dict[tuple[str, str], int]:
    # Two colors of the same product draw on one stock counter
    totals: dict[tuple[str, str], int] = {}
    for s in snapshots:
        key = (s["kind"], s["product_id"])
        totals[key] = totals.get(key, 0) + s["qty"]
    return totals


async def _release_all(reserved: list[tuple[str, str]], order_id: str) -> None:
    for kind, item_id in reserved:
        await catalog.release_stock(kind, item_id, order_id)


async def create_order(
    customer_name: str,
    phone: str,
    address: str,
    items: list[dict[str, Any]],
    delivery_zone: str,
    notes: Optional[str] = None,
    coupon_code: Optional[str] = None,
) -> dict[str, Any]:
    missing: list[str] = []
    customer_name = _require(customer_name, "customer_name", missing)
    phone = _require(phone, "phone", missing)
    address = _require(address, "address", missing)
    if not items:
        missing.append("items")
    if missing:
        raise ValidationFailed("Please fill in all required fields", details={"missing": missing})
    if delivery_zone not in DELIVERY_ZONES:
        raise ValidationFailed(f"Unknown delivery zone {delivery_zone!r}")

    snapshots, priced = await price_items(items, delivery_zone, coupon_code)

    order_id = ObjectId()
    reserved: list[tuple[str, str]] = []
    for (kind, item_id), qty in _reservation_totals(snapshots).items():
        try:
            ok = await catalog.reserve_stock(kind, item_id, str(order_id), qty)
        except PyMongoError as e:
            await _release_all(reserved, str(order_id))
            raise BackendUnavailable("Could not reserve stock") from e
        except NotFound:
            await _release_all(reserved, str(order_id))
            raise
        if not ok:
            await _release_all(reserved, str(order_id))
            logger.info("Order %s rejected: not enough stock for %s %s", order_id, kind, item_id)
            raise InsufficientStock(
                "Not enough stock to fulfil this order",
                details={"kind": kind, "product_id": item_id, "requested": qty},
            )
        reserved.append((kind, item_id))

    order = Order(
        customer_name=customer_name,
        phone=phone,
        address=address,
        items=snapshots,
        subtotal=priced.subtotal,
        delivery_charge=priced.delivery_charge,
        delivery_zone=delivery_zone,
        discount=priced.discount,
        total=priced.total,
        applied_coupon=priced.applied_coupon_record(),
        status="placed",
        notes=(notes or "").strip() or None,
    )
    try:
        saved = await create_document(COLLECTION, order.model_dump(exclude_none=True), doc_id=order_id)
    except PyMongoError as e:
        await _release_all(reserved, str(order_id))
        raise BackendUnavailable("Failed to place order. Please try again.") from e

    # The order is stored; ledger entries left here are committed by reconciliation
    try:
        for kind, item_id in reserved:
            await catalog.commit_reservation(kind, item_id, str(order_id))
    except PyMongoError as e:
        logger.warning("Order %s placed but committing its stock reservations failed: %s", order_id, e)
    logger.info("Order %s placed: %d line(s), total %.2f", order_id, len(snapshots), priced.total)
    return order_out(saved)


async def reconcile_reservations(now: Optional[datetime] = None, grace_seconds: Optional[int] = None) -> dict[str, int]:
    """Settle reservations left open by checkouts that died part way."""
    now = now or utcnow()
    grace = timedelta(seconds=settings.RESERVATION_GRACE_SECONDS if grace_seconds is None else grace_seconds)
    db = await get_db()
    counts = {"committed": 0, "released": 0}
    for kind in catalog.KIND_LABELS:
        for item_id, order_id, _qty in await catalog.open_reservations(kind):
            if now - ObjectId(order_id).generation_time < grace:
                continue
            if await db[COLLECTION].find_one({"_id": ObjectId(order_id)}, {"_id": 1}):
                await catalog.commit_reservation(kind, item_id, order_id)
                counts["committed"] += 1
            elif await catalog.release_stock(kind, item_id, order_id):
                counts["released"] += 1
    if counts["released"]:
        logger.warning("Released %d orphaned stock reservation(s)", counts["released"])
    return counts


async def get_order(order_id: str) -> dict[str, Any]:
    return order_out(await get_document(COLLECTION, order_id, "Order"))


async def track_order(code: str) -> dict[str, Any]:
    """Public lookup by the tracking code shown after checkout."""
    code = (code or "").strip().lower()
    if not code:
        raise ValidationFailed("Please enter your order ID")
    order = await get_order(code)
    # Statuses outside the canonical stages have no step
    status = order["status"]
    step = ORDER_STATUSES.index(status) if status in ORDER_STATUSES else -1
    return {
        "id": order["id"],
        "status": order["status"],
        "step": step,
        "steps": list(ORDER_STATUSES),
        "customer_name": order["customer_name"],
        "items": order["items"],
        "total": order["total"],
        "delivery_zone": order["delivery_zone"],
        "created_at": order["created_at"],
    }


async def update_status(order_id: str, status: str) -> dict[str, Any]:
    status = migrate_order_status(status)
    if status not in ORDER_STATUSES:
        raise ValidationFailed(f"Unknown order status {status!r}")
    updated = await update_document(COLLECTION, order_id, {"status": status}, "Order")
    logger.info("Order %s moved to %s", order_id, status)
    return order_out(updated)


async def delete_order(order_id: str) -> None:
    await delete_document(COLLECTION, order_id, "Order")
    logger.info("Order %s deleted", order_id)


async def list_orders(
    order_id: Optional[str] = None,
    product_name: Optional[str] = None,
    customer_name: Optional[str] = None,
    phone: Optional[str] = None,
    date_of_purchase: Optional[str] = None,
    status: Optional[str] = None,
) -> list[dict[str, Any]]:
    filt: dict[str, Any] = {}
    if product_name:
        filt["items.product_name"] = {"$regex": re.escape(product_name.strip()), "$options": "i"}
    if customer_name:
        filt["customer_name"] = {"$regex": re.escape(customer_name.strip()), "$options": "i"}
    if phone:
        filt["phone"] = {"$regex": re.escape(phone.strip())}
    docs = [order_out(d) for d in await get_documents(COLLECTION, filt, sort=[("created_at", -1)])]
    if status:
        docs = [d for d in docs if d["status"] == migrate_order_status(status)]
    if order_id:
        fragment = order_id.strip().lower()
        docs = [d for d in docs if fragment in d["id"].lower()]
    if date_of_purchase:
        docs = [d for d in docs if _purchase_date(d) == date_of_purchase]
    return docs


def _purchase_date(order: dict[str, Any]) -> str:
    return as_utc(order["created_at"]).date().isoformat()


async def pending_count() -> int:
    db = await get_db()
    return await db[COLLECTION].count_documents({"status": {"$in": ["placed", "pending"]}})
