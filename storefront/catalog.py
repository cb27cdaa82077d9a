"""
Catalog store: products, offers and hero slider items.

Stock is only ever changed through ``reserve_stock`` / ``release_stock``,
which are single conditional updates on the catalog document. Each
reservation is recorded in the document's ``stock_reservations`` ledger under
the order id that made it, so replays of the same order are no-ops.
"""

from __future__ import annotations
import logging
import re
from typing import Any, Optional

from storefront.database import (
    create_document,
    delete_document,
    get_db,
    get_document,
    get_documents,
    to_object_id,
    update_document,
)
from storefront.errors import NotFound

logger = logging.getLogger(__name__)

KIND_LABELS = {"product": "Product", "offer": "Offer"}
RELATED_LIMIT = 6


def public(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if doc is not None:
        doc.pop("stock_reservations", None)
    return doc


def _collection(kind: str) -> str:
    if kind not in KIND_LABELS:
        raise ValueError(f"Unknown catalog kind {kind!r}")
    return kind


# -------------------- Products & offers --------------------

async def add_item(kind: str, data: dict[str, Any]) -> dict[str, Any]:
    doc = await create_document(_collection(kind), data)
    logger.info("Added %s %s", kind, doc["id"])
    return public(doc)


async def get_item(kind: str, item_id: str) -> dict[str, Any]:
    return public(await get_document(_collection(kind), item_id, KIND_LABELS[kind]))


async def update_item(kind: str, item_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return public(await update_document(_collection(kind), item_id, data, KIND_LABELS[kind]))


async def delete_item(kind: str, item_id: str) -> None:
    await delete_document(_collection(kind), item_id, KIND_LABELS[kind])
    logger.info("Deleted %s %s", kind, item_id)


async def list_products(
    q: Optional[str] = None,
    menu_category: Optional[str] = None,
    featured_category: Optional[str] = None,
    brand: Optional[str] = None,
) -> list[dict[str, Any]]:
    filt: dict[str, Any] = {}
    if q:
        filt["name"] = {"$regex": re.escape(q), "$options": "i"}
    if menu_category:
        filt["menu_category"] = menu_category
    if featured_category:
        filt["featured_category"] = featured_category
    if brand:
        filt["brand"] = {"$regex": f"^{re.escape(brand)}$", "$options": "i"}
    docs = await get_documents("product", filt, sort=[("created_at", -1)])
    return [public(d) for d in docs]


async def list_offers() -> list[dict[str, Any]]:
    docs = await get_documents("offer", sort=[("created_at", -1)])
    return [public(d) for d in docs]


def _group_key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


async def related_products(product_id: str) -> list[dict[str, Any]]:
    """Other products sharing the product group, compared case-insensitively."""
    product = await get_item("product", product_id)
    group = _group_key(product.get("product_group"))
    if not group:
        return []
    candidates = await get_documents("product", {"product_group": {"$exists": True}})
    related = [
        public(p) for p in candidates
        if p["id"] != product_id and _group_key(p.get("product_group")) == group
    ]
    return related[:RELATED_LIMIT]


# -------------------- Stock reservations --------------------

async def reserve_stock(kind: str, item_id: str, order_id: str, qty: int) -> bool:
    """Take ``qty`` units for ``order_id`` if that many are in stock.

    Returns False when stock is insufficient and raises ``NotFound`` when the
    record is gone. Reserving twice for the same order is a no-op that
    returns True.
    """
    db = await get_db()
    oid = to_object_id(item_id, KIND_LABELS[kind])
    result = await db[_collection(kind)].update_one(
        {"_id": oid, "stock": {"$gte": qty}, "stock_reservations.order_id": {"$ne": order_id}},
        {
            "$inc": {"stock": -qty, "sold": qty},
            "$push": {"stock_reservations": {"order_id": order_id, "qty": qty}},
        },
    )
    if result.modified_count == 1:
        return True
    doc = await db[kind].find_one({"_id": oid}, {"stock_reservations": 1})
    if doc is None:
        raise NotFound(f"{KIND_LABELS[kind]} {item_id} not found")
    return any(r.get("order_id") == order_id for r in doc.get("stock_reservations") or [])


async def release_stock(kind: str, item_id: str, order_id: str) -> bool:
    """Give back the units ``order_id`` reserved. Safe to call repeatedly."""
    db = await get_db()
    oid = to_object_id(item_id, KIND_LABELS[kind])
    doc = await db[_collection(kind)].find_one({"_id": oid, "stock_reservations.order_id": order_id})
    if not doc:
        return False
    qty = next(r["qty"] for r in doc["stock_reservations"] if r["order_id"] == order_id)
    result = await db[kind].update_one(
        {"_id": oid, "stock_reservations.order_id": order_id},
        {
            "$inc": {"stock": qty, "sold": -qty},
            "$pull": {"stock_reservations": {"order_id": order_id}},
        },
    )
    if result.modified_count:
        logger.info("Released %d unit(s) of %s %s held by order %s", qty, kind, item_id, order_id)
    return result.modified_count == 1


async def commit_reservation(kind: str, item_id: str, order_id: str) -> None:
    db = await get_db()
    await db[_collection(kind)].update_one(
        {"_id": to_object_id(item_id, KIND_LABELS[kind])},
        {"$pull": {"stock_reservations": {"order_id": order_id}}},
    )


async def open_reservations(kind: str) -> list[tuple[str, str, int]]:
    """(item_id, order_id, qty) for every reservation not yet committed."""
    db = await get_db()
    out = []
    async for doc in db[_collection(kind)].find({"stock_reservations": {"$exists": True}}):
        for entry in doc.get("stock_reservations") or []:
            out.append((str(doc["_id"]), entry["order_id"], entry["qty"]))
    return out


# -------------------- Slider --------------------

async def list_slider_items() -> list[dict[str, Any]]:
    return await get_documents("slider", sort=[("created_at", 1)])


async def add_slider_item(data: dict[str, Any]) -> dict[str, Any]:
    return await create_document("slider", data)


async def update_slider_item(item_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return await update_document("slider", item_id, data, "Slider item")


async def delete_slider_item(item_id: str) -> None:
    await delete_document("slider", item_id, "Slider item")

