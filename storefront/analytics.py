"""
Visitor and product-view tracking plus the admin dashboard aggregates.

Visitor ids are anonymous tokens kept by the browser, so one person on two
devices counts twice and a shared device counts once. Events are stored once
per visitor per UTC day (and per product for views), which makes repeated
tracking calls on the same day no-ops.

Every aggregate is reported for four overlapping windows: today, the last
week ``[today - 7, today]``, the current collection period and the period of
the same length immediately before it. A record falls into every window that
contains its date.
"""

from __future__ import annotations
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

from pymongo.errors import PyMongoError

from storefront.config import settings
from storefront.database import as_utc, get_db, utcnow
from storefront.period import CollectionPeriod, get_period

logger = logging.getLogger(__name__)

VISITOR_EVENTS = "visitor_event"
PRODUCT_VIEW_EVENTS = "product_view_event"
BUCKETS = ("today", "last_week", "current_period", "last_period")
TOP_SOLD_LIMIT = 5

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_visitor_id(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"v_{int(now.timestamp() * 1000)}_{suffix}"


@dataclass(frozen=True)
class Windows:
    today: date
    last_week_start: date
    period_start: date
    period_end: date
    last_period_start: date
    last_period_end: date

    def buckets_for(self, day: date) -> list[str]:
        hit = []
        if day == self.today:
            hit.append("today")
        if self.last_week_start <= day <= self.today:
            hit.append("last_week")
        if self.period_start <= day <= self.period_end:
            hit.append("current_period")
        if self.last_period_start <= day <= self.last_period_end:
            hit.append("last_period")
        return hit

    @property
    def earliest(self) -> date:
        return min(self.last_week_start, self.last_period_start)

    def to_dict(self) -> dict[str, str]:
        return {
            "today": self.today.isoformat(),
            "last_week_start": self.last_week_start.isoformat(),
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "last_period_start": self.last_period_start.isoformat(),
            "last_period_end": self.last_period_end.isoformat(),
        }


def windows(period: CollectionPeriod, today: date) -> Windows:
    length = timedelta(days=period.length_days)
    return Windows(
        today=today,
        last_week_start=today - timedelta(days=7),
        period_start=period.start_date,
        period_end=period.end_date,
        last_period_start=period.start_date - length,
        last_period_end=period.start_date - timedelta(days=1),
    )


def _empty() -> dict[str, Any]:
    return {name: 0 for name in BUCKETS}


def _event_day(event: dict[str, Any]) -> Optional[date]:
    try:
        return date.fromisoformat(event["date"])
    except (KeyError, TypeError, ValueError):
        logger.debug("Skipping analytics event without a usable date: %r", event)
        return None


def visitor_stats(events: Iterable[dict[str, Any]], w: Windows) -> dict[str, int]:
    """Distinct visitor ids per window."""
    seen: dict[str, set[str]] = {name: set() for name in BUCKETS}
    for event in events:
        day = _event_day(event)
        if day is None:
            continue
        for name in w.buckets_for(day):
            seen[name].add(event["visitor_id"])
    return {name: len(ids) for name, ids in seen.items()}


def product_view_stats(events: Iterable[dict[str, Any]], w: Windows) -> dict[str, Any]:
    views = _empty()
    viewers: dict[str, set[str]] = {name: set() for name in BUCKETS}
    period_counts: dict[str, int] = {}
    for event in events:
        day = _event_day(event)
        if day is None:
            continue
        for name in w.buckets_for(day):
            views[name] += 1
            viewers[name].add(event["visitor_id"])
            if name == "current_period":
                pid = event["product_id"]
                period_counts[pid] = period_counts.get(pid, 0) + 1

    most_viewed = None
    best = 0
    # Strict comparison keeps the first product seen on ties
    for pid, count in period_counts.items():
        if count > best:
            best, most_viewed = count, pid

    return {
        "views": views,
        "unique_viewers": {name: len(ids) for name, ids in viewers.items()},
        "view_counts": period_counts,
        "most_viewed": most_viewed,
    }


def sales_stats(orders: Iterable[dict[str, Any]], w: Windows) -> dict[str, Any]:
    """Quantity and revenue of acknowledged orders, plus the period's best sellers.

    Orders still in ``placed`` are not sales yet. Best sellers are ranked by
    quantity, highest first, with equal quantities ordered by product id.
    """
    sales = _empty()
    revenue: dict[str, float] = {name: 0.0 for name in BUCKETS}
    sold: dict[str, dict[str, Any]] = {}

    for order in orders:
        if order.get("status") in ("placed", "pending"):
            continue
        day = as_utc(order["created_at"]).date()
        qty = sum(int(item["qty"]) for item in order.get("items", []))
        for name in w.buckets_for(day):
            sales[name] += qty
            revenue[name] += float(order.get("total", 0))
            if name == "current_period":
                for item in order.get("items", []):
                    entry = sold.setdefault(
                        item["product_id"],
                        {"product_id": item["product_id"], "product_name": item.get("product_name"), "qty": 0},
                    )
                    entry["qty"] += int(item["qty"])

    top = sorted(sold.values(), key=lambda e: (-e["qty"], e["product_id"]))[:TOP_SOLD_LIMIT]
    return {
        "sales": sales,
        "revenue": {name: round(value, 2) for name, value in revenue.items()},
        "top_sold": top,
    }


# -------------------- Tracking --------------------

async def track_visitor(visitor_id: str, now: Optional[datetime] = None) -> None:
    now = as_utc(now or utcnow())
    db = await get_db()
    day = now.date().isoformat()
    await db[VISITOR_EVENTS].update_one(
        {"visitor_id": visitor_id, "date": day},
        {"$setOnInsert": {"timestamp": int(now.timestamp() * 1000)}},
        upsert=True,
    )


async def track_product_view(product_id: str, visitor_id: str, now: Optional[datetime] = None) -> None:
    now = as_utc(now or utcnow())
    db = await get_db()
    day = now.date().isoformat()
    await db[PRODUCT_VIEW_EVENTS].update_one(
        {"product_id": product_id, "visitor_id": visitor_id, "date": day},
        {"$setOnInsert": {"timestamp": int(now.timestamp() * 1000)}},
        upsert=True,
    )


async def _events_since(collection: str, since: date) -> list[dict[str, Any]]:
    db = await get_db()
    return [e async for e in db[collection].find({"date": {"$gte": since.isoformat()}}, {"_id": 0})]


async def dashboard(now: Optional[datetime] = None) -> dict[str, Any]:
    now = as_utc(now or utcnow())
    period = await get_period(now)
    w = windows(period, now.date())
    db = await get_db()

    visitors = await _events_since(VISITOR_EVENTS, w.earliest)
    views = await _events_since(PRODUCT_VIEW_EVENTS, w.earliest)
    orders = [o async for o in db["order"].find({}, {"status": 1, "created_at": 1, "items": 1, "total": 1})]

    return {
        "period": period.to_dict(),
        "windows": w.to_dict(),
        "visitors": visitor_stats(visitors, w),
        "product_views": product_view_stats(views, w),
        **sales_stats(orders, w),
    }


async def cleanup_old_events(now: Optional[datetime] = None, retention_days: Optional[int] = None) -> dict[str, int]:
    """Drop events past the retention window. Failures are logged, not raised."""
    now = as_utc(now or utcnow())
    days = settings.ANALYTICS_RETENTION_DAYS if retention_days is None else retention_days
    cutoff = (now.date() - timedelta(days=days)).isoformat()
    removed = {}
    for collection in (VISITOR_EVENTS, PRODUCT_VIEW_EVENTS):
        try:
            db = await get_db()
            result = await db[collection].delete_many({"date": {"$lt": cutoff}})
            removed[collection] = result.deleted_count
        except PyMongoError:
            logger.exception("Cleanup of %s failed", collection)
            removed[collection] = 0
    if any(removed.values()):
        logger.info("Removed analytics events older than %s: %s", cutoff, removed)
    return removed
