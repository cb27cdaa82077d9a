"""
The rolling analytics collection period.

A single settings document holds ``{start_date, end_date}``. Every reader may
notice that the window has expired; the rollover is a compare-and-swap on the
old ``end_date`` so concurrent readers all end up with the same new window.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional

from pymongo.errors import DuplicateKeyError

from storefront.config import settings
from storefront.database import as_utc, get_db, utcnow

logger = logging.getLogger(__name__)

SETTINGS_COLLECTION = "settings"
PERIOD_KEY = "collection_period"


@dataclass(frozen=True)
class CollectionPeriod:
    start: datetime
    end: datetime

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    @property
    def length_days(self) -> int:
        return (self.end_date - self.start_date).days

    def to_dict(self) -> dict[str, Any]:
        return {"start_date": self.start.isoformat(), "end_date": self.end.isoformat()}


def _parse(doc: dict[str, Any]) -> CollectionPeriod:
    return CollectionPeriod(
        start=as_utc(datetime.fromisoformat(doc["start_date"])),
        end=as_utc(datetime.fromisoformat(doc["end_date"])),
    )


def new_period(now: datetime, days: Optional[int] = None) -> CollectionPeriod:
    days = settings.COLLECTION_PERIOD_DAYS if days is None else days
    return CollectionPeriod(start=now, end=now + timedelta(days=days))


async def get_period(now: Optional[datetime] = None) -> CollectionPeriod:
    """Current period, starting a fresh one at ``now`` if the last has ended."""
    now = as_utc(now or utcnow())
    db = await get_db()
    col = db[SETTINGS_COLLECTION]

    doc = await col.find_one({"_id": PERIOD_KEY})
    if doc is None:
        fresh = new_period(now)
        try:
            await col.insert_one({"_id": PERIOD_KEY, **fresh.to_dict()})
            logger.info("Started collection period %s -> %s", fresh.start, fresh.end)
            return fresh
        except DuplicateKeyError:
            # Another reader created it first
            return _parse(await col.find_one({"_id": PERIOD_KEY}))

    current = _parse(doc)
    if now <= current.end:
        return current

    fresh = new_period(now)
    result = await col.update_one(
        {"_id": PERIOD_KEY, "end_date": doc["end_date"]},
        {"$set": fresh.to_dict()},
    )
    if result.modified_count == 1:
        logger.info("Collection period rolled over: %s -> %s", fresh.start, fresh.end)
        return fresh
    return _parse(await col.find_one({"_id": PERIOD_KEY}))


async def reset_period(now: Optional[datetime] = None) -> CollectionPeriod:
    """Restart the window at ``now`` regardless of the current one."""
    fresh = new_period(as_utc(now or utcnow()))
    db = await get_db()
    await db[SETTINGS_COLLECTION].update_one({"_id": PERIOD_KEY}, {"$set": fresh.to_dict()}, upsert=True)
    logger.info("Collection period reset: %s -> %s", fresh.start, fresh.end)
    return fresh
