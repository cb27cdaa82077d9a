import asyncio
from datetime import datetime, timedelta, timezone

from storefront.period import get_period, reset_period

T = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


async def test_first_read_starts_a_period(db):
    period = await get_period(T)
    assert period.start == T
    assert period.end == T + timedelta(days=30)
    assert period.length_days == 30
    assert await get_period(T + timedelta(days=5)) == period


async def test_expired_period_restarts_at_read_time(db):
    await get_period(T)
    later = T + timedelta(days=31)
    rolled = await get_period(later)
    assert rolled.start == later
    assert rolled.end == later + timedelta(days=30)
    stored = await db["settings"].find_one({"_id": "collection_period"})
    assert stored["start_date"] == later.isoformat()


async def test_end_boundary_is_still_current(db):
    first = await get_period(T)
    assert await get_period(first.end) == first


async def test_concurrent_rollover_converges(db):
    await get_period(T)
    readers = [get_period(T + timedelta(days=31, seconds=i)) for i in range(5)]
    results = await asyncio.gather(*readers)
    assert len(set(results)) == 1
    stored = await get_period(T + timedelta(days=32))
    assert stored == results[0]


async def test_concurrent_first_reads_converge(db):
    results = await asyncio.gather(*(get_period(T + timedelta(seconds=i)) for i in range(4)))
    assert len(set(results)) == 1


async def test_reset_period(db):
    await get_period(T)
    fresh = await reset_period(T + timedelta(days=3))
    assert fresh.start == T + timedelta(days=3)
    assert await get_period(T + timedelta(days=4)) == fresh
