"""
Redis caching service for event listings.

CACHING STRATEGY
================

What we cache:
  - Event listing responses (paginated, JSON-serialized), including each
    event's capacity summary
  - Key pattern: "events:list:page={page}&size={size}&upcoming={upcoming}"

Invalidation:
  - Any counter movement (reserve, cancel, sweep) and any event or
    capacity configuration change drops every listing key
  - TTL (REDIS_CACHE_TTL) as safety net
  - Keys share the EVENT_LIST_PREFIX so one SCAN finds them all

Not cached:
  - Capacity status and single-event reads; reservations need real-time
    counters and the database row is the only authority for reserve()
"""

import json
from typing import Optional

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_cache_operation
from app.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()

EVENT_LIST_PREFIX = "events:list:"
INVALIDATION_BATCH = 100


def _make_event_list_key(page: int, page_size: int, upcoming_only: bool) -> str:
    return f"{EVENT_LIST_PREFIX}page={page}&size={page_size}&upcoming={upcoming_only}"


async def get_cached_events(page: int, page_size: int, upcoming_only: bool) -> Optional[dict]:
    """Cached listing page, or None on miss or when Redis is unavailable."""
    client = await get_redis()
    if not client:
        return None

    key = _make_event_list_key(page, page_size, upcoming_only)
    try:
        data = await client.get(key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data is None:
        logger.debug("cache_miss", key=key)
        return None
    logger.debug("cache_hit", key=key)
    return json.loads(data)


async def set_cached_events(
    page: int,
    page_size: int,
    upcoming_only: bool,
    data: dict,
) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_event_list_key(page, page_size, upcoming_only)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        record_cache_operation("set", hit=True)
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_event_cache() -> None:
    """Drop every cached listing page. Unlinks keys in batches."""
    client = await get_redis()
    if not client:
        return

    deleted = 0
    batch: list[str] = []
    try:
        async for key in client.scan_iter(match=f"{EVENT_LIST_PREFIX}*", count=INVALIDATION_BATCH):
            batch.append(key)
            if len(batch) >= INVALIDATION_BATCH:
                deleted += await client.unlink(*batch)
                batch.clear()
        if batch:
            deleted += await client.unlink(*batch)
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e), keys_deleted=deleted)


async def get_cache_stats() -> dict:
    """Redis hit/miss counters for /health."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        listing_keys = 0
        async for _ in client.scan_iter(match=f"{EVENT_LIST_PREFIX}*", count=INVALIDATION_BATCH):
            listing_keys += 1
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
            "cached_listing_pages": listing_keys,
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
