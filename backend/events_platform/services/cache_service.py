"""
Read-through Redis cache for the public event endpoints.

Two kinds of entries live here:

  events:list:page={p}&size={n}&upcoming={bool}   serialized EventListResponse
  events:availability:{event_id}                  serialized AvailabilityResponse

Both are advisory. Registration re-evaluates availability under the event
row lock, so a stale "available" entry can only let someone attempt a
registration that then gets rejected; it can never oversell an event.

Anything that changes tickets_remaining or the published listing (register,
cancel, paid admission, event create/update/delete) calls
invalidate_event_cache() after its transaction commits. TTLs bound the
staleness when an invalidation is missed.

Redis is optional: with REDIS_ENABLED=false or an unreachable server every
read is a miss and every write is dropped, and requests carry on.
"""

import json
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from events_platform.core.config import get_settings
from events_platform.core.logging import get_logger
from events_platform.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

LIST_PREFIX = "events:list:"
AVAILABILITY_PREFIX = "events:availability:"

CACHE_ERRORS = (RedisError, OSError)

_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Lazily connect; None while caching is off or the server is down."""
    global _client
    if not settings.REDIS_ENABLED:
        return None
    if _client is not None:
        return _client

    candidate = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
        health_check_interval=30,
    )
    try:
        await candidate.ping()
    except CACHE_ERRORS as exc:
        logger.warning("redis_connection_failed", error=str(exc))
        await candidate.aclose()
        return None

    logger.info("redis_connected")
    _client = candidate
    return _client


async def close_redis() -> None:
    global _client
    client, _client = _client, None
    if client is not None:
        await client.aclose()


def make_event_list_key(page: int, page_size: int, upcoming_only: bool) -> str:
    return f"{LIST_PREFIX}page={page}&size={page_size}&upcoming={upcoming_only}"


def make_availability_key(event_id: int) -> str:
    return f"{AVAILABILITY_PREFIX}{event_id}"


async def _read(kind: str, key: str) -> Optional[dict[str, Any]]:
    client = await get_redis()
    if client is None:
        return None
    try:
        raw = await client.get(key)
    except CACHE_ERRORS as exc:
        logger.warning("cache_read_failed", key=key, error=str(exc))
        return None

    record_cache_operation(kind, hit=raw is not None)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        # Unreadable entry; treat as a miss and let the next write replace it
        logger.warning("cache_entry_corrupt", key=key)
        return None


async def _write(key: str, payload: dict[str, Any], ttl: int) -> None:
    client = await get_redis()
    if client is None:
        return
    try:
        await client.set(key, json.dumps(payload, default=str), ex=ttl)
    except CACHE_ERRORS as exc:
        logger.warning("cache_write_failed", key=key, error=str(exc))


async def get_cached_events(page: int, page_size: int, upcoming_only: bool) -> Optional[dict]:
    return await _read("event_list", make_event_list_key(page, page_size, upcoming_only))


async def set_cached_events(page: int, page_size: int, upcoming_only: bool, data: dict) -> None:
    await _write(make_event_list_key(page, page_size, upcoming_only), data, settings.REDIS_CACHE_TTL)


async def get_cached_availability(event_id: int) -> Optional[dict]:
    return await _read("availability", make_availability_key(event_id))


async def set_cached_availability(event_id: int, data: dict) -> None:
    await _write(make_availability_key(event_id), data, settings.AVAILABILITY_CACHE_TTL)


async def invalidate_event_cache(event_id: Optional[int] = None) -> None:
    """
    Forget every cached listing page, plus the availability entry for
    `event_id` when one is given.
    """
    client = await get_redis()
    if client is None:
        return

    try:
        stale = [key async for key in client.scan_iter(match=f"{LIST_PREFIX}*", count=200)]
        if event_id is not None:
            stale.append(make_availability_key(event_id))
        removed = await client.unlink(*stale) if stale else 0
    except CACHE_ERRORS as exc:
        logger.warning("cache_invalidation_failed", event_id=event_id, error=str(exc))
        return

    logger.debug("cache_invalidated", event_id=event_id, keys_removed=removed)


async def get_cache_stats() -> dict:
    """Hit/miss counters for /health."""
    client = await get_redis()
    if client is None:
        return {"status": "disabled"}

    try:
        stats = await client.info("stats")
        cached_keys = await client.dbsize()
    except CACHE_ERRORS as exc:
        return {"status": "error", "error": str(exc)}

    hits = stats.get("keyspace_hits", 0)
    misses = stats.get("keyspace_misses", 0)
    lookups = hits + misses
    return {
        "status": "connected",
        "hits": hits,
        "misses": misses,
        "hit_rate": round(100 * hits / lookups, 2) if lookups else 0.0,
        "keys": cached_keys,
    }
