from __future__ import annotations

import asyncio
import time
from typing import Callable

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from pricefeed.config.settings import CacheSettings
from pricefeed.schemas.quote import AssetClass, CacheEntry, PriceQuote
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)


def cache_key(asset_class: AssetClass, subject: str) -> str:
    return f"{asset_class.value}:{subject.strip().upper()}"


def asset_class_of_key(key: str) -> AssetClass | None:
    prefix, _, _ = key.partition(":")
    try:
        return AssetClass(prefix)
    except ValueError:
        return None


class PriceCache:
    """TTL-bounded quote cache, written through to a Redis hash.

    Expired entries are ignored on read rather than purged. The in-memory map
    is the source of truth for freshness; Redis only lets entries survive a
    restart and is loaded once, lazily, on first access.
    """

    def __init__(
        self,
        config: CacheSettings,
        store: Redis | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._store = store
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._loaded = store is None

    def ttl_for(self, key: str) -> float:
        if asset_class_of_key(key) is AssetClass.COMMODITY:
            return self._config.commodity_ttl_seconds
        return self._config.ttl_seconds

    async def get(self, key: str) -> PriceQuote | None:
        async with self._lock:
            await self._ensure_loaded()
            entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.cached_at > self.ttl_for(key):
            return None
        return entry.to_quote()

    async def put(self, key: str, quote: PriceQuote) -> None:
        entry = CacheEntry(
            price=quote.price,
            change=quote.change,
            change_percent=quote.change_percent,
            source=quote.source,
            observed_at=quote.observed_at,
            cached_at=self._clock(),
        )
        async with self._lock:
            await self._ensure_loaded()
            self._entries[key] = entry
            if self._store is not None:
                try:
                    await self._store.hset(self._config.redis_key, key, entry.model_dump_json())
                except (RedisError, OSError) as exc:
                    logger.warning("Failed to persist cached price for %s: %s", key, exc)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._loaded = True
            if self._store is not None:
                try:
                    await self._store.delete(self._config.redis_key)
                except (RedisError, OSError) as exc:
                    logger.warning("Failed to clear persisted price cache: %s", exc)

    async def _ensure_loaded(self) -> None:
        # Caller holds the lock.
        if self._loaded:
            return
        self._loaded = True
        try:
            raw_entries = await self._store.hgetall(self._config.redis_key)
        except (RedisError, OSError) as exc:
            logger.warning("Failed to load persisted price cache: %s", exc)
            return

        for raw_key, raw_value in raw_entries.items():
            key = raw_key.decode("utf-8") if isinstance(raw_key, bytes) else str(raw_key)
            try:
                self._entries.setdefault(key, CacheEntry.model_validate_json(raw_value))
            except ValidationError:
                logger.debug("Discarding unreadable cache entry %s", key)
        logger.info("Loaded %d cached prices", len(self._entries))
