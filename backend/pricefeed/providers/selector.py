from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from pricefeed.cache import PriceCache, cache_key
from pricefeed.providers.base import PriceProvider
from pricefeed.providers.errors import AllProvidersExhausted, ProviderError, RateLimited
from pricefeed.providers.fallback import fallback_quote
from pricefeed.providers.retry import RetryExecutor
from pricefeed.schemas.quote import (
    AssetClass,
    AssetType,
    PriceQuote,
    asset_class_of,
)
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)

# Indices are priced through a tradeable fund that tracks them.
INDEX_PROXIES = {
    "^GSPC": "SPY",
    "SP500": "SPY",
    "^IXIC": "QQQ",
    "NASDAQ": "QQQ",
    "^DJI": "DIA",
    "DOW": "DIA",
    "^RUT": "IWM",
    "RUSSELL2000": "IWM",
}


@dataclass(frozen=True)
class ChainLink:
    provider: PriceProvider
    max_attempts: int = 2
    initial_delay: float = 1.0
    aliases: Mapping[str, str] = field(default_factory=dict)

    def symbol_for(self, subject: str) -> str:
        return self.aliases.get(subject, subject)


@dataclass(frozen=True)
class ResolveKey:
    asset_class: AssetClass
    subject: str

    @property
    def cache_key(self) -> str:
        return cache_key(self.asset_class, self.subject)


def resolve_key(asset_type: AssetType, symbol: str | None = None) -> ResolveKey | None:
    """Map a holding to the chain and subject that price it, or ``None`` if unpriceable."""

    asset_class = asset_class_of(asset_type)
    if asset_class is AssetClass.MANUAL:
        return None
    if asset_class is AssetClass.COMMODITY:
        return ResolveKey(AssetClass.COMMODITY, asset_type.value.upper())

    normalized = (symbol or "").strip().upper()
    if not normalized:
        return None
    if asset_class is AssetClass.INDEX:
        return ResolveKey(AssetClass.EQUITY, INDEX_PROXIES.get(normalized, normalized))
    return ResolveKey(asset_class, normalized)


class PriceResolver:
    """Walk the provider chain for an asset class until one tier answers."""

    def __init__(
        self,
        cache: PriceCache,
        chains: Mapping[AssetClass, Sequence[ChainLink]],
        retry: RetryExecutor,
    ) -> None:
        self._cache = cache
        self._chains = chains
        self._retry = retry
        self._inflight: dict[str, asyncio.Future[PriceQuote | None]] = {}
        self._inflight_lock = asyncio.Lock()

    async def resolve(self, asset_type: AssetType, symbol: str | None = None) -> PriceQuote | None:
        key = resolve_key(asset_type, symbol)
        if key is None:
            return None
        return await self.resolve_key(key)

    async def resolve_key(self, key: ResolveKey) -> PriceQuote | None:
        cached = await self._cache.get(key.cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", key.cache_key)
            return cached

        async with self._inflight_lock:
            pending = self._inflight.get(key.cache_key)
            owner = pending is None or pending.cancelled()
            if owner:
                # A walk may have finished between the miss above and taking the lock.
                cached = await self._cache.get(key.cache_key)
                if cached is not None:
                    return cached
                pending = asyncio.get_running_loop().create_future()
                self._inflight[key.cache_key] = pending

        if not owner:
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if not pending.cancelled() or (current is not None and current.cancelling()):
                    raise
                logger.info("Shared lookup for %s was cancelled, resolving again", key.cache_key)
                return await self.resolve_key(key)

        try:
            result = await self._resolve_uncached(key)
        except asyncio.CancelledError:
            pending.cancel()
            raise
        except Exception as exc:
            pending.set_exception(exc)
            # Retrieve once so an unawaited future does not warn on shutdown.
            pending.exception()
            raise
        else:
            pending.set_result(result)
            return result
        finally:
            async with self._inflight_lock:
                if self._inflight.get(key.cache_key) is pending:
                    del self._inflight[key.cache_key]

    async def _resolve_uncached(self, key: ResolveKey) -> PriceQuote | None:
        try:
            return await self._walk_chain(key)
        except AllProvidersExhausted as exc:
            logger.warning("All live providers failed for %s: %s", key.cache_key, exc)

        quote = fallback_quote(key.asset_class, key.subject)
        if quote is not None:
            logger.warning("Using fallback price for %s", key.cache_key)
            return quote
        logger.error("All sources failed for %s, no fallback available", key.cache_key)
        return None

    async def _walk_chain(self, key: ResolveKey) -> PriceQuote:
        errors: list[ProviderError] = []
        for link in self._chains.get(key.asset_class, ()):
            symbol = link.symbol_for(key.subject)
            try:
                quote = await self._retry.execute(
                    lambda: link.provider.quote(symbol, key.cache_key),
                    max_attempts=link.max_attempts,
                    initial_delay=link.initial_delay,
                )
            except RateLimited as exc:
                logger.warning("%s rate limited for %s, trying next source", link.provider.name, symbol)
                errors.append(exc)
            except ProviderError as exc:
                logger.info("%s failed for %s (%s), trying next source", link.provider.name, symbol, exc)
                errors.append(exc)
            else:
                logger.info("Resolved %s via %s", key.cache_key, quote.source.value)
                return quote
        raise AllProvidersExhausted(key.cache_key, errors)
