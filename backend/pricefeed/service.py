from __future__ import annotations

import asyncio
from typing import Iterable, Sequence

import httpx
from redis.asyncio import Redis

from pricefeed.batch import BatchOrchestrator
from pricefeed.cache import PriceCache
from pricefeed.candles import CandleFetcher
from pricefeed.config.settings import Settings
from pricefeed.providers.binance import BinanceTickerProvider
from pricefeed.providers.coingecko import CoinGeckoPriceProvider
from pricefeed.providers.finnhub import FinnhubQuoteProvider
from pricefeed.providers.goldapi import GoldApiProvider
from pricefeed.providers.retry import RetryExecutor
from pricefeed.providers.selector import ChainLink, PriceResolver
from pricefeed.providers.yahoo import COMMODITY_FUTURES, YahooChartProvider
from pricefeed.schemas.candles import Candle, ChartPeriod
from pricefeed.schemas.market import (
    CommodityQuotes,
    CryptoQuotes,
    IndexQuotes,
    MarketOverview,
    PriceSourceInfo,
    SymbolMatch,
)
from pricefeed.schemas.quote import AssetClass, AssetType, HoldingRef, PriceQuote, asset_class_of
from pricefeed.stream import LiveStreamManager, TickCallback
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)

_SOURCE_LABELS = {
    AssetClass.EQUITY: "Yahoo Finance",
    AssetClass.INDEX: "Yahoo Finance",
    AssetClass.CRYPTO: "Binance",
    AssetClass.COMMODITY: "Gold API",
}


def has_live_pricing(asset_type: AssetType) -> bool:
    return asset_class_of(asset_type) is not AssetClass.MANUAL


def price_source_label(asset_type: AssetType) -> str:
    return _SOURCE_LABELS.get(asset_class_of(asset_type), "Manual")


class PriceService:
    """Entry point for the rest of the app: lookups, batches, charts, streams."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        cache: PriceCache,
        retry: RetryExecutor | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.cache = cache
        self.retry = retry or RetryExecutor(
            max_attempts=settings.retry.max_attempts,
            initial_delay=settings.retry.initial_delay_seconds,
            max_retry_after=settings.retry.max_retry_after_seconds,
        )

        config = settings.providers
        self.yahoo = YahooChartProvider(client, cache, config)
        self.finnhub = FinnhubQuoteProvider(client, cache, config)
        self.binance = BinanceTickerProvider(client, cache, config)
        self.coingecko = CoinGeckoPriceProvider(client, cache, config)
        self.goldapi = GoldApiProvider(client, cache, config)
        for provider in (self.finnhub, self.goldapi):
            if not provider.configured:
                logger.info("%s API key not configured; tier disabled", provider.name)

        self.resolver = PriceResolver(cache, self._build_chains(), self.retry)
        self.batch = BatchOrchestrator(self.resolver, pacing_seconds=settings.batch_pacing_seconds)
        self.candles = CandleFetcher(client, config)

    def _build_chains(self) -> dict[AssetClass, list[ChainLink]]:
        return {
            AssetClass.EQUITY: [
                ChainLink(self.yahoo, max_attempts=2, initial_delay=1.0),
                ChainLink(self.finnhub, max_attempts=2, initial_delay=1.0),
            ],
            AssetClass.CRYPTO: [
                ChainLink(self.binance, max_attempts=2, initial_delay=1.0),
                ChainLink(self.coingecko, max_attempts=2, initial_delay=2.0),
            ],
            AssetClass.COMMODITY: [
                ChainLink(self.yahoo, max_attempts=1, aliases=COMMODITY_FUTURES),
                ChainLink(self.goldapi, max_attempts=1),
            ],
        }

    async def get_price(self, asset_type: AssetType, symbol: str | None = None) -> PriceQuote | None:
        return await self.resolver.resolve(asset_type, symbol)

    async def batch_get_prices(self, holdings: Sequence[HoldingRef]) -> dict[str, PriceQuote]:
        return await self.batch.batch_resolve(holdings)

    async def clear_cache(self) -> None:
        await self.cache.clear()

    def price_source(self, asset_type: AssetType) -> PriceSourceInfo:
        return PriceSourceInfo(
            asset_type=asset_type,
            live=has_live_pricing(asset_type),
            source=price_source_label(asset_type),
        )

    async def fetch_candles(self, symbol: str, period: ChartPeriod) -> list[Candle]:
        return await self.candles.fetch_candles(symbol, period)

    async def market_overview(self) -> MarketOverview:
        sp500, nasdaq, dow, gold, silver, bitcoin, ethereum = await asyncio.gather(
            self.resolver.resolve(AssetType.INDEX, "SP500"),
            self.resolver.resolve(AssetType.INDEX, "NASDAQ"),
            self.resolver.resolve(AssetType.INDEX, "DOW"),
            self.resolver.resolve(AssetType.GOLD),
            self.resolver.resolve(AssetType.SILVER),
            self.resolver.resolve(AssetType.CRYPTO, "BTC"),
            self.resolver.resolve(AssetType.CRYPTO, "ETH"),
        )
        return MarketOverview(
            indices=IndexQuotes(sp500=sp500, nasdaq=nasdaq, dow=dow),
            commodities=CommodityQuotes(gold=gold, silver=silver),
            crypto=CryptoQuotes(bitcoin=bitcoin, ethereum=ethereum),
        )

    async def search_symbols(self, query: str) -> list[SymbolMatch]:
        return await self.finnhub.search_symbols(query)

    async def search_crypto(self, query: str) -> list[SymbolMatch]:
        return await self.coingecko.search_crypto(query)

    def price_stream(self, symbols: Iterable[str], on_tick: TickCallback) -> LiveStreamManager:
        return LiveStreamManager(
            symbols,
            on_tick,
            url=self.settings.providers.binance_ws_url,
            reconnect_delay=self.settings.stream.reconnect_delay_seconds,
        )

    async def aclose(self) -> None:
        await self.client.aclose()


def build_price_service(settings: Settings, redis: Redis | None = None) -> PriceService:
    cache = PriceCache(settings.cache, redis)
    client = httpx.AsyncClient(follow_redirects=True)
    return PriceService(settings, client, cache)
