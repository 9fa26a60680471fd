import asyncio
from decimal import Decimal

from fakes import FakeClock, ScriptedProvider, SleepRecorder

from pricefeed.cache import PriceCache
from pricefeed.config.settings import CacheSettings
from pricefeed.providers.errors import (
    MalformedResponse,
    NetworkError,
    ProviderTimeout,
    RateLimited,
    Unconfigured,
)
from pricefeed.providers.retry import RetryExecutor
from pricefeed.providers.selector import ChainLink, PriceResolver, ResolveKey, resolve_key
from pricefeed.providers.yahoo import COMMODITY_FUTURES
from pricefeed.schemas.quote import AssetClass, AssetType, PriceQuote, QuoteSource


def build_resolver(chains, cache, sleep=None) -> PriceResolver:
    return PriceResolver(cache, chains, RetryExecutor(sleep=sleep or SleepRecorder()))


def test_resolve_key_maps_asset_types() -> None:
    assert resolve_key(AssetType.STOCK, " aapl") == ResolveKey(AssetClass.EQUITY, "AAPL")
    assert resolve_key(AssetType.MUTUAL_FUND, "VFIAX") == ResolveKey(AssetClass.EQUITY, "VFIAX")
    assert resolve_key(AssetType.CRYPTO, "btc") == ResolveKey(AssetClass.CRYPTO, "BTC")
    assert resolve_key(AssetType.SILVER) == ResolveKey(AssetClass.COMMODITY, "SILVER")
    assert resolve_key(AssetType.INDEX, "^GSPC") == ResolveKey(AssetClass.EQUITY, "SPY")
    assert resolve_key(AssetType.INDEX, "nasdaq") == ResolveKey(AssetClass.EQUITY, "QQQ")
    assert resolve_key(AssetType.STOCK) is None
    assert resolve_key(AssetType.REAL_ESTATE, "HOUSE") is None


def test_first_success_wins_and_later_tiers_are_not_invoked() -> None:
    async def scenario():
        cache = PriceCache(CacheSettings())
        primary = ScriptedProvider(QuoteSource.YAHOO, cache, [NetworkError("yahoo", "HTTP 500")])
        secondary = ScriptedProvider(QuoteSource.FINNHUB, cache, ["231.5"])
        never = ScriptedProvider(QuoteSource.GOLDAPI, cache, ["1"])
        chains = {
            AssetClass.EQUITY: [
                ChainLink(primary, max_attempts=2),
                ChainLink(secondary, max_attempts=2),
                ChainLink(never),
            ]
        }
        quote = await build_resolver(chains, cache).resolve(AssetType.STOCK, "AAPL")
        return quote, primary, secondary, never

    quote, primary, secondary, never = asyncio.run(scenario())

    assert quote is not None
    assert quote.source is QuoteSource.FINNHUB
    assert quote.price == Decimal("231.5")
    assert primary.calls == ["AAPL", "AAPL"]
    assert secondary.calls == ["AAPL"]
    assert never.calls == []


def test_failing_provider_is_tried_exactly_max_attempts_with_backoff() -> None:
    sleep = SleepRecorder()

    async def scenario():
        cache = PriceCache(CacheSettings())
        failing = ScriptedProvider(QuoteSource.BINANCE, cache, [ProviderTimeout("binance", "slow")])
        backup = ScriptedProvider(QuoteSource.COINGECKO, cache, ["95000"])
        chains = {
            AssetClass.CRYPTO: [
                ChainLink(failing, max_attempts=3, initial_delay=1.0),
                ChainLink(backup, max_attempts=2, initial_delay=2.0),
            ]
        }
        quote = await build_resolver(chains, cache, sleep).resolve(AssetType.CRYPTO, "BTC")
        return quote, failing

    quote, failing = asyncio.run(scenario())

    assert quote is not None
    assert quote.source is QuoteSource.COINGECKO
    assert len(failing.calls) == 3
    assert sleep.delays == [1.0, 2.0]


def test_unconfigured_tier_is_skipped_without_retry() -> None:
    sleep = SleepRecorder()

    async def scenario():
        cache = PriceCache(CacheSettings())
        primary = ScriptedProvider(QuoteSource.YAHOO, cache, [MalformedResponse("yahoo", "no meta")])
        keyed = ScriptedProvider(QuoteSource.FINNHUB, cache, ["1"], requires_key=True, key=None)
        chains = {AssetClass.EQUITY: [ChainLink(primary, max_attempts=1), ChainLink(keyed, max_attempts=2)]}
        quote = await build_resolver(chains, cache, sleep).resolve(AssetType.STOCK, "AAPL")
        return quote, keyed

    quote, keyed = asyncio.run(scenario())

    assert keyed.calls == []
    assert sleep.delays == []
    assert quote is not None
    assert quote.source is QuoteSource.FALLBACK
    assert quote.price == Decimal("230")


def test_exhaustion_without_fallback_entry_returns_none() -> None:
    async def scenario():
        cache = PriceCache(CacheSettings())
        primary = ScriptedProvider(QuoteSource.BINANCE, cache, [RateLimited("binance")])
        chains = {AssetClass.CRYPTO: [ChainLink(primary, max_attempts=1)]}
        return await build_resolver(chains, cache).resolve(AssetType.CRYPTO, "NOTACOIN")

    assert asyncio.run(scenario()) is None


def test_fallback_quotes_are_not_cached() -> None:
    async def scenario():
        cache = PriceCache(CacheSettings())
        primary = ScriptedProvider(
            QuoteSource.BINANCE, cache, [NetworkError("binance"), NetworkError("binance"), "96000"]
        )
        resolver = build_resolver({AssetClass.CRYPTO: [ChainLink(primary, max_attempts=2)]}, cache)
        first = await resolver.resolve(AssetType.CRYPTO, "BTC")
        second = await resolver.resolve(AssetType.CRYPTO, "BTC")
        return first, second

    first, second = asyncio.run(scenario())

    assert first.source is QuoteSource.FALLBACK
    assert second.source is QuoteSource.BINANCE
    assert second.price == Decimal("96000")


def test_manual_asset_types_have_no_live_price() -> None:
    async def scenario():
        cache = PriceCache(CacheSettings())
        return [
            await build_resolver({}, cache).resolve(asset_type, "X")
            for asset_type in (
                AssetType.BOND,
                AssetType.REAL_ESTATE,
                AssetType.FIXED_DEPOSIT,
                AssetType.CASH,
                AssetType.OTHER,
            )
        ]

    assert asyncio.run(scenario()) == [None] * 5


def test_cache_hit_skips_providers_until_ttl_expires() -> None:
    clock = FakeClock()

    async def scenario():
        cache = PriceCache(CacheSettings(ttl_seconds=300), clock=clock)
        provider = ScriptedProvider(QuoteSource.YAHOO, cache, ["230", "232"])
        resolver = build_resolver({AssetClass.EQUITY: [ChainLink(provider)]}, cache)
        first = await resolver.resolve(AssetType.STOCK, "AAPL")
        cached = await resolver.resolve(AssetType.ETF, "aapl")
        clock.advance(301)
        refreshed = await resolver.resolve(AssetType.STOCK, "AAPL")
        return first, cached, refreshed, provider

    first, cached, refreshed, provider = asyncio.run(scenario())

    assert first.source is QuoteSource.YAHOO
    assert cached.source is QuoteSource.CACHE
    assert cached.price == Decimal("230")
    assert refreshed.source is QuoteSource.YAHOO
    assert refreshed.price == Decimal("232")
    assert len(provider.calls) == 2


def test_commodity_uses_futures_alias_and_class_cache_key() -> None:
    async def scenario():
        cache = PriceCache(CacheSettings())
        yahoo = ScriptedProvider(QuoteSource.YAHOO, cache, ["2901.4"])
        chains = {AssetClass.COMMODITY: [ChainLink(yahoo, max_attempts=1, aliases=COMMODITY_FUTURES)]}
        quote = await build_resolver(chains, cache).resolve(AssetType.GOLD)
        return quote, yahoo, await cache.get("commodity:GOLD")

    quote, yahoo, cached = asyncio.run(scenario())

    assert quote.source is QuoteSource.YAHOO
    assert yahoo.calls == ["GC=F"]
    assert cached is not None


def test_commodity_falls_back_to_constant() -> None:
    async def scenario():
        cache = PriceCache(CacheSettings())
        yahoo = ScriptedProvider(QuoteSource.YAHOO, cache, [NetworkError("yahoo")])
        gold = ScriptedProvider(QuoteSource.GOLDAPI, cache, [Unconfigured("goldapi")])
        chains = {AssetClass.COMMODITY: [ChainLink(yahoo, max_attempts=1), ChainLink(gold, max_attempts=1)]}
        return await build_resolver(chains, cache).resolve(AssetType.PLATINUM)

    quote = asyncio.run(scenario())

    assert quote.source is QuoteSource.FALLBACK
    assert quote.price == Decimal("1000")


def test_index_is_priced_through_proxy_fund() -> None:
    async def scenario():
        cache = PriceCache(CacheSettings())
        yahoo = ScriptedProvider(QuoteSource.YAHOO, cache, ["441.2"])
        quote = await build_resolver({AssetClass.EQUITY: [ChainLink(yahoo)]}, cache).resolve(
            AssetType.INDEX, "^DJI"
        )
        return quote, yahoo

    quote, yahoo = asyncio.run(scenario())

    assert yahoo.calls == ["DIA"]
    assert quote.price == Decimal("441.2")


def test_concurrent_cold_lookups_share_one_fetch() -> None:
    class SlowProvider(ScriptedProvider):
        async def fetch(self, symbol):
            await asyncio.sleep(0.01)
            return await super().fetch(symbol)

    async def scenario():
        cache = PriceCache(CacheSettings())
        provider = SlowProvider(QuoteSource.YAHOO, cache, ["230"])
        resolver = build_resolver({AssetClass.EQUITY: [ChainLink(provider)]}, cache)
        quotes = await asyncio.gather(*(resolver.resolve(AssetType.STOCK, "AAPL") for _ in range(5)))
        return quotes, provider

    quotes, provider = asyncio.run(scenario())

    assert provider.calls == ["AAPL"]
    assert all(quote.price == Decimal("230") for quote in quotes)


def test_waiters_recover_when_owning_lookup_is_cancelled() -> None:
    class StallingProvider(ScriptedProvider):
        async def fetch(self, symbol):
            if not self.calls:
                self.calls.append(symbol)
                await asyncio.Event().wait()
            return await super().fetch(symbol)

    async def scenario():
        cache = PriceCache(CacheSettings())
        provider = StallingProvider(QuoteSource.YAHOO, cache, ["230"])
        resolver = build_resolver({AssetClass.EQUITY: [ChainLink(provider)]}, cache)
        owner = asyncio.create_task(resolver.resolve(AssetType.STOCK, "AAPL"))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(resolver.resolve(AssetType.STOCK, "AAPL"))
        await asyncio.sleep(0)
        owner.cancel()
        owner_outcome, waiter_quote = await asyncio.gather(owner, waiter, return_exceptions=True)
        return owner_outcome, waiter_quote, provider

    owner_outcome, waiter_quote, provider = asyncio.run(scenario())

    assert isinstance(owner_outcome, asyncio.CancelledError)
    assert waiter_quote.price == Decimal("230")
    assert waiter_quote.source is QuoteSource.YAHOO
    assert provider.calls == ["AAPL", "AAPL"]


def test_cancelled_waiter_still_sees_its_own_cancellation() -> None:
    class StallingProvider(ScriptedProvider):
        async def fetch(self, symbol):
            self.calls.append(symbol)
            await asyncio.Event().wait()

    async def scenario():
        cache = PriceCache(CacheSettings())
        provider = StallingProvider(QuoteSource.YAHOO, cache, ["230"])
        resolver = build_resolver({AssetClass.EQUITY: [ChainLink(provider)]}, cache)
        owner = asyncio.create_task(resolver.resolve(AssetType.STOCK, "AAPL"))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(resolver.resolve(AssetType.STOCK, "AAPL"))
        await asyncio.sleep(0)
        waiter.cancel()
        waiter_outcome = (await asyncio.gather(waiter, return_exceptions=True))[0]
        owner_still_running = not owner.done()
        owner.cancel()
        await asyncio.gather(owner, return_exceptions=True)
        return waiter_outcome, owner_still_running, provider

    waiter_outcome, owner_still_running, provider = asyncio.run(scenario())

    assert isinstance(waiter_outcome, asyncio.CancelledError)
    assert owner_still_running
    assert provider.calls == ["AAPL"]


def test_lookup_finished_during_miss_is_served_from_cache() -> None:
    class RacingCache(PriceCache):
        """Reports one stale miss, as if another walk stored the quote right after."""

        def __init__(self, config):
            super().__init__(config)
            self.stale_misses = 1

        async def get(self, key):
            if self.stale_misses:
                self.stale_misses -= 1
                return None
            return await super().get(key)

    async def scenario():
        cache = RacingCache(CacheSettings())
        await cache.put("equity:AAPL", PriceQuote(price=Decimal("229"), source=QuoteSource.YAHOO))
        provider = ScriptedProvider(QuoteSource.YAHOO, cache, ["230"])
        resolver = build_resolver({AssetClass.EQUITY: [ChainLink(provider)]}, cache)
        return await resolver.resolve(AssetType.STOCK, "AAPL"), provider

    quote, provider = asyncio.run(scenario())

    assert provider.calls == []
    assert quote.price == Decimal("229")
    assert quote.source is QuoteSource.CACHE
