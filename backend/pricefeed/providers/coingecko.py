from __future__ import annotations

from pricefeed.providers.base import PriceProvider, to_decimal
from pricefeed.providers.errors import MalformedResponse, ProviderError
from pricefeed.schemas.market import SymbolMatch
from pricefeed.schemas.quote import PriceQuote, QuoteSource
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)

_PRICE_PATH = "/api/v3/simple/price"
_SEARCH_PATH = "/api/v3/search"
_SEARCH_LIMIT = 10
_MIN_QUERY_LENGTH = 2

COIN_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDT": "tether",
    "BNB": "binancecoin",
    "XRP": "ripple",
    "ADA": "cardano",
    "DOGE": "dogecoin",
    "SOL": "solana",
    "DOT": "polkadot",
    "MATIC": "matic-network",
    "SHIB": "shiba-inu",
    "LTC": "litecoin",
    "AVAX": "avalanche-2",
    "LINK": "chainlink",
    "UNI": "uniswap",
}

# Offered when the search endpoint is unreachable or rate limited.
COMMON_CRYPTOS = [
    SymbolMatch(symbol="BTC", description="Bitcoin"),
    SymbolMatch(symbol="ETH", description="Ethereum"),
    SymbolMatch(symbol="USDT", description="Tether"),
    SymbolMatch(symbol="BNB", description="BNB"),
    SymbolMatch(symbol="XRP", description="XRP"),
    SymbolMatch(symbol="ADA", description="Cardano"),
    SymbolMatch(symbol="DOGE", description="Dogecoin"),
    SymbolMatch(symbol="SOL", description="Solana"),
    SymbolMatch(symbol="DOT", description="Polkadot"),
    SymbolMatch(symbol="MATIC", description="Polygon"),
    SymbolMatch(symbol="LTC", description="Litecoin"),
    SymbolMatch(symbol="AVAX", description="Avalanche"),
    SymbolMatch(symbol="LINK", description="Chainlink"),
    SymbolMatch(symbol="UNI", description="Uniswap"),
]


def coin_id(symbol: str) -> str:
    return COIN_IDS.get(symbol.strip().upper(), symbol.strip().lower())


class CoinGeckoPriceProvider(PriceProvider):
    source = QuoteSource.COINGECKO
    timeout = 10.0

    def _build_url(self, path: str) -> str:
        return f"{self._config.coingecko_base_url.rstrip('/')}{path}"

    async def fetch(self, symbol: str) -> PriceQuote:
        identifier = coin_id(symbol)
        payload = await self._get_json(
            self._build_url(_PRICE_PATH),
            params={"ids": identifier, "vs_currencies": "usd", "include_24hr_change": "true"},
        )
        coin = payload.get(identifier) if isinstance(payload, dict) else None
        if not isinstance(coin, dict):
            raise MalformedResponse(self.name, f"no price entry for {identifier}")

        price = to_decimal(coin.get("usd"))
        change_percent = to_decimal(coin.get("usd_24h_change"))
        change = None
        if price is not None and change_percent is not None:
            change = price * change_percent / 100
        return self._build_quote(price, change, change_percent)

    async def search_crypto(self, query: str) -> list[SymbolMatch]:
        query = query.strip()
        if len(query) < _MIN_QUERY_LENGTH:
            return []
        try:
            payload = await self._get_json(self._build_url(_SEARCH_PATH), params={"query": query})
        except ProviderError as exc:
            logger.warning("CoinGecko search failed for %r, using local list: %s", query, exc)
            return _search_local(query)

        coins = payload.get("coins") if isinstance(payload, dict) else None
        if not isinstance(coins, list):
            return []
        matches: list[SymbolMatch] = []
        for coin in coins[:_SEARCH_LIMIT]:
            if not isinstance(coin, dict) or not coin.get("symbol"):
                continue
            matches.append(
                SymbolMatch(symbol=str(coin["symbol"]).upper(), description=str(coin.get("name") or ""))
            )
        return matches


def _search_local(query: str) -> list[SymbolMatch]:
    needle = query.lower()
    return [
        match
        for match in COMMON_CRYPTOS
        if needle in match.symbol.lower() or needle in match.description.lower()
    ]
