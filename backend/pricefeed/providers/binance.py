from __future__ import annotations

from decimal import Decimal

from pricefeed.providers.base import PriceProvider
from pricefeed.providers.errors import MalformedResponse
from pricefeed.schemas.quote import PriceQuote, QuoteSource

QUOTE_ASSET = "USDT"

_TICKER_PATH = "/api/v3/ticker/24hr"


def to_pair(symbol: str) -> str:
    return f"{symbol.strip().upper()}{QUOTE_ASSET}"


def from_pair(pair: str) -> str:
    return pair.strip().upper().removesuffix(QUOTE_ASSET)


class BinanceTickerProvider(PriceProvider):
    source = QuoteSource.BINANCE
    timeout = 8.0

    async def fetch(self, symbol: str) -> PriceQuote:
        if symbol.strip().upper() == QUOTE_ASSET:
            return self._build_quote(Decimal("1"), Decimal("0"), Decimal("0"))

        payload = await self._get_json(
            f"{self._config.binance_base_url.rstrip('/')}{_TICKER_PATH}",
            params={"symbol": to_pair(symbol)},
        )
        if not isinstance(payload, dict):
            raise MalformedResponse(self.name, f"unexpected ticker payload for {symbol}")
        return self._build_quote(
            payload.get("lastPrice"),
            payload.get("priceChange"),
            payload.get("priceChangePercent"),
        )
