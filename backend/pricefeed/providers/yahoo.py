from __future__ import annotations

from urllib.parse import quote as quote_path

from pricefeed.providers.base import PriceProvider, derive_change, to_decimal
from pricefeed.providers.errors import MalformedResponse
from pricefeed.schemas.quote import PriceQuote, QuoteSource

_CHART_PATH = "/v8/finance/chart/{symbol}"

# Front-month futures used as keyless proxies for spot metal prices.
COMMODITY_FUTURES = {
    "GOLD": "GC=F",
    "SILVER": "SI=F",
    "PLATINUM": "PL=F",
}


class YahooChartProvider(PriceProvider):
    source = QuoteSource.YAHOO
    timeout = 10.0

    def _build_url(self, symbol: str) -> str:
        base_url = self._config.yahoo_base_url.rstrip("/")
        return base_url + _CHART_PATH.format(symbol=quote_path(symbol, safe=""))

    async def fetch(self, symbol: str) -> PriceQuote:
        payload = await self._get_json(
            self._build_url(symbol), params={"interval": "1d", "range": "1d"}
        )
        chart = payload.get("chart") if isinstance(payload, dict) else None
        results = chart.get("result") if isinstance(chart, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise MalformedResponse(self.name, f"no chart result for {symbol}")
        meta = results[0].get("meta")
        if not isinstance(meta, dict):
            raise MalformedResponse(self.name, f"no chart meta for {symbol}")

        price = to_decimal(meta.get("regularMarketPrice"))
        if price is None or price <= 0:
            raise MalformedResponse(self.name, f"no regularMarketPrice for {symbol}")
        previous_close = to_decimal(meta.get("previousClose")) or to_decimal(
            meta.get("chartPreviousClose")
        )
        change, change_percent = derive_change(price, previous_close or price)
        return self._build_quote(price, change, change_percent)
