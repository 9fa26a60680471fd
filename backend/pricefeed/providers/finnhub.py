from __future__ import annotations

from pricefeed.providers.base import PriceProvider
from pricefeed.providers.errors import MalformedResponse, ProviderError
from pricefeed.schemas.market import SymbolMatch
from pricefeed.schemas.quote import PriceQuote, QuoteSource
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)

_QUOTE_PATH = "/api/v1/quote"
_SEARCH_PATH = "/api/v1/search"
_SEARCHABLE_TYPES = {"Common Stock", "ETF"}
_SEARCH_LIMIT = 10


class FinnhubQuoteProvider(PriceProvider):
    source = QuoteSource.FINNHUB
    timeout = 10.0
    requires_key = True

    @property
    def api_key(self) -> str | None:
        return self._config.finnhub_api_key

    def _build_url(self, path: str) -> str:
        return f"{self._config.finnhub_base_url.rstrip('/')}{path}"

    async def fetch(self, symbol: str) -> PriceQuote:
        payload = await self._get_json(
            self._build_url(_QUOTE_PATH),
            params={"symbol": symbol, "token": self.api_key or ""},
        )
        if not isinstance(payload, dict):
            raise MalformedResponse(self.name, f"unexpected quote payload for {symbol}")
        # Finnhub answers unknown symbols with zeros rather than an error.
        return self._build_quote(payload.get("c"), payload.get("d"), payload.get("dp"))

    async def search_symbols(self, query: str) -> list[SymbolMatch]:
        query = query.strip()
        if not self.configured or not query:
            return []
        try:
            payload = await self._get_json(
                self._build_url(_SEARCH_PATH), params={"q": query, "token": self.api_key or ""}
            )
        except ProviderError as exc:
            logger.warning("Finnhub symbol search failed for %r: %s", query, exc)
            return []

        results = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            return []
        matches: list[SymbolMatch] = []
        for item in results:
            if not isinstance(item, dict) or item.get("type") not in _SEARCHABLE_TYPES:
                continue
            symbol = item.get("symbol")
            if not symbol:
                continue
            matches.append(
                SymbolMatch(symbol=str(symbol), description=str(item.get("description") or ""))
            )
            if len(matches) >= _SEARCH_LIMIT:
                break
        return matches
