from __future__ import annotations

from pricefeed.providers.base import PriceProvider
from pricefeed.providers.errors import MalformedResponse
from pricefeed.schemas.quote import PriceQuote, QuoteSource

METAL_CODES = {
    "GOLD": "XAU",
    "SILVER": "XAG",
    "PLATINUM": "XPT",
}


class GoldApiProvider(PriceProvider):
    source = QuoteSource.GOLDAPI
    timeout = 8.0
    requires_key = True

    @property
    def api_key(self) -> str | None:
        return self._config.gold_api_key

    async def fetch(self, symbol: str) -> PriceQuote:
        metal = METAL_CODES.get(symbol.strip().upper(), symbol.strip().upper())
        payload = await self._get_json(
            f"{self._config.goldapi_base_url.rstrip('/')}/api/{metal}/USD",
            headers={"x-access-token": self.api_key or ""},
        )
        if not isinstance(payload, dict):
            raise MalformedResponse(self.name, f"unexpected metals payload for {metal}")
        return self._build_quote(payload.get("price"), payload.get("ch"), payload.get("chp"))
