from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from pricefeed.cache import PriceCache
from pricefeed.config.settings import ProviderSettings
from pricefeed.providers.errors import (
    MalformedResponse,
    NetworkError,
    ProviderTimeout,
    RateLimited,
    Unconfigured,
)
from pricefeed.schemas.quote import PriceQuote, QuoteSource
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)


def to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None
    if not result.is_finite():
        return None
    return result


def derive_change(
    price: Decimal, previous_close: Decimal | None
) -> tuple[Decimal | None, Decimal | None]:
    if previous_close is None:
        return None, None
    change = price - previous_close
    if previous_close <= 0:
        return change, Decimal("0")
    return change, change / previous_close * 100


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class PriceProvider(ABC):
    """One external price source.

    Subclasses implement :meth:`fetch`; :meth:`quote` adds the key check and
    writes successful results through to the cache.
    """

    source: QuoteSource
    timeout: float = 10.0
    requires_key: bool = False

    def __init__(
        self, client: httpx.AsyncClient, cache: PriceCache, config: ProviderSettings
    ) -> None:
        self._client = client
        self._cache = cache
        self._config = config

    @property
    def name(self) -> str:
        return self.source.value

    @property
    def api_key(self) -> str | None:
        return None

    @property
    def configured(self) -> bool:
        return not self.requires_key or bool(self.api_key)

    async def quote(self, symbol: str, cache_key: str) -> PriceQuote:
        if not self.configured:
            raise Unconfigured(self.name)
        quote = await self.fetch(symbol)
        await self._cache.put(cache_key, quote)
        return quote

    @abstractmethod
    async def fetch(self, symbol: str) -> PriceQuote:
        raise NotImplementedError

    async def _get_json(
        self,
        url: str,
        *,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        try:
            response = await self._client.get(
                url, params=params, headers=headers, timeout=self.timeout
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(self.name, f"timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(self.name, str(exc)) from exc

        if response.status_code == 429:
            raise RateLimited(self.name, _retry_after(response))
        if not response.is_success:
            raise NetworkError(
                self.name, f"HTTP {response.status_code}", status_code=response.status_code
            )
        try:
            return response.json(parse_float=Decimal)
        except ValueError as exc:
            raise MalformedResponse(self.name, "response is not JSON") from exc

    def _build_quote(
        self,
        price: Any,
        change: Any = None,
        change_percent: Any = None,
    ) -> PriceQuote:
        price_value = to_decimal(price)
        if price_value is None or price_value <= 0:
            raise MalformedResponse(self.name, f"no usable price in response ({price!r})")
        return PriceQuote(
            price=price_value,
            change=to_decimal(change),
            change_percent=to_decimal(change_percent),
            source=self.source,
        )
