from __future__ import annotations

import datetime
from decimal import Decimal

import httpx

from pricefeed.config.settings import ProviderSettings
from pricefeed.providers.base import to_decimal
from pricefeed.providers.binance import to_pair
from pricefeed.schemas.candles import Candle, ChartPeriod
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)

_KLINES_PATH = "/api/v3/klines"

KLINE_PARAMS: dict[ChartPeriod, tuple[str, int]] = {
    ChartPeriod.ONE_DAY: ("5m", 288),
    ChartPeriod.ONE_WEEK: ("1h", 168),
    ChartPeriod.ONE_MONTH: ("4h", 180),
    ChartPeriod.THREE_MONTHS: ("1d", 90),
    ChartPeriod.ONE_YEAR: ("1w", 52),
}


def kline_params(period: ChartPeriod) -> tuple[str, int]:
    return KLINE_PARAMS.get(period, KLINE_PARAMS[ChartPeriod.ONE_WEEK])


def format_candle_label(time: datetime.datetime, period: ChartPeriod) -> str:
    hour = time.hour % 12 or 12
    meridiem = "AM" if time.hour < 12 else "PM"
    if period is ChartPeriod.ONE_DAY:
        return f"{hour}:{time.minute:02d} {meridiem}"
    if period is ChartPeriod.ONE_WEEK:
        return f"{time:%a} {hour} {meridiem}"
    if period is ChartPeriod.ONE_YEAR:
        return f"{time:%b} '{time:%y}"
    return f"{time:%b} {time.day}"


def _parse_kline(row: object) -> Candle | None:
    if not isinstance(row, list) or len(row) < 6:
        return None
    open_time = row[0]
    if isinstance(open_time, bool) or not isinstance(open_time, int):
        return None
    values = [to_decimal(value) for value in row[1:6]]
    if any(value is None for value in values):
        return None
    open_, high, low, close, volume = values
    return Candle(
        time=datetime.datetime.fromtimestamp(open_time / 1000, tz=datetime.UTC),
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
    )


class CandleFetcher:
    """Historical OHLCV bars for charts. Fails fast and quietly: one attempt, empty on error."""

    timeout = 10.0

    def __init__(self, client: httpx.AsyncClient, config: ProviderSettings) -> None:
        self._client = client
        self._config = config

    async def fetch_candles(self, symbol: str, period: ChartPeriod) -> list[Candle]:
        interval, limit = kline_params(period)
        url = f"{self._config.binance_base_url.rstrip('/')}{_KLINES_PATH}"
        params = {"symbol": to_pair(symbol), "interval": interval, "limit": str(limit)}
        try:
            response = await self._client.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            rows = response.json(parse_float=Decimal)
        except httpx.TimeoutException:
            logger.warning("Klines timeout for %s", symbol)
            return []
        except httpx.HTTPError as exc:
            logger.warning("Klines error for %s: %s", symbol, exc)
            return []
        except ValueError:
            logger.warning("Klines response for %s is not JSON", symbol)
            return []

        if not isinstance(rows, list):
            logger.warning("Unexpected klines payload for %s", symbol)
            return []
        candles: list[Candle] = []
        for row in rows:
            candle = _parse_kline(row)
            if candle is None:
                logger.warning("Malformed kline row for %s: %r", symbol, row)
                return []
            candles.append(candle)
        return candles
