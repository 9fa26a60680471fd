"""Real-time trade stream over one multiplexed Binance WebSocket."""

from __future__ import annotations

import asyncio
import datetime
import json
from enum import Enum
from typing import Awaitable, Callable, Iterable

import websockets
from websockets.exceptions import WebSocketException

from pricefeed.providers.base import to_decimal
from pricefeed.providers.binance import from_pair, to_pair
from pricefeed.schemas.quote import PriceTick, utcnow
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)

TickCallback = Callable[[PriceTick], None]


class StreamState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECT_PENDING = "reconnect_pending"
    CLOSED = "closed"


def build_stream_url(base_url: str, symbols: Iterable[str]) -> str:
    streams = "/".join(f"{to_pair(symbol).lower()}@trade" for symbol in symbols)
    return f"{base_url.rstrip('/')}/stream?streams={streams}"


def parse_trade_frame(raw: str | bytes) -> PriceTick | None:
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        return None
    data = message.get("data") if isinstance(message, dict) else None
    if not isinstance(data, dict):
        return None
    pair = data.get("s")
    price = to_decimal(data.get("p"))
    if not isinstance(pair, str) or not pair or price is None:
        return None

    trade_time = data.get("T")
    if isinstance(trade_time, int) and not isinstance(trade_time, bool):
        timestamp = datetime.datetime.fromtimestamp(trade_time / 1000, tz=datetime.UTC)
    else:
        timestamp = utcnow()
    return PriceTick(symbol=from_pair(pair), price=price, timestamp=timestamp)


class LiveStreamManager:
    """Own one combined trade-stream subscription and keep it connected.

    The symbol set is fixed for the lifetime of the manager. Connection
    failures and server-side closes are never surfaced; the manager waits
    ``reconnect_delay`` seconds and reconnects until :meth:`close` is called.
    """

    def __init__(
        self,
        symbols: Iterable[str],
        on_tick: TickCallback,
        *,
        url: str = "wss://stream.binance.com:9443",
        reconnect_delay: float = 3.0,
        connector: Callable[..., object] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        normalized: list[str] = []
        for symbol in symbols:
            cleaned = symbol.strip().upper()
            if cleaned and cleaned not in normalized:
                normalized.append(cleaned)
        self._symbols = tuple(normalized)
        self._on_tick = on_tick
        self._url = build_stream_url(url, self._symbols)
        self._reconnect_delay = reconnect_delay
        self._connector = connector or websockets.connect
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self.state = StreamState.IDLE
        self.reconnect_attempts = 0

    @property
    def symbols(self) -> tuple[str, ...]:
        return self._symbols

    @property
    def url(self) -> str:
        return self._url

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._closed or self._task is not None:
            return
        if not self._symbols:
            self._closed = True
            self.state = StreamState.CLOSED
            return
        self._task = asyncio.create_task(self._run())

    async def close(self) -> None:
        """Tear the subscription down. Safe to call repeatedly or before connecting."""

        self._closed = True
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.state = StreamState.CLOSED

    async def _run(self) -> None:
        while not self._closed:
            self.state = StreamState.CONNECTING
            try:
                async with self._connector(self._url) as websocket:
                    self.state = StreamState.OPEN
                    logger.info("Price stream open for %s", ", ".join(self._symbols))
                    async for message in websocket:
                        self._dispatch(message)
                logger.info("Price stream closed by server")
            except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
                logger.warning("Price stream error: %s", exc)
            except Exception:
                logger.exception("Unexpected price stream failure")

            if self._closed:
                break
            self.state = StreamState.RECONNECT_PENDING
            self.reconnect_attempts += 1
            logger.info(
                "Reconnecting price stream in %.1fs (attempt %d)",
                self._reconnect_delay,
                self.reconnect_attempts,
            )
            await self._sleep(self._reconnect_delay)
        self.state = StreamState.CLOSED

    def _dispatch(self, raw: str | bytes) -> None:
        tick = parse_trade_frame(raw)
        if tick is None:
            return
        try:
            self._on_tick(tick)
        except Exception:
            logger.exception("Price tick callback failed for %s", tick.symbol)


def open_price_stream(
    symbols: Iterable[str],
    on_tick: TickCallback,
    **kwargs,
) -> Callable[[], Awaitable[None]]:
    """Start streaming ``symbols`` and return the cleanup handle."""

    manager = LiveStreamManager(symbols, on_tick, **kwargs)
    manager.start()
    return manager.close
