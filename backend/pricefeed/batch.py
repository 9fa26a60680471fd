from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence

from pricefeed.providers.selector import PriceResolver, ResolveKey, resolve_key
from pricefeed.schemas.quote import PER_SYMBOL_CLASSES, HoldingRef, PriceQuote
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)


class BatchOrchestrator:
    """Price a whole portfolio, fetching each distinct symbol once."""

    def __init__(
        self,
        resolver: PriceResolver,
        *,
        pacing_seconds: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._resolver = resolver
        self._pacing_seconds = pacing_seconds
        self._sleep = sleep

    async def batch_resolve(self, holdings: Sequence[HoldingRef]) -> dict[str, PriceQuote]:
        groups: dict[ResolveKey, list[str]] = {}
        for holding in holdings:
            key = resolve_key(holding.asset_type, holding.symbol)
            if key is None:
                continue
            groups.setdefault(key, []).append(holding.id)

        per_symbol = [key for key in groups if key.asset_class in PER_SYMBOL_CLASSES]
        class_level = [key for key in groups if key.asset_class not in PER_SYMBOL_CLASSES]

        tasks: dict[ResolveKey, asyncio.Task[PriceQuote | None]] = {}
        for index, key in enumerate(per_symbol):
            if index:
                # Paces dispatches only; earlier lookups keep running meanwhile.
                await self._sleep(self._pacing_seconds)
            tasks[key] = asyncio.create_task(self._resolver.resolve_key(key))
        for key in class_level:
            tasks[key] = asyncio.create_task(self._resolver.resolve_key(key))

        outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)

        results: dict[str, PriceQuote] = {}
        for key, outcome in zip(tasks, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Price lookup for %s raised: %r", key.cache_key, outcome)
                continue
            if outcome is None:
                continue
            for holding_id in groups[key]:
                results[holding_id] = outcome
        logger.info(
            "Priced %d of %d holdings (%d distinct lookups)",
            len(results),
            len(holdings),
            len(tasks),
        )
        return results
