from __future__ import annotations

import asyncio
import datetime
import uuid

from redis.asyncio import Redis
from sqlalchemy.dialects.postgresql import insert

from pricefeed.config.settings import settings
from pricefeed.db.models import PriceSnapshot
from pricefeed.db.session import AsyncSessionLocal
from pricefeed.schemas.quote import HoldingRef
from pricefeed.service import PriceService, build_price_service, has_live_pricing
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)


async def _refresh_and_store(service: PriceService, holdings: list[HoldingRef], redis: Redis) -> int:
    live_holdings = [holding for holding in holdings if has_live_pricing(holding.asset_type)]
    if not live_holdings:
        logger.info("No holdings with live pricing; nothing to refresh")
        return 0

    quotes = await service.batch_get_prices(live_holdings)
    refresh_id = uuid.uuid4()
    created = 0
    async with AsyncSessionLocal() as session:
        for holding in live_holdings:
            quote = quotes.get(holding.id)
            if quote is None:
                continue
            stmt = insert(PriceSnapshot).values(
                refresh_id=refresh_id,
                holding_id=holding.id,
                asset_type=holding.asset_type.value,
                symbol=holding.symbol,
                price=quote.price,
                change=quote.change,
                change_percent=quote.change_percent,
                source=quote.source.value,
                observed_at=quote.observed_at,
            )
            stmt = stmt.on_conflict_do_nothing(
                index_elements=[PriceSnapshot.refresh_id, PriceSnapshot.holding_id]
            )
            result = await session.execute(stmt)
            if result.rowcount:
                created += int(result.rowcount)
        await session.commit()

    finished_at = datetime.datetime.now(datetime.UTC)
    await redis.set(settings.last_refresh_key, finished_at.isoformat())
    logger.info(
        "Price refresh %s stored %d snapshots for %d holdings", refresh_id, created, len(live_holdings)
    )
    return created


async def _run(holdings: list[dict]) -> int:
    refs = [HoldingRef.model_validate(holding) for holding in holdings]
    redis = Redis.from_url(settings.redis_url)
    service = build_price_service(settings, redis)
    try:
        return await _refresh_and_store(service, refs, redis)
    finally:
        await service.aclose()
        await redis.aclose()


def run_price_refresh(holdings: list[dict]) -> int:
    return asyncio.run(_run(holdings))
