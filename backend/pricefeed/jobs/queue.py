from __future__ import annotations

import datetime

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue
from rq.job import Job

from pricefeed.config.settings import settings
from pricefeed.jobs.price_refresh import run_price_refresh
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)


def get_redis_connection() -> Redis:
    return Redis.from_url(settings.redis_url)


def get_queue(name: str | None = None) -> Queue:
    queue_name = name or settings.refresh_queue_name
    return Queue(name=queue_name, connection=get_redis_connection())


def enqueue_price_refresh(holdings: list[dict]) -> Job:
    queue = get_queue()
    job = queue.enqueue(run_price_refresh, holdings=holdings)
    logger.info("Enqueued price refresh %s for %d holdings", job.id, len(holdings))
    return job


def get_last_refresh() -> datetime.datetime | None:
    try:
        raw = get_redis_connection().get(settings.last_refresh_key)
    except RedisError as exc:
        logger.warning("Could not read last refresh timestamp: %s", exc)
        return None
    if not raw:
        return None
    value = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        return None
