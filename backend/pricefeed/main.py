from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.asyncio import Redis

from pricefeed.api.routes import router
from pricefeed.config.settings import settings
from pricefeed.service import build_price_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    redis = Redis.from_url(settings.redis_url)
    service = build_price_service(settings, redis)
    app.state.price_service = service
    try:
        yield
    finally:
        await service.aclose()
        await redis.aclose()


def create_app() -> FastAPI:
    app = FastAPI(title="pricefeed", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
