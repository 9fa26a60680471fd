from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from pricefeed.jobs.queue import enqueue_price_refresh, get_last_refresh
from pricefeed.schemas.candles import Candle, ChartPeriod
from pricefeed.schemas.market import (
    BatchPriceRequest,
    LastRefreshResponse,
    MarketOverview,
    PriceSourceInfo,
    RefreshJobResponse,
    SymbolMatch,
)
from pricefeed.schemas.quote import AssetType, PriceQuote
from pricefeed.service import PriceService

router = APIRouter()


def get_price_service(request: Request) -> PriceService:
    """FastAPI dependency returning the service created at startup."""
    return request.app.state.price_service


def _normalize_symbol(symbol: str | None) -> str | None:
    if symbol is None:
        return None
    cleaned = symbol.strip().upper()
    return cleaned or None


@router.get("/prices/{asset_type}", response_model=PriceQuote)
async def get_price_endpoint(
    asset_type: AssetType,
    symbol: str | None = Query(default=None),
    service: PriceService = Depends(get_price_service),
) -> PriceQuote:
    quote = await service.get_price(asset_type, _normalize_symbol(symbol))
    if quote is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "message": "No live price available.",
                "asset_type": asset_type.value,
                "symbol": symbol,
            },
        )
    return quote


@router.get("/prices/{asset_type}/source", response_model=PriceSourceInfo)
async def price_source_endpoint(
    asset_type: AssetType,
    service: PriceService = Depends(get_price_service),
) -> PriceSourceInfo:
    return service.price_source(asset_type)


@router.post("/prices/batch", response_model=dict[str, PriceQuote])
async def batch_prices_endpoint(
    payload: BatchPriceRequest,
    service: PriceService = Depends(get_price_service),
) -> dict[str, PriceQuote]:
    return await service.batch_get_prices(payload.holdings)


@router.delete("/prices/cache", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cache_endpoint(service: PriceService = Depends(get_price_service)) -> Response:
    await service.clear_cache()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/candles/{symbol}", response_model=list[Candle])
async def candles_endpoint(
    symbol: str,
    period: ChartPeriod = Query(default=ChartPeriod.ONE_WEEK),
    service: PriceService = Depends(get_price_service),
) -> list[Candle]:
    return await service.fetch_candles(symbol.strip().upper(), period)


@router.get("/market/overview", response_model=MarketOverview)
async def market_overview_endpoint(
    service: PriceService = Depends(get_price_service),
) -> MarketOverview:
    return await service.market_overview()


@router.get("/search/symbols", response_model=list[SymbolMatch])
async def search_symbols_endpoint(
    q: str = Query(default=""),
    service: PriceService = Depends(get_price_service),
) -> list[SymbolMatch]:
    return await service.search_symbols(q)


@router.get("/search/crypto", response_model=list[SymbolMatch])
async def search_crypto_endpoint(
    q: str = Query(default=""),
    service: PriceService = Depends(get_price_service),
) -> list[SymbolMatch]:
    return await service.search_crypto(q)


@router.post("/refresh", response_model=RefreshJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def refresh_endpoint(payload: BatchPriceRequest) -> RefreshJobResponse:
    if not payload.holdings:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "At least one holding is required."},
        )
    job = enqueue_price_refresh([holding.model_dump(mode="json") for holding in payload.holdings])
    return RefreshJobResponse(job_id=job.id)


@router.get("/refresh/last", response_model=LastRefreshResponse)
async def last_refresh_endpoint() -> LastRefreshResponse:
    return LastRefreshResponse(last_refresh=get_last_refresh())
