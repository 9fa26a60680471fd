from __future__ import annotations

import datetime

from pydantic import BaseModel, Field

from pricefeed.schemas.quote import AssetType, HoldingRef, PriceQuote, utcnow


class IndexQuotes(BaseModel):
    sp500: PriceQuote | None = None
    nasdaq: PriceQuote | None = None
    dow: PriceQuote | None = None


class CommodityQuotes(BaseModel):
    gold: PriceQuote | None = None
    silver: PriceQuote | None = None


class CryptoQuotes(BaseModel):
    bitcoin: PriceQuote | None = None
    ethereum: PriceQuote | None = None


class MarketOverview(BaseModel):
    indices: IndexQuotes = Field(default_factory=IndexQuotes)
    commodities: CommodityQuotes = Field(default_factory=CommodityQuotes)
    crypto: CryptoQuotes = Field(default_factory=CryptoQuotes)
    last_updated: datetime.datetime = Field(default_factory=utcnow)


class SymbolMatch(BaseModel):
    symbol: str
    description: str


class PriceSourceInfo(BaseModel):
    asset_type: AssetType
    live: bool
    source: str


class BatchPriceRequest(BaseModel):
    holdings: list[HoldingRef] = Field(default_factory=list)


class RefreshJobResponse(BaseModel):
    job_id: str


class LastRefreshResponse(BaseModel):
    last_refresh: datetime.datetime | None = None
