from __future__ import annotations

import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class AssetType(str, Enum):
    STOCK = "stock"
    ETF = "etf"
    MUTUAL_FUND = "mutual_fund"
    CRYPTO = "crypto"
    GOLD = "gold"
    SILVER = "silver"
    PLATINUM = "platinum"
    INDEX = "index"
    BOND = "bond"
    REAL_ESTATE = "real_estate"
    FIXED_DEPOSIT = "fixed_deposit"
    CASH = "cash"
    OTHER = "other"


class AssetClass(str, Enum):
    EQUITY = "equity"
    CRYPTO = "crypto"
    COMMODITY = "commodity"
    INDEX = "index"
    MANUAL = "manual"


_ASSET_CLASSES: dict[AssetType, AssetClass] = {
    AssetType.STOCK: AssetClass.EQUITY,
    AssetType.ETF: AssetClass.EQUITY,
    AssetType.MUTUAL_FUND: AssetClass.EQUITY,
    AssetType.CRYPTO: AssetClass.CRYPTO,
    AssetType.GOLD: AssetClass.COMMODITY,
    AssetType.SILVER: AssetClass.COMMODITY,
    AssetType.PLATINUM: AssetClass.COMMODITY,
    AssetType.INDEX: AssetClass.INDEX,
}

# Classes priced per symbol; commodities are priced once per asset type.
PER_SYMBOL_CLASSES = frozenset({AssetClass.EQUITY, AssetClass.CRYPTO, AssetClass.INDEX})


def asset_class_of(asset_type: AssetType) -> AssetClass:
    return _ASSET_CLASSES.get(asset_type, AssetClass.MANUAL)


class QuoteSource(str, Enum):
    YAHOO = "yahoo"
    FINNHUB = "finnhub"
    BINANCE = "binance"
    COINGECKO = "coingecko"
    GOLDAPI = "goldapi"
    FALLBACK = "fallback"
    CACHE = "cache"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class PriceQuote(BaseModel):
    price: Decimal = Field(gt=0)
    change: Decimal | None = None
    change_percent: Decimal | None = None
    source: QuoteSource
    observed_at: datetime.datetime = Field(default_factory=utcnow)


class CacheEntry(BaseModel):
    price: Decimal = Field(gt=0)
    change: Decimal | None = None
    change_percent: Decimal | None = None
    source: QuoteSource
    observed_at: datetime.datetime
    cached_at: float

    def to_quote(self) -> PriceQuote:
        return PriceQuote(
            price=self.price,
            change=self.change,
            change_percent=self.change_percent,
            source=QuoteSource.CACHE,
            observed_at=self.observed_at,
        )


class HoldingRef(BaseModel):
    id: str
    asset_type: AssetType
    symbol: str | None = None


class PriceTick(BaseModel):
    symbol: str
    price: Decimal
    timestamp: datetime.datetime
