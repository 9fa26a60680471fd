from __future__ import annotations

import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel


class ChartPeriod(str, Enum):
    ONE_DAY = "1D"
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    ONE_YEAR = "1Y"


class Candle(BaseModel):
    time: datetime.datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
