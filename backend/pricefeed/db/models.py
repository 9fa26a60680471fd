# backend/pricefeed/db/models.py

import datetime
import uuid

from sqlalchemy import Column, DateTime, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class PriceSnapshot(Base):
    __tablename__ = "price_snapshots"
    __table_args__ = (UniqueConstraint("refresh_id", "holding_id", name="uq_price_snapshot_refresh_holding"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    refresh_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    holding_id = Column(String, nullable=False, index=True)
    asset_type = Column(String, nullable=False)
    symbol = Column(String, index=True)

    price = Column(Numeric(24, 10), nullable=False)
    change = Column(Numeric(24, 10))
    change_percent = Column(Numeric(24, 10))
    source = Column(String, nullable=False)
    observed_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.datetime.now(datetime.UTC))

    def __repr__(self):
        return f"<PriceSnapshot(holding_id='{self.holding_id}', source='{self.source}')>"
