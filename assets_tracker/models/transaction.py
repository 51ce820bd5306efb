import uuid
from datetime import datetime

from sqlalchemy import Column, String, Numeric, Date, DateTime, Text
from sqlalchemy.orm import relationship
from assets_tracker.core.db import Base


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)

    ticker = Column(String, nullable=False, index=True)
    isin = Column(String, nullable=True)
    asset_name = Column(String, nullable=True)
    asset_type = Column(String, nullable=False)

    type = Column(String, nullable=False)
    quantity = Column(Numeric(20, 8), nullable=False)
    price = Column(Numeric(20, 8), nullable=False)
    currency = Column(String, nullable=False, default="USD")
    exchange_rate = Column(Numeric(20, 8), nullable=False)
    fees = Column(Numeric(20, 8), nullable=False, default=0)
    broker = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    price_multiplier = Column(Numeric(20, 8), nullable=False, default=1)

    transaction_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    closed_position = relationship(
        "ClosedPosition",
        back_populates="sell_transaction",
        uselist=False,
        cascade="all, delete-orphan",
    )
