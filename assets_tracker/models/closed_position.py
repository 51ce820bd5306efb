import uuid
from datetime import datetime

from sqlalchemy import Column, String, Numeric, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from assets_tracker.core.db import Base


class ClosedPosition(Base):
    __tablename__ = "closed_positions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)

    ticker = Column(String, nullable=False, index=True)
    isin = Column(String, nullable=True)
    asset_type = Column(String, nullable=False)
    asset_name = Column(String, nullable=True)

    quantity_sold = Column(Numeric(20, 8), nullable=False)
    avg_buy_price = Column(Numeric(20, 8), nullable=False)
    avg_buy_rate = Column(Numeric(20, 8), nullable=False)
    sell_price = Column(Numeric(20, 8), nullable=False)
    sell_rate = Column(Numeric(20, 8), nullable=False)
    realized_profit = Column(Numeric(20, 8), nullable=False)

    broker = Column(String, nullable=True)
    closed_date = Column(Date, nullable=False)
    sell_transaction_id = Column(
        String(36),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=True,
        unique=True,
    )
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    sell_transaction = relationship("Transaction", back_populates="closed_position")
