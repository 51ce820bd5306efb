from datetime import datetime

from sqlalchemy import Column, String, Date, DateTime, Numeric, Computed
from assets_tracker.core.db import Base


class PortfolioSnapshot(Base):
    __tablename__ = "portfolio_snapshots"

    user_id = Column(String, primary_key=True, nullable=False)
    snapshot_date = Column(Date, primary_key=True, nullable=False)
    total_value = Column(Numeric(20, 8), nullable=False)
    total_invested = Column(Numeric(20, 8), nullable=False)
    total_profit = Column(Numeric(20, 8), nullable=False)

    total_profit_pct = Column(
        Numeric(20, 8),
        Computed(
            "CASE WHEN total_invested <> 0 "
            "THEN (total_profit / total_invested) * 100 "
            "ELSE 0 END"
        )
    )
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
