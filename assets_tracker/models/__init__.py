from assets_tracker.models.schemas import AssetType, TransactionType
from assets_tracker.models.transaction import Transaction
from assets_tracker.models.closed_position import ClosedPosition
from assets_tracker.models.portfolio_snapshot import PortfolioSnapshot

__all__ = [
    "AssetType",
    "TransactionType",
    "Transaction",
    "ClosedPosition",
    "PortfolioSnapshot",
]
