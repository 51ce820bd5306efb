from fastapi import APIRouter

from .routes.transactions import router as transactions_router
from .routes.holdings import router as holdings_router
from .routes.portfolio import router as portfolio_router
from .routes.assets import router as assets_router
from .routes.upload import router as upload_router

api_router = APIRouter()
api_router.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
api_router.include_router(holdings_router, prefix="/holdings", tags=["Holdings"])
api_router.include_router(portfolio_router, prefix="/portfolio", tags=["Portfolio"])
api_router.include_router(assets_router, prefix="/assets", tags=["Assets"])
api_router.include_router(upload_router, prefix="/upload", tags=["Upload"])
