from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import ValidationError

from assets_tracker.api.dependencies import get_current_user_id, get_transactions_service
from assets_tracker.core.logger import logger
from assets_tracker.services.transactions_service import CSVImportError, TransactionsService

router = APIRouter()


@router.post("/transactions/csv")
async def upload_transactions_csv(
        file: UploadFile = File(...),
        user_id: str = Depends(get_current_user_id),
        service: TransactionsService = Depends(get_transactions_service),
):
    """date, type, ticker, quantity, price, currency[, exchange_rate, ...]"""
    try:
        content = await file.read()
        inserted = await service.import_csv(user_id, content)
        return {"status": "ok", "inserted": inserted}
    except (CSVImportError, ValidationError) as e:
        raise HTTPException(400, detail=str(e))
    except Exception as e:
        logger.error(f"upload_transactions_csv failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to upload transactions CSV")
