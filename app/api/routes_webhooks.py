import logging
from typing import Annotated, TypeAlias

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.api.rate_limit import RATE_LIMITS, limiter
from app.core.config import settings
from app.db.session import get_db
from app.services.payments import build_webhook_service

logger = logging.getLogger(__name__)
router = APIRouter()

DbDep: TypeAlias = Annotated[Session, Depends(get_db)]


@router.post("/{provider}")
@limiter.limit(RATE_LIMITS["webhook"])
async def payment_webhook(provider: str, request: Request, db: DbDep):
    """Receive a payment provider notification.

    The raw body is passed through untouched; the signature is computed over
    the exact bytes the provider sent.
    """
    raw = await request.body()
    signature = request.headers.get(settings.WEBHOOK_SIGNATURE_HEADER)
    service = build_webhook_service(db)
    result = await run_in_threadpool(service.handle_webhook, provider, raw, signature)
    return JSONResponse(status_code=result.status_code, content=result.body)
