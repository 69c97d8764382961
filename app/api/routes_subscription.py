"""Recurring donation intents."""
from fastapi import APIRouter, Request

from app.api.dependencies import CurrentUserIdDep, DbDep
from app.api.rate_limit import RATE_LIMITS, limiter
from app.models import schemas
from app.services.payment_service import PaymentService

router = APIRouter()


@router.post("/intents", response_model=schemas.SubscriptionIntentOut, status_code=201)
@limiter.limit(RATE_LIMITS["intent"])
def create_subscription_intent(
    request: Request,
    data: schemas.SubscriptionIntentCreate,
    current_user_id: CurrentUserIdDep,
    db: DbDep,
):
    return PaymentService(db).create_subscription_intent(current_user_id, data)
