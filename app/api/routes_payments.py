"""One-time payment intents."""
from fastapi import APIRouter, Request

from app.api.dependencies import CurrentUserIdDep, DbDep
from app.api.rate_limit import RATE_LIMITS, limiter
from app.models import schemas
from app.services.payment_service import PaymentService

router = APIRouter()


@router.post("/intents", response_model=schemas.PaymentIntentOut, status_code=201)
@limiter.limit(RATE_LIMITS["intent"])
def create_payment_intent(
    request: Request,
    data: schemas.PaymentIntentCreate,
    current_user_id: CurrentUserIdDep,
    db: DbDep,
):
    """Create a pending payment and return what the checkout widget needs."""
    return PaymentService(db).create_payment_intent(current_user_id, data)
