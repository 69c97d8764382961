"""Current user's profile, donations, achievements and subscriptions."""
import logging

from fastapi import APIRouter, Query

from app.api.dependencies import CurrentUserDep, CurrentUserIdDep, DbDep
from app.models import schemas
from app.services.achievement_service import AchievementService
from app.services.donation_service import MAX_PAGE_SIZE, DonationService
from app.services.payment_service import PaymentService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)
router = APIRouter()
public_router = APIRouter()


@router.get("", response_model=schemas.UserOut)
def get_profile(user: CurrentUserDep):
    return user


@router.get("/donations", response_model=schemas.DonationListOut)
def list_donations(
    current_user_id: CurrentUserIdDep,
    db: DbDep,
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    items, total = DonationService(db).list_for_user(current_user_id, limit=limit, offset=offset)
    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.get("/achievements", response_model=list[schemas.UserAchievementOut])
def list_my_achievements(current_user_id: CurrentUserIdDep, db: DbDep):
    return AchievementService(db).user_achievements(current_user_id)


@router.get("/subscriptions", response_model=list[schemas.SubscriptionOut])
def list_my_subscriptions(current_user_id: CurrentUserIdDep, db: DbDep):
    return PaymentService(db).list_subscriptions(current_user_id)


@public_router.get("/leaderboard", response_model=list[schemas.LeaderboardEntry])
def leaderboard(db: DbDep, limit: int = Query(10, ge=1, le=100)):
    return UserService(db).leaderboard(limit=limit)
