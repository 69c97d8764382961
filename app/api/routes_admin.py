"""Admin-only maintenance endpoints (HTTP Basic)."""
import logging
import uuid

from fastapi import APIRouter
from pydantic import BaseModel

from app.api.dependencies import AdminDep, DbDep
from app.models import schemas
from app.services.achievement_service import AchievementService
from app.services.reconciliation_service import ReconciliationService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)
router = APIRouter()


class AwardRequest(BaseModel):
    user_id: uuid.UUID
    code: str
    reason: str | None = None


@router.get("/reconciliation", response_model=schemas.ReconciliationReport)
def reconciliation(db: DbDep, admin: AdminDep):
    """Compare user counters with the donation ledger. Read-only."""
    logger.info("Reconciliation requested by %s", admin)
    return ReconciliationService(db).report()


@router.post("/achievements/award", response_model=schemas.UserAchievementOut | None)
def award_achievement(data: AwardRequest, db: DbDep, admin: AdminDep):
    """Manually grant a catalog achievement; returns null if already held."""
    UserService(db).get_user(data.user_id)
    grant = AchievementService(db).award(data.user_id, data.code, reason=data.reason)
    db.commit()
    if grant is not None:
        db.refresh(grant)
        logger.info("Admin %s awarded %s to %s", admin, data.code, data.user_id)
    return grant
