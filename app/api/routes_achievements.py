from fastapi import APIRouter

from app.api.dependencies import DbDep
from app.models import schemas
from app.services.achievement_service import AchievementService

router = APIRouter()


@router.get("", response_model=list[schemas.AchievementOut])
def list_achievements(db: DbDep):
    """Achievement catalog ordered by threshold, then title."""
    return AchievementService(db).list_catalog()
