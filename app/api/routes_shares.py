"""Share links and referral stats."""
import uuid

from fastapi import APIRouter, Request, Response

from app.api.dependencies import CurrentUserIdDep, DbDep
from app.api.rate_limit import RATE_LIMITS, limiter
from app.models import schemas
from app.services.share_service import ShareService

router = APIRouter()


@router.post("", response_model=schemas.ShareTokenOut, status_code=201)
@limiter.limit(RATE_LIMITS["share_create"])
def create_share(request: Request, data: schemas.ShareTokenCreate, current_user_id: CurrentUserIdDep, db: DbDep):
    return ShareService(db).create_token(current_user_id, data.kind, data.ref_id)


@router.get("", response_model=list[schemas.ShareTokenOut])
def list_shares(current_user_id: CurrentUserIdDep, db: DbDep):
    return ShareService(db).list_tokens(current_user_id)


@router.get("/referrals/stats", response_model=schemas.ReferralStatsOut)
def referral_stats(current_user_id: CurrentUserIdDep, db: DbDep):
    return ShareService(db).referral_stats(current_user_id)


@router.get("/{slug}", response_model=schemas.ShareResolveOut)
def resolve_share(slug: str, db: DbDep):
    """Public: resolve a share slug to a profile summary or donation details."""
    return ShareService(db).resolve_view(slug)


@router.delete("/{token_id}", status_code=204)
def delete_share(token_id: uuid.UUID, current_user_id: CurrentUserIdDep, db: DbDep):
    ShareService(db).delete_token(token_id, current_user_id)
    return Response(status_code=204)
