"""Common request dependencies: database session, bearer user, admin basic auth."""
import logging
import uuid
from typing import Annotated, TypeAlias

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.orm import Session

from app.core.security import TokenExpiredError, TokenValidationError, decode_token, verify_admin_credentials
from app.db.session import get_db
from app.models.models import User

logger = logging.getLogger(__name__)

_basic = HTTPBasic(realm="4planet-admin")


def get_current_user_id(authorization: str = Header(None)) -> uuid.UUID:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = decode_token(token)
        return uuid.UUID(str(payload["sub"]))
    except TokenExpiredError as exc:
        raise HTTPException(status_code=401, detail="Token expired") from exc
    except (TokenValidationError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc


CurrentUserIdDep: TypeAlias = Annotated[uuid.UUID, Depends(get_current_user_id)]
DbDep: TypeAlias = Annotated[Session, Depends(get_db)]


def get_current_user(current_user_id: CurrentUserIdDep, db: DbDep) -> User:
    user = db.get(User, current_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    return user


CurrentUserDep: TypeAlias = Annotated[User, Depends(get_current_user)]


def require_admin(credentials: Annotated[HTTPBasicCredentials, Depends(_basic)]) -> str:
    if not verify_admin_credentials(credentials.username, credentials.password):
        logger.warning("Rejected admin credentials for username=%s", credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


AdminDep: TypeAlias = Annotated[str, Depends(require_admin)]
