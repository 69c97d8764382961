"""Public project catalog."""
import uuid

from fastapi import APIRouter, Query

from app.api.dependencies import DbDep
from app.models import schemas
from app.services.project_service import ProjectService

router = APIRouter()


@router.get("", response_model=schemas.ProjectListOut)
def list_projects(
    db: DbDep,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: str | None = None,
):
    items, total = ProjectService(db).list_projects(limit=limit, offset=offset, status=status)
    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.get("/{project_id}", response_model=schemas.ProjectOut)
def get_project(project_id: uuid.UUID, db: DbDep):
    return ProjectService(db).get_project(project_id)
