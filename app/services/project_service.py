from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.enums import ProjectStatus
from app.models.models import Project


class ProjectService:
    """Read access to planting projects donations can be attributed to."""

    def __init__(self, db: Session):
        self.db = db

    def list_projects(
        self,
        limit: int = 20,
        offset: int = 0,
        status: str | None = None,
    ) -> tuple[list[Project], int]:
        stmt = select(Project)
        count_stmt = select(func.count(Project.id))
        if status is not None:
            status_enum = ProjectStatus.parse(status)
            stmt = stmt.where(Project.status == status_enum)
            count_stmt = count_stmt.where(Project.status == status_enum)

        total = self.db.execute(count_stmt).scalar_one()
        rows = self.db.execute(
            stmt.order_by(Project.created_at.desc(), Project.id).limit(limit).offset(offset)
        ).scalars().all()
        return list(rows), total

    def get_project(self, project_id: uuid.UUID) -> Project:
        project = self.db.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project", str(project_id))
        return project
