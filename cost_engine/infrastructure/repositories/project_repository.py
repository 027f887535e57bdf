"""
Project Repository - Read access to the project view.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from cost_engine.domain.entities import Project, ProjectStatus, ProjectTimeline
from cost_engine.models import ProjectRecord
from .base_repository import BaseRepository


def to_project(record: ProjectRecord) -> Project:
    return Project(
        project_id=record.project_id,
        name=record.name,
        status=ProjectStatus(record.status),
        timeline=ProjectTimeline(
            start_date=record.start_date,
            end_date=record.end_date,
            percent_complete=record.percent_complete or 0.0,
        ),
        project_type=record.project_type,
    )


class SqlProjectRepository(BaseRepository[ProjectRecord]):
    """Projects stored in the projects table."""

    def __init__(self, session: Session):
        super().__init__(session, ProjectRecord)

    def find_by_id(self, project_id: str) -> Optional[Project]:
        record = self._read("find project", lambda: self._first(project_id=project_id))
        return to_project(record) if record else None

    def list_project_ids(self) -> List[str]:
        return self._read("list projects", lambda: self.all_values("project_id"))

    def save(self, project: Project) -> Project:
        """
        Insert or update a project view.

        The engine never writes projects; this is used by the CLI and
        by tests to seed data.
        """
        record = self._first(project_id=project.project_id) or ProjectRecord(project_id=project.project_id)
        record.name = project.name
        record.status = project.status.value
        record.project_type = project.project_type
        record.start_date = project.timeline.start_date
        record.end_date = project.timeline.end_date
        record.percent_complete = project.timeline.percent_complete
        self.session.add(record)
        self._commit("save project")
        return project
