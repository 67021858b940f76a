"""Projects group the cleanup workflows belonging to one service."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel

from ..errors import WorkflowNotFoundError
from ..persistence.models import Project, ProjectStatus, WorkflowProjection
from ..persistence.repository import ProjectRepository, WorkflowRepository
from ..utils.clock import utcnow
from ..workflow.enums import WorkflowState, is_terminal_state

logger = logging.getLogger(__name__)


class ProjectProgress(BaseModel):
    total: int = 0
    completed: int = 0
    active: int = 0
    percentage: float = 0.0


class ProjectService:
    def __init__(
        self, project_repository: ProjectRepository, workflow_repository: WorkflowRepository
    ) -> None:
        self.projects = project_repository
        self.workflows = workflow_repository

    async def create_project(
        self, name: str, service_name: str, description: str = ""
    ) -> Project:
        project = Project(name=name, service_name=service_name, description=description)
        await self.projects.create_project(project)
        logger.info(f"Created project {project.name} ({project.id}) for {service_name}")
        return project

    async def get_project(self, project_id: str) -> Project:
        project = await self.projects.get_project(project_id)
        if project is None:
            raise WorkflowNotFoundError(project_id, kind="Project")
        return project

    async def list_projects(self, service_name: Optional[str] = None) -> list[Project]:
        if service_name:
            return await self.projects.list_projects_by_service(service_name)
        return await self.projects.list_projects()

    async def add_workflow(self, project_id: str, workflow_id: str) -> Project:
        """Attach an existing workflow to a project."""
        project = await self.get_project(project_id)
        if await self.workflows.get(workflow_id) is None:
            raise WorkflowNotFoundError(workflow_id)
        if workflow_id not in project.workflow_ids:
            project.workflow_ids.append(workflow_id)
            await self.projects.update_project(project)
        return project

    async def project_workflows(self, project_id: str) -> list[WorkflowProjection]:
        """Workflows attached to the project or created with its id."""
        project = await self.get_project(project_id)
        return [
            projection
            for projection in await self.workflows.list_all()
            if projection.id in project.workflow_ids
            or projection.context.project_id == project.id
        ]

    async def progress(self, project_id: str) -> ProjectProgress:
        workflows = await self.project_workflows(project_id)
        completed = sum(
            1
            for w in workflows
            if is_terminal_state(w.state) and w.state != WorkflowState.FAILED.value
        )
        active = sum(1 for w in workflows if not is_terminal_state(w.state))
        total = len(workflows)
        return ProjectProgress(
            total=total,
            completed=completed,
            active=active,
            percentage=completed / total * 100 if total else 0.0,
        )

    async def set_status(self, project_id: str, status: ProjectStatus) -> Project:
        project = await self.get_project(project_id)
        project.status = status
        project.completed_at = utcnow() if status is ProjectStatus.COMPLETED else None
        await self.projects.update_project(project)
        return project

    async def delete_project(self, project_id: str) -> bool:
        return await self.projects.delete_project(project_id)
