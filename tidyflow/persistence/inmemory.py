"""In-memory implementations of the repositories."""

from __future__ import annotations

from typing import Dict

from ..utils.clock import utcnow
from .models import Project, WorkflowProjection
from .repository import ProjectRepository, WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow projections in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Projections are copied on the way in
    and out so callers never share objects with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, WorkflowProjection] = {}

    # ------------------------------------------------------------------
    async def create(self, projection: WorkflowProjection) -> str:
        if projection.id in self._workflows:
            raise ValueError(f"Workflow {projection.id} already exists")
        self._workflows[projection.id] = projection.model_copy(deep=True)
        return projection.id

    async def get(self, workflow_id: str) -> WorkflowProjection | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_all(self) -> list[WorkflowProjection]:
        return [wf.model_copy(deep=True) for wf in self._workflows.values()]

    async def list_by_type(self, workflow_type: str) -> list[WorkflowProjection]:
        wanted = workflow_type.lower()
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if wf.workflow_type.lower() == wanted
        ]

    async def list_by_state(self, state: str) -> list[WorkflowProjection]:
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if wf.state == state
        ]

    async def list_by_display_name(self, display_name: str) -> list[WorkflowProjection]:
        wanted = display_name.lower()
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if wf.display_name.lower() == wanted
        ]

    async def update(self, projection: WorkflowProjection) -> None:
        if projection.id not in self._workflows:
            return
        projection.last_updated = utcnow()
        self._workflows[projection.id] = projection.model_copy(deep=True)

    async def delete(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None


class InMemoryProjectRepository(ProjectRepository):
    """Store projects in local memory."""

    def __init__(self) -> None:
        self._projects: Dict[str, Project] = {}

    async def create_project(self, project: Project) -> str:
        self._projects[project.id] = project.model_copy(deep=True)
        return project.id

    async def get_project(self, project_id: str) -> Project | None:
        project = self._projects.get(project_id)
        return project.model_copy(deep=True) if project else None

    async def list_projects(self) -> list[Project]:
        return [p.model_copy(deep=True) for p in self._projects.values()]

    async def list_projects_by_service(self, service_name: str) -> list[Project]:
        wanted = service_name.lower()
        return [
            p.model_copy(deep=True)
            for p in self._projects.values()
            if p.service_name.lower() == wanted
        ]

    async def update_project(self, project: Project) -> None:
        if project.id in self._projects:
            self._projects[project.id] = project.model_copy(deep=True)

    async def delete_project(self, project_id: str) -> bool:
        return self._projects.pop(project_id, None) is not None
