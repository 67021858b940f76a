"""Repository abstractions for workflow and project persistence."""

from __future__ import annotations

from typing import Protocol

from .models import Project, WorkflowProjection


class WorkflowRepository(Protocol):
    """Protocol for workflow projection persistence backends."""

    async def create(self, projection: WorkflowProjection) -> str:
        """Persist a new projection and return its id."""

    async def get(self, workflow_id: str) -> WorkflowProjection | None:
        """Retrieve a projection by id."""

    async def list_all(self) -> list[WorkflowProjection]:
        """Return all persisted projections."""

    async def list_by_type(self, workflow_type: str) -> list[WorkflowProjection]:
        """Return projections whose type tag matches, ignoring case."""

    async def list_by_state(self, state: str) -> list[WorkflowProjection]:
        """Return projections currently in ``state``."""

    async def list_by_display_name(self, display_name: str) -> list[WorkflowProjection]:
        """Return projections whose display name matches, ignoring case."""

    async def update(self, projection: WorkflowProjection) -> None:
        """Replace a stored projection, stamping ``last_updated``."""

    async def delete(self, workflow_id: str) -> bool:
        """Delete a projection; return whether it existed."""


class ProjectRepository(Protocol):
    """Protocol for project persistence backends."""

    async def create_project(self, project: Project) -> str:
        """Persist a new project and return its id."""

    async def get_project(self, project_id: str) -> Project | None:
        """Retrieve a project by id."""

    async def list_projects(self) -> list[Project]:
        """Return all projects."""

    async def list_projects_by_service(self, service_name: str) -> list[Project]:
        """Return projects owned by ``service_name``, ignoring case."""

    async def update_project(self, project: Project) -> None:
        """Replace a stored project."""

    async def delete_project(self, project_id: str) -> bool:
        """Delete a project; return whether it existed."""
