"""PostgreSQL implementations of the repositories."""

from __future__ import annotations

from typing import Any

import asyncpg

from ..utils.clock import utcnow
from .models import Project, WorkflowProjection
from .repository import ProjectRepository, WorkflowRepository


class _PostgresStore:
    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tidyflow_workflows (
                id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL,
                workflow_type TEXT NOT NULL,
                state TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                data JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS ix_tidyflow_workflows_type ON tidyflow_workflows (lower(workflow_type))"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS ix_tidyflow_workflows_state ON tidyflow_workflows (state)"
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tidyflow_projects (
                id TEXT PRIMARY KEY,
                service_name TEXT NOT NULL,
                data JSONB NOT NULL
            )
            """
        )

    async def _execute(self, query: str, *params: Any) -> str:
        conn = await self._connect()
        try:
            return await conn.execute(query, *params)
        finally:
            await conn.close()

    async def _fetch(self, query: str, *params: Any) -> list[asyncpg.Record]:
        conn = await self._connect()
        try:
            return await conn.fetch(query, *params)
        finally:
            await conn.close()

    async def _fetchrow(self, query: str, *params: Any) -> asyncpg.Record | None:
        conn = await self._connect()
        try:
            return await conn.fetchrow(query, *params)
        finally:
            await conn.close()


def _affected(status: str) -> int:
    # asyncpg returns command tags such as "DELETE 1".
    return int(status.split()[-1]) if status else 0


class PostgresWorkflowRepository(_PostgresStore, WorkflowRepository):
    """Persist workflow projections using PostgreSQL."""

    async def create(self, projection: WorkflowProjection) -> str:
        try:
            await self._execute(
                "INSERT INTO tidyflow_workflows (id, display_name, workflow_type, state, created_at, data) VALUES ($1, $2, $3, $4, $5, $6::jsonb)",
                projection.id,
                projection.display_name,
                projection.workflow_type,
                projection.state,
                projection.created_at,
                projection.model_dump_json(),
            )
        except asyncpg.UniqueViolationError:
            raise ValueError(f"Workflow {projection.id} already exists") from None
        return projection.id

    async def get(self, workflow_id: str) -> WorkflowProjection | None:
        row = await self._fetchrow(
            "SELECT data::text AS data FROM tidyflow_workflows WHERE id = $1", workflow_id
        )
        return WorkflowProjection.model_validate_json(row["data"]) if row else None

    async def _list(self, where: str = "", *params: Any) -> list[WorkflowProjection]:
        rows = await self._fetch(
            f"SELECT data::text AS data FROM tidyflow_workflows {where} ORDER BY created_at",
            *params,
        )
        return [WorkflowProjection.model_validate_json(r["data"]) for r in rows]

    async def list_all(self) -> list[WorkflowProjection]:
        return await self._list()

    async def list_by_type(self, workflow_type: str) -> list[WorkflowProjection]:
        return await self._list("WHERE lower(workflow_type) = lower($1)", workflow_type)

    async def list_by_state(self, state: str) -> list[WorkflowProjection]:
        return await self._list("WHERE state = $1", state)

    async def list_by_display_name(self, display_name: str) -> list[WorkflowProjection]:
        return await self._list("WHERE lower(display_name) = lower($1)", display_name)

    async def update(self, projection: WorkflowProjection) -> None:
        projection.last_updated = utcnow()
        await self._execute(
            "UPDATE tidyflow_workflows SET display_name = $1, workflow_type = $2, state = $3, data = $4::jsonb WHERE id = $5",
            projection.display_name,
            projection.workflow_type,
            projection.state,
            projection.model_dump_json(),
            projection.id,
        )

    async def delete(self, workflow_id: str) -> bool:
        status = await self._execute(
            "DELETE FROM tidyflow_workflows WHERE id = $1", workflow_id
        )
        return _affected(status) > 0


class PostgresProjectRepository(_PostgresStore, ProjectRepository):
    """Persist projects using PostgreSQL."""

    async def create_project(self, project: Project) -> str:
        await self._execute(
            "INSERT INTO tidyflow_projects (id, service_name, data) VALUES ($1, $2, $3::jsonb)",
            project.id,
            project.service_name,
            project.model_dump_json(),
        )
        return project.id

    async def get_project(self, project_id: str) -> Project | None:
        row = await self._fetchrow(
            "SELECT data::text AS data FROM tidyflow_projects WHERE id = $1", project_id
        )
        return Project.model_validate_json(row["data"]) if row else None

    async def list_projects(self) -> list[Project]:
        rows = await self._fetch("SELECT data::text AS data FROM tidyflow_projects")
        return [Project.model_validate_json(r["data"]) for r in rows]

    async def list_projects_by_service(self, service_name: str) -> list[Project]:
        rows = await self._fetch(
            "SELECT data::text AS data FROM tidyflow_projects WHERE lower(service_name) = lower($1)",
            service_name,
        )
        return [Project.model_validate_json(r["data"]) for r in rows]

    async def update_project(self, project: Project) -> None:
        await self._execute(
            "UPDATE tidyflow_projects SET service_name = $1, data = $2::jsonb WHERE id = $3",
            project.service_name,
            project.model_dump_json(),
            project.id,
        )

    async def delete_project(self, project_id: str) -> bool:
        status = await self._execute(
            "DELETE FROM tidyflow_projects WHERE id = $1", project_id
        )
        return _affected(status) > 0
