"""SQLite implementations of the repositories."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any

from ..utils.clock import utcnow
from .models import Project, WorkflowProjection
from .repository import ProjectRepository, WorkflowRepository


class _SQLiteStore:
    """Shared connection handling; queries run in a worker thread."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL,
                workflow_type TEXT NOT NULL,
                state TEXT NOT NULL,
                created_at TEXT NOT NULL,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS ix_workflows_type ON workflows (workflow_type COLLATE NOCASE)"
        )
        cur.execute("CREATE INDEX IF NOT EXISTS ix_workflows_state ON workflows (state)")
        cur.execute(
            "CREATE INDEX IF NOT EXISTS ix_workflows_name ON workflows (display_name COLLATE NOCASE)"
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                service_name TEXT NOT NULL,
                data TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def close(self) -> None:
        self._conn.close()


class SQLiteWorkflowRepository(_SQLiteStore, WorkflowRepository):
    """Persist workflow projections using SQLite.

    The full projection is stored as JSON; type, state and display name are
    copied into indexed columns for the list queries.
    """

    async def create(self, projection: WorkflowProjection) -> str:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO workflows (id, display_name, workflow_type, state, created_at, data) VALUES (?, ?, ?, ?, ?, ?)",
                projection.id,
                projection.display_name,
                projection.workflow_type,
                projection.state,
                projection.created_at.isoformat(),
                projection.model_dump_json(),
            )
        except sqlite3.IntegrityError:
            raise ValueError(f"Workflow {projection.id} already exists") from None
        return projection.id

    async def get(self, workflow_id: str) -> WorkflowProjection | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM workflows WHERE id = ?", workflow_id
        )
        if not row:
            return None
        return WorkflowProjection.model_validate_json(row["data"])

    async def _list(self, where: str = "", *params: Any) -> list[WorkflowProjection]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT data FROM workflows {where} ORDER BY created_at",
            *params,
        )
        return [WorkflowProjection.model_validate_json(r["data"]) for r in rows]

    async def list_all(self) -> list[WorkflowProjection]:
        return await self._list()

    async def list_by_type(self, workflow_type: str) -> list[WorkflowProjection]:
        return await self._list("WHERE workflow_type = ? COLLATE NOCASE", workflow_type)

    async def list_by_state(self, state: str) -> list[WorkflowProjection]:
        return await self._list("WHERE state = ?", state)

    async def list_by_display_name(self, display_name: str) -> list[WorkflowProjection]:
        return await self._list("WHERE display_name = ? COLLATE NOCASE", display_name)

    async def update(self, projection: WorkflowProjection) -> None:
        projection.last_updated = utcnow()
        await asyncio.to_thread(
            self._execute,
            "UPDATE workflows SET display_name = ?, workflow_type = ?, state = ?, data = ? WHERE id = ?",
            projection.display_name,
            projection.workflow_type,
            projection.state,
            projection.model_dump_json(),
            projection.id,
        )

    async def delete(self, workflow_id: str) -> bool:
        deleted = await asyncio.to_thread(
            self._execute, "DELETE FROM workflows WHERE id = ?", workflow_id
        )
        return deleted > 0


class SQLiteProjectRepository(_SQLiteStore, ProjectRepository):
    """Persist projects using SQLite."""

    async def create_project(self, project: Project) -> str:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO projects (id, service_name, data) VALUES (?, ?, ?)",
            project.id,
            project.service_name,
            project.model_dump_json(),
        )
        return project.id

    async def get_project(self, project_id: str) -> Project | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM projects WHERE id = ?", project_id
        )
        return Project.model_validate_json(row["data"]) if row else None

    async def list_projects(self) -> list[Project]:
        rows = await asyncio.to_thread(self._fetchall, "SELECT data FROM projects")
        return [Project.model_validate_json(r["data"]) for r in rows]

    async def list_projects_by_service(self, service_name: str) -> list[Project]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT data FROM projects WHERE service_name = ? COLLATE NOCASE",
            service_name,
        )
        return [Project.model_validate_json(r["data"]) for r in rows]

    async def update_project(self, project: Project) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE projects SET service_name = ?, data = ? WHERE id = ?",
            project.service_name,
            project.model_dump_json(),
            project.id,
        )

    async def delete_project(self, project_id: str) -> bool:
        deleted = await asyncio.to_thread(
            self._execute, "DELETE FROM projects WHERE id = ?", project_id
        )
        return deleted > 0
