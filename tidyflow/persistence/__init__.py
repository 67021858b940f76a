"""Persistence layer for tidyflow workflows and projects."""

from __future__ import annotations

import os
from typing import Optional

from ..config import TidyflowConfig, load_config
from .inmemory import InMemoryProjectRepository, InMemoryWorkflowRepository
from .models import HistoryEvent, Project, ProjectStatus, WorkflowProjection
from .repository import ProjectRepository, WorkflowRepository
from .sqlite import SQLiteProjectRepository, SQLiteWorkflowRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresProjectRepository, PostgresWorkflowRepository
except Exception:  # pragma: no cover - optional dependency
    PostgresProjectRepository = None  # type: ignore
    PostgresWorkflowRepository = None  # type: ignore

_repository_instance: WorkflowRepository | None = None
_project_repository_instance: ProjectRepository | None = None


def _resolve_database_url(
    database_url: Optional[str], config: Optional[TidyflowConfig]
) -> Optional[str]:
    config = config or load_config()
    return (
        database_url
        or os.getenv("TIDYFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )


def get_repository(
    database_url: Optional[str] = None, config: Optional[TidyflowConfig] = None
) -> WorkflowRepository:
    """Factory function to obtain a workflow repository.

    The repository backend is selected based on ``database_url`` which can be
    provided explicitly, via environment variable ``TIDYFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    database_url = _resolve_database_url(database_url, config)

    if not database_url:
        _repository_instance = InMemoryWorkflowRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteWorkflowRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresWorkflowRepository is None:
            raise RuntimeError("Postgres support not available")
        _repository_instance = PostgresWorkflowRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


def get_project_repository(
    database_url: Optional[str] = None, config: Optional[TidyflowConfig] = None
) -> ProjectRepository:
    """Obtain the project repository for the same backend as :func:`get_repository`."""

    global _project_repository_instance
    if (
        _project_repository_instance is not None
        and database_url is None
        and config is None
    ):
        return _project_repository_instance

    database_url = _resolve_database_url(database_url, config)

    if not database_url:
        _project_repository_instance = InMemoryProjectRepository()
    elif database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _project_repository_instance = SQLiteProjectRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresProjectRepository is None:
            raise RuntimeError("Postgres support not available")
        _project_repository_instance = PostgresProjectRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _project_repository_instance


__all__ = [
    "HistoryEvent",
    "Project",
    "ProjectStatus",
    "WorkflowProjection",
    "WorkflowRepository",
    "ProjectRepository",
    "InMemoryWorkflowRepository",
    "InMemoryProjectRepository",
    "SQLiteWorkflowRepository",
    "SQLiteProjectRepository",
    "PostgresWorkflowRepository",
    "PostgresProjectRepository",
    "get_repository",
    "get_project_repository",
]
