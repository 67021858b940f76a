"""Hosting layer: providers, scheduler and workflow hosts."""

from .models import (
    ArchiveStageRequest,
    CodeUpdateRequest,
    CreateCleanupWorkflowRequest,
    WorkflowProgress,
    WorkflowResponse,
    WorkflowSummary,
)
from .projects import ProjectProgress, ProjectService
from .provider import WorkflowProvider
from .providers import CodeUpdateProvider, ConfigCleanupProvider
from .scheduler import WaitScheduler, WorkflowTimer
from .service import ConfigCleanupHost, GenericWorkflowHost

__all__ = [
    "ArchiveStageRequest",
    "CodeUpdateRequest",
    "CreateCleanupWorkflowRequest",
    "WorkflowProgress",
    "WorkflowResponse",
    "WorkflowSummary",
    "ProjectProgress",
    "ProjectService",
    "WorkflowProvider",
    "CodeUpdateProvider",
    "ConfigCleanupProvider",
    "WaitScheduler",
    "WorkflowTimer",
    "ConfigCleanupHost",
    "GenericWorkflowHost",
]
