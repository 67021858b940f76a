"""Request and response models exchanged with workflow hosts."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from ..persistence.models import HistoryEvent
from ..workflow.enums import CleanupWorkflowType


class WorkflowProgress(BaseModel):
    """Progress block computed by a provider for one workflow."""

    current_step: int = 0
    total_steps: int = 0
    percent_complete: float = 0.0
    current_step_description: str = ""
    requires_manual_action: bool = False
    manual_action_description: Optional[str] = None


class WorkflowResponse(BaseModel):
    """Projection fields combined with the live instance's view."""

    id: str
    display_name: str
    workflow_type: str
    state: str
    status: str
    created_at: datetime
    last_updated: datetime
    error_message: Optional[str] = None
    progress: WorkflowProgress = Field(default_factory=WorkflowProgress)
    metadata: dict[str, str] = Field(default_factory=dict)
    available_actions: list[str] = Field(default_factory=list)
    history: list[HistoryEvent] = Field(default_factory=list)


class WorkflowSummary(BaseModel):
    """Aggregate counts over persisted workflows."""

    total: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    awaiting_manual_action: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_state: dict[str, int] = Field(default_factory=dict)


class ArchiveStageRequest(BaseModel):
    name: str = Field(min_length=1)
    current_percentage: int = Field(default=100, ge=0, le=100)
    target_percentage: int = Field(default=0, ge=0, le=100)
    wait_hours: Optional[float] = Field(default=None, ge=0)


class CreateCleanupWorkflowRequest(BaseModel):
    """Input for creating a configuration cleanup workflow."""

    configuration_name: str = Field(min_length=1)
    workflow_type: CleanupWorkflowType
    current_traffic_percentage: int = Field(default=100, ge=0, le=100)
    wait_duration: Optional[timedelta] = None
    description: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)
    stages: list[ArchiveStageRequest] = Field(default_factory=list)
    project_id: Optional[str] = None


class CodeUpdateRequest(BaseModel):
    """Input for creating a code-update workflow."""

    title: str = Field(min_length=1)
    description: str = ""
    metadata: dict[str, str] = Field(default_factory=dict)
    project_id: Optional[str] = None
