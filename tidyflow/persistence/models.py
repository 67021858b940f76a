"""Data models for persisted workflow and project records."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..utils.clock import utcnow
from ..workflow.contexts import WorkflowContext


class HistoryEvent(BaseModel):
    """One entry in a workflow's audit trail."""

    timestamp: datetime = Field(default_factory=utcnow)
    event_type: str
    from_state: Optional[str] = None
    to_state: Optional[str] = None
    description: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


class WorkflowProjection(BaseModel):
    """Durable, externally observable record of a workflow instance.

    ``context`` is stored with its ``kind`` discriminator so any backend can
    decode it back to the right context model.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    display_name: str
    workflow_type: str
    state: str
    context: WorkflowContext
    created_at: datetime = Field(default_factory=utcnow)
    last_updated: datetime = Field(default_factory=utcnow)
    error_message: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)
    history: list[HistoryEvent] = Field(default_factory=list)

    def record(
        self,
        event_type: str,
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        description: str = "",
        data: Optional[dict[str, Any]] = None,
    ) -> HistoryEvent:
        event = HistoryEvent(
            event_type=event_type,
            from_state=from_state,
            to_state=to_state,
            description=description,
            data=dict(data or {}),
        )
        self.history.append(event)
        return event


class ProjectStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    ON_HOLD = "OnHold"


class Project(BaseModel):
    """A grouping of cleanup workflows owned by one service."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(min_length=1)
    service_name: str = Field(min_length=1)
    description: str = ""
    status: ProjectStatus = ProjectStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    workflow_ids: list[str] = Field(default_factory=list)
