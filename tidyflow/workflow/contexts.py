"""Context models carrying the data each workflow family acts on.

Contexts are persisted inside workflow projections as a discriminated union
keyed by ``kind`` so storage can decode them back to the right model.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Annotated, Dict, Iterable, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..constants import DEFAULT_WAIT_DURATION
from ..utils.clock import utcnow
from .enums import CleanupWorkflowType
from .stages import Stage, StageSet

StageDefinition = Tuple[str, int, int, Optional[timedelta]]


class ConfigCleanupContext(BaseModel):
    """Data for one configuration being cleaned up."""

    kind: Literal["config_cleanup"] = "config_cleanup"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: Optional[str] = None

    configuration_name: str
    workflow_type: CleanupWorkflowType
    description: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    current_traffic_percentage: int = Field(default=100, ge=0, le=100)
    pull_request_url: Optional[str] = None
    wait_start_time: Optional[datetime] = None
    wait_duration: timedelta = DEFAULT_WAIT_DURATION
    error_message: Optional[str] = None
    is_completed: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    # Staged archive
    stage_set: Optional[StageSet] = None

    # Code review
    code_work_started_at: Optional[datetime] = None
    pr_requested_at: Optional[datetime] = None
    pr_created_at: Optional[datetime] = None
    pr_approved_at: Optional[datetime] = None
    pr_merged_at: Optional[datetime] = None
    deployment_detected_at: Optional[datetime] = None

    # Transform
    transform_started_at: Optional[datetime] = None

    def initialize_stages(self, definitions: Iterable[StageDefinition]) -> StageSet:
        """Replace the stage set with stages built from ``definitions``."""
        self.stage_set = StageSet(
            stages=[
                Stage(
                    name=name,
                    current_allocation_percentage=current,
                    target_allocation_percentage=target,
                    wait_duration=wait if wait is not None else self.wait_duration,
                )
                for name, current, target, wait in definitions
            ]
        )
        return self.stage_set

    def overall_progress(self) -> float:
        if self.workflow_type is CleanupWorkflowType.ARCHIVE_ONLY and self.stage_set:
            return self.stage_set.overall_progress
        return 100.0 if self.is_completed else 0.0

    def status_description(self) -> str:
        if self.workflow_type is CleanupWorkflowType.ARCHIVE_ONLY and self.stage_set:
            return self.stage_set.status_description()
        return "Completed" if self.is_completed else "In Progress"


class CodeUpdateContext(BaseModel):
    """Tracks a code change moving through review and deployment."""

    kind: Literal["code_update"] = "code_update"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: Optional[str] = None

    title: str
    description: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)
    pull_request_url: Optional[str] = None
    error_message: Optional[str] = None
    is_completed: bool = False

    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    pr_in_progress_at: Optional[datetime] = None
    validation_in_test_env_at: Optional[datetime] = None
    pr_in_review_at: Optional[datetime] = None
    merged_awaiting_deployment_at: Optional[datetime] = None
    deployment_done_at: Optional[datetime] = None

    # Fraction of the chain completed, 0.0 to 1.0.
    progress: float = Field(default=0.0, ge=0.0, le=1.0)

    def status_description(self) -> str:
        if self.is_completed or self.deployment_done_at:
            return "Code update deployed"
        if self.error_message:
            return f"Failed: {self.error_message}"
        if self.merged_awaiting_deployment_at:
            return "Waiting for deployment"
        if self.pr_in_review_at:
            return "In PR review"
        if self.validation_in_test_env_at:
            return "Validating in test environment"
        if self.pr_in_progress_at:
            return "PR in progress"
        if self.started_at:
            return "Workflow started"
        return "Ready to start code update"


WorkflowContext = Annotated[
    Union[ConfigCleanupContext, CodeUpdateContext], Field(discriminator="kind")
]
