"""Allocation stages used by the staged archive workflow."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, model_validator

from ..constants import (
    DEFAULT_WAIT_DURATION,
    INTERMEDIATE_REDUCTION_FACTOR,
    LARGE_REDUCTION_THRESHOLD,
)
from ..errors import InvalidWorkflowStateError
from ..utils.clock import utcnow
from .enums import StageStatus

_ALLOWED_STATUS_MOVES: Dict[StageStatus, FrozenSet[StageStatus]] = {
    StageStatus.PENDING: frozenset({StageStatus.REDUCING_TRAFFIC}),
    StageStatus.REDUCING_TRAFFIC: frozenset(
        {StageStatus.REDUCING_TRAFFIC, StageStatus.WAITING, StageStatus.COMPLETED}
    ),
    StageStatus.WAITING: frozenset({StageStatus.WAITING, StageStatus.COMPLETED}),
    StageStatus.COMPLETED: frozenset(),
    StageStatus.FAILED: frozenset(),
}


class Stage(BaseModel):
    """One named allocation stage, e.g. an environment."""

    name: str = Field(min_length=1)
    current_allocation_percentage: int = Field(default=100, ge=0, le=100)
    target_allocation_percentage: int = Field(default=0, ge=0, le=100)
    status: StageStatus = StageStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    wait_start_time: Optional[datetime] = None
    wait_duration: timedelta = DEFAULT_WAIT_DURATION
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def _target_not_above_current(self) -> "Stage":
        if self.target_allocation_percentage > self.current_allocation_percentage:
            raise ValueError(
                f"stage {self.name!r}: target allocation "
                f"{self.target_allocation_percentage}% is above current "
                f"{self.current_allocation_percentage}%"
            )
        return self

    @property
    def reduction_owed(self) -> bool:
        return self.current_allocation_percentage > self.target_allocation_percentage

    @property
    def is_terminal(self) -> bool:
        return self.status in (StageStatus.COMPLETED, StageStatus.FAILED)

    def next_allocation(self) -> int:
        """Allocation the next reduction of a fresh stage should reach.

        Large reductions stop at an intermediate allocation first so the
        change can bake during a wait period before the final cut.
        """
        current = self.current_allocation_percentage
        target = self.target_allocation_percentage
        reduction = current - target
        if reduction >= LARGE_REDUCTION_THRESHOLD:
            return max(current - math.floor(reduction * INTERMEDIATE_REDUCTION_FACTOR), target)
        return target

    def reduce_to(self, percentage: int) -> None:
        if not (
            self.target_allocation_percentage
            <= percentage
            <= self.current_allocation_percentage
        ):
            raise InvalidWorkflowStateError(
                f"stage {self.name!r}: cannot move allocation from "
                f"{self.current_allocation_percentage}% to {percentage}% "
                f"(target {self.target_allocation_percentage}%)"
            )
        self.current_allocation_percentage = percentage

    def move_to(self, status: StageStatus) -> None:
        """Change status, enforcing the stage lifecycle."""
        if status is StageStatus.FAILED and not self.is_terminal:
            self.status = status
            return
        if status not in _ALLOWED_STATUS_MOVES[self.status]:
            raise InvalidWorkflowStateError(
                f"stage {self.name!r}: illegal status move "
                f"{self.status.value} -> {status.value}"
            )
        self.status = status

    def wait_ends_at(self) -> Optional[datetime]:
        if self.wait_start_time is None:
            return None
        return self.wait_start_time + self.wait_duration

    def remaining_wait(self, now: Optional[datetime] = None) -> timedelta:
        ends_at = self.wait_ends_at()
        if ends_at is None:
            return self.wait_duration
        remaining = ends_at - (now or utcnow())
        return max(remaining, timedelta(0))


class StageSet(BaseModel):
    """Ordered stages plus the index of the stage being worked on."""

    stages: List[Stage] = Field(default_factory=list)
    current_stage_index: int = Field(default=0, ge=0)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def current_stage(self) -> Optional[Stage]:
        if self.current_stage_index < len(self.stages):
            return self.stages[self.current_stage_index]
        return None

    @property
    def all_stages_completed(self) -> bool:
        return bool(self.stages) and all(
            s.status is StageStatus.COMPLETED for s in self.stages
        )

    @property
    def completed_count(self) -> int:
        return sum(1 for s in self.stages if s.status is StageStatus.COMPLETED)

    @property
    def overall_progress(self) -> float:
        """Progress across all stages as a percentage."""
        if not self.stages:
            return 0.0
        partial = 0.0
        stage = self.current_stage
        if stage is not None and stage.status is StageStatus.REDUCING_TRAFFIC:
            partial = 0.5
        elif stage is not None and stage.status is StageStatus.WAITING:
            partial = 0.75
        return (self.completed_count + partial) / len(self.stages) * 100

    def has_reducible_stage(self) -> bool:
        return any(s.reduction_owed for s in self.stages)

    def move_to_next_stage(self) -> bool:
        """Advance the index; returns ``False`` when already on the last stage."""
        if self.current_stage_index < len(self.stages) - 1:
            self.current_stage_index += 1
            return True
        return False

    def status_description(self) -> str:
        stage = self.current_stage
        if stage is None:
            return "All stages completed" if self.all_stages_completed else "No stages configured"
        if stage.status is StageStatus.PENDING:
            return f"Ready to start stage: {stage.name}"
        if stage.status is StageStatus.REDUCING_TRAFFIC:
            return (
                f"Reducing traffic in {stage.name} from "
                f"{stage.current_allocation_percentage}% to "
                f"{stage.target_allocation_percentage}%"
            )
        if stage.status is StageStatus.WAITING:
            started = stage.wait_start_time.strftime("%Y-%m-%d %H:%M") if stage.wait_start_time else "?"
            return (
                f"Waiting in {stage.name} at {stage.current_allocation_percentage}% "
                f"(started: {started})"
            )
        if stage.status is StageStatus.COMPLETED:
            return f"Stage {stage.name} completed"
        return f"Stage {stage.name} failed: {stage.error_message}"
