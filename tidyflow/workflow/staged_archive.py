"""
Staged archive workflow.

Drives a configuration's traffic allocation to its target one stage at a
time. Each stage is reduced, left to bake for its wait duration, and then
either reduced the rest of the way or completed:

    Created --Start--> AwaitingUserAction --UserProceed--> InProgress
    InProgress --ReductionCompleted--> Waiting
    Waiting --WaitPeriodCompleted--> AwaitingUserAction
    AwaitingUserAction / InProgress / Waiting --Complete--> Completed
    AwaitingUserAction / InProgress / Waiting --Fail--> Failed

The live instance is never stored. :func:`determine_initial_state` rebuilds
the state from the persisted context alone so a restarted process picks up
where a continuously running one would be.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional

from ..errors import InvalidWorkflowStateError
from ..utils.clock import utcnow
from .cleanup import ConfigCleanupWorkflow
from .contexts import ConfigCleanupContext
from .effects import CleanupEffects
from .enums import StageStatus, WorkflowState, WorkflowTrigger
from .machine import StateMachine, Transition
from .stages import Stage

logger = logging.getLogger(__name__)

S = WorkflowState
T = WorkflowTrigger


def determine_initial_state(
    context: ConfigCleanupContext, now: Optional[datetime] = None
) -> WorkflowState:
    """Infer where a staged workflow was purely from its context."""
    if context.is_completed:
        return S.COMPLETED
    if context.error_message:
        return S.FAILED
    stage_set = context.stage_set
    if stage_set is None or stage_set.started_at is None:
        return S.CREATED
    stage = stage_set.current_stage
    if stage is None:
        return S.CREATED

    if stage.status is StageStatus.REDUCING_TRAFFIC:
        return S.IN_PROGRESS
    if stage.status is StageStatus.FAILED:
        return S.FAILED
    if stage.status is StageStatus.WAITING:
        ends_at = stage.wait_ends_at()
        if ends_at is not None and (now or utcnow()) < ends_at:
            return S.WAITING
        return S.AWAITING_USER_ACTION
    # Pending, or Completed and ready for the next stage.
    return S.AWAITING_USER_ACTION


class StagedArchiveWorkflow(ConfigCleanupWorkflow):
    """Staged percentage rollback with wait periods between reductions."""

    def __init__(
        self, context: ConfigCleanupContext, effects: Optional[CleanupEffects] = None
    ) -> None:
        super().__init__(context, determine_initial_state(context), effects)

    def configure(self, machine: StateMachine[WorkflowState, WorkflowTrigger]) -> None:
        machine.configure(S.CREATED).permit(
            T.START, S.AWAITING_USER_ACTION, guard=self.can_start
        )

        machine.configure(S.AWAITING_USER_ACTION).permit(
            T.USER_PROCEED, S.IN_PROGRESS
        ).permit(T.COMPLETE, S.COMPLETED).permit(T.FAIL, S.FAILED)

        machine.configure(S.IN_PROGRESS).on_entry(self._enter_in_progress).permit(
            T.REDUCTION_COMPLETED, S.WAITING
        ).permit(T.COMPLETE, S.COMPLETED).permit(T.FAIL, S.FAILED)

        machine.configure(S.WAITING).on_entry(self._enter_waiting).permit(
            T.WAIT_PERIOD_COMPLETED, S.AWAITING_USER_ACTION
        ).permit(T.COMPLETE, S.COMPLETED).permit(T.FAIL, S.FAILED)

        machine.configure(S.COMPLETED).on_entry(self._enter_completed_stages)
        machine.configure(S.FAILED).on_entry(self._enter_failed_stage)

    # ------------------------------------------------------------------
    @property
    def current_stage(self) -> Optional[Stage]:
        stage_set = self.context.stage_set
        return stage_set.current_stage if stage_set else None

    def can_start(self) -> bool:
        stage_set = self.context.stage_set
        return (
            stage_set is not None
            and stage_set.has_reducible_stage()
            and not self.context.is_completed
            and not self.context.error_message
        )

    async def start(self) -> None:
        if self.current_state is not S.CREATED:
            raise InvalidWorkflowStateError(
                f"Cannot start: workflow is in {self.current_state.value} state"
            )
        if not self.can_start():
            raise InvalidWorkflowStateError(
                f"Cannot start staged archive for {self.context.configuration_name}: "
                "no stage has traffic above its target"
            )
        self.context.stage_set.started_at = utcnow()
        await self.fire(T.START)

    def can_proceed(self) -> bool:
        return self.current_state is S.AWAITING_USER_ACTION

    async def proceed(self) -> None:
        """Manually continue with the current stage."""
        if not self.can_proceed():
            raise InvalidWorkflowStateError(
                f"Cannot proceed: workflow is in {self.current_state.value} state, "
                f"expected {S.AWAITING_USER_ACTION.value}"
            )
        await self.fire(T.USER_PROCEED)

    def current_status(self) -> str:
        state = self.current_state
        stage = self.current_stage
        if state is S.CREATED:
            return "Ready to start staged traffic reduction"
        if state is S.AWAITING_USER_ACTION:
            if stage is None:
                return "Awaiting user action"
            if stage.status is StageStatus.WAITING:
                return (
                    f"Wait period in {stage.name} elapsed; proceed to reduce traffic "
                    f"to {stage.target_allocation_percentage}%"
                )
            return f"Awaiting approval to start stage: {stage.name}"
        if state in (S.IN_PROGRESS, S.WAITING):
            return self.context.stage_set.status_description()
        if state is S.COMPLETED:
            return "Configuration archived successfully"
        return f"Failed: {self.context.error_message}"

    def available_actions(self) -> List[str]:
        if self.current_state is S.CREATED:
            return ["Start"]
        if self.current_state is S.AWAITING_USER_ACTION:
            return ["Proceed"]
        if self.current_state is S.WAITING:
            return ["End wait period"]
        return []

    async def handle_event(self, event_type: str, data: Mapping[str, Any]) -> bool:
        if event_type == T.WAIT_PERIOD_COMPLETED.value:
            if self.current_state is not S.WAITING:
                return False
            await self._finish_wait()
            return True
        return await super().handle_event(event_type, data)

    async def on_timer_elapsed(self) -> bool:
        if self.current_state is not S.WAITING:
            return False
        await self._finish_wait()
        return True

    async def resume(self) -> bool:
        stage = self.current_stage
        state = self.current_state
        if stage is None:
            return False
        if state is S.WAITING:
            if self.timer is not None:
                self.timer.schedule(stage.remaining_wait().total_seconds())
            return False
        if state is S.IN_PROGRESS:
            logger.info(
                f"Re-driving interrupted reduction for {self.context.configuration_name} "
                f"in stage {stage.name}"
            )
            await self._drive_current_stage()
            return True
        if (
            state is S.AWAITING_USER_ACTION
            and stage.status is StageStatus.WAITING
            and not stage.reduction_owed
        ):
            # The last wait of this stage ran out while nothing was running.
            if not self._complete_stage(stage):
                await self.fire(T.COMPLETE)
            return True
        return False

    # ------------------------------------------------------------------
    # Entry actions
    async def _enter_in_progress(self, transition: Transition) -> None:
        await self._drive_current_stage()

    async def _drive_current_stage(self) -> None:
        stage_set = self.context.stage_set
        while True:
            stage = stage_set.current_stage if stage_set else None
            if stage is None or stage_set.all_stages_completed:
                await self.fire(T.COMPLETE)
                return
            try:
                wait_follows = await self._reduce_stage(stage)
            except Exception as exc:
                await self._fail_stage(stage, exc)
                return
            if wait_follows:
                await self.fire(T.REDUCTION_COMPLETED)
                return
            if not self._complete_stage(stage):
                await self.fire(T.COMPLETE)
                return

    async def _reduce_stage(self, stage: Stage) -> bool:
        """Run the reduction owed by ``stage``; returns ``True`` if a wait follows."""
        if stage.status in (StageStatus.PENDING, StageStatus.REDUCING_TRAFFIC):
            await self._reduce(stage, stage.next_allocation(), first_phase=True)
            return stage.reduction_owed
        if stage.status is StageStatus.WAITING and stage.reduction_owed:
            await self._reduce(stage, stage.target_allocation_percentage, first_phase=False)
            return True
        return False

    async def _reduce(self, stage: Stage, to_percentage: int, first_phase: bool) -> None:
        from_percentage = stage.current_allocation_percentage
        if first_phase:
            stage.move_to(StageStatus.REDUCING_TRAFFIC)
        if stage.started_at is None:
            stage.started_at = utcnow()
        if to_percentage != from_percentage:
            await self.effects.reduce_traffic(
                self.context.configuration_name,
                stage.name,
                from_percentage,
                to_percentage,
            )
        stage.reduce_to(to_percentage)
        self.context.current_traffic_percentage = to_percentage

    async def _fail_stage(self, stage: Stage, exc: Exception) -> None:
        stage.error_message = str(exc) or exc.__class__.__name__
        stage.move_to(StageStatus.FAILED)
        await self._fail_with(exc)

    def _complete_stage(self, stage: Stage) -> bool:
        """Mark ``stage`` completed; returns ``True`` if another stage follows."""
        if stage.status is not StageStatus.COMPLETED:
            stage.move_to(StageStatus.COMPLETED)
            stage.completed_at = utcnow()
        return self.context.stage_set.move_to_next_stage()

    async def _enter_waiting(self, transition: Transition) -> None:
        stage = self.current_stage
        now = utcnow()
        stage.wait_start_time = now
        self.context.wait_start_time = now
        stage.move_to(StageStatus.WAITING)
        delay = stage.wait_duration.total_seconds()
        if self.timer is not None:
            logger.info(
                f"Waiting {stage.wait_duration} in {stage.name} for "
                f"{self.context.configuration_name} at "
                f"{stage.current_allocation_percentage}%"
            )
            self.timer.schedule(delay)
            return
        await asyncio.sleep(delay)
        if self.current_state is S.WAITING:
            await self._finish_wait()

    async def _finish_wait(self) -> None:
        self._cancel_timer()
        stage = self.current_stage
        if stage.reduction_owed:
            await self.fire(T.WAIT_PERIOD_COMPLETED)
        elif self._complete_stage(stage):
            await self.fire(T.WAIT_PERIOD_COMPLETED)
        else:
            await self.fire(T.COMPLETE)

    def _enter_completed_stages(self, transition: Transition) -> None:
        self.context.stage_set.completed_at = utcnow()
        self._enter_completed(transition)

    def _enter_failed_stage(self, transition: Transition) -> None:
        self._enter_failed(transition)
        stage = self.current_stage
        if stage is not None and not stage.is_terminal:
            stage.error_message = self.context.error_message
            stage.move_to(StageStatus.FAILED)
