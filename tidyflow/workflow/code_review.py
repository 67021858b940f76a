"""Code-review-driven cleanup: remove the configuration through a pull request."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..errors import InvalidWorkflowStateError
from ..utils.clock import utcnow
from .cleanup import ConfigCleanupWorkflow
from .contexts import ConfigCleanupContext
from .effects import CleanupEffects
from .enums import WorkflowState, WorkflowTrigger
from .machine import StateMachine, Transition

logger = logging.getLogger(__name__)

S = WorkflowState
T = WorkflowTrigger

# External event names accepted in addition to the trigger names themselves.
_EVENT_ALIASES: Dict[str, WorkflowTrigger] = {
    "DeploymentCompleted": T.DEPLOYMENT_DETECTED,
}

_EVENT_TRIGGERS = (
    T.USER_PROCEED,
    T.PR_CREATED,
    T.PR_APPROVED,
    T.PR_MERGED,
    T.DEPLOYMENT_DETECTED,
    T.TIMEOUT,
)


def determine_initial_state(context: ConfigCleanupContext) -> WorkflowState:
    """Infer the review phase from the timestamps stamped on ``context``."""
    if context.is_completed or context.deployment_detected_at:
        return S.COMPLETED
    if context.error_message:
        return S.FAILED
    if context.pr_merged_at:
        return S.WAITING_FOR_DEPLOYMENT
    if context.pr_approved_at:
        return S.MERGED
    if context.pr_created_at:
        return S.AWAITING_REVIEW
    if context.pr_requested_at:
        return S.CREATING_PR
    if context.code_work_started_at:
        return S.IN_PROGRESS
    return S.CREATED


class CodeReviewWorkflow(ConfigCleanupWorkflow):
    """Linear review chain; every step is manual or externally notified."""

    def __init__(
        self, context: ConfigCleanupContext, effects: Optional[CleanupEffects] = None
    ) -> None:
        super().__init__(context, determine_initial_state(context), effects)

    def configure(self, machine: StateMachine[WorkflowState, WorkflowTrigger]) -> None:
        chain = [
            (S.CREATED, T.START, S.IN_PROGRESS, self._enter_in_progress),
            (S.IN_PROGRESS, T.USER_PROCEED, S.CREATING_PR, self._enter_creating_pr),
            (S.CREATING_PR, T.PR_CREATED, S.AWAITING_REVIEW, self._enter_awaiting_review),
            (S.AWAITING_REVIEW, T.PR_APPROVED, S.MERGED, self._enter_merged),
            (
                S.MERGED,
                T.PR_MERGED,
                S.WAITING_FOR_DEPLOYMENT,
                self._enter_waiting_for_deployment,
            ),
            (S.WAITING_FOR_DEPLOYMENT, T.DEPLOYMENT_DETECTED, S.COMPLETED, None),
        ]
        for source, trigger, destination, _ in chain:
            machine.configure(source).permit(trigger, destination).permit(T.FAIL, S.FAILED)
        for _, _, destination, entry in chain:
            if entry is not None:
                machine.configure(destination).on_entry(entry)

        machine.configure(S.WAITING_FOR_DEPLOYMENT).permit(T.TIMEOUT, S.FAILED)
        machine.configure(S.COMPLETED).on_entry(self._enter_deployed)
        machine.configure(S.FAILED).on_entry(self._enter_failed)

    def can_start(self) -> bool:
        return self.current_state is S.CREATED and bool(
            self.context.configuration_name.strip()
        )

    async def start(self) -> None:
        if not self.can_start():
            raise InvalidWorkflowStateError(
                f"Cannot start code review for {self.context.configuration_name!r} "
                f"in state {self.current_state.value}"
            )
        await self.fire(T.START)

    def can_proceed(self) -> bool:
        return self.current_state is S.IN_PROGRESS

    async def proceed(self) -> None:
        """Request the pull request once the code work is done."""
        if not self.can_proceed():
            raise InvalidWorkflowStateError(
                f"Cannot proceed: workflow is in {self.current_state.value} state, "
                f"expected {S.IN_PROGRESS.value}"
            )
        await self.fire(T.USER_PROCEED)

    def current_status(self) -> str:
        return _STATUS_TEXT[self.current_state](self.context)

    def available_actions(self) -> List[str]:
        return list(_ACTIONS.get(self.current_state, []))

    async def handle_event(self, event_type: str, data: Mapping[str, Any]) -> bool:
        trigger = _EVENT_ALIASES.get(event_type)
        if trigger is None:
            trigger = next((t for t in _EVENT_TRIGGERS if t.value == event_type), None)
        if trigger is None:
            return await super().handle_event(event_type, data)
        if not self.can_fire(trigger):
            return False
        await self._machine.fire(trigger, data)
        return True

    # ------------------------------------------------------------------
    def _enter_in_progress(self, transition: Transition) -> None:
        self.context.code_work_started_at = utcnow()

    def _enter_creating_pr(self, transition: Transition) -> None:
        self.context.pr_requested_at = utcnow()

    def _enter_awaiting_review(self, transition: Transition) -> None:
        url = transition.payload.get("url") or transition.payload.get("pullRequestUrl")
        if url:
            self.context.pull_request_url = str(url)
        self.context.pr_created_at = utcnow()
        logger.info(
            f"Pull request for {self.context.configuration_name}: "
            f"{self.context.pull_request_url}"
        )

    def _enter_merged(self, transition: Transition) -> None:
        self.context.pr_approved_at = utcnow()

    def _enter_waiting_for_deployment(self, transition: Transition) -> None:
        self.context.pr_merged_at = utcnow()

    def _enter_deployed(self, transition: Transition) -> None:
        self.context.deployment_detected_at = utcnow()
        self._enter_completed(transition)


_STATUS_TEXT: Dict[WorkflowState, Callable[[ConfigCleanupContext], str]] = {
    S.CREATED: lambda c: "Ready to start code changes",
    S.IN_PROGRESS: lambda c: "Code changes in progress",
    S.CREATING_PR: lambda c: "Creating pull request",
    S.AWAITING_REVIEW: lambda c: f"Awaiting review of {c.pull_request_url or 'pull request'}",
    S.MERGED: lambda c: "Pull request approved, waiting for merge",
    S.WAITING_FOR_DEPLOYMENT: lambda c: "Merged, waiting for deployment",
    S.COMPLETED: lambda c: "Configuration removed and deployed",
    S.FAILED: lambda c: f"Failed: {c.error_message}",
}

_ACTIONS: Dict[WorkflowState, List[str]] = {
    S.CREATED: ["Start"],
    S.IN_PROGRESS: ["Proceed"],
    S.CREATING_PR: ["PRCreated"],
    S.AWAITING_REVIEW: ["PRApproved"],
    S.MERGED: ["PRMerged"],
    S.WAITING_FOR_DEPLOYMENT: ["DeploymentDetected", "Timeout"],
}
