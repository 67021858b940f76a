"""
Code-update workflow.

An independent family with its own context shape: a code change moves from
an open pull request through test validation, review and merge until its
deployment is detected. Each phase stamps its timestamp and advances the
progress fraction on the context.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Tuple

from ..errors import InvalidWorkflowStateError
from ..utils.clock import utcnow
from .contexts import CodeUpdateContext
from .enums import CodeUpdateState, CodeUpdateTrigger
from .machine import BaseWorkflow, StateMachine, Transition

logger = logging.getLogger(__name__)

S = CodeUpdateState
T = CodeUpdateTrigger

# state -> (trigger to reach the next state, next state, context stamp, progress)
_CHAIN: Dict[CodeUpdateState, Tuple[CodeUpdateTrigger, CodeUpdateState, str, float]] = {
    S.PR_IN_PROGRESS: (T.VALIDATE_IN_TEST, S.VALIDATION_IN_TEST_ENV, "validation_in_test_env_at", 0.25),
    S.VALIDATION_IN_TEST_ENV: (T.SUBMIT_FOR_REVIEW, S.PR_IN_REVIEW, "pr_in_review_at", 0.5),
    S.PR_IN_REVIEW: (T.APPROVE_AND_MERGE, S.MERGED_AWAITING_DEPLOYMENT, "merged_awaiting_deployment_at", 0.75),
    S.MERGED_AWAITING_DEPLOYMENT: (T.DETECT_DEPLOYMENT, S.DEPLOYMENT_DONE, "deployment_done_at", 1.0),
}

_STATUS_TEXT = {
    S.PR_IN_PROGRESS: "Pull request in progress",
    S.VALIDATION_IN_TEST_ENV: "Validating in test environment",
    S.PR_IN_REVIEW: "Pull request in review",
    S.MERGED_AWAITING_DEPLOYMENT: "Merged, awaiting deployment",
    S.DEPLOYMENT_DONE: "Deployment done",
}

_ACTIONS = {
    S.PR_IN_PROGRESS: ["ValidateInTest", "Fail"],
    S.VALIDATION_IN_TEST_ENV: ["SubmitForReview", "Fail"],
    S.PR_IN_REVIEW: ["ApproveAndMerge", "Fail"],
    S.MERGED_AWAITING_DEPLOYMENT: ["DetectDeployment", "Fail"],
}


def determine_initial_state(context: CodeUpdateContext) -> CodeUpdateState:
    """Infer the phase from the latest timestamp stamped on ``context``."""
    if context.is_completed or context.deployment_done_at:
        return S.DEPLOYMENT_DONE
    if context.error_message:
        return S.FAILED
    if context.merged_awaiting_deployment_at:
        return S.MERGED_AWAITING_DEPLOYMENT
    if context.pr_in_review_at:
        return S.PR_IN_REVIEW
    if context.validation_in_test_env_at:
        return S.VALIDATION_IN_TEST_ENV
    return S.PR_IN_PROGRESS


class CodeUpdateWorkflow(BaseWorkflow[CodeUpdateContext, CodeUpdateState, CodeUpdateTrigger]):
    def __init__(self, context: CodeUpdateContext) -> None:
        super().__init__(context, determine_initial_state(context))

    def configure(self, machine: StateMachine[CodeUpdateState, CodeUpdateTrigger]) -> None:
        for source, (trigger, destination, _, _) in _CHAIN.items():
            guard = self._is_started if source is S.PR_IN_PROGRESS else None
            machine.configure(source).permit(trigger, destination, guard=guard).permit(T.FAIL, S.FAILED)
            machine.configure(destination).on_entry(self._stamp_phase)
        machine.configure(S.DEPLOYMENT_DONE).on_entry(self._enter_done)
        machine.configure(S.FAILED).on_entry(self._enter_failed)

    @property
    def is_terminal(self) -> bool:
        return self.current_state in (S.DEPLOYMENT_DONE, S.FAILED)

    def _is_started(self) -> bool:
        return self.context.started_at is not None

    def can_start(self) -> bool:
        return (
            self.context.started_at is None
            and self.current_state is S.PR_IN_PROGRESS
            and bool(self.context.title.strip())
        )

    async def start(self) -> None:
        if not self.can_start():
            raise InvalidWorkflowStateError(
                f"Cannot start code update {self.context.title!r}: "
                "already started or missing a title"
            )
        now = utcnow()
        self.context.started_at = now
        self.context.pr_in_progress_at = now
        logger.info(f"Code update {self.context.title!r} started")

    def current_status(self) -> str:
        if self.current_state is S.FAILED:
            return f"Failed: {self.context.error_message}"
        if self.current_state is S.PR_IN_PROGRESS and self.context.started_at is None:
            return "Ready to start code update"
        return _STATUS_TEXT[self.current_state]

    def available_actions(self) -> List[str]:
        if self.current_state is S.PR_IN_PROGRESS and self.context.started_at is None:
            return ["Start"]
        return list(_ACTIONS.get(self.current_state, []))

    async def fail(self, reason: str) -> bool:
        if not self.can_fire(T.FAIL):
            return False
        self.context.error_message = reason
        await self.fire(T.FAIL, reason=reason)
        return True

    async def handle_event(self, event_type: str, data: Mapping[str, Any]) -> bool:
        trigger = next((t for t in CodeUpdateTrigger if t.value == event_type), None)
        if trigger is None:
            return False
        if trigger is T.FAIL:
            return await self.fail(str(data.get("reason") or "Failed by external event"))
        if not self.can_fire(trigger):
            return False
        await self._machine.fire(trigger, data)
        return True

    # ------------------------------------------------------------------
    def _stamp_phase(self, transition: Transition) -> None:
        _, _, stamp, progress = _CHAIN[transition.source]
        setattr(self.context, stamp, utcnow())
        self.context.progress = progress

    def _enter_done(self, transition: Transition) -> None:
        self.context.is_completed = True
        self.context.completed_at = self.context.deployment_done_at
        logger.info(f"Code update {self.context.title!r} deployed")

    def _enter_failed(self, transition: Transition) -> None:
        if not self.context.error_message:
            self.context.error_message = f"Failed during {transition.source.value}"
        logger.error(
            f"Code update {self.context.title!r} failed: {self.context.error_message}"
        )
