"""Single-shot cleanup that replaces a configuration with its default values."""

from __future__ import annotations

from typing import List

from ..errors import InvalidWorkflowStateError
from ..utils.clock import utcnow
from .cleanup import ConfigCleanupWorkflow
from .contexts import ConfigCleanupContext
from .enums import WorkflowState, WorkflowTrigger
from .machine import StateMachine, Transition

S = WorkflowState
T = WorkflowTrigger


def determine_initial_state(context: ConfigCleanupContext) -> WorkflowState:
    # A transform interrupted mid-flight has no durable marker of success,
    # so it goes back to Created and can be started again.
    if context.is_completed:
        return S.COMPLETED
    if context.error_message:
        return S.FAILED
    return S.CREATED


class TransformWorkflow(ConfigCleanupWorkflow):
    def __init__(self, context: ConfigCleanupContext, effects=None) -> None:
        super().__init__(context, determine_initial_state(context), effects)

    def configure(self, machine: StateMachine[WorkflowState, WorkflowTrigger]) -> None:
        machine.configure(S.CREATED).permit(T.START, S.TRANSFORMING, guard=self.can_start)
        machine.configure(S.TRANSFORMING).on_entry(self._enter_transforming).permit(
            T.TRANSFORM_COMPLETED, S.COMPLETED
        ).permit(T.FAIL, S.FAILED)
        machine.configure(S.COMPLETED).on_entry(self._enter_completed)
        machine.configure(S.FAILED).on_entry(self._enter_failed)

    def can_start(self) -> bool:
        return (
            bool(self.context.configuration_name.strip())
            and not self.context.is_completed
            and not self.context.error_message
        )

    async def start(self) -> None:
        if self.current_state is not S.CREATED or not self.can_start():
            raise InvalidWorkflowStateError(
                f"Cannot start transform of {self.context.configuration_name!r} "
                f"in state {self.current_state.value}"
            )
        self.context.transform_started_at = utcnow()
        await self.fire(T.START)

    def current_status(self) -> str:
        if self.current_state is S.CREATED:
            return "Ready to transform configuration to default"
        if self.current_state is S.TRANSFORMING:
            return "Transforming configuration to default"
        if self.current_state is S.COMPLETED:
            return "Configuration transformed to default"
        return f"Failed: {self.context.error_message}"

    def available_actions(self) -> List[str]:
        return ["Start"] if self.current_state is S.CREATED else []

    async def _enter_transforming(self, transition: Transition) -> None:
        try:
            await self.effects.transform_to_default(self.context.configuration_name)
        except Exception as exc:
            await self._fail_with(exc)
            return
        await self.fire(T.TRANSFORM_COMPLETED)
