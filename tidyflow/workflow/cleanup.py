"""Common base for the configuration cleanup workflows."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..utils.clock import utcnow
from .contexts import ConfigCleanupContext
from .effects import CleanupEffects, SimulatedEffects
from .enums import WorkflowState, WorkflowTrigger
from .machine import BaseWorkflow, Transition

logger = logging.getLogger(__name__)


class ConfigCleanupWorkflow(BaseWorkflow[ConfigCleanupContext, WorkflowState, WorkflowTrigger]):
    """Shared failure and completion handling for cleanup workflows."""

    def __init__(
        self,
        context: ConfigCleanupContext,
        initial_state: WorkflowState,
        effects: Optional[CleanupEffects] = None,
    ) -> None:
        self.effects: CleanupEffects = effects or SimulatedEffects()
        super().__init__(context, initial_state)

    @property
    def is_terminal(self) -> bool:
        return self.current_state in (WorkflowState.COMPLETED, WorkflowState.FAILED)

    async def fail(self, reason: str) -> bool:
        """Record ``reason`` and drive the workflow to Failed if permitted."""
        if not self.can_fire(WorkflowTrigger.FAIL):
            return False
        self.context.error_message = reason
        await self.fire(WorkflowTrigger.FAIL, reason=reason)
        return True

    async def _fail_with(self, exc: Exception) -> None:
        logger.exception(
            f"{self.__class__.__name__} for {self.context.configuration_name} "
            f"failed in state {self.current_state.value}: {exc}"
        )
        await self.fail(str(exc) or exc.__class__.__name__)

    async def handle_event(self, event_type: str, data: Mapping[str, Any]) -> bool:
        if event_type == WorkflowTrigger.FAIL.value:
            return await self.fail(str(data.get("reason") or "Failed by external event"))
        return False

    # ------------------------------------------------------------------
    # Terminal entry actions
    def _enter_completed(self, transition: Transition) -> None:
        self._cancel_timer()
        self.context.is_completed = True
        self.context.completed_at = utcnow()
        logger.info(
            f"{self.__class__.__name__} completed for {self.context.configuration_name}"
        )

    def _enter_failed(self, transition: Transition) -> None:
        self._cancel_timer()
        if not self.context.error_message:
            if transition.trigger is WorkflowTrigger.TIMEOUT:
                self.context.error_message = "Timed out waiting for deployment"
            else:
                self.context.error_message = str(
                    transition.payload.get("reason")
                    or f"Failed during {transition.source.value}"
                )
        logger.error(
            f"{self.__class__.__name__} failed for {self.context.configuration_name}: "
            f"{self.context.error_message}"
        )
