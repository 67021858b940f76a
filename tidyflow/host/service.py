"""
Generic workflow host.

Creates, persists, rehydrates and drives any workflow family through a
:class:`~tidyflow.host.provider.WorkflowProvider`. The repository is the
source of truth; live instances are cached only for continuity and are
rebuilt from the stored context whenever they are missing.

Every operation that reads, changes and writes back a projection holds the
per-id lock, and so do timer callbacks.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, Generic, Iterable, Mapping, Optional, Tuple, TypeVar

from ..constants import DEFAULT_WAIT_DURATION
from ..errors import (
    UnsupportedEventError,
    UnsupportedOperationError,
    WorkflowNotFoundError,
)
from ..persistence.models import WorkflowProjection
from ..persistence.repository import WorkflowRepository
from ..workflow.code_review import CodeReviewWorkflow
from ..workflow.effects import CleanupEffects
from ..workflow.enums import WorkflowState, is_terminal_state, requires_manual_action
from ..workflow.staged_archive import StagedArchiveWorkflow
from .models import CreateCleanupWorkflowRequest, WorkflowResponse, WorkflowSummary
from .provider import WorkflowProvider
from .providers import ConfigCleanupProvider
from .scheduler import WaitScheduler

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT")
ContextT = TypeVar("ContextT")


class GenericWorkflowHost(Generic[RequestT, ContextT]):
    """Hosts one workflow family described by ``provider``."""

    def __init__(
        self,
        repository: WorkflowRepository,
        provider: WorkflowProvider[RequestT, ContextT],
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.scheduler = WaitScheduler(self._on_timer_elapsed)
        self._workflows: Dict[str, Any] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, workflow_id: str) -> asyncio.Lock:
        return self._locks.setdefault(workflow_id, asyncio.Lock())

    def _bind(self, workflow_id: str, workflow: Any) -> None:
        workflow.timer = self.scheduler.timer_for(workflow_id)
        self._workflows[workflow_id] = workflow

    def _owns(self, projection: Optional[WorkflowProjection]) -> bool:
        return projection is not None and isinstance(
            projection.context, self.provider.context_type
        )

    # ------------------------------------------------------------------
    async def create_workflow(self, request: RequestT) -> str:
        context = self.provider.create_context(request)
        workflow = self.provider.create_workflow(context)
        state = self.provider.current_state(workflow)
        display_name = self.provider.display_name(context)
        projection = WorkflowProjection(
            id=context.id,
            display_name=display_name,
            workflow_type=self.provider.workflow_type(context),
            state=state,
            context=context,
            metadata=self.provider.metadata(context),
            error_message=self.provider.error_message(context),
        )
        projection.record(
            "WorkflowCreated",
            to_state=state,
            description=f"Workflow created for {display_name}",
        )
        async with self._lock(projection.id):
            await self.repository.create(projection)
            self._bind(projection.id, workflow)
        logger.info(
            f"Created {projection.workflow_type} workflow {projection.id} for {display_name}"
        )
        return projection.id

    async def get_workflow(self, workflow_id: str) -> WorkflowResponse:
        async with self._lock(workflow_id):
            projection, workflow = await self._obtain(workflow_id)
            return self._response(projection, workflow)

    async def get_all_workflows(self) -> list[WorkflowResponse]:
        """Responses for every workflow of this family, newest first."""
        projections = [p for p in await self.repository.list_all() if self._owns(p)]
        projections.sort(key=lambda p: p.created_at, reverse=True)
        responses = []
        for stored in projections:
            async with self._lock(stored.id):
                try:
                    projection, workflow = await self._obtain(stored.id)
                except WorkflowNotFoundError:
                    continue
                responses.append(self._response(projection, workflow))
        return responses

    async def start_workflow(self, workflow_id: str) -> WorkflowResponse:
        async with self._lock(workflow_id):
            projection, workflow = await self._obtain(workflow_id)
            before = self.provider.current_state(workflow)
            await workflow.start()
            await self._persist(
                projection, workflow, "WorkflowStarted", before, "Workflow started"
            )
            logger.info(
                f"Started workflow {workflow_id}: {before} -> {projection.state}"
            )
            return self._response(projection, workflow)

    async def handle_external_event(
        self,
        workflow_id: str,
        event_type: str,
        data: Optional[Mapping[str, Any]] = None,
    ) -> WorkflowResponse:
        data = dict(data or {})
        async with self._lock(workflow_id):
            projection, workflow = await self._obtain(workflow_id)
            before = self.provider.current_state(workflow)
            handled = await self.provider.handle_external_event(workflow, event_type, data)
            if not handled:
                raise UnsupportedEventError(
                    f"Event {event_type} is not supported by {projection.workflow_type} "
                    f"workflow {workflow_id} in state {before}"
                )
            await self._persist(
                projection,
                workflow,
                event_type,
                before,
                f"External event {event_type}",
                data,
            )
            return self._response(projection, workflow)

    async def proceed_workflow(self, workflow_id: str) -> WorkflowResponse:
        raise UnsupportedOperationError(
            f"Manual proceed is not supported by {self.__class__.__name__}"
        )

    async def delete_workflow(self, workflow_id: str) -> bool:
        async with self._lock(workflow_id):
            projection = await self.repository.get(workflow_id)
            if not self._owns(projection):
                return False
            self.scheduler.cancel(workflow_id)
            self._workflows.pop(workflow_id, None)
            deleted = await self.repository.delete(workflow_id)
        self._locks.pop(workflow_id, None)
        if deleted:
            logger.info(f"Deleted workflow {workflow_id}")
        return deleted

    async def summary(self) -> WorkflowSummary:
        """Counts over every stored workflow, whatever its family."""
        projections = await self.repository.list_all()
        summary = WorkflowSummary(total=len(projections))
        for projection in projections:
            state = projection.state
            if state == WorkflowState.FAILED.value:
                summary.failed += 1
            elif is_terminal_state(state):
                summary.completed += 1
            else:
                summary.active += 1
            if requires_manual_action(state):
                summary.awaiting_manual_action += 1
            summary.by_type[projection.workflow_type] = (
                summary.by_type.get(projection.workflow_type, 0) + 1
            )
            summary.by_state[state] = summary.by_state.get(state, 0) + 1
        return summary

    async def recover(self) -> list[str]:
        """Rehydrate every unfinished workflow of this family.

        Call once on process start so pending wait periods resume without a
        caller having to touch each workflow.
        """
        recovered = []
        for stored in await self.repository.list_all():
            if not self._owns(stored) or is_terminal_state(stored.state):
                continue
            async with self._lock(stored.id):
                try:
                    await self._obtain(stored.id)
                except WorkflowNotFoundError:
                    continue
            recovered.append(stored.id)
        if recovered:
            logger.info(f"Recovered {len(recovered)} unfinished workflow(s)")
        return recovered

    async def close(self) -> None:
        await self.scheduler.shutdown()

    # ------------------------------------------------------------------
    async def _obtain(self, workflow_id: str) -> Tuple[WorkflowProjection, Any]:
        """Fetch the projection and the cached or rehydrated live workflow.

        Callers hold the id's lock. An id that is missing or belongs to another
        family releases its cached workflow and lock.
        """
        projection = await self.repository.get(workflow_id)
        if not self._owns(projection):
            self._workflows.pop(workflow_id, None)
            self._locks.pop(workflow_id, None)
            raise WorkflowNotFoundError(workflow_id)

        workflow = self._workflows.get(workflow_id)
        if workflow is not None:
            return projection, workflow

        workflow = self.provider.create_workflow(projection.context)
        self._bind(workflow_id, workflow)
        before = projection.state
        logger.info(
            f"Rehydrated workflow {workflow_id} in state "
            f"{self.provider.current_state(workflow)} (stored {before})"
        )
        changed = await workflow.resume()
        if changed or self.provider.current_state(workflow) != before:
            await self._persist(
                projection,
                workflow,
                "WorkflowResumed",
                before,
                "Workflow resumed from stored context",
            )
        return projection, workflow

    async def _persist(
        self,
        projection: WorkflowProjection,
        workflow: Any,
        event_type: str,
        from_state: str,
        description: str = "",
        data: Optional[Mapping[str, Any]] = None,
    ) -> None:
        context = self.provider.context(workflow)
        to_state = self.provider.current_state(workflow)
        projection.record(
            event_type,
            from_state=from_state,
            to_state=to_state,
            description=description,
            data=dict(data or {}),
        )
        projection.state = to_state
        projection.context = context
        projection.error_message = self.provider.error_message(context)
        projection.metadata = self.provider.metadata(context)
        await self.repository.update(projection)

    def _response(self, projection: WorkflowProjection, workflow: Any) -> WorkflowResponse:
        context = self.provider.context(workflow)
        return WorkflowResponse(
            id=projection.id,
            display_name=projection.display_name,
            workflow_type=projection.workflow_type,
            state=self.provider.current_state(workflow),
            status=self.provider.current_status(workflow),
            created_at=projection.created_at,
            last_updated=projection.last_updated,
            error_message=self.provider.error_message(context),
            progress=self.provider.calculate_progress(projection, workflow),
            metadata=dict(projection.metadata),
            available_actions=workflow.available_actions(),
            history=list(projection.history),
        )

    async def _on_timer_elapsed(self, workflow_id: str) -> None:
        async with self._lock(workflow_id):
            try:
                projection, workflow = await self._obtain(workflow_id)
            except WorkflowNotFoundError:
                logger.info(f"Timer fired for missing workflow {workflow_id}")
                return
            before = self.provider.current_state(workflow)
            if await workflow.on_timer_elapsed():
                await self._persist(
                    projection,
                    workflow,
                    "WaitPeriodCompleted",
                    before,
                    "Wait period elapsed",
                )


class ConfigCleanupHost(GenericWorkflowHost[CreateCleanupWorkflowRequest, Any]):
    """Host for cleanup workflows that adds manual proceed."""

    def __init__(
        self,
        repository: WorkflowRepository,
        effects: Optional[CleanupEffects] = None,
        default_wait: Optional[timedelta] = None,
        default_stage_names: Optional[Iterable[str]] = None,
    ) -> None:
        provider = ConfigCleanupProvider(
            effects=effects,
            default_wait=default_wait or DEFAULT_WAIT_DURATION,
            default_stage_names=default_stage_names,
        )
        super().__init__(repository, provider)

    async def proceed_workflow(self, workflow_id: str) -> WorkflowResponse:
        async with self._lock(workflow_id):
            projection, workflow = await self._obtain(workflow_id)
            if not isinstance(workflow, (StagedArchiveWorkflow, CodeReviewWorkflow)):
                raise UnsupportedOperationError(
                    f"{projection.workflow_type} workflows cannot be proceeded manually"
                )
            before = self.provider.current_state(workflow)
            await workflow.proceed()
            await self._persist(
                projection, workflow, "UserProceed", before, "Manual proceed"
            )
            return self._response(projection, workflow)
