"""Providers for the built-in workflow families."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Iterable, Mapping, Optional

from ..constants import DEFAULT_STAGE_NAMES, DEFAULT_WAIT_DURATION
from ..persistence.models import WorkflowProjection
from ..workflow.code_update import CodeUpdateWorkflow
from ..workflow.contexts import CodeUpdateContext, ConfigCleanupContext
from ..workflow.effects import CleanupEffects
from ..workflow.enums import (
    CODE_UPDATE_WORKFLOW_TYPE,
    CleanupWorkflowType,
    CodeUpdateState,
    WorkflowState,
)
from ..workflow.factory import CleanupWorkflow, create_cleanup_workflow
from .models import CodeUpdateRequest, CreateCleanupWorkflowRequest, WorkflowProgress

_FAILED_PROGRESS = dict(
    requires_manual_action=True,
    manual_action_description="Review error and retry",
)

# state -> (step, description, manual action text)
_CODE_FIRST_STEPS = {
    WorkflowState.CREATED: (0, "Not started", None),
    WorkflowState.IN_PROGRESS: (1, "Making code changes", None),
    WorkflowState.CREATING_PR: (2, "Creating pull request", None),
    WorkflowState.AWAITING_REVIEW: (3, "Awaiting review", "Review and approve the pull request"),
    WorkflowState.MERGED: (4, "Merging pull request", None),
    WorkflowState.WAITING_FOR_DEPLOYMENT: (5, "Waiting for deployment", "Confirm the deployment"),
    WorkflowState.COMPLETED: (6, "Completed", None),
}

_TRANSFORM_STEPS = {
    WorkflowState.CREATED: (0, "Not started"),
    WorkflowState.TRANSFORMING: (1, "Transforming to default"),
    WorkflowState.COMPLETED: (2, "Completed"),
}

_CODE_UPDATE_STEPS = {
    CodeUpdateState.PR_IN_PROGRESS: (0, "Pull request in progress", None),
    CodeUpdateState.VALIDATION_IN_TEST_ENV: (1, "Validating in test environment", None),
    CodeUpdateState.PR_IN_REVIEW: (2, "Pull request in review", "Approve and merge the pull request"),
    CodeUpdateState.MERGED_AWAITING_DEPLOYMENT: (3, "Merged, awaiting deployment", "Confirm the deployment"),
    CodeUpdateState.DEPLOYMENT_DONE: (4, "Deployment done", None),
}


def _stage_definitions(
    request: CreateCleanupWorkflowRequest, stage_names: Iterable[str]
) -> list[tuple[str, int, int, Optional[timedelta]]]:
    if not request.stages:
        return [
            (name, request.current_traffic_percentage, 0, None) for name in stage_names
        ]
    return [
        (
            stage.name,
            stage.current_percentage,
            stage.target_percentage,
            timedelta(hours=stage.wait_hours) if stage.wait_hours is not None else None,
        )
        for stage in request.stages
    ]


class ConfigCleanupProvider:
    """Hosts the staged archive, code review and transform workflows."""

    context_type = ConfigCleanupContext

    def __init__(
        self,
        effects: Optional[CleanupEffects] = None,
        default_wait: timedelta = DEFAULT_WAIT_DURATION,
        default_stage_names: Optional[Iterable[str]] = None,
    ) -> None:
        self.effects = effects
        self.default_wait = default_wait
        self.default_stage_names = list(default_stage_names or DEFAULT_STAGE_NAMES)

    def create_context(self, request: CreateCleanupWorkflowRequest) -> ConfigCleanupContext:
        context = ConfigCleanupContext(
            configuration_name=request.configuration_name,
            workflow_type=request.workflow_type,
            description=request.description,
            metadata=dict(request.metadata),
            current_traffic_percentage=request.current_traffic_percentage,
            wait_duration=request.wait_duration or self.default_wait,
            project_id=request.project_id,
        )
        if request.workflow_type is CleanupWorkflowType.ARCHIVE_ONLY:
            context.initialize_stages(_stage_definitions(request, self.default_stage_names))
        return context

    def create_workflow(self, context: ConfigCleanupContext) -> CleanupWorkflow:
        return create_cleanup_workflow(context, self.effects)

    async def handle_external_event(
        self, workflow: CleanupWorkflow, event_type: str, data: Mapping[str, Any]
    ) -> bool:
        return await workflow.handle_event(event_type, data)

    def current_status(self, workflow: CleanupWorkflow) -> str:
        return workflow.current_status()

    def current_state(self, workflow: CleanupWorkflow) -> str:
        return workflow.current_state.value

    def context(self, workflow: CleanupWorkflow) -> ConfigCleanupContext:
        return workflow.context

    def calculate_progress(
        self, projection: WorkflowProjection, workflow: CleanupWorkflow
    ) -> WorkflowProgress:
        state = workflow.current_state
        context = workflow.context
        if state is WorkflowState.FAILED:
            return WorkflowProgress(
                current_step_description=f"Failed: {context.error_message}",
                **_FAILED_PROGRESS,
            )
        if context.workflow_type is CleanupWorkflowType.ARCHIVE_ONLY:
            return self._staged_progress(workflow)
        if context.workflow_type is CleanupWorkflowType.CODE_FIRST:
            step, description, manual = _CODE_FIRST_STEPS[state]
            total = 6
        else:
            step, description = _TRANSFORM_STEPS[state]
            manual = None
            total = 2
        return WorkflowProgress(
            current_step=step,
            total_steps=total,
            percent_complete=step / total * 100,
            current_step_description=description,
            requires_manual_action=manual is not None,
            manual_action_description=manual,
        )

    def _staged_progress(self, workflow: CleanupWorkflow) -> WorkflowProgress:
        stage_set = workflow.context.stage_set
        total = len(stage_set.stages) if stage_set else 0
        awaiting = workflow.current_state is WorkflowState.AWAITING_USER_ACTION
        return WorkflowProgress(
            current_step=stage_set.completed_count if stage_set else 0,
            total_steps=total,
            percent_complete=stage_set.overall_progress if stage_set else 0.0,
            current_step_description=workflow.current_status(),
            requires_manual_action=awaiting,
            manual_action_description="Proceed with the next reduction" if awaiting else None,
        )

    def display_name(self, context: ConfigCleanupContext) -> str:
        return context.configuration_name

    def workflow_type(self, context: ConfigCleanupContext) -> str:
        return context.workflow_type.value

    def metadata(self, context: ConfigCleanupContext) -> dict[str, str]:
        return dict(context.metadata)

    def error_message(self, context: ConfigCleanupContext) -> Optional[str]:
        return context.error_message


class CodeUpdateProvider:
    """Hosts the code-update workflow family."""

    context_type = CodeUpdateContext

    def create_context(self, request: CodeUpdateRequest) -> CodeUpdateContext:
        return CodeUpdateContext(
            title=request.title,
            description=request.description,
            metadata=dict(request.metadata),
            project_id=request.project_id,
        )

    def create_workflow(self, context: CodeUpdateContext) -> CodeUpdateWorkflow:
        return CodeUpdateWorkflow(context)

    async def handle_external_event(
        self, workflow: CodeUpdateWorkflow, event_type: str, data: Mapping[str, Any]
    ) -> bool:
        return await workflow.handle_event(event_type, data)

    def current_status(self, workflow: CodeUpdateWorkflow) -> str:
        return workflow.current_status()

    def current_state(self, workflow: CodeUpdateWorkflow) -> str:
        return workflow.current_state.value

    def context(self, workflow: CodeUpdateWorkflow) -> CodeUpdateContext:
        return workflow.context

    def calculate_progress(
        self, projection: WorkflowProjection, workflow: CodeUpdateWorkflow
    ) -> WorkflowProgress:
        if workflow.current_state is CodeUpdateState.FAILED:
            return WorkflowProgress(
                current_step_description=f"Failed: {workflow.context.error_message}",
                **_FAILED_PROGRESS,
            )
        step, description, manual = _CODE_UPDATE_STEPS[workflow.current_state]
        return WorkflowProgress(
            current_step=step,
            total_steps=4,
            percent_complete=workflow.context.progress * 100,
            current_step_description=description,
            requires_manual_action=manual is not None,
            manual_action_description=manual,
        )

    def display_name(self, context: CodeUpdateContext) -> str:
        return context.title

    def workflow_type(self, context: CodeUpdateContext) -> str:
        return CODE_UPDATE_WORKFLOW_TYPE

    def metadata(self, context: CodeUpdateContext) -> dict[str, str]:
        return dict(context.metadata)

    def error_message(self, context: CodeUpdateContext) -> Optional[str]:
        return context.error_message
