"""Build the live workflow that drives a given context."""

from __future__ import annotations

from typing import Optional, Union

from .code_review import CodeReviewWorkflow
from .code_update import CodeUpdateWorkflow
from .contexts import CodeUpdateContext, ConfigCleanupContext
from .effects import CleanupEffects
from .enums import CleanupWorkflowType
from .staged_archive import StagedArchiveWorkflow
from .transform import TransformWorkflow

CleanupWorkflow = Union[StagedArchiveWorkflow, CodeReviewWorkflow, TransformWorkflow]
AnyWorkflow = Union[CleanupWorkflow, CodeUpdateWorkflow]

_CLEANUP_WORKFLOWS = {
    CleanupWorkflowType.ARCHIVE_ONLY: StagedArchiveWorkflow,
    CleanupWorkflowType.CODE_FIRST: CodeReviewWorkflow,
    CleanupWorkflowType.TRANSFORM_TO_DEFAULT: TransformWorkflow,
}


def create_cleanup_workflow(
    context: ConfigCleanupContext, effects: Optional[CleanupEffects] = None
) -> CleanupWorkflow:
    try:
        workflow_cls = _CLEANUP_WORKFLOWS[CleanupWorkflowType(context.workflow_type)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown cleanup workflow type: {context.workflow_type}") from None
    return workflow_cls(context, effects)


def create_workflow(
    context: Union[ConfigCleanupContext, CodeUpdateContext],
    effects: Optional[CleanupEffects] = None,
) -> AnyWorkflow:
    """Return a fresh live workflow whose state is inferred from ``context``."""
    if isinstance(context, CodeUpdateContext):
        return CodeUpdateWorkflow(context)
    if isinstance(context, ConfigCleanupContext):
        return create_cleanup_workflow(context, effects)
    raise ValueError(f"Unsupported workflow context: {type(context).__name__}")
