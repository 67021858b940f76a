"""Workflow definitions and the state machine runtime they share."""

from .code_review import CodeReviewWorkflow
from .code_update import CodeUpdateWorkflow
from .contexts import CodeUpdateContext, ConfigCleanupContext, WorkflowContext
from .effects import CleanupEffects, SimulatedEffects
from .enums import (
    CODE_UPDATE_WORKFLOW_TYPE,
    CleanupWorkflowType,
    CodeUpdateState,
    CodeUpdateTrigger,
    StageStatus,
    WorkflowState,
    WorkflowTrigger,
)
from .factory import create_workflow
from .machine import BaseWorkflow, FireOutcome, StateMachine, Transition
from .stages import Stage, StageSet
from .staged_archive import StagedArchiveWorkflow
from .transform import TransformWorkflow

__all__ = [
    "CodeReviewWorkflow",
    "CodeUpdateWorkflow",
    "CodeUpdateContext",
    "ConfigCleanupContext",
    "WorkflowContext",
    "CleanupEffects",
    "SimulatedEffects",
    "CODE_UPDATE_WORKFLOW_TYPE",
    "CleanupWorkflowType",
    "CodeUpdateState",
    "CodeUpdateTrigger",
    "StageStatus",
    "WorkflowState",
    "WorkflowTrigger",
    "create_workflow",
    "BaseWorkflow",
    "FireOutcome",
    "StateMachine",
    "Transition",
    "Stage",
    "StageSet",
    "StagedArchiveWorkflow",
    "TransformWorkflow",
]
