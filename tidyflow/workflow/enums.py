"""State and trigger vocabulary shared by the workflow families."""

from __future__ import annotations

from enum import Enum


class WorkflowState(str, Enum):
    """States used by the configuration cleanup workflows."""

    CREATED = "Created"
    AWAITING_USER_ACTION = "AwaitingUserAction"
    IN_PROGRESS = "InProgress"
    WAITING = "Waiting"
    CREATING_PR = "CreatingPR"
    AWAITING_REVIEW = "AwaitingReview"
    MERGED = "Merged"
    WAITING_FOR_DEPLOYMENT = "WaitingForDeployment"
    TRANSFORMING = "Transforming"
    COMPLETED = "Completed"
    FAILED = "Failed"


class WorkflowTrigger(str, Enum):
    """Triggers understood by the configuration cleanup workflows."""

    START = "Start"
    COMPLETE = "Complete"
    FAIL = "Fail"
    TIMEOUT = "Timeout"
    USER_PROCEED = "UserProceed"

    REDUCTION_COMPLETED = "ReductionCompleted"
    WAIT_PERIOD_COMPLETED = "WaitPeriodCompleted"

    PR_CREATED = "PRCreated"
    PR_APPROVED = "PRApproved"
    PR_MERGED = "PRMerged"
    DEPLOYMENT_DETECTED = "DeploymentDetected"

    TRANSFORM_COMPLETED = "TransformCompleted"


class CodeUpdateState(str, Enum):
    PR_IN_PROGRESS = "PRInProgress"
    VALIDATION_IN_TEST_ENV = "ValidationInTestEnv"
    PR_IN_REVIEW = "PRInReview"
    MERGED_AWAITING_DEPLOYMENT = "MergedAwaitingDeployment"
    DEPLOYMENT_DONE = "DeploymentDone"
    FAILED = "Failed"


class CodeUpdateTrigger(str, Enum):
    VALIDATE_IN_TEST = "ValidateInTest"
    SUBMIT_FOR_REVIEW = "SubmitForReview"
    APPROVE_AND_MERGE = "ApproveAndMerge"
    DETECT_DEPLOYMENT = "DetectDeployment"
    FAIL = "Fail"


class StageStatus(str, Enum):
    """Lifecycle of a single allocation stage."""

    PENDING = "Pending"
    REDUCING_TRAFFIC = "ReducingTraffic"
    WAITING = "Waiting"
    COMPLETED = "Completed"
    FAILED = "Failed"


class CleanupWorkflowType(str, Enum):
    """Selects which cleanup workflow definition drives a context."""

    ARCHIVE_ONLY = "ArchiveOnly"
    CODE_FIRST = "CodeFirst"
    TRANSFORM_TO_DEFAULT = "TransformToDefault"


CODE_UPDATE_WORKFLOW_TYPE = "CodeUpdate"

# Persisted states are stored as plain strings; these sets classify them
# across every workflow family for summaries.
TERMINAL_STATES = frozenset(
    {
        WorkflowState.COMPLETED.value,
        WorkflowState.FAILED.value,
        CodeUpdateState.DEPLOYMENT_DONE.value,
    }
)

MANUAL_ACTION_STATES = frozenset(
    {
        WorkflowState.AWAITING_USER_ACTION.value,
        WorkflowState.AWAITING_REVIEW.value,
        WorkflowState.WAITING_FOR_DEPLOYMENT.value,
        CodeUpdateState.PR_IN_REVIEW.value,
        CodeUpdateState.MERGED_AWAITING_DEPLOYMENT.value,
        WorkflowState.FAILED.value,
    }
)


def is_terminal_state(state: str) -> bool:
    return state in TERMINAL_STATES


def requires_manual_action(state: str) -> bool:
    return state in MANUAL_ACTION_STATES
