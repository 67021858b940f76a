import pytest

from tidyflow.workflow import (
    CleanupWorkflowType,
    CodeReviewWorkflow,
    CodeUpdateContext,
    CodeUpdateWorkflow,
    ConfigCleanupContext,
    StagedArchiveWorkflow,
    TransformWorkflow,
    create_workflow,
)


@pytest.mark.parametrize(
    "workflow_type,expected",
    [
        (CleanupWorkflowType.ARCHIVE_ONLY, StagedArchiveWorkflow),
        (CleanupWorkflowType.CODE_FIRST, CodeReviewWorkflow),
        (CleanupWorkflowType.TRANSFORM_TO_DEFAULT, TransformWorkflow),
    ],
)
def test_cleanup_type_selects_workflow(workflow_type, expected):
    context = ConfigCleanupContext(configuration_name="x", workflow_type=workflow_type)
    workflow = create_workflow(context)
    assert isinstance(workflow, expected)
    assert workflow.context is context


def test_code_update_context_selects_code_update_workflow():
    assert isinstance(create_workflow(CodeUpdateContext(title="t")), CodeUpdateWorkflow)


def test_unknown_context_rejected():
    with pytest.raises(ValueError):
        create_workflow(object())
