import pytest

from tidyflow.errors import InvalidWorkflowStateError
from tidyflow.workflow import (
    CleanupWorkflowType,
    ConfigCleanupContext,
    SimulatedEffects,
    TransformWorkflow,
    WorkflowState,
)


def _context(**overrides) -> ConfigCleanupContext:
    return ConfigCleanupContext(
        configuration_name="search.ranking_v2",
        workflow_type=CleanupWorkflowType.TRANSFORM_TO_DEFAULT,
        **overrides,
    )


class BrokenEffects(SimulatedEffects):
    async def transform_to_default(self, configuration_name):
        raise RuntimeError("defaults service rejected the change")


@pytest.mark.asyncio
async def test_transform_completes_on_start():
    effects = SimulatedEffects()
    workflow = TransformWorkflow(_context(), effects)
    assert workflow.available_actions() == ["Start"]

    await workflow.start()

    assert effects.transforms == ["search.ranking_v2"]
    assert workflow.current_state is WorkflowState.COMPLETED
    assert workflow.context.is_completed
    assert workflow.context.transform_started_at is not None
    assert workflow.current_status() == "Configuration transformed to default"
    assert workflow.available_actions() == []


@pytest.mark.asyncio
async def test_transform_failure_is_recorded():
    workflow = TransformWorkflow(_context(), BrokenEffects())

    await workflow.start()

    assert workflow.current_state is WorkflowState.FAILED
    assert workflow.context.error_message == "defaults service rejected the change"
    assert not workflow.context.is_completed


@pytest.mark.asyncio
async def test_transform_cannot_start_twice():
    workflow = TransformWorkflow(_context())
    await workflow.start()
    with pytest.raises(InvalidWorkflowStateError):
        await workflow.start()


def test_state_rebuilt_from_context():
    assert TransformWorkflow(_context()).current_state is WorkflowState.CREATED
    assert (
        TransformWorkflow(_context(is_completed=True)).current_state
        is WorkflowState.COMPLETED
    )
    assert (
        TransformWorkflow(_context(error_message="boom")).current_state
        is WorkflowState.FAILED
    )
