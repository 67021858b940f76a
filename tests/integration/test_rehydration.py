"""A host rebuilt from stored projections behaves like the one that kept running."""

import asyncio

import pytest

from tidyflow.host import (
    ArchiveStageRequest,
    ConfigCleanupHost,
    CreateCleanupWorkflowRequest,
)
from tidyflow.persistence import InMemoryWorkflowRepository, SQLiteWorkflowRepository
from tidyflow.workflow import CleanupWorkflowType


def _request(wait_hours: float) -> CreateCleanupWorkflowRequest:
    return CreateCleanupWorkflowRequest(
        configuration_name="billing.legacy_invoices",
        workflow_type=CleanupWorkflowType.ARCHIVE_ONLY,
        stages=[
            ArchiveStageRequest(name="staging", wait_hours=wait_hours),
            ArchiveStageRequest(name="production", wait_hours=wait_hours),
        ],
    )


async def _seeded_host(snapshot) -> ConfigCleanupHost:
    repo = InMemoryWorkflowRepository()
    await repo.create(snapshot)
    return ConfigCleanupHost(repo)


def _stage_view(response_context):
    return [
        (s.name, s.status, s.current_allocation_percentage)
        for s in response_context.stage_set.stages
    ]


@pytest.mark.asyncio
async def test_rehydrated_host_matches_live_host_during_wait():
    live_repo = InMemoryWorkflowRepository()
    live = ConfigCleanupHost(live_repo)
    workflow_id = await live.create_workflow(_request(wait_hours=1))
    await live.start_workflow(workflow_id)
    await live.proceed_workflow(workflow_id)
    snapshot = await live_repo.get(workflow_id)

    restored = await _seeded_host(snapshot)
    restored_view = await restored.get_workflow(workflow_id)
    live_view = await live.get_workflow(workflow_id)

    assert restored_view.state == live_view.state == "Waiting"
    assert restored.scheduler.pending(workflow_id)

    for host in (live, restored):
        await host.handle_external_event(workflow_id, "WaitPeriodCompleted")
        await host.proceed_workflow(workflow_id)

    live_stored = await live_repo.get(workflow_id)
    restored_stored = await restored.repository.get(workflow_id)
    assert live_stored.state == restored_stored.state == "Waiting"
    assert _stage_view(live_stored.context) == _stage_view(restored_stored.context)
    assert live_stored.context.stage_set.current_stage_index == 0
    await live.close()
    await restored.close()


@pytest.mark.asyncio
async def test_rehydrated_host_matches_live_host_after_wait_elapsed():
    live_repo = InMemoryWorkflowRepository()
    live = ConfigCleanupHost(live_repo)
    workflow_id = await live.create_workflow(_request(wait_hours=0.00001))
    await live.start_workflow(workflow_id)
    await live.proceed_workflow(workflow_id)
    snapshot = await live_repo.get(workflow_id)
    assert snapshot.state == "Waiting"

    await live.scheduler.join()
    await asyncio.sleep(0.01)

    restored = await _seeded_host(snapshot)
    restored_view = await restored.get_workflow(workflow_id)
    live_view = await live.get_workflow(workflow_id)

    assert live_view.state == restored_view.state == "AwaitingUserAction"
    assert live_view.status == restored_view.status
    assert restored_view.history[-1].event_type == "WorkflowResumed"
    await live.close()
    await restored.close()


@pytest.mark.asyncio
async def test_recover_resumes_waits_from_sqlite(tmp_path):
    db_path = tmp_path / "wf.db"
    first = ConfigCleanupHost(SQLiteWorkflowRepository(db_path))
    workflow_id = await first.create_workflow(_request(wait_hours=0.00001))
    finished_id = await first.create_workflow(
        CreateCleanupWorkflowRequest(
            configuration_name="ui.old_banner",
            workflow_type=CleanupWorkflowType.TRANSFORM_TO_DEFAULT,
        )
    )
    await first.start_workflow(finished_id)
    await first.start_workflow(workflow_id)
    await first.proceed_workflow(workflow_id)
    # Simulates the process stopping before the wait ends.
    await first.close()

    second = ConfigCleanupHost(SQLiteWorkflowRepository(db_path))
    recovered = await second.recover()
    await second.scheduler.join()

    assert recovered == [workflow_id]
    stored = await second.repository.get(workflow_id)
    assert stored.state == "AwaitingUserAction"
    assert stored.context.stage_set.stages[0].current_allocation_percentage == 80
    await second.close()
