import asyncio

import pytest

from tidyflow.errors import (
    InvalidWorkflowStateError,
    UnsupportedEventError,
    UnsupportedOperationError,
    WorkflowNotFoundError,
)
from tidyflow.host import (
    ArchiveStageRequest,
    CodeUpdateProvider,
    CodeUpdateRequest,
    ConfigCleanupHost,
    CreateCleanupWorkflowRequest,
    GenericWorkflowHost,
)
from tidyflow.persistence import InMemoryWorkflowRepository
from tidyflow.workflow import CleanupWorkflowType, SimulatedEffects


def _staged_request(name="checkout.legacy_flow", wait_hours=1.0, **overrides):
    return CreateCleanupWorkflowRequest(
        configuration_name=name,
        workflow_type=CleanupWorkflowType.ARCHIVE_ONLY,
        stages=[ArchiveStageRequest(name="production", wait_hours=wait_hours)],
        **overrides,
    )


@pytest.mark.asyncio
async def test_create_start_and_get():
    repo = InMemoryWorkflowRepository()
    host = ConfigCleanupHost(repo)

    workflow_id = await host.create_workflow(_staged_request(metadata={"owner": "payments"}))
    response = await host.get_workflow(workflow_id)

    assert response.state == "Created"
    assert response.display_name == "checkout.legacy_flow"
    assert response.workflow_type == "ArchiveOnly"
    assert response.metadata == {"owner": "payments"}
    assert response.available_actions == ["Start"]
    assert [e.event_type for e in response.history] == ["WorkflowCreated"]

    started = await host.start_workflow(workflow_id)
    assert started.state == "AwaitingUserAction"
    assert started.progress.requires_manual_action

    stored = await repo.get(workflow_id)
    assert stored.state == "AwaitingUserAction"
    assert stored.history[-1].event_type == "WorkflowStarted"
    assert stored.history[-1].from_state == "Created"
    await host.close()


@pytest.mark.asyncio
async def test_proceed_arms_timer_and_timer_resumes_workflow():
    repo = InMemoryWorkflowRepository()
    effects = SimulatedEffects()
    host = ConfigCleanupHost(repo, effects=effects)
    workflow_id = await host.create_workflow(_staged_request(wait_hours=0.00001))
    await host.start_workflow(workflow_id)

    response = await host.proceed_workflow(workflow_id)
    assert response.state == "Waiting"
    assert host.scheduler.pending(workflow_id)

    await host.scheduler.join()

    stored = await repo.get(workflow_id)
    assert stored.state == "AwaitingUserAction"
    assert stored.history[-1].event_type == "WaitPeriodCompleted"

    await host.proceed_workflow(workflow_id)
    await host.scheduler.join()

    final = await host.get_workflow(workflow_id)
    assert final.state == "Completed"
    assert final.progress.percent_complete == 100.0
    assert [r[2:] for r in effects.reductions] == [(100, 80), (80, 0)]
    await host.close()


@pytest.mark.asyncio
async def test_wait_can_be_ended_by_event():
    host = ConfigCleanupHost(InMemoryWorkflowRepository())
    workflow_id = await host.create_workflow(_staged_request())
    await host.start_workflow(workflow_id)
    await host.proceed_workflow(workflow_id)

    response = await host.handle_external_event(workflow_id, "WaitPeriodCompleted")

    assert response.state == "AwaitingUserAction"
    assert not host.scheduler.pending(workflow_id)
    await host.close()


@pytest.mark.asyncio
async def test_code_review_through_events():
    host = ConfigCleanupHost(InMemoryWorkflowRepository())
    workflow_id = await host.create_workflow(
        CreateCleanupWorkflowRequest(
            configuration_name="search.old_ranker",
            workflow_type=CleanupWorkflowType.CODE_FIRST,
        )
    )
    await host.start_workflow(workflow_id)
    await host.proceed_workflow(workflow_id)
    await host.handle_external_event(workflow_id, "PRCreated", {"url": "https://git/pr/1"})
    await host.handle_external_event(workflow_id, "PRApproved")
    await host.handle_external_event(workflow_id, "PRMerged")
    response = await host.handle_external_event(workflow_id, "DeploymentCompleted")

    assert response.state == "Completed"
    assert response.progress.current_step == 6
    assert response.history[-1].event_type == "DeploymentCompleted"
    await host.close()


@pytest.mark.asyncio
async def test_unsupported_event_and_operations():
    repo = InMemoryWorkflowRepository()
    host = ConfigCleanupHost(repo)
    workflow_id = await host.create_workflow(_staged_request())

    with pytest.raises(UnsupportedEventError):
        await host.handle_external_event(workflow_id, "PRMerged")
    with pytest.raises(InvalidWorkflowStateError):
        await host.proceed_workflow(workflow_id)
    assert len((await repo.get(workflow_id)).history) == 1

    transform_id = await host.create_workflow(
        CreateCleanupWorkflowRequest(
            configuration_name="ui.theme",
            workflow_type=CleanupWorkflowType.TRANSFORM_TO_DEFAULT,
        )
    )
    with pytest.raises(UnsupportedOperationError):
        await host.proceed_workflow(transform_id)

    transformed = await host.start_workflow(transform_id)
    assert transformed.state == "Completed"
    await host.close()


@pytest.mark.asyncio
async def test_delete_then_operations_report_not_found():
    repo = InMemoryWorkflowRepository()
    host = ConfigCleanupHost(repo)
    workflow_id = await host.create_workflow(_staged_request())
    await host.start_workflow(workflow_id)
    await host.proceed_workflow(workflow_id)
    assert host.scheduler.pending(workflow_id)

    assert await host.delete_workflow(workflow_id)

    assert not host.scheduler.pending(workflow_id)
    assert not await host.delete_workflow(workflow_id)
    with pytest.raises(WorkflowNotFoundError):
        await host.get_workflow(workflow_id)
    with pytest.raises(WorkflowNotFoundError):
        await host.start_workflow(workflow_id)
    with pytest.raises(WorkflowNotFoundError):
        await host.handle_external_event(workflow_id, "Fail")
    assert workflow_id not in host._locks
    assert workflow_id not in host._workflows
    await host.close()


@pytest.mark.asyncio
async def test_hosts_only_see_their_own_family():
    repo = InMemoryWorkflowRepository()
    cleanup_host = ConfigCleanupHost(repo)
    update_host = GenericWorkflowHost(repo, CodeUpdateProvider())

    cleanup_id = await cleanup_host.create_workflow(_staged_request())
    update_id = await update_host.create_workflow(CodeUpdateRequest(title="Remove reads"))

    assert [w.id for w in await cleanup_host.get_all_workflows()] == [cleanup_id]
    assert [w.id for w in await update_host.get_all_workflows()] == [update_id]
    with pytest.raises(WorkflowNotFoundError):
        await update_host.get_workflow(cleanup_id)
    assert not await update_host.delete_workflow(cleanup_id)
    assert await repo.get(cleanup_id) is not None

    with pytest.raises(UnsupportedOperationError):
        await update_host.proceed_workflow(update_id)

    await update_host.start_workflow(update_id)
    response = await update_host.handle_external_event(update_id, "ValidateInTest")
    assert response.state == "ValidationInTestEnv"
    assert response.progress.percent_complete == 25.0

    summary = await cleanup_host.summary()
    assert summary.total == 2
    assert summary.active == 2
    assert summary.by_type == {"ArchiveOnly": 1, "CodeUpdate": 1}
    await cleanup_host.close()
    await update_host.close()


@pytest.mark.asyncio
async def test_summary_counts_outcomes():
    host = ConfigCleanupHost(InMemoryWorkflowRepository())
    done = await host.create_workflow(
        CreateCleanupWorkflowRequest(
            configuration_name="a", workflow_type=CleanupWorkflowType.TRANSFORM_TO_DEFAULT
        )
    )
    await host.start_workflow(done)
    failed = await host.create_workflow(_staged_request(name="b"))
    await host.start_workflow(failed)
    await host.handle_external_event(failed, "Fail", {"reason": "rollback"})
    waiting = await host.create_workflow(_staged_request(name="c"))
    await host.start_workflow(waiting)

    summary = await host.summary()

    assert summary.total == 3
    assert summary.completed == 1
    assert summary.failed == 1
    assert summary.active == 1
    assert summary.awaiting_manual_action == 2
    assert summary.by_state["Failed"] == 1
    await host.close()


@pytest.mark.asyncio
async def test_unknown_id_leaves_no_lock_behind():
    host = ConfigCleanupHost(InMemoryWorkflowRepository())

    with pytest.raises(WorkflowNotFoundError):
        await host.get_workflow("no-such-workflow")

    assert host._locks == {}
    await host.close()


@pytest.mark.asyncio
async def test_concurrent_proceed_and_fail_are_serialized():
    repo = InMemoryWorkflowRepository()
    effects = SimulatedEffects(delay=0.05)
    host = ConfigCleanupHost(repo, effects=effects)
    workflow_id = await host.create_workflow(_staged_request())
    await host.start_workflow(workflow_id)

    proceeded, failed = await asyncio.gather(
        host.proceed_workflow(workflow_id),
        host.handle_external_event(workflow_id, "Fail", {"reason": "rollback"}),
    )

    assert proceeded.state == "Waiting"
    assert failed.state == "Failed"
    assert effects.reductions == [("checkout.legacy_flow", "production", 100, 80)]
    assert not host.scheduler.pending(workflow_id)

    stored = await repo.get(workflow_id)
    events = [e.event_type for e in stored.history]
    assert events == ["WorkflowCreated", "WorkflowStarted", "UserProceed", "Fail"]
    for previous, current in zip(stored.history[1:], stored.history[2:]):
        assert current.from_state == previous.to_state
    stage = stored.context.stage_set.stages[0]
    assert stage.status.value == "Failed"
    assert stage.current_allocation_percentage == 80
    assert stage.target_allocation_percentage <= stage.current_allocation_percentage
    await host.close()


@pytest.mark.asyncio
async def test_listing_skips_workflow_deleted_while_waiting_for_lock():
    host = ConfigCleanupHost(InMemoryWorkflowRepository())
    older = await host.create_workflow(_staged_request(name="a"))
    await asyncio.sleep(0.01)
    newer = await host.create_workflow(_staged_request(name="b"))

    lock = host._lock(newer)
    await lock.acquire()
    listing = asyncio.create_task(host.get_all_workflows())
    await asyncio.sleep(0)
    assert await host.delete_workflow(older)
    lock.release()

    assert [w.id for w in await listing] == [newer]
    assert older not in host._workflows
    assert older not in host._locks
    await host.close()


@pytest.mark.asyncio
async def test_recover_skips_workflow_deleted_while_waiting_for_lock():
    repo = InMemoryWorkflowRepository()
    first = ConfigCleanupHost(repo)
    kept = await first.create_workflow(_staged_request(name="a"))
    dropped = await first.create_workflow(_staged_request(name="b"))
    for workflow_id in (kept, dropped):
        await first.start_workflow(workflow_id)
        await first.proceed_workflow(workflow_id)
    await first.close()

    second = ConfigCleanupHost(repo)
    lock = second._lock(kept)
    await lock.acquire()
    recovering = asyncio.create_task(second.recover())
    await asyncio.sleep(0)
    assert await second.delete_workflow(dropped)
    lock.release()

    assert await recovering == [kept]
    assert second.scheduler.pending(kept)
    assert not second.scheduler.pending(dropped)
    assert dropped not in second._workflows
    await second.close()
