import pytest

from tidyflow.errors import WorkflowNotFoundError
from tidyflow.host import (
    ConfigCleanupHost,
    CreateCleanupWorkflowRequest,
    ProjectService,
)
from tidyflow.persistence import (
    InMemoryProjectRepository,
    InMemoryWorkflowRepository,
    ProjectStatus,
)
from tidyflow.workflow import CleanupWorkflowType


def _transform(name: str, project_id=None) -> CreateCleanupWorkflowRequest:
    return CreateCleanupWorkflowRequest(
        configuration_name=name,
        workflow_type=CleanupWorkflowType.TRANSFORM_TO_DEFAULT,
        project_id=project_id,
    )


@pytest.mark.asyncio
async def test_project_progress_over_linked_workflows():
    workflows = InMemoryWorkflowRepository()
    host = ConfigCleanupHost(workflows)
    service = ProjectService(InMemoryProjectRepository(), workflows)

    project = await service.create_project("Q3 cleanup", "checkout", "Remove stale flags")
    created_with_project = await host.create_workflow(_transform("a", project.id))
    attached = await host.create_workflow(_transform("b"))
    await host.create_workflow(_transform("unrelated"))

    await service.add_workflow(project.id, attached)
    await service.add_workflow(project.id, attached)
    assert (await service.get_project(project.id)).workflow_ids == [attached]

    await host.start_workflow(created_with_project)

    linked = await service.project_workflows(project.id)
    assert {w.id for w in linked} == {created_with_project, attached}

    progress = await service.progress(project.id)
    assert progress.total == 2
    assert progress.completed == 1
    assert progress.active == 1
    assert progress.percentage == 50.0
    await host.close()


@pytest.mark.asyncio
async def test_project_status_and_lookup_errors():
    workflows = InMemoryWorkflowRepository()
    service = ProjectService(InMemoryProjectRepository(), workflows)
    project = await service.create_project("Search", "search")
    await service.create_project("Other", "payments")

    assert [p.id for p in await service.list_projects("SEARCH")] == [project.id]
    assert len(await service.list_projects()) == 2

    completed = await service.set_status(project.id, ProjectStatus.COMPLETED)
    assert completed.completed_at is not None
    reopened = await service.set_status(project.id, ProjectStatus.ON_HOLD)
    assert reopened.completed_at is None

    with pytest.raises(WorkflowNotFoundError):
        await service.add_workflow(project.id, "missing-workflow")
    with pytest.raises(WorkflowNotFoundError):
        await service.get_project("missing-project")

    assert await service.delete_project(project.id)
    assert (await service.progress((await service.list_projects())[0].id)).total == 0
