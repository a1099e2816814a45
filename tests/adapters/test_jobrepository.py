from app.adapters.jobrepository import factory
from app.internal.errors import DuplicateId, InvalidTransition, JobNotFound
from app.models.job import Job
from app.models.jobstatus import JobStatus
from app.models.processhandle import ProcessHandle
import pytest


def job(jobId: str = "1") -> Job:
    return Job(id=jobId, name="teste", user="u")


@pytest.mark.asyncio
async def test_create_and_get():
    repo = factory("MEMORY")
    await repo.create(job())
    assert await repo.exists("1")
    assert not await repo.exists("2")
    with pytest.raises(DuplicateId):
        await repo.create(job())
    with pytest.raises(JobNotFound):
        await repo.get("2")
    assert [j.id for j in await repo.list_jobs()] == ["1"]


@pytest.mark.asyncio
async def test_records_are_copies():
    repo = factory("MEMORY")
    created = await repo.create(job())
    created.statusMsg = "changed outside"
    assert (await repo.get("1")).statusMsg == "Job accepted"


@pytest.mark.asyncio
async def test_running_records_handle():
    repo = factory("MEMORY")
    await repo.create(job())
    handle = ProcessHandle(pid=4242, pgid=4242)
    with pytest.raises(InvalidTransition):
        await repo.mark_running("1", handle)
    await repo.transition("1", JobStatus.INIT)
    running = await repo.mark_running("1", handle)
    assert running.status == JobStatus.RUNNING
    assert running.processId == 4242
    assert running.started == handle.launched


@pytest.mark.asyncio
async def test_terminal_is_final():
    repo = factory("MEMORY")
    await repo.create(job())
    await repo.transition("1", JobStatus.INIT)
    await repo.transition("1", JobStatus.RUNNING, processId=1)
    done = await repo.transition("1", JobStatus.SUCCEEDED, exitCode=0)
    assert done.finished is not None
    for status in JobStatus:
        with pytest.raises(InvalidTransition):
            await repo.transition("1", status)
    with pytest.raises(InvalidTransition):
        await repo.update("1", statusMsg="again")
    archived = await repo.set_archive_location("1", "/tmp/1.tar.gz")
    assert archived.status == JobStatus.SUCCEEDED
    assert archived.archiveLocation == "/tmp/1.tar.gz"


@pytest.mark.asyncio
async def test_update_refuses_status():
    repo = factory("MEMORY")
    await repo.create(job())
    with pytest.raises(ValueError):
        await repo.update("1", status=JobStatus.RUNNING)


def test_factory_unknown():
    with pytest.raises(ValueError):
        factory("POSTGRES")
