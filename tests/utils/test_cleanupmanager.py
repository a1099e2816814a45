from app.models.job import Job
from app.models.jobstatus import JobStatus
from app.utils.cleanupmanager import CleanupManager
from app.utils.workspacebuilder import Workspace
from conftest import make_config
import tarfile
import pytest


@pytest.fixture
def workspace(config) -> Workspace:
    ws = Workspace(config.jobsRoot.joinpath("job-1"))
    for app in ("hadoop", "spark"):
        deps = ws.applications.joinpath(app, "dependencies")
        deps.mkdir(parents=True)
        deps.joinpath(f"{app}.jar").write_text(app)
        ws.applications.joinpath(app, "setup.sh").write_text("true\n")
    ws.root.joinpath("stdout").write_text("output\n")
    return ws


def finished(archive: bool = True) -> Job:
    return Job(
        id="job-1",
        name="n",
        user="u",
        status=JobStatus.SUCCEEDED,
        archive=archive,
    )


@pytest.mark.asyncio
async def test_deletes_dependencies_and_archives(config, workspace):
    manager = CleanupManager(config)
    report = await manager.finalize(finished(), workspace)
    assert report.ok
    assert report.deletedDependencies == ["hadoop", "spark"]
    assert not workspace.applications.joinpath(
        "hadoop", "dependencies"
    ).exists()
    assert workspace.applications.joinpath("hadoop", "setup.sh").exists()
    assert report.archive == config.archiveRoot.joinpath("job-1.tar.gz")
    with tarfile.open(report.archive) as tar:
        names = tar.getnames()
    assert "job-1/stdout" in names
    assert "job-1/applications/spark/dependencies/spark.jar" not in names


@pytest.mark.asyncio
async def test_toggles(tmp_path, workspace):
    config = make_config(
        tmp_path, archiveEnabled=False, deleteApplicationDependencies=False
    )
    manager = CleanupManager(config)
    report = await manager.finalize(finished(), workspace)
    assert report.archive is None
    assert report.deletedDependencies == []
    assert workspace.applications.joinpath(
        "spark", "dependencies", "spark.jar"
    ).exists()


@pytest.mark.asyncio
async def test_job_not_flagged_for_archival(config, workspace):
    manager = CleanupManager(config)
    report = await manager.finalize(finished(archive=False), workspace)
    assert report.archive is None
    assert not config.archiveRoot.joinpath("job-1.tar.gz").exists()


@pytest.mark.asyncio
async def test_archive_failure_is_reported(config, workspace):
    config.archiveRoot.parent.mkdir(parents=True, exist_ok=True)
    config.archiveRoot.write_text("not a directory")
    manager = CleanupManager(config)
    report = await manager.finalize(finished(), workspace)
    assert not report.ok
    assert report.archive is None


@pytest.mark.asyncio
async def test_only_terminal_jobs(config, workspace):
    manager = CleanupManager(config)
    job = finished().model_copy(update={"status": JobStatus.RUNNING})
    with pytest.raises(ValueError):
        await manager.finalize(job, workspace)


@pytest.mark.asyncio
async def test_saved_attachments_are_deleted(config, workspace):
    saved = config.attachmentsRoot.joinpath("job-1")
    saved.mkdir(parents=True)
    saved.joinpath("query.sql").write_text("select 1;\n")
    manager = CleanupManager(config)
    report = await manager.finalize(finished(), workspace)
    assert report.deletedAttachments
    assert not saved.exists()
    assert workspace.root.joinpath("stdout").exists()


@pytest.mark.asyncio
async def test_discard_attachments_without_workspace(config):
    saved = config.attachmentsRoot.joinpath("job-2")
    saved.mkdir(parents=True)
    manager = CleanupManager(config)
    report = await manager.discard_attachments("job-2")
    assert report.deletedAttachments
    assert not saved.exists()
    report = await manager.discard_attachments("job-2")
    assert not report.deletedAttachments
    assert report.ok
