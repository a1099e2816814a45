from app.adapters.filefetcher import SchemeFileFetcher
from app.internal.errors import BuildFailure
from app.models.job import Job
from app.models.resource import Application, Cluster, Command
from app.utils.workspacebuilder import BuildPlan, WorkspaceBuilder
from unittest.mock import AsyncMock
import os
import pytest


@pytest.fixture
def files(tmp_path):
    d = tmp_path.joinpath("files")
    d.mkdir()
    for name in (
        "core-site.xml",
        "cluster-setup.sh",
        "hadoop.jar",
        "spark.tgz",
        "spark-setup.sh",
        "hive-site.xml",
        "query.sql",
    ):
        d.joinpath(name).write_text(f"# {name}\n")
    return d


def make_plan(files, applications=None, dependencies=None) -> BuildPlan:
    return BuildPlan(
        job=Job(
            id="job-1",
            name="nightly",
            user="etl",
            memoryMb=512,
            tags=["team:data"],
        ),
        cluster=Cluster(
            id="sla",
            name="sla",
            tags=["type:yarn"],
            configs=[str(files.joinpath("core-site.xml"))],
            setupFile=files.joinpath("cluster-setup.sh").as_uri(),
        ),
        command=Command(
            id="hive",
            name="hive",
            tags=["type:hive"],
            executable="hive -f",
            configs=[str(files.joinpath("hive-site.xml"))],
        ),
        applications=applications
        if applications is not None
        else [
            Application(
                id="hadoop",
                name="hadoop",
                dependencies=[str(files.joinpath("hadoop.jar"))],
            ),
            Application(
                id="spark",
                name="spark",
                type="spark",
                dependencies=[str(files.joinpath("spark.tgz"))],
                setupFile=str(files.joinpath("spark-setup.sh")),
            ),
        ],
        dependencies=dependencies
        if dependencies is not None
        else [str(files.joinpath("query.sql"))],
        commandArgs=["query.sql", "--hiveconf", "a b"],
    )


@pytest.mark.asyncio
async def test_build_layout(config, files):
    builder = WorkspaceBuilder(config, SchemeFileFetcher())
    ws = await builder.build(make_plan(files))
    assert ws.root == config.jobsRoot.joinpath("job-1")
    for d in (ws.logs, ws.applications, ws.command, ws.cluster):
        assert d.is_dir()
    assert ws.cluster.joinpath("sla", "config", "core-site.xml").is_file()
    assert ws.cluster.joinpath("sla", "cluster-setup.sh").is_file()
    assert ws.applications.joinpath(
        "hadoop", "dependencies", "hadoop.jar"
    ).is_file()
    assert ws.applications.joinpath("spark", "spark-setup.sh").is_file()
    assert ws.command.joinpath("hive", "config", "hive-site.xml").is_file()
    assert ws.root.joinpath("query.sql").is_file()
    assert os.access(ws.script, os.X_OK)


@pytest.mark.asyncio
async def test_script_sections_order(config, files):
    builder = WorkspaceBuilder(config, SchemeFileFetcher())
    ws = await builder.build(make_plan(files))
    script = ws.script.read_text()
    assert script.startswith("#!/usr/bin/env bash")
    positions = [
        script.index("trap handle_kill_request TERM INT"),
        script.index("export JOB_DIR="),
        script.index("export JOB_CLUSTER_ID=sla"),
        script.index("export JOB_APPLICATION_ID=hadoop"),
        script.index("export JOB_APPLICATION_ID=spark"),
        script.index("export JOB_COMMAND_ID=hive"),
        script.index("export JOB_ID=job-1"),
        script.index("hive -f query.sql --hiveconf 'a b'"),
    ]
    assert positions == sorted(positions)
    assert "export JOB_MEMORY=512" in script
    assert "export JOB_APPLICATION_IDS=hadoop,spark" in script
    assert "spark-setup.sh" in script


@pytest.mark.asyncio
async def test_application_failure_stops_build(config, files):
    applications = [
        Application(id="hadoop", name="hadoop"),
        Application(
            id="broken",
            name="broken",
            dependencies=[str(files.joinpath("missing.jar"))],
        ),
        Application(id="never", name="never"),
    ]
    fetcher = SchemeFileFetcher()
    builder = WorkspaceBuilder(config, fetcher)
    with pytest.raises(BuildFailure) as e:
        await builder.build(make_plan(files, applications=applications))
    assert e.value.step == "stage-applications"
    assert e.value.kind == "FETCH_FAILURE"
    ws = builder.workspace_for("job-1")
    # Partial workspace is left for inspection
    assert ws.root.is_dir()
    assert not ws.applications.joinpath("never").exists()
    assert not ws.command.joinpath("hive").exists()
    assert not ws.root.joinpath("query.sql").exists()
    assert not os.access(ws.script, os.X_OK)


@pytest.mark.asyncio
async def test_existing_directory_is_structural_failure(config, files):
    config.jobsRoot.joinpath("job-1").mkdir(parents=True)
    fetcher = SchemeFileFetcher()
    fetcher.fetch = AsyncMock()
    builder = WorkspaceBuilder(config, fetcher)
    with pytest.raises(BuildFailure) as e:
        await builder.build(make_plan(files))
    assert e.value.step == "create-job-directory"
    assert e.value.kind == "STRUCTURAL_FAILURE"
    fetcher.fetch.assert_not_called()


@pytest.mark.asyncio
async def test_job_dependency_failure(config, files):
    builder = WorkspaceBuilder(config, SchemeFileFetcher())
    with pytest.raises(BuildFailure) as e:
        await builder.build(
            make_plan(files, dependencies=["s3://bucket/query.sql"])
        )
    assert e.value.step == "stage-job"
    assert "not supported" in e.value.cause


@pytest.mark.asyncio
async def test_job_files_can_not_shadow_workspace_entries(config, files):
    files.joinpath("job.killed").write_text("")
    builder = WorkspaceBuilder(config, SchemeFileFetcher())
    with pytest.raises(BuildFailure) as e:
        await builder.build(
            make_plan(
                files,
                dependencies=[
                    str(files.joinpath("query.sql")),
                    str(files.joinpath("job.killed")),
                ],
            )
        )
    assert e.value.step == "stage-job"
    assert e.value.kind == "STRUCTURAL_FAILURE"
    ws = builder.workspace_for("job-1")
    assert not ws.killed_file.exists()
    assert not ws.root.joinpath("query.sql").exists()
