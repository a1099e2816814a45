from pathlib import Path
import pytest

from app.adapters.filefetcher import SchemeFileFetcher
from app.adapters.jobrepository import MemoryJobRepository
from app.adapters.tagrepository import MemoryTagRepository
from app.internal.config import NodeConfig
from app.models.resource import Application, Cluster, Command, ResourceStatus
from app.utils.jobpipeline import JobPipeline


def make_config(root: Path, **overrides) -> NodeConfig:
    values = dict(
        jobsRoot=root.joinpath("jobs"),
        archiveRoot=root.joinpath("archives"),
        attachmentsRoot=root.joinpath("attachments"),
        memoryCapacityMb=1000,
        memoryCeilingMb=800,
        memoryDefaultMb=100,
        pollInterval=0.05,
        killGrace=0.5,
        matchPolicy="FIRST",
        tagStore="MEMORY",
    )
    values.update(overrides)
    return NodeConfig(**values)


@pytest.fixture
def config(tmp_path) -> NodeConfig:
    return make_config(tmp_path)


@pytest.fixture
def yarn_tags() -> MemoryTagRepository:
    return MemoryTagRepository(
        clusters=[
            Cluster(
                id="sla",
                name="sla",
                tags=["sched:sla", "type:yarn", "ver:2.7", "ver:2.7.0"],
                commands=["spark", "hive"],
            ),
            Cluster(
                id="test",
                name="test",
                tags=["sched:test", "type:yarn", "ver:2.7", "ver:2.7.1"],
                commands=["hive", "spark"],
            ),
            Cluster(
                id="presto",
                name="presto",
                tags=["type:presto", "ver:0.149"],
                commands=["presto"],
            ),
            Cluster(
                id="retired",
                name="retired",
                status=ResourceStatus.INACTIVE,
                tags=["sched:adhoc", "type:yarn", "ver:2.7"],
                commands=["spark"],
            ),
        ],
        commands=[
            Command(
                id="spark",
                name="spark-submit",
                tags=["type:spark", "ver:2.4"],
                executable="spark-submit",
                memory=600,
                applications=["hadoop", "spark-app"],
            ),
            Command(
                id="hive",
                name="hive",
                tags=["type:hive", "ver:2.3"],
                executable="hive",
                applications=["hadoop"],
            ),
            Command(
                id="presto",
                name="presto",
                tags=["type:presto"],
                executable="presto",
            ),
        ],
        applications=[
            Application(id="hadoop", name="hadoop", type="hadoop"),
            Application(id="spark-app", name="spark", type="spark"),
        ],
    )


@pytest.fixture
def shell_tags() -> MemoryTagRepository:
    return MemoryTagRepository(
        clusters=[
            Cluster(
                id="local",
                name="local",
                tags=["type:local"],
                commands=["echo", "fail", "sleep"],
            ),
        ],
        commands=[
            Command(
                id="echo",
                name="echo",
                tags=["type:echo"],
                executable="echo",
                applications=["tools"],
            ),
            Command(
                id="fail",
                name="fail",
                tags=["type:fail"],
                executable="exit 3",
            ),
            Command(
                id="sleep",
                name="sleep",
                tags=["type:sleep"],
                executable="sleep",
                memory=300,
            ),
        ],
        applications=[Application(id="tools", name="tools")],
    )


@pytest.fixture
def pipeline(config, shell_tags) -> JobPipeline:
    return JobPipeline(
        config, shell_tags, MemoryJobRepository(), SchemeFileFetcher()
    )
