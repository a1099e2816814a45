from app.adapters.tagrepository import factory, MemoryTagRepository
from app.internal.errors import InvalidRequest, ResourceNotFound
from app.models.resource import ResourceStatus
import json
import pytest


DOCUMENT = {
    "clusters": [
        {
            "id": "sla",
            "name": "sla",
            "tags": ["type:yarn", "sched:sla"],
            "commands": ["hive", "spark", "ghost"],
        }
    ],
    "commands": [
        {
            "id": "spark",
            "name": "spark",
            "tags": ["type:spark"],
            "executable": "spark-submit",
            "memory": 2048,
            "applications": ["hadoop"],
        },
        {
            "id": "hive",
            "name": "hive",
            "tags": ["type:hive"],
            "executable": "hive",
            "status": "DEPRECATED",
        },
    ],
    "applications": [{"id": "hadoop", "name": "hadoop", "type": "hadoop"}],
}


def test_file_store(tmp_path):
    path = tmp_path.joinpath("tagstore.json")
    path.write_text(json.dumps(DOCUMENT))
    repo = factory("FILE", path)
    cluster = repo.get_cluster("sla")
    assert cluster.tags == frozenset(["type:yarn", "sched:sla"])
    assert cluster.commands == ["hive", "spark", "ghost"]
    assert repo.get_command("hive").status == ResourceStatus.DEPRECATED
    assert repo.get_command("spark").memory == 2048
    assert repo.get_application("hadoop").type == "hadoop"
    # Unknown links are skipped, order is kept
    assert [c.id for c in repo.commands_for_cluster("sla")] == [
        "hive",
        "spark",
    ]


def test_factory():
    assert isinstance(factory("MEMORY"), MemoryTagRepository)
    with pytest.raises(ValueError):
        factory("LDAP")
    with pytest.raises(ValueError):
        factory("FILE")


def test_reorder(yarn_tags):
    cluster = yarn_tags.reorder_commands("sla", ["hive", "spark"])
    assert cluster.commands == ["hive", "spark"]
    assert yarn_tags.get_cluster("sla").commands == ["hive", "spark"]
    assert [c.id for c in yarn_tags.commands_for_cluster("sla")] == [
        "hive",
        "spark",
    ]


def test_reorder_must_be_permutation(yarn_tags):
    with pytest.raises(InvalidRequest):
        yarn_tags.reorder_commands("sla", ["hive"])
    with pytest.raises(InvalidRequest):
        yarn_tags.reorder_commands("sla", ["hive", "presto"])
    with pytest.raises(InvalidRequest):
        yarn_tags.reorder_commands("sla", ["hive", "hive"])
    assert yarn_tags.get_cluster("sla").commands == ["spark", "hive"]


def test_unknown_cluster(yarn_tags):
    with pytest.raises(ResourceNotFound):
        yarn_tags.reorder_commands("nope", [])
    with pytest.raises(ResourceNotFound):
        yarn_tags.commands_for_cluster("nope")
