from fastapi import APIRouter, Depends
from typing import Dict, List
from app.internal.errors import JobNodeError
from app.models.resource import Cluster, Command

from app.adapters.tagrepository import AbstractTagRepository
from app.utils.admissioncontroller import AdmissionController
from app.internal.dependencies import admission, http_error, tags

router = APIRouter(
    tags=["resources"],
)

responses = {
    404: {"detail": ""},
    422: {"detail": ""},
    500: {"detail": ""},
}


@router.get("/clusters/", response_model=List[Cluster])
async def read_clusters(
    tags: AbstractTagRepository = Depends(tags),
) -> List[Cluster]:
    return tags.list_clusters()


@router.get(
    "/clusters/{clusterId}/commands",
    response_model=List[Command],
    responses=responses,
)
async def read_cluster_commands(
    clusterId: str,
    tags: AbstractTagRepository = Depends(tags),
) -> List[Command]:
    try:
        return tags.commands_for_cluster(clusterId)
    except JobNodeError as e:
        raise http_error(e)


@router.put(
    "/clusters/{clusterId}/commands",
    response_model=Cluster,
    responses=responses,
)
async def reorder_cluster_commands(
    clusterId: str,
    commandIds: List[str],
    tags: AbstractTagRepository = Depends(tags),
) -> Cluster:
    try:
        return tags.reorder_commands(clusterId, commandIds)
    except JobNodeError as e:
        raise http_error(e)


@router.get("/node/memory")
async def read_node_memory(
    admission: AdmissionController = Depends(admission),
) -> Dict[str, int]:
    return {
        "capacity": admission.capacity,
        "available": admission.available,
    }
