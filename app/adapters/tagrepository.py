from abc import ABC, abstractmethod
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Type
from pydantic import BaseModel, Field

from app.internal.errors import InvalidRequest, ResourceNotFound
from app.models.resource import Application, Cluster, Command

logger = logging.getLogger(__name__)


class AbstractTagRepository(ABC):
    """
    Read only view of the clusters, commands and applications known
    to the node, with their tags and ordered links. The only mutation
    offered is the administrator reorder of a cluster's commands.
    """

    @abstractmethod
    def list_clusters(self) -> List[Cluster]:
        pass

    @abstractmethod
    def get_cluster(self, clusterId: str) -> Optional[Cluster]:
        pass

    @abstractmethod
    def get_command(self, commandId: str) -> Optional[Command]:
        pass

    @abstractmethod
    def get_application(self, applicationId: str) -> Optional[Application]:
        pass

    @abstractmethod
    def reorder_commands(
        self, clusterId: str, commandIds: List[str]
    ) -> Cluster:
        pass

    def commands_for_cluster(self, clusterId: str) -> List[Command]:
        cluster = self.get_cluster(clusterId)
        if cluster is None:
            raise ResourceNotFound(f"cluster {clusterId} not found")
        commands: List[Command] = []
        for commandId in cluster.commands:
            command = self.get_command(commandId)
            if command is None:
                logger.warning(
                    f"cluster {clusterId} links unknown command {commandId}"
                )
                continue
            commands.append(command)
        return commands


class TagStoreDocument(BaseModel):
    clusters: List[Cluster] = Field(default_factory=list)
    commands: List[Command] = Field(default_factory=list)
    applications: List[Application] = Field(default_factory=list)


class MemoryTagRepository(AbstractTagRepository):
    """
    Keeps the resources in dictionaries. Link order lives in the
    resources themselves (Cluster.commands, Command.applications)
    and is never derived from dictionary iteration.
    """

    def __init__(
        self,
        clusters: Optional[List[Cluster]] = None,
        commands: Optional[List[Command]] = None,
        applications: Optional[List[Application]] = None,
    ):
        self._lock = threading.Lock()
        self._clusters: Dict[str, Cluster] = {
            c.id: c for c in clusters or []
        }
        self._commands: Dict[str, Command] = {c.id: c for c in commands or []}
        self._applications: Dict[str, Application] = {
            a.id: a for a in applications or []
        }

    def list_clusters(self) -> List[Cluster]:
        with self._lock:
            return list(self._clusters.values())

    def get_cluster(self, clusterId: str) -> Optional[Cluster]:
        with self._lock:
            return self._clusters.get(clusterId)

    def get_command(self, commandId: str) -> Optional[Command]:
        with self._lock:
            return self._commands.get(commandId)

    def get_application(self, applicationId: str) -> Optional[Application]:
        with self._lock:
            return self._applications.get(applicationId)

    def reorder_commands(
        self, clusterId: str, commandIds: List[str]
    ) -> Cluster:
        with self._lock:
            cluster = self._clusters.get(clusterId)
            if cluster is None:
                raise ResourceNotFound(f"cluster {clusterId} not found")
            if len(commandIds) != len(cluster.commands) or set(
                commandIds
            ) != set(cluster.commands):
                raise InvalidRequest(
                    f"new order must be a permutation of {cluster.commands}"
                )
            updated = cluster.model_copy(update={"commands": list(commandIds)})
            self._clusters[clusterId] = updated
        logger.info(f"cluster {clusterId} commands reordered: {commandIds}")
        return updated


class FileTagRepository(MemoryTagRepository):
    """
    Loads the resources once from a JSON document with the keys
    clusters, commands and applications.
    """

    def __init__(self, path: Path):
        document = TagStoreDocument.model_validate_json(
            Path(path).read_text()
        )
        super().__init__(
            document.clusters, document.commands, document.applications
        )
        logger.info(
            f"tag store loaded from {path}: {len(document.clusters)}"
            f" clusters, {len(document.commands)} commands,"
            f" {len(document.applications)} applications"
        )


MAPPING: Dict[str, Type[AbstractTagRepository]] = {
    "MEMORY": MemoryTagRepository,
    "FILE": FileTagRepository,
}


def factory(kind: str, path: Optional[Path] = None) -> AbstractTagRepository:
    if kind not in MAPPING:
        raise ValueError(f"tag store {kind} not supported")
    if kind == "FILE":
        if path is None:
            raise ValueError("tag store FILE requires a path")
        return FileTagRepository(path)
    return MAPPING[kind]()
