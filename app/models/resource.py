from enum import Enum
from pydantic import BaseModel, Field
from typing import FrozenSet, List, Optional


class ResourceStatus(Enum):
    ACTIVE = "ACTIVE"
    DEPRECATED = "DEPRECATED"
    INACTIVE = "INACTIVE"


class Resource(BaseModel):
    """
    Common fields of the resources a job is resolved against:
    a unique id, a set of tags used for criteria matching and
    the files staged into the job workspace.
    """

    id: str
    name: str
    user: str = "admin"
    version: str = "1.0.0"
    description: Optional[str] = None
    status: ResourceStatus = ResourceStatus.ACTIVE
    tags: FrozenSet[str] = Field(default_factory=frozenset)
    configs: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    setupFile: Optional[str] = None

    def is_eligible(self) -> bool:
        return self.status != ResourceStatus.INACTIVE

    def satisfies(self, criteria: FrozenSet[str]) -> bool:
        return self.tags.issuperset(criteria)


class Application(Resource):
    """
    Installable dependency required by a command before it runs.
    """

    type: Optional[str] = None


class Command(Resource):
    """
    Executable template. The applications are kept in link order,
    which is the order they are staged in.
    """

    executable: str
    memory: Optional[int] = Field(default=None, gt=0)
    checkDelay: Optional[float] = Field(default=None, gt=0)
    applications: List[str] = Field(default_factory=list)


class Cluster(Resource):
    """
    Compute environment. Commands are kept in administrator
    defined priority order.
    """

    commands: List[str] = Field(default_factory=list)
