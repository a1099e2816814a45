from datetime import datetime
from pydantic import BaseModel, Field
from typing import FrozenSet, List, Optional

from app.models.jobstatus import FailureKind, JobStatus, PipelineStage


class Job(BaseModel):
    """
    Execution record of a job accepted by the node. Mutated by the
    pipeline through every stage and frozen once terminal.
    """

    id: str
    name: str
    user: str
    status: JobStatus = JobStatus.ACCEPTED
    statusMsg: str = "Job accepted"
    failureKind: Optional[FailureKind] = None
    failureStage: Optional[PipelineStage] = None
    clusterId: Optional[str] = None
    commandId: Optional[str] = None
    applicationIds: List[str] = Field(default_factory=list)
    memoryMb: Optional[int] = None
    processId: Optional[int] = None
    checkDelay: Optional[float] = None
    exitCode: Optional[int] = None
    workingDirectory: Optional[str] = None
    archiveLocation: Optional[str] = None
    tags: FrozenSet[str] = Field(default_factory=frozenset)
    archive: bool = True
    timeoutSeconds: Optional[float] = None
    created: datetime = Field(default_factory=datetime.now)
    started: Optional[datetime] = None
    finished: Optional[datetime] = None
    updated: datetime = Field(default_factory=datetime.now)
