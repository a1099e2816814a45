from abc import ABC, abstractmethod
from datetime import datetime
import threading
from typing import Any, Dict, List, Type

from app.internal.errors import DuplicateId, InvalidTransition, JobNotFound
from app.models.job import Job
from app.models.jobstatus import JobStatus
from app.models.processhandle import ProcessHandle


class AbstractJobRepository(ABC):
    """
    Persistence of the job records. Every status change goes through
    transition(), which refuses to leave a terminal state.
    """

    @abstractmethod
    async def create(self, job: Job) -> Job:
        pass

    @abstractmethod
    async def get(self, jobId: str) -> Job:
        pass

    @abstractmethod
    async def list_jobs(self) -> List[Job]:
        pass

    @abstractmethod
    async def update(self, jobId: str, **fields: Any) -> Job:
        pass

    @abstractmethod
    async def transition(
        self, jobId: str, status: JobStatus, **fields: Any
    ) -> Job:
        pass

    @abstractmethod
    async def set_archive_location(self, jobId: str, location: str) -> Job:
        pass

    async def exists(self, jobId: str) -> bool:
        try:
            await self.get(jobId)
        except JobNotFound:
            return False
        return True

    async def mark_running(self, jobId: str, handle: ProcessHandle) -> Job:
        return await self.transition(
            jobId,
            JobStatus.RUNNING,
            statusMsg="Job is running",
            processId=handle.pid,
            started=handle.launched,
        )


class MemoryJobRepository(AbstractJobRepository):
    """
    Keeps the records in a dictionary, guarded by a lock so every
    change is applied in a single step.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: Dict[str, Job] = {}

    def _get(self, jobId: str) -> Job:
        if jobId not in self._jobs:
            raise JobNotFound(jobId)
        return self._jobs[jobId]

    async def create(self, job: Job) -> Job:
        with self._lock:
            if job.id in self._jobs:
                raise DuplicateId(job.id)
            self._jobs[job.id] = job.model_copy(deep=True)
            return job.model_copy(deep=True)

    async def get(self, jobId: str) -> Job:
        with self._lock:
            return self._get(jobId).model_copy(deep=True)

    async def list_jobs(self) -> List[Job]:
        with self._lock:
            return [j.model_copy(deep=True) for j in self._jobs.values()]

    async def update(self, jobId: str, **fields: Any) -> Job:
        if "status" in fields:
            raise ValueError("status changes must use transition()")
        with self._lock:
            current = self._get(jobId)
            if current.status.is_terminal():
                raise InvalidTransition(
                    f"job {jobId} is {current.status.value} and can't change"
                )
            updated = current.model_copy(
                update={**fields, "updated": datetime.now()}
            )
            self._jobs[jobId] = updated
            return updated.model_copy(deep=True)

    async def transition(
        self, jobId: str, status: JobStatus, **fields: Any
    ) -> Job:
        with self._lock:
            current = self._get(jobId)
            if not current.status.can_transition_to(status):
                raise InvalidTransition(
                    f"job {jobId} can't go from {current.status.value}"
                    f" to {status.value}"
                )
            now = datetime.now()
            changes = {**fields, "status": status, "updated": now}
            if status.is_terminal() and "finished" not in changes:
                changes["finished"] = now
            updated = current.model_copy(update=changes)
            self._jobs[jobId] = updated
            return updated.model_copy(deep=True)

    async def set_archive_location(self, jobId: str, location: str) -> Job:
        with self._lock:
            current = self._get(jobId)
            updated = current.model_copy(update={"archiveLocation": location})
            self._jobs[jobId] = updated
            return updated.model_copy(deep=True)


MAPPING: Dict[str, Type[AbstractJobRepository]] = {
    "MEMORY": MemoryJobRepository,
}


def factory(kind: str) -> AbstractJobRepository:
    if kind not in MAPPING:
        raise ValueError(f"job repository {kind} not supported")
    return MAPPING[kind]()
