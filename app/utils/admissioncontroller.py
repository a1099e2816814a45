from dataclasses import dataclass
import logging
import threading
from typing import Dict, Optional

from app.internal.config import NodeConfig
from app.internal.errors import InsufficientCapacity, InvalidRequest
from app.models.resource import Command

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    jobId: str
    memoryMb: int


class AdmissionController:
    """
    Memory budget of this node. The counter is local to the process
    and is not synchronized with other nodes.
    """

    def __init__(self, config: NodeConfig):
        self.capacity = config.memoryCapacityMb
        self.ceiling = config.memoryCeilingMb
        self.default = config.memoryDefaultMb
        self._lock = threading.Lock()
        self._available = self.capacity
        self._reservations: Dict[str, Reservation] = {}

    @property
    def available(self) -> int:
        with self._lock:
            return self._available

    @property
    def reserved(self) -> Dict[str, int]:
        with self._lock:
            return {k: r.memoryMb for k, r in self._reservations.items()}

    def validate_request(self, requested: Optional[int]) -> None:
        if requested is not None and requested > self.ceiling:
            raise InvalidRequest(
                f"requested memory {requested} MB is above the"
                f" maximum of {self.ceiling} MB per job"
            )

    def resolve_memory(
        self, requested: Optional[int], command: Optional[Command] = None
    ) -> int:
        self.validate_request(requested)
        if requested is not None:
            return requested
        if command is not None and command.memory is not None:
            return command.memory
        return self.default

    def reserve(self, jobId: str, memoryMb: int) -> Reservation:
        with self._lock:
            if jobId in self._reservations:
                return self._reservations[jobId]
            if memoryMb > self._available:
                raise InsufficientCapacity(jobId, memoryMb, self._available)
            self._available -= memoryMb
            reservation = Reservation(jobId, memoryMb)
            self._reservations[jobId] = reservation
            available = self._available
        logger.info(
            f"reserved {memoryMb} MB for job {jobId}, {available} MB left"
        )
        return reservation

    def release(self, jobId: str) -> bool:
        with self._lock:
            reservation = self._reservations.pop(jobId, None)
            if reservation is None:
                return False
            self._available += reservation.memoryMb
            available = self._available
        logger.info(
            f"released {reservation.memoryMb} MB of job {jobId},"
            f" {available} MB available"
        )
        return True
