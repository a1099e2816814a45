from datetime import datetime
from pydantic import BaseModel, Field


class ProcessHandle(BaseModel):
    """
    Handle of a launched job script. The script is the leader of
    its own process group, so pgid is usually equal to pid.
    """

    pid: int
    pgid: int
    launched: datetime = Field(default_factory=datetime.now)
