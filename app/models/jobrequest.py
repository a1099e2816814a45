from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import FrozenSet, List, Optional

from app.utils.launchscript import RESERVED_NAMES


class Attachment(BaseModel):
    """
    Raw file sent along with the request, base64 encoded.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    content: str

    @field_validator("name")
    @classmethod
    def plain_file_name(cls, v: str) -> str:
        if not v or "/" in v or v in (".", ".."):
            raise ValueError(f"invalid attachment name: {v!r}")
        if v in RESERVED_NAMES:
            raise ValueError(f"attachment name {v!r} is reserved")
        return v


class JobRequest(BaseModel):
    """
    Request for running a job. The cluster criterias are tried in
    order, the first one matching any cluster wins.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str
    user: str = "anonymous"
    version: str = "1.0.0"
    description: Optional[str] = None
    tags: FrozenSet[str] = Field(default_factory=frozenset)
    clusterCriterias: List[FrozenSet[str]] = Field(min_length=1)
    commandCriteria: FrozenSet[str] = Field(default_factory=frozenset)
    commandArgs: List[str] = Field(default_factory=list)
    memoryMb: Optional[int] = Field(default=None, gt=0)
    dependencies: List[str] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)
    setupFile: Optional[str] = None
    timeoutSeconds: Optional[float] = Field(default=None, gt=0)
    archive: bool = True

    @field_validator("id")
    @classmethod
    def plain_job_id(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and (not v or "/" in v or v in (".", "..")):
            raise ValueError(f"invalid job id: {v!r}")
        return v
