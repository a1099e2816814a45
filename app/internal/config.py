from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from app.internal.settings import Settings


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class NodeConfig(BaseModel):
    """
    Immutable administrator configuration of the node, built once at
    startup and handed to every component that needs a threshold,
    a root directory or a toggle.
    """

    model_config = ConfigDict(frozen=True)

    jobsRoot: Path
    archiveRoot: Path
    attachmentsRoot: Path
    memoryCapacityMb: int = Field(gt=0)
    memoryCeilingMb: int = Field(gt=0)
    memoryDefaultMb: int = Field(gt=0)
    pollInterval: float = Field(default=5.0, gt=0)
    killGrace: float = Field(default=10.0, ge=0)
    archiveEnabled: bool = True
    deleteApplicationDependencies: bool = True
    matchPolicy: str = "RANDOM"
    tagStore: str = "FILE"
    tagStoreFile: Optional[Path] = None

    @classmethod
    def from_settings(cls) -> "NodeConfig":
        return cls(
            jobsRoot=Path(Settings.jobs_root),
            archiveRoot=Path(Settings.archive_root),
            attachmentsRoot=Path(Settings.attachments_root),
            memoryCapacityMb=Settings.memory_capacity,
            memoryCeilingMb=Settings.memory_ceiling,
            memoryDefaultMb=Settings.memory_default,
            pollInterval=Settings.poll_interval,
            killGrace=Settings.kill_grace,
            archiveEnabled=_flag(Settings.archive_enabled),
            deleteApplicationDependencies=_flag(Settings.delete_dependencies),
            matchPolicy=Settings.match_policy.upper(),
            tagStore=Settings.tag_store.upper(),
            tagStoreFile=Path(Settings.tag_store_file),
        )
