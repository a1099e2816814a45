import asyncio
from dataclasses import dataclass, field
import logging
import shutil
import tarfile
from pathlib import Path
from typing import List, Optional

from app.internal.config import NodeConfig
from app.models.job import Job
from app.utils.workspacebuilder import Workspace

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    jobId: str
    deletedDependencies: List[str] = field(default_factory=list)
    archive: Optional[Path] = None
    deletedAttachments: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class CleanupManager:
    """
    Housekeeping of the workspace of a finished job. Nothing done here
    changes the final status of the job, failures only end up in the
    report and in the log.
    """

    def __init__(self, config: NodeConfig):
        self.archiveRoot = config.archiveRoot
        self.attachmentsRoot = config.attachmentsRoot
        self.archiveEnabled = config.archiveEnabled
        self.deleteDependencies = config.deleteApplicationDependencies

    def archive_path(self, jobId: str) -> Path:
        return self.archiveRoot.joinpath(f"{jobId}.tar.gz")

    async def finalize(self, job: Job, workspace: Workspace) -> CleanupReport:
        if not job.status.is_terminal():
            raise ValueError(
                f"job {job.id} is {job.status.value}, cleanup needs a"
                " terminal status"
            )
        report = CleanupReport(job.id)
        await asyncio.to_thread(self._delete_attachments, job.id, report)
        if not workspace.root.is_dir():
            logger.info(f"job {job.id} has no workspace to clean")
        else:
            if self.deleteDependencies:
                await asyncio.to_thread(
                    self._delete_application_dependencies, workspace, report
                )
            if job.archive and self.archiveEnabled:
                await asyncio.to_thread(
                    self._archive, job.id, workspace, report
                )
        for error in report.errors:
            logger.error(f"job {job.id} cleanup: {error}")
        return report

    async def discard_attachments(self, jobId: str) -> CleanupReport:
        """
        Drops the attachments saved for a job. They are copied into
        the workspace when it is built, the saved copy is not needed
        once the job is finished.
        """
        report = CleanupReport(jobId)
        await asyncio.to_thread(self._delete_attachments, jobId, report)
        for error in report.errors:
            logger.error(f"job {jobId} cleanup: {error}")
        return report

    def _delete_attachments(self, jobId: str, report: CleanupReport) -> None:
        directory = self.attachmentsRoot.joinpath(jobId)
        if not directory.is_dir():
            return
        try:
            shutil.rmtree(directory)
            report.deletedAttachments = True
        except OSError as e:
            report.errors.append(f"unable to delete {directory}: {e}")

    def _delete_application_dependencies(
        self, workspace: Workspace, report: CleanupReport
    ) -> None:
        if not workspace.applications.is_dir():
            return
        for application in sorted(workspace.applications.iterdir()):
            dependencies = application.joinpath("dependencies")
            if not dependencies.is_dir():
                continue
            try:
                shutil.rmtree(dependencies)
                report.deletedDependencies.append(application.name)
            except OSError as e:
                report.errors.append(
                    f"unable to delete {dependencies}: {e}"
                )

    def _archive(
        self, jobId: str, workspace: Workspace, report: CleanupReport
    ) -> None:
        destination = self.archive_path(jobId)
        partial = destination.with_name(destination.name + ".part")
        try:
            self.archiveRoot.mkdir(parents=True, exist_ok=True)
            with tarfile.open(partial, "w:gz") as tar:
                tar.add(workspace.root, arcname=jobId)
            partial.replace(destination)
        except (OSError, tarfile.TarError) as e:
            report.errors.append(f"unable to archive {workspace.root}: {e}")
            if partial.exists():
                partial.unlink()
            return
        report.archive = destination
        logger.info(f"job {jobId} archived to {destination}")
