import asyncio
from dataclasses import dataclass
from datetime import datetime
import logging
import os
import signal
from typing import Dict, Optional

from app.internal.config import NodeConfig
from app.internal.errors import LaunchFailure
from app.models.jobstatus import JobStatus
from app.models.processhandle import ProcessHandle
from app.utils.launchscript import KILLED_EXIT_CODE
from app.utils.workspacebuilder import Workspace

logger = logging.getLogger(__name__)

RUN_LOG = "run.log"


@dataclass(frozen=True)
class SupervisionResult:
    status: JobStatus
    exitCode: Optional[int]
    message: str


class SupervisedProcess:
    """
    State of one supervised job script. Only the poll loop of the job
    reads it to decide the final status.
    """

    def __init__(
        self,
        jobId: str,
        handle: ProcessHandle,
        workspace: Workspace,
        process: Optional[asyncio.subprocess.Process] = None,
    ):
        self.jobId = jobId
        self.handle = handle
        self.workspace = workspace
        self.process = process
        self.killReason: Optional[str] = None
        self.task: Optional["asyncio.Task[SupervisionResult]"] = None
        self.escalation: Optional[asyncio.Task] = None

    def is_alive(self) -> bool:
        if self.process is not None:
            return self.process.returncode is None
        # Handles re-armed after a restart are not our children, the
        # pid may have been reused in the meantime.
        try:
            os.kill(self.handle.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True


def group_alive(pgid: int) -> bool:
    try:
        os.killpg(pgid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def read_exit_code(workspace: Workspace) -> Optional[int]:
    try:
        content = workspace.done_file.read_text().strip()
    except FileNotFoundError:
        return None
    try:
        return int(content)
    except ValueError:
        logger.warning(f"unreadable exit code in {workspace.done_file}")
        return None


def resolve_result(
    workspace: Workspace,
    killReason: Optional[str] = None,
    returncode: Optional[int] = None,
) -> SupervisionResult:
    exitCode = read_exit_code(workspace)
    if workspace.killed_file.exists():
        return SupervisionResult(
            JobStatus.KILLED,
            exitCode,
            killReason or "Job was killed",
        )
    if killReason is not None and exitCode in (None, KILLED_EXIT_CODE):
        return SupervisionResult(JobStatus.KILLED, exitCode, killReason)
    if exitCode is None:
        return SupervisionResult(
            JobStatus.FAILED,
            returncode,
            "Job process ended without writing an exit code",
        )
    if exitCode == 0:
        return SupervisionResult(
            JobStatus.SUCCEEDED, 0, "Job finished successfully"
        )
    return SupervisionResult(
        JobStatus.FAILED, exitCode, f"Job failed with exit code {exitCode}"
    )


class ProcessSupervisor:
    """
    Launches job scripts and watches them until they end.

    Every job gets its own task with a poll loop; the loop only checks
    whether the process is still there and, once it is gone, reads the
    done and killed files left in the workspace. A pid reused by the
    system between two polls is not detected.
    """

    def __init__(self, config: NodeConfig):
        self.pollInterval = config.pollInterval
        self.killGrace = config.killGrace
        self._supervised: Dict[str, SupervisedProcess] = {}
        self._processes: Dict[str, asyncio.subprocess.Process] = {}

    async def launch(self, jobId: str, workspace: Workspace) -> ProcessHandle:
        if not os.access(workspace.script, os.X_OK):
            raise LaunchFailure(f"{workspace.script} is not executable")
        try:
            with open(workspace.logs.joinpath(RUN_LOG), "ab") as log:
                process = await asyncio.create_subprocess_exec(
                    str(workspace.script),
                    cwd=str(workspace.root),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=log,
                    stderr=log,
                    start_new_session=True,
                )
        except OSError as e:
            raise LaunchFailure(f"unable to start job {jobId}: {e}") from e
        self._processes[jobId] = process
        logger.info(f"job {jobId} launched with pid {process.pid}")
        # start_new_session makes the script a process group leader
        return ProcessHandle(pid=process.pid, pgid=process.pid)

    async def abort(self, jobId: str, handle: ProcessHandle) -> Optional[int]:
        """
        Kills the process group of a script that was launched but never
        handed over to supervision, and reaps it.
        """
        process = self._processes.pop(jobId, None)
        try:
            os.killpg(handle.pgid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        logger.info(f"job {jobId} aborted right after launch")
        if process is None:
            return None
        return await process.wait()

    def supervise(
        self,
        jobId: str,
        handle: ProcessHandle,
        workspace: Workspace,
        pollInterval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> "asyncio.Task[SupervisionResult]":
        supervised = SupervisedProcess(
            jobId, handle, workspace, self._processes.pop(jobId, None)
        )
        self._supervised[jobId] = supervised
        supervised.task = asyncio.create_task(
            self._poll(
                supervised, pollInterval or self.pollInterval, timeout
            ),
            name=f"supervise-{jobId}",
        )
        return supervised.task

    async def _poll(
        self,
        supervised: SupervisedProcess,
        interval: float,
        timeout: Optional[float],
    ) -> SupervisionResult:
        jobId = supervised.jobId
        try:
            while supervised.is_alive():
                if timeout is not None and supervised.killReason is None:
                    elapsed = datetime.now() - supervised.handle.launched
                    if elapsed.total_seconds() > timeout:
                        logger.warning(f"job {jobId} exceeded {timeout}s")
                        self.kill(jobId, "Job exceeded timeout")
                await asyncio.sleep(interval)
            returncode = None
            if supervised.process is not None:
                returncode = await supervised.process.wait()
            result = resolve_result(
                supervised.workspace, supervised.killReason, returncode
            )
            logger.info(
                f"job {jobId} ended as {result.status.value}"
                f" (exit code {result.exitCode})"
            )
            return result
        finally:
            self._supervised.pop(jobId, None)
            if supervised.escalation is not None and not group_alive(
                supervised.handle.pgid
            ):
                supervised.escalation.cancel()

    def is_supervised(self, jobId: str) -> bool:
        return jobId in self._supervised

    def kill(self, jobId: str, reason: str = "Job was killed") -> bool:
        supervised = self._supervised.get(jobId)
        if supervised is None:
            return False
        if supervised.killReason is None:
            supervised.killReason = reason
        logger.info(f"killing job {jobId}: {supervised.killReason}")
        try:
            os.kill(supervised.handle.pid, signal.SIGTERM)
        except ProcessLookupError:
            return True
        if supervised.escalation is None:
            supervised.escalation = asyncio.create_task(
                self._escalate(supervised), name=f"escalate-{jobId}"
            )
        return True

    async def _escalate(self, supervised: SupervisedProcess) -> None:
        await asyncio.sleep(self.killGrace)
        try:
            os.killpg(supervised.handle.pgid, signal.SIGKILL)
        except ProcessLookupError:
            return
        except PermissionError as e:
            logger.error(f"unable to kill job {supervised.jobId}: {e}")
            return
        logger.warning(
            f"job {supervised.jobId} process group killed after"
            f" {self.killGrace}s grace period"
        )

    async def shutdown(self) -> None:
        tasks = []
        for supervised in list(self._supervised.values()):
            for task in (supervised.task, supervised.escalation):
                if task is not None and not task.done():
                    task.cancel()
                    tasks.append(task)
        await asyncio.gather(*tasks, return_exceptions=True)
        self._supervised.clear()
