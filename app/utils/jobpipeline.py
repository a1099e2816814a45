import asyncio
import base64
import binascii
from enum import Enum
import logging
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from app.adapters.filefetcher import AbstractFileFetcher
from app.adapters.jobrepository import AbstractJobRepository
from app.adapters.tagrepository import AbstractTagRepository
from app.internal.config import NodeConfig
from app.internal.errors import (
    BuildFailure,
    InsufficientCapacity,
    InvalidRequest,
    InvalidTransition,
    LaunchFailure,
    NoMatch,
)
from app.models.job import Job
from app.models.jobrequest import JobRequest
from app.models.jobstatus import FailureKind, JobStatus, PipelineStage
from app.models.processhandle import ProcessHandle
from app.utils.admissioncontroller import AdmissionController
from app.utils.cleanupmanager import CleanupManager
from app.utils.criteriamatcher import CriteriaMatcher, policy_factory
from app.utils.processsupervisor import ProcessSupervisor, SupervisionResult
from app.utils.workspacebuilder import BuildPlan, Workspace, WorkspaceBuilder

logger = logging.getLogger(__name__)

RESULT_FAILURES: Dict[JobStatus, FailureKind] = {
    JobStatus.FAILED: FailureKind.RUNTIME_FAILURE,
    JobStatus.KILLED: FailureKind.KILLED,
}


class Phase(Enum):
    PREPARING = "PREPARING"
    LAUNCHING = "LAUNCHING"
    RUNNING = "RUNNING"


class JobPipeline:
    """
    Runs every accepted job through matching, admission, workspace
    build, launch, supervision and cleanup.

    Matching and admission happen while the request is being answered;
    the remaining stages run in one asyncio task per job. The pipeline
    is the only writer of the job records, and every way out of it
    releases the memory reserved for the job.
    """

    def __init__(
        self,
        config: NodeConfig,
        tags: AbstractTagRepository,
        jobs: AbstractJobRepository,
        fetcher: AbstractFileFetcher,
        matcher: Optional[CriteriaMatcher] = None,
        admission: Optional[AdmissionController] = None,
        builder: Optional[WorkspaceBuilder] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        cleanup: Optional[CleanupManager] = None,
    ):
        self.config = config
        self.tags = tags
        self.jobs = jobs
        self.matcher = matcher or CriteriaMatcher(
            tags, policy_factory(config.matchPolicy)
        )
        self.admission = admission or AdmissionController(config)
        self.builder = builder or WorkspaceBuilder(config, fetcher)
        self.supervisor = supervisor or ProcessSupervisor(config)
        self.cleanup = cleanup or CleanupManager(config)
        self._tasks: Dict[str, asyncio.Task] = {}
        self._phases: Dict[str, Phase] = {}
        self._killReasons: Dict[str, str] = {}
        self._launches: Dict[str, "asyncio.Future[ProcessHandle]"] = {}

    def tasks(self) -> Dict[str, asyncio.Task]:
        return self._tasks

    async def get(self, jobId: str) -> Job:
        return await self.jobs.get(jobId)

    async def list_jobs(self) -> List[Job]:
        return await self.jobs.list_jobs()

    @staticmethod
    def _decode_attachments(request: JobRequest) -> List[Tuple[str, bytes]]:
        decoded = []
        for attachment in request.attachments:
            try:
                content = base64.b64decode(attachment.content, validate=True)
            except (binascii.Error, ValueError) as e:
                raise InvalidRequest(
                    f"attachment {attachment.name} is not valid base64: {e}"
                ) from e
            decoded.append((attachment.name, content))
        return decoded

    def _save_attachments(
        self, jobId: str, attachments: List[Tuple[str, bytes]]
    ) -> List[str]:
        directory = self.config.attachmentsRoot.joinpath(jobId)
        uris: List[str] = []
        if not attachments:
            return uris
        directory.mkdir(parents=True, exist_ok=True)
        for name, content in attachments:
            path = directory.joinpath(name)
            path.write_bytes(content)
            uris.append(path.resolve().as_uri())
        return uris

    async def submit(self, request: JobRequest) -> Job:
        """
        Accepts a job request. Invalid requests and duplicated ids are
        rejected before any record exists. A request that matches no
        cluster is accepted and recorded as failed. A request that does
        not fit in the memory budget is recorded as failed and the
        InsufficientCapacity error is raised to the caller.
        """
        self.admission.validate_request(request.memoryMb)
        attachments = self._decode_attachments(request)
        jobId = request.id or str(uuid4())
        job = await self.jobs.create(
            Job(
                id=jobId,
                name=request.name,
                user=request.user,
                tags=request.tags,
                archive=request.archive,
                timeoutSeconds=request.timeoutSeconds,
            )
        )
        logger.info(f"job {jobId} accepted")

        try:
            saved = await asyncio.to_thread(
                self._save_attachments, jobId, attachments
            )
        except OSError as e:
            return await self._fail(
                jobId,
                FailureKind.BUILD_FAILURE,
                PipelineStage.BUILD,
                f"unable to save attachments: {e}",
            )

        try:
            pair = self.matcher.select(
                request.clusterCriterias, request.commandCriteria
            )
            applications = self.matcher.resolve_applications(pair.command)
        except NoMatch as e:
            return await self._fail(
                jobId, FailureKind.NO_MATCH, PipelineStage.MATCH, e.detail
            )

        memory = self.admission.resolve_memory(request.memoryMb, pair.command)
        job = await self.jobs.update(
            jobId,
            clusterId=pair.cluster.id,
            commandId=pair.command.id,
            applicationIds=[a.id for a in applications],
            memoryMb=memory,
            checkDelay=pair.command.checkDelay,
        )
        logger.info(
            f"job {jobId} resolved to cluster {pair.cluster.id}"
            f" and command {pair.command.id}"
        )

        try:
            self.admission.reserve(jobId, memory)
        except InsufficientCapacity as e:
            await self._fail(
                jobId,
                FailureKind.INSUFFICIENT_CAPACITY,
                PipelineStage.ADMISSION,
                e.detail,
            )
            raise

        plan = BuildPlan(
            job=job,
            cluster=pair.cluster,
            command=pair.command,
            applications=applications,
            dependencies=list(request.dependencies) + saved,
            commandArgs=list(request.commandArgs),
            setupFile=request.setupFile,
        )
        self._schedule(jobId, self._run(plan))
        return job

    def _schedule(self, jobId: str, coro) -> None:
        self._phases[jobId] = Phase.PREPARING
        ref: asyncio.Task = asyncio.create_task(coro, name=f"job-{jobId}")
        self._tasks[jobId] = ref
        ref.add_done_callback(lambda _: self._remove_task(jobId))

    def _remove_task(self, jobId: str) -> None:
        self._tasks.pop(jobId, None)
        self._phases.pop(jobId, None)
        self._killReasons.pop(jobId, None)
        self._launches.pop(jobId, None)

    async def _fail(
        self,
        jobId: str,
        kind: FailureKind,
        stage: PipelineStage,
        message: str,
        status: JobStatus = JobStatus.FAILED,
        **fields,
    ) -> Job:
        self.admission.release(jobId)
        logger.error(f"job {jobId} {status.value} at {stage.value}: {message}")
        job = await self.jobs.transition(
            jobId,
            status,
            statusMsg=message,
            failureKind=kind,
            failureStage=stage,
            **fields,
        )
        await self.cleanup.discard_attachments(jobId)
        return job

    async def _run(self, plan: BuildPlan) -> None:
        jobId = plan.job.id
        try:
            try:
                workspace = await self.builder.build(plan)
            except BuildFailure as e:
                await self._fail(
                    jobId, FailureKind.BUILD_FAILURE, PipelineStage.BUILD,
                    e.detail,
                )
                return
            await self.jobs.transition(
                jobId,
                JobStatus.INIT,
                statusMsg="Job workspace ready",
                workingDirectory=str(workspace.root),
            )

            # Kill requests wait for the launch to return a handle
            self._phases[jobId] = Phase.LAUNCHING
            launch = asyncio.ensure_future(
                self.supervisor.launch(jobId, workspace)
            )
            self._launches[jobId] = launch
            try:
                handle = await asyncio.shield(launch)
            except LaunchFailure as e:
                await self._fail(
                    jobId, FailureKind.LAUNCH_FAILURE, PipelineStage.LAUNCH,
                    e.detail,
                )
                return
            if jobId in self._killReasons:
                await self._abort_launch(
                    jobId, handle, self._killReasons[jobId]
                )
                return
            await self.jobs.mark_running(jobId, handle)
            self._phases[jobId] = Phase.RUNNING
            await self._supervise(
                jobId, handle, workspace, plan.command.checkDelay,
                plan.job.timeoutSeconds,
            )
        except Exception as e:
            logger.exception(f"job {jobId} pipeline crashed")
            self.supervisor.kill(jobId, "Job pipeline crashed")
            job = await self.jobs.get(jobId)
            if not job.status.is_terminal():
                await self._fail(
                    jobId, FailureKind.INTERNAL, PipelineStage.SUPERVISE,
                    f"internal error: {e}",
                )

    async def _supervise(
        self,
        jobId: str,
        handle: ProcessHandle,
        workspace: Workspace,
        pollInterval: Optional[float],
        timeout: Optional[float],
    ) -> None:
        task = self.supervisor.supervise(
            jobId, handle, workspace, pollInterval, timeout
        )
        if jobId in self._killReasons:
            self.supervisor.kill(jobId, self._killReasons[jobId])
        result = await task
        await self._finish(jobId, result, workspace)

    async def _finish(
        self, jobId: str, result: SupervisionResult, workspace: Workspace
    ) -> None:
        self.admission.release(jobId)
        fields = dict(statusMsg=result.message, exitCode=result.exitCode)
        if result.status in RESULT_FAILURES:
            fields["failureKind"] = RESULT_FAILURES[result.status]
            fields["failureStage"] = PipelineStage.SUPERVISE
        job = await self.jobs.transition(jobId, result.status, **fields)
        logger.info(f"job {jobId} is {job.status.value}: {job.statusMsg}")
        try:
            report = await self.cleanup.finalize(job, workspace)
        except Exception:
            logger.exception(f"job {jobId} cleanup crashed")
            return
        if report.archive is not None:
            await self.jobs.set_archive_location(jobId, str(report.archive))

    async def kill(self, jobId: str, reason: str = "Job was killed") -> bool:
        """
        Kills a job that is not finished yet. Jobs still preparing are
        stopped before they ever run. A kill arriving while the script
        is being started takes its process group down as soon as it has
        a pid, so the job goes from INIT straight to KILLED.
        """
        job = await self.jobs.get(jobId)
        if job.status.is_terminal():
            raise InvalidTransition(
                f"job {jobId} is already {job.status.value}"
            )
        phase = self._phases.get(jobId)
        if phase == Phase.LAUNCHING:
            self._killReasons.setdefault(jobId, reason)
            return True
        if self.supervisor.kill(jobId, reason):
            return True
        task = self._tasks.get(jobId)
        if phase == Phase.PREPARING and task is not None and not task.done():
            self._killReasons.setdefault(jobId, reason)
            task.cancel()
            await asyncio.wait([task])
            await self._settle_cancelled(jobId, reason)
            return True
        return False

    async def _abort_launch(
        self, jobId: str, handle: ProcessHandle, reason: str
    ) -> None:
        # Killed while INIT, the script never counts as running
        await self.supervisor.abort(jobId, handle)
        await self._fail(
            jobId,
            FailureKind.KILLED,
            PipelineStage.LAUNCH,
            reason,
            JobStatus.KILLED,
            processId=handle.pid,
        )

    async def _settle_cancelled(self, jobId: str, reason: str) -> None:
        job = await self.jobs.get(jobId)
        if job.status not in (JobStatus.ACCEPTED, JobStatus.INIT):
            return
        stage = (
            PipelineStage.LAUNCH
            if job.status == JobStatus.INIT
            else PipelineStage.BUILD
        )
        await self._fail(
            jobId, FailureKind.KILLED, stage, reason, JobStatus.KILLED
        )

    async def recover(self) -> int:
        """
        Picks up the jobs a previous run of the node left behind. Running
        ones are supervised again from their recorded pid, the ones that
        never got to run are failed.
        """
        recovered = 0
        for job in await self.jobs.list_jobs():
            if job.id in self._tasks or job.status.is_terminal():
                continue
            if job.status != JobStatus.RUNNING or job.processId is None:
                await self._fail(
                    job.id, FailureKind.INTERNAL, PipelineStage.LAUNCH,
                    "Node restarted before the job was launched",
                )
                continue
            try:
                self.admission.reserve(job.id, job.memoryMb or 0)
            except InsufficientCapacity as e:
                logger.warning(f"recovering job {job.id} over budget: {e}")
            handle = ProcessHandle(
                pid=job.processId,
                pgid=job.processId,
                launched=job.started or job.created,
            )
            workspace = self.builder.workspace_for(job.id)
            self._schedule(
                job.id,
                self._supervise(
                    job.id, handle, workspace, job.checkDelay,
                    job.timeoutSeconds,
                ),
            )
            self._phases[job.id] = Phase.RUNNING
            recovered += 1
            logger.info(f"job {job.id} supervision resumed (pid {handle.pid})")
        return recovered

    async def shutdown(self) -> None:
        pending = [t for t in self._tasks.values() if not t.done()]
        preparing = [
            jobId
            for jobId, phase in self._phases.items()
            if phase == Phase.PREPARING
        ]
        launching = {
            jobId: self._launches[jobId]
            for jobId, phase in self._phases.items()
            if phase == Phase.LAUNCHING and jobId in self._launches
        }
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await self.supervisor.shutdown()
        for jobId in preparing:
            await self._settle_cancelled(jobId, "Node shut down")
        # Shielded launches keep going after their task is cancelled
        for jobId, launch in launching.items():
            handle: Optional[ProcessHandle] = None
            try:
                handle = await launch
            except LaunchFailure as e:
                failure = e.detail
            job = await self.jobs.get(jobId)
            if job.status.is_terminal():
                continue
            if handle is None:
                await self._fail(
                    jobId, FailureKind.LAUNCH_FAILURE, PipelineStage.LAUNCH,
                    failure,
                )
            else:
                await self._abort_launch(jobId, handle, "Node shut down")
