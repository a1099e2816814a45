from dataclasses import dataclass, field
from enum import Enum
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple

from app.adapters.filefetcher import AbstractFileFetcher, file_name
from app.internal.config import NodeConfig
from app.internal.errors import BuildFailure, FetchFailure
from app.models.job import Job
from app.models.resource import Application, Cluster, Command, Resource
from app.utils.launchscript import (
    APPLICATIONS_DIR,
    CLUSTER_DIR,
    COMMAND_DIR,
    DONE_FILE,
    KILLED_FILE,
    LOGS_DIR,
    RESERVED_NAMES,
    SCRIPT_FILE,
    LaunchScript,
)

logger = logging.getLogger(__name__)


class StepStatus(Enum):
    OK = "OK"
    STRUCTURAL_FAILURE = "STRUCTURAL_FAILURE"
    FETCH_FAILURE = "FETCH_FAILURE"


@dataclass(frozen=True)
class StepResult:
    status: StepStatus
    cause: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.OK


OK = StepResult(StepStatus.OK)


@dataclass(frozen=True)
class Workspace:
    root: Path

    @property
    def script(self) -> Path:
        return self.root.joinpath(SCRIPT_FILE)

    @property
    def done_file(self) -> Path:
        return self.root.joinpath(DONE_FILE)

    @property
    def killed_file(self) -> Path:
        return self.root.joinpath(KILLED_FILE)

    @property
    def logs(self) -> Path:
        return self.root.joinpath(LOGS_DIR)

    @property
    def applications(self) -> Path:
        return self.root.joinpath(APPLICATIONS_DIR)

    @property
    def command(self) -> Path:
        return self.root.joinpath(COMMAND_DIR)

    @property
    def cluster(self) -> Path:
        return self.root.joinpath(CLUSTER_DIR)


@dataclass
class BuildPlan:
    """
    Everything the builder needs to materialize one job: the resolved
    resources and the job level inputs of the request.
    """

    job: Job
    cluster: Cluster
    command: Command
    applications: List[Application]
    dependencies: List[str] = field(default_factory=list)
    commandArgs: List[str] = field(default_factory=list)
    setupFile: Optional[str] = None


Step = Tuple[str, Callable[["BuildContext"], Awaitable[StepResult]]]


@dataclass
class BuildContext:
    plan: BuildPlan
    workspace: Workspace
    script: LaunchScript
    staged: List[str] = field(default_factory=list)


class WorkspaceBuilder:
    """
    Materializes the working directory of a job and writes its run
    script. The steps run in a fixed order and the first one that
    fails stops the build; what was already written stays on disk.
    """

    def __init__(self, config: NodeConfig, fetcher: AbstractFileFetcher):
        self.root = config.jobsRoot
        self.fetcher = fetcher
        self.steps: List[Step] = [
            ("create-job-directory", self._create_job_directory),
            ("create-run-script", self._create_run_script),
            ("create-directories", self._create_directories),
            ("default-environment", self._default_environment),
            ("stage-cluster", self._stage_cluster),
            ("stage-applications", self._stage_applications),
            ("stage-command", self._stage_command),
            ("stage-job", self._stage_job),
            ("finalize-run-script", self._finalize_run_script),
        ]

    def workspace_for(self, jobId: str) -> Workspace:
        return Workspace(self.root.joinpath(jobId))

    async def build(self, plan: BuildPlan) -> Workspace:
        workspace = self.workspace_for(plan.job.id)
        context = BuildContext(plan, workspace, LaunchScript(workspace.script))
        for name, step in self.steps:
            try:
                result = await step(context)
            except FetchFailure as e:
                result = StepResult(StepStatus.FETCH_FAILURE, e.detail)
            except OSError as e:
                result = StepResult(StepStatus.STRUCTURAL_FAILURE, str(e))
            if not result.ok:
                logger.error(
                    f"job {plan.job.id} workspace step {name} failed:"
                    f" {result.cause}"
                )
                raise BuildFailure(name, result.cause, result.status.value)
            logger.debug(f"job {plan.job.id} workspace step {name} done")
        logger.info(f"job {plan.job.id} workspace ready at {workspace.root}")
        return workspace

    async def _create_job_directory(self, ctx: BuildContext) -> StepResult:
        if ctx.workspace.root.exists():
            return StepResult(
                StepStatus.STRUCTURAL_FAILURE,
                f"{ctx.workspace.root} already exists",
            )
        ctx.workspace.root.mkdir(parents=True)
        return OK

    async def _create_run_script(self, ctx: BuildContext) -> StepResult:
        ctx.script.header()
        ctx.script.write()
        return OK

    async def _create_directories(self, ctx: BuildContext) -> StepResult:
        for d in (
            ctx.workspace.logs,
            ctx.workspace.applications,
            ctx.workspace.command,
            ctx.workspace.cluster,
        ):
            d.mkdir(exist_ok=True)
        return OK

    async def _default_environment(self, ctx: BuildContext) -> StepResult:
        ws = ctx.workspace
        ctx.script.set_section(
            "default-environment",
            LaunchScript.exports(
                [
                    ("JOB_DIR", str(ws.root)),
                    ("JOB_LOGS_DIR", str(ws.logs)),
                    ("JOB_APPLICATION_DIR", str(ws.applications)),
                    ("JOB_COMMAND_DIR", str(ws.command)),
                    ("JOB_CLUSTER_DIR", str(ws.cluster)),
                ]
            ),
        )
        ctx.script.write()
        return OK

    async def _stage_resource(
        self, resource: Resource, base: Path
    ) -> Optional[Path]:
        for uri in resource.configs:
            await self.fetcher.fetch(uri, base.joinpath("config"))
        for uri in resource.dependencies:
            await self.fetcher.fetch(uri, base.joinpath("dependencies"))
        if resource.setupFile:
            return await self.fetcher.fetch(resource.setupFile, base)
        return None

    def _section(
        self, ctx: BuildContext, name: str, variables, setup: Optional[Path]
    ) -> None:
        lines = LaunchScript.exports(variables)
        if setup is not None:
            lines.append(LaunchScript.source(setup))
        ctx.script.set_section(name, lines)
        ctx.script.write()

    async def _stage_cluster(self, ctx: BuildContext) -> StepResult:
        cluster = ctx.plan.cluster
        setup = await self._stage_resource(
            cluster, ctx.workspace.cluster.joinpath(cluster.id)
        )
        self._section(
            ctx,
            "cluster",
            [
                ("JOB_CLUSTER_ID", cluster.id),
                ("JOB_CLUSTER_NAME", cluster.name),
                ("JOB_CLUSTER_TAGS", ",".join(sorted(cluster.tags))),
            ],
            setup,
        )
        return OK

    async def _stage_applications(self, ctx: BuildContext) -> StepResult:
        # Link order is the setup order
        lines: List[str] = []
        ctx.staged = []
        for application in ctx.plan.applications:
            setup = await self._stage_resource(
                application,
                ctx.workspace.applications.joinpath(application.id),
            )
            lines += LaunchScript.exports(
                [
                    ("JOB_APPLICATION_ID", application.id),
                    ("JOB_APPLICATION_TYPE", application.type or ""),
                ]
            )
            if setup is not None:
                lines.append(LaunchScript.source(setup))
            ctx.staged.append(application.id)
        ctx.script.set_section("applications", lines)
        ctx.script.write()
        return OK

    async def _stage_command(self, ctx: BuildContext) -> StepResult:
        command = ctx.plan.command
        setup = await self._stage_resource(
            command, ctx.workspace.command.joinpath(command.id)
        )
        self._section(
            ctx,
            "command",
            [
                ("JOB_COMMAND_ID", command.id),
                ("JOB_COMMAND_NAME", command.name),
                ("JOB_COMMAND_TAGS", ",".join(sorted(command.tags))),
            ],
            setup,
        )
        return OK

    async def _stage_job(self, ctx: BuildContext) -> StepResult:
        job = ctx.plan.job
        uris = list(ctx.plan.dependencies)
        if ctx.plan.setupFile:
            uris.append(ctx.plan.setupFile)
        for uri in uris:
            name = file_name(uri)
            if name in RESERVED_NAMES:
                return StepResult(
                    StepStatus.STRUCTURAL_FAILURE,
                    f"{uri} would overwrite {name} in the workspace",
                )
        for uri in ctx.plan.dependencies:
            await self.fetcher.fetch(uri, ctx.workspace.root)
        setup = None
        if ctx.plan.setupFile:
            setup = await self.fetcher.fetch(
                ctx.plan.setupFile, ctx.workspace.root
            )
        self._section(
            ctx,
            "job",
            [
                ("JOB_ID", job.id),
                ("JOB_NAME", job.name),
                ("JOB_USER", job.user),
                ("JOB_MEMORY", str(job.memoryMb or "")),
                ("JOB_TAGS", ",".join(sorted(job.tags))),
                ("JOB_APPLICATION_IDS", ",".join(ctx.staged)),
            ],
            setup,
        )
        return OK

    async def _finalize_run_script(self, ctx: BuildContext) -> StepResult:
        staged = [a.id for a in ctx.plan.applications]
        if ctx.staged != staged:
            return StepResult(
                StepStatus.STRUCTURAL_FAILURE,
                f"applications {staged} staged as {ctx.staged}",
            )
        ctx.script.set_section(
            "launch",
            LaunchScript.launch(
                ctx.plan.command.executable, ctx.plan.commandArgs
            ),
        )
        ctx.script.write()
        ctx.script.make_executable()
        return OK
