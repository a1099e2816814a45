import base64
import click
import requests
import pandas as pd
from tabulate import tabulate
from app.internal.settings import Settings
from app.models.jobrequest import Attachment, JobRequest
from pathlib import Path
from typing import List


def _url(path: str) -> str:
    return f"http://localhost:{Settings.port}{Settings.root_path}{path}"


def _tagset(value: str) -> List[str]:
    return [t.strip() for t in value.split(",") if t.strip()]


@click.group()
def cli():
    """
    CLI interface for submitting and following jobs on the node.
    """
    pass


@click.command("list-jobs")
@click.option("-j", "--jobid", default=None, help="id for the job")
def list_jobs(jobid):
    """
    List the jobs known to the node.
    """

    def __trim_path(path) -> str:
        """
        Trim the path to the last 40 characters.
        """
        max_path_size = 40
        if not isinstance(path, str):
            return ""
        if len(path) > max_path_size:
            return "..." + path[-max_path_size:]
        return path

    if jobid is None:
        res = requests.get(_url("jobs/"))
        jobs = res.json()
        df = pd.DataFrame.from_records(jobs)
        if not df.empty:
            df = df[
                [
                    "id",
                    "name",
                    "status",
                    "started",
                    "memoryMb",
                    "clusterId",
                    "commandId",
                    "workingDirectory",
                ]
            ]
            df = df.rename(columns={"memoryMb": "memory"})
            df["started"] = pd.to_datetime(df["started"])
            df["started"] = df["started"].dt.strftime("%H:%M:%S %d-%m-%Y")
            df["started"] = df["started"].fillna("")
            df["workingDirectory"] = df["workingDirectory"].apply(__trim_path)
        print(tabulate(df, headers="keys", showindex=False))
    else:
        res = requests.get(_url(f"jobs/{jobid}"))
        print(res.json())


@click.command("submit-job")
@click.argument("name")
@click.argument("args", nargs=-1)
@click.option(
    "-c",
    "--cluster-criteria",
    "clusterCriterias",
    multiple=True,
    required=True,
    help="comma separated cluster tags, tried in the given order",
)
@click.option(
    "-C",
    "--command-criteria",
    "commandCriteria",
    default="",
    help="comma separated command tags",
)
@click.option("-m", "--memory", type=int, default=None, help="memory in MB")
@click.option("-i", "--id", "jobid", default=None, help="id for the job")
@click.option(
    "-d", "--dependency", "dependencies", multiple=True, help="file uri"
)
@click.option(
    "-a",
    "--attachment",
    "attachments",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, readable=True),
    help="local file sent with the request",
)
@click.option("--no-archive", is_flag=True, default=False)
def submit_job(
    name,
    args,
    clusterCriterias,
    commandCriteria,
    memory,
    jobid,
    dependencies,
    attachments,
    no_archive,
):
    """
    Submit a job to the node.
    """
    request = JobRequest(
        id=jobid,
        name=name,
        clusterCriterias=[_tagset(c) for c in clusterCriterias],
        commandCriteria=_tagset(commandCriteria),
        commandArgs=list(args),
        memoryMb=memory,
        dependencies=list(dependencies),
        attachments=[
            Attachment(
                name=Path(a).name,
                content=base64.b64encode(Path(a).read_bytes()).decode(),
            )
            for a in attachments
        ],
        archive=not no_archive,
    )
    res = requests.post(_url("jobs/"), json=request.model_dump(mode="json"))

    if res.status_code != 202:
        raise RuntimeError(res.json())

    content = res.json()
    print(f"Your job {name} ({content['jobId']}) was submitted.")


@click.command("job-status")
@click.argument("jobid")
def job_status(jobid):
    """
    Show the status of a job.
    """
    res = requests.get(_url(f"jobs/{jobid}/status"))
    if res.status_code != 200:
        raise RuntimeError(res.json())
    status = res.json()
    print(tabulate([status], headers="keys"))


@click.command("kill-job")
@click.argument("jobid")
def kill_job(jobid):
    """
    Kill a job that has not finished yet.
    """
    res = requests.delete(_url(f"jobs/{jobid}"))

    if res.status_code != 202:
        raise RuntimeError(res.json())

    content = res.json()
    jobId = content["detail"].split("jobId:")[1].strip()
    print(f"Your job ({jobId}) was killed.")


@click.command("reorder-commands")
@click.argument("clusterid")
@click.argument("commandids", nargs=-1, required=True)
def reorder_commands(clusterid, commandids):
    """
    Set the priority order of the commands of a cluster.
    """
    res = requests.put(
        _url(f"clusters/{clusterid}/commands"), json=list(commandids)
    )
    if res.status_code != 200:
        raise RuntimeError(res.json())
    print(f"Cluster {clusterid} commands: {', '.join(res.json()['commands'])}")


cli.add_command(list_jobs)
cli.add_command(submit_job)
cli.add_command(job_status)
cli.add_command(kill_job)
cli.add_command(reorder_commands)
