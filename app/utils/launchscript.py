import os
import shlex
import stat
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

# Exit code written to the done file by the kill handler
KILLED_EXIT_CODE = 999
DONE_FILE = "job.done"
KILLED_FILE = "job.killed"
SCRIPT_FILE = "run"
STDOUT_FILE = "stdout"
STDERR_FILE = "stderr"
LOGS_DIR = "logs"
APPLICATIONS_DIR = "applications"
COMMAND_DIR = "command"
CLUSTER_DIR = "cluster"
SETUP_LOG = f"{LOGS_DIR}/setup.log"

# Workspace entries owned by the node, job files can not use these names
RESERVED_NAMES = frozenset(
    [
        SCRIPT_FILE,
        DONE_FILE,
        KILLED_FILE,
        STDOUT_FILE,
        STDERR_FILE,
        LOGS_DIR,
        APPLICATIONS_DIR,
        COMMAND_DIR,
        CLUSTER_DIR,
    ]
)

HEADER = """#!/usr/bin/env bash

set -o nounset -o pipefail

JOB_DONE_FILE={done}
JOB_KILLED_FILE={killed}

# The script leads its own process group, signalling -$$ reaches
# every process the job started.
handle_kill_request() {{
    trap '' TERM INT
    touch "${{JOB_KILLED_FILE}}"
    kill -TERM -- -$$ 2> /dev/null
    echo {killed_code} > "${{JOB_DONE_FILE}}"
    exit {killed_code}
}}

handle_setup_failure() {{
    echo "$1" > "${{JOB_DONE_FILE}}"
    exit "$1"
}}

trap handle_kill_request TERM INT

cd {workspace}
"""

LAUNCH = """{command} > {stdout} 2> {stderr} &
wait $!
JOB_EXIT_CODE=$?
echo "${{JOB_EXIT_CODE}}" > "${{JOB_DONE_FILE}}"
exit "${{JOB_EXIT_CODE}}"
"""


class LaunchScript:
    """
    The run script of a job, kept as named sections in the order they
    were first added. Setting a section again replaces it, so a step
    that re-renders its section leaves the script as if it ran once.
    """

    def __init__(self, path: Path):
        self.path = path
        self._sections: Dict[str, List[str]] = {}

    @property
    def workspace(self) -> Path:
        return self.path.parent

    def header(self) -> None:
        self.set_section(
            "header",
            [
                HEADER.format(
                    done=shlex.quote(str(self.workspace.joinpath(DONE_FILE))),
                    killed=shlex.quote(
                        str(self.workspace.joinpath(KILLED_FILE))
                    ),
                    killed_code=KILLED_EXIT_CODE,
                    workspace=shlex.quote(str(self.workspace)),
                )
            ],
        )

    def set_section(self, name: str, lines: Iterable[str]) -> None:
        self._sections[name] = list(lines)

    @staticmethod
    def exports(variables: Iterable[Tuple[str, str]]) -> List[str]:
        return [f"export {k}={shlex.quote(v)}" for k, v in variables]

    @staticmethod
    def source(setupFile: Path) -> str:
        return (
            f"source {shlex.quote(str(setupFile))} >> {SETUP_LOG} 2>&1"
            " || handle_setup_failure $?"
        )

    @staticmethod
    def launch(executable: str, args: Iterable[str]) -> List[str]:
        command = " ".join([executable] + [shlex.quote(a) for a in args])
        return [
            LAUNCH.format(
                command=command, stdout=STDOUT_FILE, stderr=STDERR_FILE
            )
        ]

    def render(self) -> str:
        blocks = ["\n".join(lines) for lines in self._sections.values()]
        return "\n".join(blocks) + "\n"

    def write(self) -> None:
        self.path.write_text(self.render())

    def make_executable(self) -> None:
        mode = os.stat(self.path).st_mode
        os.chmod(self.path, mode | stat.S_IXUSR | stat.S_IXGRP)
