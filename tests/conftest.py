"""Shared fixtures: Terraform project directories, mocked executors and
stand-in terraform executables."""

import json
import os
import stat
import sys
import textwrap
from unittest.mock import MagicMock

import pytest

from terrarun.config import RunnerConfig
from terrarun.core.process_executor import CommandResult, ProcessExecutor


# Preamble shared by every stand-in: counts attempts and records each call.
STAND_IN_PREAMBLE = textwrap.dedent('''\
    import json
    import os
    import sys
    import time

    HERE = os.path.dirname(os.path.abspath(__file__))
    COUNTER = os.path.join(HERE, "attempts")
    attempt = 1
    if os.path.exists(COUNTER):
        with open(COUNTER) as f:
            attempt = int(f.read()) + 1
    with open(COUNTER, "w") as f:
        f.write(str(attempt))
    with open(os.path.join(HERE, "calls.jsonl"), "a") as f:
        f.write(json.dumps({
            "args": sys.argv[1:],
            "cwd": os.getcwd(),
            "env": {k: v for k, v in os.environ.items() if k.startswith("TF_")},
        }) + "\\n")
''')


class StandIn:
    """A fake terraform executable and the records it leaves behind."""

    def __init__(self, directory):
        self.directory = directory
        self.path = str(directory / "terraform")

    @property
    def attempts(self) -> int:
        counter = self.directory / "attempts"
        return int(counter.read_text()) if counter.exists() else 0

    @property
    def calls(self):
        log = self.directory / "calls.jsonl"
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text().splitlines() if line]


@pytest.fixture
def tf_dir(tmp_path):
    """A directory with a .tf file so path validation passes."""
    project = tmp_path / "project"
    project.mkdir()
    (project / "main.tf").write_text('variable "example" {\n  default = "x"\n}\n')
    return str(project)


@pytest.fixture
def stand_in(tmp_path):
    """
    Factory writing a stand-in terraform executable.

    The body is Python run after STAND_IN_PREAMBLE; it is wrapped in a
    /bin/sh launcher that execs the interpreter so the launched pid is
    the Python process itself.
    """
    if sys.platform == "win32":
        pytest.skip("stand-in executables need a POSIX shell")

    def make(body: str) -> StandIn:
        directory = tmp_path / "bin"
        directory.mkdir(exist_ok=True)
        script = directory / "terraform_impl.py"
        script.write_text(STAND_IN_PREAMBLE + textwrap.dedent(body))

        launcher = directory / "terraform"
        launcher.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n')
        launcher.chmod(launcher.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return StandIn(directory)

    return make


@pytest.fixture
def sleeps():
    """Records back-off delays instead of sleeping."""
    return []


@pytest.fixture
def make_executor(sleeps):
    def make(stand_in: StandIn, **config) -> ProcessExecutor:
        return ProcessExecutor(
            RunnerConfig(terraform_binary=stand_in.path, **config),
            sleep=sleeps.append,
        )
    return make


@pytest.fixture
def mock_executor():
    """A ProcessExecutor double returning a successful, empty result."""
    executor = MagicMock(spec=ProcessExecutor)
    executor.config = RunnerConfig()
    executor.execute.return_value = CommandResult(exit_code=0, stdout="", stderr="")
    return executor


def ok(stdout: str = "", stderr: str = "", attempt: int = 1) -> CommandResult:
    return CommandResult(exit_code=0, stdout=stdout, stderr=stderr, retry_attempt=attempt)


def failed(stderr: str = "Error: boom", exit_code: int = 1, **kwargs) -> CommandResult:
    return CommandResult(exit_code=exit_code, stdout="", stderr=stderr, **kwargs)


def invocation_of(executor, index: int = -1):
    """The CommandInvocation passed to a mocked executor's execute()."""
    return executor.execute.call_args_list[index][0][0]


def realpath(path) -> str:
    return os.path.realpath(str(path))
