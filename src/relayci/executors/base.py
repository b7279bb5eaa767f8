# executors/base.py
from __future__ import annotations

import os
import subprocess
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, Callable, Dict, Mapping, Optional, Sequence, Union, cast

from ..model import ActionSpec
from ..retry import RetryEngine, RetryOutcome

OutputFn = Callable[[str], None]
RetryFn = Callable[[int, float, int], None]

JOB_ENV_FILE = ".job-env"


def stream_process(
    cmd: Union[str, Sequence[str]],
    *,
    shell: bool,
    env: Mapping[str, str],
    on_output: OutputFn,
    cwd: Optional[str] = None,
) -> int:
    """Run a process, forward each stdout/stderr line, return the exit code."""
    proc = subprocess.Popen(
        cmd,
        shell=shell,
        cwd=cwd,
        env=dict(env),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        stdin=subprocess.DEVNULL,
        text=True,
        errors="replace",
        bufsize=1,
    )
    with cast(IO[str], proc.stdout) as out:
        for line in out:
            on_output(line.rstrip("\n"))
    return proc.wait()


class Executor(ABC):
    """
    Where a job's actions run.

    Owns the workspace lifecycle plus the transport primitives the artifact
    store is built on. Every path argument named *_in_workspace is relative to
    the job directory; host paths are plain filesystem paths.
    """

    kind: str = "executor"

    def __init__(
        self,
        run_id: str,
        *,
        keep_workspace: bool = False,
        retry_engine: Optional[RetryEngine] = None,
        runtime_env: Optional[Mapping[str, str]] = None,
    ):
        self.run_id = run_id
        self.keep_workspace = keep_workspace
        self.retry_engine = retry_engine or RetryEngine()
        # environment child processes start from; layered variables go on top
        self.runtime_env: Dict[str, str] = dict(os.environ if runtime_env is None else runtime_env)
        self._lock = threading.Lock()
        self._ready = False

    @property
    def label(self) -> str:
        return self.kind

    # ---- workspace ----

    def setup_workspace(self) -> bool:
        """Create the shared workspace once. Returns True if it was created now."""
        with self._lock:
            if self._ready:
                return False
            self._create_workspace()
            self._ready = True
            return True

    @property
    def ready(self) -> bool:
        return self._ready

    @abstractmethod
    def _create_workspace(self) -> None: ...

    @abstractmethod
    def job_dir(self, job_name: str) -> str:
        """Absolute job directory, as seen by the commands that run in it."""

    @abstractmethod
    def setup_job(self, job_name: str) -> str:
        """Create the job directory and its JOB_ENV file; return the job directory."""

    def job_env_path(self, job_name: str) -> str:
        return f"{self.job_dir(job_name)}/{JOB_ENV_FILE}"

    @abstractmethod
    def read_job_env(self, job_name: str) -> str:
        """Current contents of the job's JOB_ENV file ("" if missing)."""

    @abstractmethod
    def teardown_job(self, job_name: str) -> bool:
        """Remove the job directory unless keep_workspace. Returns True if removed."""

    @abstractmethod
    def teardown_workspace(self) -> bool:
        """Release the shared workspace unless keep_workspace. Returns True if removed."""

    # ---- actions ----

    def run_action(
        self,
        job_name: str,
        action: ActionSpec,
        env: Mapping[str, str],
        on_output: OutputFn,
        on_retry: Optional[RetryFn] = None,
    ) -> RetryOutcome:
        """Run one action through the retry engine. Condition gating is the caller's job."""

        def attempt(n: int) -> int:
            attempt_env: Dict[str, str] = dict(env)
            attempt_env["RELAYCI_ATTEMPT"] = str(n)
            return self.execute(job_name, action.run, attempt_env, on_output, workdir=action.workdir)

        return self.retry_engine.run(attempt, action.retry, on_retry=on_retry)

    @abstractmethod
    def execute(
        self,
        job_name: str,
        command: str,
        env: Mapping[str, str],
        on_output: OutputFn,
        *,
        workdir: Optional[str] = None,
    ) -> int:
        """Run a single attempt of `command`; return its exit code."""

    # ---- transport ----

    @abstractmethod
    def exists(self, job_name: str, path_in_workspace: str) -> bool: ...

    @abstractmethod
    def copy_out(self, job_name: str, source_in_workspace: str, host_destination: Path) -> None:
        """Copy a workspace file/dir to host_destination (which must not exist yet)."""

    @abstractmethod
    def copy_in(self, job_name: str, host_source: Path, destination_in_workspace: str = ".") -> None:
        """Copy a host file/dir *into* the workspace directory destination_in_workspace."""
