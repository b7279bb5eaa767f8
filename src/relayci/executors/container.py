# executors/container.py
from __future__ import annotations

import hashlib
import re
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional

from ..model import ContainerSpec, normalize_relpath
from .base import Executor, OutputFn, stream_process


def _safe(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "-", name)


class ContainerExecutor(Executor):
    """
    Jobs run inside one long-lived container per (image, alias):

      <container>:<workspace>/jobs/<job_name>/

    Every job mapped to the same key shares the container, so callers only
    get isolation at the job-directory level. Transport crosses the container
    boundary with `<cli> cp`.
    """

    kind = "container"

    def __init__(self, run_id: str, spec: ContainerSpec, *, cli: str = "docker", **kwargs):
        super().__init__(run_id, **kwargs)
        self.spec = spec
        self.cli = cli
        self.container_id: Optional[str] = None

    @property
    def label(self) -> str:
        return f"container:{self.spec.image}:{self.spec.alias}"

    @property
    def container_name(self) -> str:
        # unique per (image, alias) within a run
        digest = hashlib.sha1("\0".join(self.spec.key).encode()).hexdigest()[:10]
        return _safe(f"relayci-{self.run_id}-{self.spec.alias}-{digest}")

    def _cli(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        return subprocess.run(
            [self.cli, *args],
            text=True,
            capture_output=True,
            check=check,
        )

    def _exec(self, *argv: str, check: bool = True) -> subprocess.CompletedProcess:
        if self.container_id is None:
            raise RuntimeError(f"{self.label}: container not started")
        return self._cli("exec", self.container_id, *argv, check=check)

    def _create_workspace(self) -> None:
        args: List[str] = ["run", "-d", "--name", self.container_name, *self.spec.run_args]
        args += [self.spec.image, "sleep", "infinity"]
        out = self._cli(*args)
        self.container_id = out.stdout.strip().splitlines()[-1]
        self._exec("mkdir", "-p", f"{self.spec.workspace}/jobs")

    def job_dir(self, job_name: str) -> str:
        return f"{self.spec.workspace}/jobs/{job_name}"

    def _path(self, job_name: str, rel: str) -> str:
        rel = normalize_relpath(rel)
        base = self.job_dir(job_name)
        return base if rel == "." else f"{base}/{rel}"

    def setup_job(self, job_name: str) -> str:
        d = self.job_dir(job_name)
        self._exec("mkdir", "-p", d)
        self._exec("touch", self.job_env_path(job_name))
        return d

    def read_job_env(self, job_name: str) -> str:
        proc = self._exec("cat", self.job_env_path(job_name), check=False)
        return proc.stdout if proc.returncode == 0 else ""

    def teardown_job(self, job_name: str) -> bool:
        if self.keep_workspace or self.container_id is None:
            return False
        self._exec("rm", "-rf", self.job_dir(job_name), check=False)
        return True

    def teardown_workspace(self) -> bool:
        if self.keep_workspace or self.container_id is None:
            return False
        self._cli("rm", "-f", self.container_id, check=False)
        self.container_id = None
        return True

    def execute(
        self,
        job_name: str,
        command: str,
        env: Mapping[str, str],
        on_output: OutputFn,
        *,
        workdir: Optional[str] = None,
    ) -> int:
        if self.container_id is None:
            raise RuntimeError(f"{self.label}: container not started")

        cmd = [self.cli, "exec", "-w", self._path(job_name, workdir or ".")]
        # `-e KEY` takes the value from the client's environment, which keeps
        # values out of the process list.
        for key in env:
            cmd.extend(["-e", key])
        cmd.extend([self.container_id, "sh", "-c", command])

        client_env = dict(self.runtime_env)
        client_env.update(env)
        return stream_process(cmd, shell=False, env=client_env, on_output=on_output)

    def exists(self, job_name: str, path_in_workspace: str) -> bool:
        return self._exec("test", "-e", self._path(job_name, path_in_workspace), check=False).returncode == 0

    def copy_out(self, job_name: str, source_in_workspace: str, host_destination: Path) -> None:
        src = self._path(job_name, source_in_workspace)
        self._cli("cp", f"{self.container_id}:{src}", str(host_destination))

    def copy_in(self, job_name: str, host_source: Path, destination_in_workspace: str = ".") -> None:
        dest = self._path(job_name, destination_in_workspace)
        self._exec("mkdir", "-p", dest)
        self._cli("cp", str(host_source), f"{self.container_id}:{dest}/")
