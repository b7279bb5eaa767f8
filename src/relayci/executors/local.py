# executors/local.py
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Mapping, Optional

from ..model import normalize_relpath
from .base import JOB_ENV_FILE, Executor, OutputFn, stream_process


class LocalExecutor(Executor):
    """
    Host processes in a per-run directory:

      <tmp_root>/<run_id>/
        jobs/
          <job_name>/
            .job-env

    The run directory is created on first use and shared by every local job.
    """

    kind = "local"

    def __init__(self, run_id: str, tmp_root: str | Path, **kwargs):
        super().__init__(run_id, **kwargs)
        self.root = Path(tmp_root).expanduser().resolve() / run_id

    def _create_workspace(self) -> None:
        (self.root / "jobs").mkdir(parents=True, exist_ok=True)

    def job_dir(self, job_name: str) -> str:
        return str(self.root / "jobs" / job_name)

    def _path(self, job_name: str, rel: str) -> Path:
        return Path(self.job_dir(job_name)) / normalize_relpath(rel)

    def setup_job(self, job_name: str) -> str:
        d = Path(self.job_dir(job_name))
        d.mkdir(parents=True, exist_ok=True)
        (d / JOB_ENV_FILE).touch()
        return str(d)

    def read_job_env(self, job_name: str) -> str:
        p = Path(self.job_env_path(job_name))
        if not p.exists():
            return ""
        return p.read_text(encoding="utf-8", errors="replace")

    def teardown_job(self, job_name: str) -> bool:
        if self.keep_workspace:
            return False
        shutil.rmtree(self.job_dir(job_name), ignore_errors=True)
        return True

    def teardown_workspace(self) -> bool:
        if self.keep_workspace or not self.ready:
            return False
        shutil.rmtree(self.root, ignore_errors=True)
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
        cwd = self._path(job_name, workdir or ".")
        if not cwd.is_dir():
            raise FileNotFoundError(f"[{job_name}] workdir not found: {cwd}")

        proc_env = dict(self.runtime_env)
        proc_env.update(env)
        return stream_process(command, shell=True, cwd=str(cwd), env=proc_env, on_output=on_output)

    def exists(self, job_name: str, path_in_workspace: str) -> bool:
        return self._path(job_name, path_in_workspace).exists()

    def copy_out(self, job_name: str, source_in_workspace: str, host_destination: Path) -> None:
        src = self._path(job_name, source_in_workspace)
        if src.is_dir():
            shutil.copytree(src, host_destination, symlinks=True)
        else:
            shutil.copy2(src, host_destination)

    def copy_in(self, job_name: str, host_source: Path, destination_in_workspace: str = ".") -> None:
        dest_dir = self._path(job_name, destination_in_workspace)
        dest_dir.mkdir(parents=True, exist_ok=True)
        target = dest_dir / host_source.name
        if host_source.is_dir():
            shutil.copytree(host_source, target, symlinks=True, dirs_exist_ok=True)
        else:
            shutil.copy2(host_source, target)
