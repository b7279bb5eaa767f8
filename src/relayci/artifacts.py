# artifacts.py
from __future__ import annotations

import shutil
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, List

from .errors import ArtifactMissing
from .executors.base import JOB_ENV_FILE, Executor
from .model import ArtifactRecord, check_artifact_name, normalize_relpath

# ---------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------
#   <artifacts_root>/
#     <artifact_name>/
#       <path as saved, parent directories preserved>
#
# save("dist", "build/out/")  ->  <root>/dist/build/out/...
# restore("dist", job)        ->  <job_dir>/build/out/...
#
# The store only talks to executors through exists/copy_out/copy_in, so the
# same code serves local and container jobs. The producer's JOB_ENV file is
# never stored.
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class RestoreResult:
    name: str
    restored: List[str]
    skipped: List[str]


class ArtifactStore:
    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._records: Dict[str, ArtifactRecord] = {}

    def location(self, name: str) -> Path:
        return self.root / check_artifact_name(name)

    def save(self, name: str, source_path: str, executor: Executor, job_name: str) -> ArtifactRecord:
        """
        Replace artifact `name` with the contents of `source_path` from the job workspace.

        Raises ArtifactMissing if the path does not exist in the workspace.
        """
        rel = normalize_relpath(source_path)
        if not executor.exists(job_name, rel):
            raise ArtifactMissing(name=name, job=job_name, path=source_path)

        loc = self.location(name)
        # overwrite, never merge
        shutil.rmtree(loc, ignore_errors=True)

        if rel == ".":
            # whole workspace: the artifact directory becomes the copy itself
            dest = loc
        else:
            dest = loc / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
        executor.copy_out(job_name, rel, dest)
        if rel == ".":
            # the JOB_ENV file belongs to the producing job
            (loc / JOB_ENV_FILE).unlink(missing_ok=True)

        record = ArtifactRecord(name=name, path=rel, location=str(loc))
        with self._lock:
            self._records[name] = record
        return record

    def restore(self, name: str, executor: Executor, job_name: str, destination: str = ".") -> RestoreResult:
        """
        Copy every entry directly under <root>/<name> into the job workspace.

        Only a missing artifact is an error; individual entries that fail to
        copy are reported in `skipped`.
        """
        loc = self.location(name)
        if not loc.is_dir():
            raise ArtifactMissing(name=name, job=job_name)

        restored: List[str] = []
        skipped: List[str] = []
        for entry in sorted(loc.iterdir()):
            try:
                executor.copy_in(job_name, entry, destination)
                restored.append(entry.name)
            except (OSError, shutil.Error, subprocess.CalledProcessError):
                skipped.append(entry.name)
        return RestoreResult(name=name, restored=restored, skipped=skipped)

    def records(self) -> Dict[str, ArtifactRecord]:
        with self._lock:
            return dict(self._records)

    def stored_files(self, name: str) -> List[str]:
        """Relative posix paths of every file stored under artifact `name`."""
        loc = self.location(name)
        if not loc.is_dir():
            return []
        return sorted(
            str(PurePosixPath(p.relative_to(loc).as_posix()))
            for p in loc.rglob("*")
            if p.is_file()
        )
