# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Tuple, Union


DEFAULT_CONDITION = "success()"


class Backoff(str, Enum):
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often an action is attempted and how long to wait in between.

    Delays are in seconds. max_attempts=1 means "no retry".
    """
    backoff: Backoff = Backoff.EXPONENTIAL
    min_delay: float = 1
    max_delay: float = 60
    max_attempts: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "backoff", Backoff(self.backoff))
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.min_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")


NO_RETRY = RetryPolicy()


@dataclass(frozen=True)
class EnvProvider:
    """An external command whose stdout KEY=VALUE lines feed the environment."""
    name: str
    command: str


@dataclass(frozen=True)
class LocalSpec:
    """
    Run the job as host processes inside a per-run temp directory.

    copy_repo copies the source directory into each job directory before
    anything else runs.
    """
    copy_repo: bool = False

    @property
    def key(self) -> Tuple[str, ...]:
        return ("local",)


@dataclass(frozen=True)
class ContainerSpec:
    """
    Run the job inside a long-lived container.

    Jobs that use the same (image, alias) share one container.
    """
    image: str
    alias: str = "default"
    workspace: str = "/workspace"
    run_args: Tuple[str, ...] = ()
    copy_repo: bool = False

    @property
    def key(self) -> Tuple[str, ...]:
        return ("container", self.image, self.alias)


ExecutorSpec = Union[LocalSpec, ContainerSpec]


@dataclass(frozen=True)
class ActionSpec:
    """A single command inside a job."""
    name: str
    run: str
    condition: str = DEFAULT_CONDITION
    retry: Optional[RetryPolicy] = None
    env: Dict[str, str] = field(default_factory=dict)
    workdir: Optional[str] = None


@dataclass(frozen=True)
class InputArtifact:
    """An artifact restored into the job workspace before actions run."""
    name: str
    path: str = "."


@dataclass
class JobSpec:
    """
    A job: ordered actions plus the artifacts it consumes and produces.

    outputs maps artifact name -> path relative to the job workspace.
    """
    name: str
    actions: List[ActionSpec]
    condition: str = DEFAULT_CONDITION
    continue_on_error: bool = False
    inputs: List[InputArtifact] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    providers: List[EnvProvider] = field(default_factory=list)
    executor: ExecutorSpec = field(default_factory=LocalSpec)


@dataclass
class Level:
    """Jobs with no dependency on each other. They run concurrently."""
    jobs: List[JobSpec]

    @property
    def names(self) -> List[str]:
        return [j.name for j in self.jobs]


@dataclass
class Workflow:
    """An already-leveled job graph plus workflow-wide environment."""
    name: str
    levels: List[Level]
    env: Dict[str, str] = field(default_factory=dict)
    providers: List[EnvProvider] = field(default_factory=list)

    def jobs(self) -> List[JobSpec]:
        return [j for lvl in self.levels for j in lvl.jobs]

    def validate(self) -> List[str]:
        """
        Return human readable problems. An empty list means the workflow is runnable.

        Unrecognized conditions are reported here but are not fatal at run time:
        the gated job/action is skipped instead.
        """
        # Import here to avoid circular import
        from .conditions import ConditionKind, parse_condition

        problems: List[str] = []
        seen_jobs: Dict[str, int] = {}
        seen_outputs: Dict[str, str] = {}

        for idx, lvl in enumerate(self.levels):
            for j in lvl.jobs:
                if j.name in seen_jobs:
                    problems.append(
                        f"Duplicate job name '{j.name}' (levels {seen_jobs[j.name]} and {idx})"
                    )
                seen_jobs.setdefault(j.name, idx)

                for art, path in j.outputs.items():
                    if art in seen_outputs:
                        problems.append(
                            f"Artifact '{art}' is produced by both '{seen_outputs[art]}' and '{j.name}'"
                        )
                    seen_outputs.setdefault(art, j.name)
                    for err in (_invalid(check_artifact_name, art), _invalid(normalize_relpath, path)):
                        if err:
                            problems.append(f"Job '{j.name}' output '{art}': {err}")
                for inp in j.inputs:
                    for err in (_invalid(check_artifact_name, inp.name), _invalid(normalize_relpath, inp.path)):
                        if err:
                            problems.append(f"Job '{j.name}' input '{inp.name}': {err}")

                if parse_condition(j.condition).kind is ConditionKind.UNRECOGNIZED:
                    problems.append(f"Job '{j.name}' has unrecognized condition {j.condition!r}")
                for a in j.actions:
                    if parse_condition(a.condition).kind is ConditionKind.UNRECOGNIZED:
                        problems.append(
                            f"Action '{j.name}/{a.name}' has unrecognized condition {a.condition!r}"
                        )
                    if a.workdir is not None:
                        err = _invalid(normalize_relpath, a.workdir)
                        if err:
                            problems.append(f"Action '{j.name}/{a.name}': {err}")

        return problems


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCESS, JobStatus.FAILURE, JobStatus.SKIPPED)


@dataclass(frozen=True)
class JobResult:
    status: JobStatus = JobStatus.PENDING
    failed_actions: Tuple[str, ...] = ()
    error: Optional[str] = None


@dataclass(frozen=True)
class ArtifactRecord:
    """
    A stored artifact.

    path is the workspace-relative path it was saved from; location is
    <artifacts_root>/<name>.
    """
    name: str
    path: str
    location: str


def normalize_relpath(path: str) -> str:
    """
    Normalize a workspace-relative path ("dist/", "./a/b") to posix form.

    Absolute paths and parent escapes are rejected.
    """
    p = PurePosixPath(path.replace("\\", "/"))
    if p.is_absolute() or ".." in p.parts:
        raise ValueError(f"Path must stay inside the job workspace: {path!r}")
    return str(p)


def check_artifact_name(name: str) -> str:
    """Artifact names are a single path component."""
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        raise ValueError(f"Invalid artifact name: {name!r}")
    return name


def _invalid(check, value: str) -> Optional[str]:
    try:
        check(value)
    except ValueError as exc:
        return str(exc)
    return None
