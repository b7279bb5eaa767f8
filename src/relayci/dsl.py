# src/relayci/dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .model import (
    DEFAULT_CONDITION,
    ActionSpec,
    Backoff,
    ContainerSpec,
    EnvProvider,
    ExecutorSpec,
    InputArtifact,
    JobSpec,
    Level,
    LocalSpec,
    RetryPolicy,
    Workflow,
)


# ---------------------------------------------------------------------
# Action helpers
# ---------------------------------------------------------------------

def retry(
    max_attempts: int = 3,
    *,
    backoff: Union[str, Backoff] = Backoff.EXPONENTIAL,
    min_delay: float = 1,
    max_delay: float = 60,
) -> RetryPolicy:
    return RetryPolicy(
        backoff=Backoff(backoff),
        min_delay=min_delay,
        max_delay=max_delay,
        max_attempts=max_attempts,
    )


def sh(
    name: str,
    cmd: str,
    *,
    condition: str = DEFAULT_CONDITION,
    retry: Optional[RetryPolicy] = None,
    env: Optional[Mapping[str, object]] = None,
    workdir: Optional[str] = None,
) -> ActionSpec:
    """Create a shell action."""
    return ActionSpec(
        name=name,
        run=cmd,
        condition=condition,
        retry=retry,
        # force values to str for env compatibility
        env={k: str(v) for k, v in (env or {}).items()},
        workdir=workdir,
    )


# ---------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------

def local(*, copy_repo: bool = False) -> LocalSpec:
    return LocalSpec(copy_repo=copy_repo)


def container(
    image: str,
    alias: str = "default",
    *,
    workspace: str = "/workspace",
    run_args: Sequence[str] = (),
    copy_repo: bool = False,
) -> ContainerSpec:
    return ContainerSpec(
        image=image, alias=alias, workspace=workspace, run_args=tuple(run_args), copy_repo=copy_repo
    )


# ---------------------------------------------------------------------
# Job / level / workflow
# ---------------------------------------------------------------------

def _inputs(values: Optional[Iterable[Union[str, InputArtifact]]]) -> List[InputArtifact]:
    out: List[InputArtifact] = []
    for v in values or []:
        out.append(v if isinstance(v, InputArtifact) else InputArtifact(name=v))
    return out


def job(
    name: str,
    *actions: ActionSpec,  # allow: job("x", sh(...), sh(...))
    condition: str = DEFAULT_CONDITION,
    continue_on_error: bool = False,
    inputs: Optional[Iterable[Union[str, InputArtifact]]] = None,
    outputs: Optional[Mapping[str, str]] = None,
    env: Optional[Mapping[str, object]] = None,
    providers: Optional[Iterable[EnvProvider]] = None,
    executor: Optional[ExecutorSpec] = None,
) -> JobSpec:
    if not actions:
        raise ValueError(f"job({name!r}) must have at least one action")

    return JobSpec(
        name=name,
        actions=list(actions),
        condition=condition,
        continue_on_error=continue_on_error,
        inputs=_inputs(inputs),
        outputs=dict(outputs or {}),
        env={k: str(v) for k, v in (env or {}).items()},
        providers=list(providers or []),
        executor=executor or LocalSpec(),
    )


def level(*jobs: JobSpec) -> Level:
    return Level(jobs=list(jobs))


def wf(
    name: str,
    *levels: Union[Level, JobSpec, Sequence[JobSpec]],
    env: Optional[Mapping[str, object]] = None,
    providers: Optional[Iterable[EnvProvider]] = None,
) -> Workflow:
    """
    Workflow definition helper.

    Each positional argument is one level: a Level, a single JobSpec, or a
    list of JobSpecs.

        from relayci import wf, job, sh

        def workflow():
            return wf(
                "ci",
                job("build", sh("Build", "make"), outputs={"dist": "dist/"}),
                [job("test", sh("Test", "make test"), inputs=["dist"]),
                 job("lint", sh("Lint", "make lint"))],
            )
    """
    out: List[Level] = []
    for lvl in levels:
        if isinstance(lvl, Level):
            out.append(lvl)
        elif isinstance(lvl, JobSpec):
            out.append(Level(jobs=[lvl]))
        else:
            out.append(Level(jobs=list(lvl)))

    env_final: Dict[str, str] = {k: str(v) for k, v in (env or {}).items()}
    return Workflow(name=name, levels=out, env=env_final, providers=list(providers or []))


workflow = wf  # alias (avoid naming your own function workflow if you import it)
