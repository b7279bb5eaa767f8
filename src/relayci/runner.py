# runner.py
from __future__ import annotations

import runpy
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

from . import dsl
from .artifacts import ArtifactStore
from .config import RuntimeConfig
from .context import WorkflowRun
from .env import EnvironmentLayer
from .errors import LevelFailure, ProviderFailure, WorkflowLoadError
from .events import EventSink
from .executors import ExecutorPool
from .job import EXECUTOR_ERRORS, JobRunner
from .model import JobResult, JobSpec, JobStatus, Level, Workflow
from .retry import RetryEngine

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

@dataclass
class LevelOutcome:
    index: int
    # jobs that failed without continue_on_error
    failed_jobs: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.failed_jobs)


@dataclass
class RunSummary:
    run_id: str
    workflow: str
    exit_code: int
    statuses: Dict[str, JobResult]
    failed_jobs: List[str]
    failed_level: Optional[int] = None
    cancelled: bool = False
    aborted_by: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == EXIT_OK


# ----------------------------------------------------------------------
# Level fan-out / fan-in
# ----------------------------------------------------------------------

class LevelRunner:
    """
    Starts every job of a level at once and waits for all of them.

    The level fails iff some job ended in failure with continue_on_error=False.
    A ProviderFailure in any job is re-raised after the join.
    """

    def __init__(self, run: WorkflowRun, job_factory: Callable[[JobSpec], JobRunner]):
        self.run = run
        self.job_factory = job_factory

    def run_level(self, index: int, level: Level) -> LevelOutcome:
        self.run.emit("level.started", f"Level {index}: {', '.join(level.names)}", level=index)
        if not level.jobs:
            return LevelOutcome(index=index)

        provider_error: Optional[ProviderFailure] = None
        with ThreadPoolExecutor(max_workers=len(level.jobs), thread_name_prefix=f"relayci-l{index}") as pool:
            futures = {}
            for spec in level.jobs:
                if self.run.cancelled or self.run.aborted_by is not None:
                    # not scheduled: stays pending
                    break
                futures[pool.submit(self.job_factory(spec).execute)] = spec

            done, _ = wait(futures)
            for fut in done:
                spec = futures[fut]
                try:
                    fut.result()
                except ProviderFailure as exc:
                    provider_error = provider_error or exc
                except Exception as exc:
                    # a bug in the job runner itself; the job still counts as failed
                    self._force_failure(spec, exc)

        if provider_error is not None:
            raise provider_error

        failed = [
            spec.name
            for spec in level.jobs
            if self.run.result(spec.name).status is JobStatus.FAILURE and not spec.continue_on_error
        ]
        return LevelOutcome(index=index, failed_jobs=failed)

    def _force_failure(self, spec: JobSpec, exc: Exception) -> None:
        if self.run.result(spec.name).status.terminal:
            return
        error = f"{type(exc).__name__}: {exc}"
        self.run.record(spec.name, JobResult(status=JobStatus.FAILURE, error=error))
        self.run.emit("job.failed", error, job=spec.name, continue_on_error=spec.continue_on_error)


# ----------------------------------------------------------------------
# Workflow
# ----------------------------------------------------------------------

class WorkflowExecutor:
    """
    Runs levels strictly in order with a hard barrier after each one.

    Stops scheduling on the first failed level, on cancellation, or when an
    environment provider fails.
    """

    def __init__(
        self,
        workflow: Workflow,
        config: RuntimeConfig,
        *,
        sink: Optional[EventSink] = None,
        environ: Optional[Mapping[str, str]] = None,
        retry_engine: Optional[RetryEngine] = None,
        executors: Optional[ExecutorPool] = None,
    ):
        self.workflow = workflow
        self.config = config
        self.env_layer = EnvironmentLayer(environ)
        self.run = WorkflowRun(
            run_id=config.run_id,
            workflow_name=workflow.name,
            artifacts_root=config.artifacts_root,
            job_names=[j.name for j in workflow.jobs()],
            sink=sink,
        )
        self.store = ArtifactStore(config.artifacts_root)
        self.executors = executors or ExecutorPool(
            config.run_id,
            tmp_root=config.tmp_root,
            keep_workspace=config.keep_workspace,
            container_cli=config.container_cli,
            retry_engine=retry_engine,
            runtime_env=self.env_layer.runtime,
        )
        self.provider_env: Dict[str, str] = {}

    def cancel(self) -> None:
        """Request cooperative cancellation (safe to call from a signal handler)."""
        self.run.cancel()

    def job_runner(self, spec: JobSpec) -> JobRunner:
        return JobRunner(
            spec,
            self.run,
            self.executors.get(spec.executor),
            self.store,
            self.env_layer,
            defaults=self.workflow.env,
            provider_env=self.provider_env,
            source_dir=self.config.source_dir,
        )

    def execute(self) -> RunSummary:
        run = self.run
        run.emit(
            "workflow.started",
            f"Workflow: {self.workflow.name}",
            run_id=run.run_id,
            levels=len(self.workflow.levels),
            artifacts=str(self.store.root),
        )

        failed_level: Optional[int] = None
        levels = LevelRunner(run, self.job_runner)
        try:
            self._load_providers()
            for idx, level in enumerate(self.workflow.levels):
                if run.cancelled:
                    break
                outcome = levels.run_level(idx, level)
                if outcome.failed:
                    failed_level = idx
                    err = LevelFailure(level=idx, failed_jobs=outcome.failed_jobs)
                    run.emit("level.failed", str(err), level=idx, failed_jobs=outcome.failed_jobs)
                    break
                run.emit("level.completed", f"Level {idx} completed", level=idx)
        except ProviderFailure as exc:
            run.abort(exc)
        finally:
            self._cleanup()

        return self._summarize(failed_level)

    def _load_providers(self) -> None:
        if not self.workflow.providers:
            return

        def loaded(provider, vars_set: int, vars_skipped: int) -> None:
            self.run.emit(
                "provider.loaded",
                "Variables loaded",
                provider=provider.name,
                vars_set=vars_set,
                vars_from_runtime=vars_skipped,
            )

        def failed(failure: ProviderFailure) -> None:
            self.run.emit(
                "provider.failed",
                f"Provider failed (exit {failure.exit_code})",
                provider=failure.provider,
                output=failure.output,
            )

        self.provider_env.update(
            self.env_layer.load_providers(
                self.workflow.providers,
                base=self.workflow.env,
                on_loaded=loaded,
                on_failed=failed,
            )
        )

    def _cleanup(self) -> None:
        for ex in self.executors.all():
            try:
                removed = ex.teardown_workspace()
            except EXECUTOR_ERRORS as exc:
                self.run.emit("workspace.error", f"Cleanup failed: {exc}", executor=ex.label)
                continue
            if removed:
                self.run.emit("workspace.removed", "Workspace removed", executor=ex.label)
            elif ex.ready:
                self.run.emit("workspace.kept", "Workspace preserved", executor=ex.label)

    def _summarize(self, failed_level: Optional[int]) -> RunSummary:
        run = self.run
        aborted = run.aborted_by

        if run.cancelled:
            exit_code = EXIT_CANCELLED
            run.emit("workflow.cancelled", "Workflow cancelled")
        elif aborted is not None or failed_level is not None:
            exit_code = EXIT_FAILURE
            run.emit("workflow.failed", "Workflow failed", failed_jobs=list(run.failed_jobs))
        else:
            exit_code = EXIT_OK
            run.emit("workflow.completed", "Workflow completed successfully")

        return RunSummary(
            run_id=run.run_id,
            workflow=self.workflow.name,
            exit_code=exit_code,
            statuses=run.results(),
            failed_jobs=list(run.failed_jobs),
            failed_level=failed_level,
            cancelled=run.cancelled,
            aborted_by=str(aborted) if aborted is not None else None,
        )


def run_workflow(
    workflow: Workflow,
    config: Optional[RuntimeConfig] = None,
    *,
    sink: Optional[EventSink] = None,
) -> RunSummary:
    config = config or RuntimeConfig.from_env(workflow_name=workflow.name)
    return WorkflowExecutor(workflow, config, sink=sink).execute()


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> Workflow:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> Workflow
      - WORKFLOW = Workflow(...)
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise WorkflowLoadError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise WorkflowLoadError(f"Workflow must be a .py file, got: {wf_path.name}")

    globals_dict = runpy.run_path(str(wf_path), run_name=f"relayci_workflow_{wf_path.stem}")

    factory = globals_dict.get("workflow")
    if callable(factory) and factory is not dsl.wf:
        wf = factory()
    else:
        wf = globals_dict.get("WORKFLOW")

    if not isinstance(wf, Workflow):
        raise WorkflowLoadError(
            "Workflow file must define workflow() -> Workflow or WORKFLOW = Workflow(...). "
            "Build one with `from relayci import wf, level, job, sh`."
        )
    return wf
