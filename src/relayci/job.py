# job.py
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from .artifacts import ArtifactStore
from .conditions import ConditionKind, evaluate, parse_condition
from .context import WorkflowRun
from .env import EnvironmentLayer, parse_assignments
from .errors import ActionFailure, ArtifactMissing, ConditionError, ProviderFailure
from .executors.base import Executor
from .model import ActionSpec, JobResult, JobStatus, JobSpec

# Errors an executor may raise while talking to the host or the container CLI.
EXECUTOR_ERRORS = (OSError, subprocess.SubprocessError, RuntimeError)
# ...plus rejected workspace paths and artifact names.
ACTION_ERRORS = EXECUTOR_ERRORS + (ValueError,)


class JobRunner:
    """
    Drives one job through its lifecycle:

      pending --(condition false / invalid)--> skipped
      pending --> running --> success | failure

    running:
      workspace -> setup_job -> copy repo -> job providers -> restore inputs (fail fast)
      -> actions (each gated + retried, failures don't stop later actions)
      -> save outputs (still attempted after action failures, fail fast)
      -> teardown
    """

    def __init__(
        self,
        spec: JobSpec,
        run: WorkflowRun,
        executor: Executor,
        store: ArtifactStore,
        env_layer: EnvironmentLayer,
        *,
        defaults: Optional[Mapping[str, str]] = None,
        provider_env: Optional[Mapping[str, str]] = None,
        source_dir: Optional[Union[str, Path]] = None,
    ):
        self.spec = spec
        self.run = run
        self.executor = executor
        self.store = store
        self.env_layer = env_layer
        self.defaults = dict(defaults or {})
        self.provider_env = dict(provider_env or {})
        self.source_dir = Path(source_dir) if source_dir is not None else Path.cwd()
        self.failed_actions: List[str] = []

    @property
    def name(self) -> str:
        return self.spec.name

    def execute(self) -> JobResult:
        spec = self.spec

        try:
            should_run = evaluate(spec.condition, self.run.state())
        except ConditionError as exc:
            self.run.emit("condition.invalid", str(exc), job=self.name, condition=spec.condition)
            return self._finish(JobResult(status=JobStatus.SKIPPED, error=str(exc)))

        if not should_run:
            self.run.emit("job.skipped", "Skipped", job=self.name, condition=spec.condition)
            return self._finish(JobResult(status=JobStatus.SKIPPED))

        self.run.mark_running(self.name)
        self.run.emit("job.started", "Job starting", job=self.name, executor=self.executor.label)

        error: Optional[str] = None
        try:
            self._prepare()
            self._restore_inputs()
            self._run_actions()
            self._save_outputs()
        except ProviderFailure as exc:
            self.run.abort(exc)
            self._finish(self._result(str(exc)))
            raise
        except ArtifactMissing as exc:
            error = str(exc)
        except ACTION_ERRORS as exc:
            error = f"{type(exc).__name__}: {exc}"
        finally:
            self._teardown()

        return self._finish(self._result(error))

    # ---- phases ----

    def _prepare(self) -> None:
        if self.executor.setup_workspace():
            self.run.emit("workspace.created", "Workspace created", executor=self.executor.label)
        workdir = self.executor.setup_job(self.name)
        self.run.emit("job.workspace", "Job workspace ready", job=self.name, workdir=workdir)
        if self.spec.executor.copy_repo:
            self._copy_repo()

        if self.spec.providers:
            job_vars = self.env_layer.load_providers(
                self.spec.providers,
                base={**self.defaults, **self.spec.env, **self.provider_env},
                on_loaded=self._provider_loaded,
                on_failed=self._provider_failed,
            )
            self.provider_env.update(job_vars)

    def _copy_repo(self) -> None:
        job_dir = Path(self.executor.job_dir(self.name)).resolve()
        copied = 0
        for entry in sorted(self.source_dir.iterdir()):
            # skip whatever contains the job directory itself
            real = entry.resolve()
            if real == job_dir or real in job_dir.parents:
                continue
            self.executor.copy_in(self.name, entry)
            copied += 1
        self.run.emit(
            "repo.copied", "Repository copied", job=self.name, source=str(self.source_dir), entries=copied
        )

    def _provider_loaded(self, provider, vars_set: int, vars_skipped: int) -> None:
        self.run.emit(
            "provider.loaded",
            "Variables loaded",
            job=self.name,
            provider=provider.name,
            vars_set=vars_set,
            vars_from_runtime=vars_skipped,
        )

    def _provider_failed(self, failure: ProviderFailure) -> None:
        self.run.emit(
            "provider.failed",
            f"Provider failed (exit {failure.exit_code})",
            job=self.name,
            provider=failure.provider,
            output=failure.output,
        )

    def _restore_inputs(self) -> None:
        for inp in self.spec.inputs:
            try:
                res = self.store.restore(inp.name, self.executor, self.name, inp.path)
            except ArtifactMissing:
                self.run.emit("artifact.missing", "Artifact not found", job=self.name, artifact=inp.name)
                raise
            self.run.emit(
                "artifact.restored",
                f"Restored {inp.name}",
                job=self.name,
                artifact=inp.name,
                path=inp.path,
                entries=len(res.restored),
                skipped=len(res.skipped),
            )

    def _run_actions(self) -> None:
        for action in self.spec.actions:
            if self.run.aborted_by is not None:
                self.run.emit("action.skipped", "Skipped (run aborted)", job=self.name, action=action.name)
                continue

            cond = parse_condition(action.condition)
            if self.run.cancelled and cond.kind not in (ConditionKind.ALWAYS, ConditionKind.CANCELLED):
                self.run.emit("action.skipped", "Skipped (run cancelled)", job=self.name, action=action.name)
                continue

            try:
                should_run = evaluate(cond, self.run.state(action_failed=bool(self.failed_actions)))
            except ConditionError as exc:
                self.run.emit(
                    "condition.invalid", str(exc), job=self.name, action=action.name, condition=cond.text
                )
                continue
            if not should_run:
                self.run.emit(
                    "action.skipped", "Skipped", job=self.name, action=action.name, condition=cond.text
                )
                continue

            self._run_action(action)

    def _run_action(self, action: ActionSpec) -> None:
        self.run.emit("action.started", "Starting", job=self.name, action=action.name)

        def on_output(line: str) -> None:
            self.run.emit("action.output", line, job=self.name, action=action.name)

        def on_retry(attempt: int, delay: float, exit_code: int) -> None:
            self.run.emit(
                "action.retrying",
                "Retrying",
                job=self.name,
                action=action.name,
                attempt=attempt,
                delay=delay,
                exit_code=exit_code,
            )

        try:
            outcome = self.executor.run_action(
                self.name, action, self.action_env(action), on_output, on_retry=on_retry
            )
        except ACTION_ERRORS as exc:
            self.failed_actions.append(action.name)
            self.run.emit("action.failed", f"{type(exc).__name__}: {exc}", job=self.name, action=action.name)
            return

        if outcome.succeeded:
            self.run.emit(
                "action.succeeded", "Completed", job=self.name, action=action.name, attempts=outcome.attempts
            )
            return

        failure = ActionFailure(
            job=self.name, action=action.name, exit_code=outcome.exit_code, attempts=outcome.attempts
        )
        self.failed_actions.append(action.name)
        self.run.emit(
            "action.failed",
            str(failure),
            job=self.name,
            action=action.name,
            exit_code=outcome.exit_code,
            attempts=outcome.attempts,
        )

    def _save_outputs(self) -> None:
        for art_name, path in self.spec.outputs.items():
            try:
                record = self.store.save(art_name, path, self.executor, self.name)
            except ArtifactMissing:
                self.run.emit("artifact.missing", "Path not found", job=self.name, artifact=art_name, path=path)
                raise
            self.run.emit(
                "artifact.saved", f"Saved {art_name}", job=self.name, artifact=art_name, path=record.path
            )

    def _teardown(self) -> None:
        try:
            removed = self.executor.teardown_job(self.name)
        except EXECUTOR_ERRORS as exc:
            self.run.emit("workspace.error", f"Teardown failed: {exc}", job=self.name)
            return
        kind = "workspace.removed" if removed else "workspace.kept"
        self.run.emit(kind, "Job workspace removed" if removed else "Job workspace kept", job=self.name)

    # ---- helpers ----

    def action_env(self, action: ActionSpec) -> Dict[str, str]:
        """Layered variables for one action, plus the runtime-provided RELAYCI_* ones."""
        shared = parse_assignments(self.executor.read_job_env(self.name))
        env = self.env_layer.build(
            defaults=self.defaults,
            job=self.spec.env,
            providers=self.provider_env,
            shared=shared,
            action=action.env,
        )
        env.update(
            {
                "RELAYCI_RUN_ID": self.run.run_id,
                "RELAYCI_JOB": self.name,
                "RELAYCI_ACTION": action.name,
                "RELAYCI_WORKSPACE": self.executor.job_dir(self.name),
                "JOB_ENV": self.executor.job_env_path(self.name),
            }
        )
        return env

    def _result(self, error: Optional[str]) -> JobResult:
        failed = tuple(self.failed_actions)
        status = JobStatus.FAILURE if (failed or error) else JobStatus.SUCCESS
        return JobResult(status=status, failed_actions=failed, error=error)

    def _finish(self, result: JobResult) -> JobResult:
        self.run.record(self.name, result)
        if result.status is JobStatus.SUCCESS:
            self.run.emit("job.succeeded", "Job succeeded", job=self.name)
        elif result.status is JobStatus.FAILURE:
            self.run.emit(
                "job.failed",
                result.error or f"Failed actions: {', '.join(result.failed_actions)}",
                job=self.name,
                continue_on_error=self.spec.continue_on_error,
                failed_actions=list(result.failed_actions),
            )
        return result
