# context.py
from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .conditions import RunState
from .events import Event, EventSink, NullSink
from .model import JobResult, JobStatus


class WorkflowRun:
    """
    Run-scoped state shared by every job thread.

    - one JobResult per job, created pending, finalized exactly once
    - failed-job list, append-only
    - cancellation flag
    - abort reason (a provider failure ends the whole run)

    A job only ever writes its own entry; anyone may read.
    """

    def __init__(
        self,
        run_id: str,
        workflow_name: str,
        artifacts_root: str | Path,
        job_names: Iterable[str],
        sink: Optional[EventSink] = None,
    ):
        self.run_id = run_id
        self.workflow_name = workflow_name
        self.artifacts_root = Path(artifacts_root)
        self.sink: EventSink = sink or NullSink()

        self._lock = threading.Lock()
        self._results: Dict[str, JobResult] = {n: JobResult() for n in job_names}
        self._failed: List[str] = []
        self._cancelled = threading.Event()
        self._aborted_by: Optional[BaseException] = None

    # ---- job results ----

    def mark_running(self, job_name: str) -> None:
        with self._lock:
            current = self._results.get(job_name, JobResult())
            if current.status is not JobStatus.PENDING:
                raise RuntimeError(f"Job '{job_name}' cannot start from {current.status.value}")
            self._results[job_name] = JobResult(status=JobStatus.RUNNING)

    def record(self, job_name: str, result: JobResult) -> None:
        if not result.status.terminal:
            raise ValueError(f"Job '{job_name}' must be finalized with a terminal status")
        with self._lock:
            current = self._results.get(job_name, JobResult())
            if current.status.terminal:
                raise RuntimeError(f"Job '{job_name}' already finalized as {current.status.value}")
            self._results[job_name] = result
            if result.status is JobStatus.FAILURE:
                self._failed.append(job_name)

    def result(self, job_name: str) -> JobResult:
        with self._lock:
            return self._results[job_name]

    def results(self) -> Dict[str, JobResult]:
        with self._lock:
            return dict(self._results)

    @property
    def failed_jobs(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._failed)

    @property
    def has_failures(self) -> bool:
        with self._lock:
            return bool(self._failed)

    # ---- cancellation / abort ----

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def abort(self, error: BaseException) -> None:
        with self._lock:
            if self._aborted_by is None:
                self._aborted_by = error

    @property
    def aborted_by(self) -> Optional[BaseException]:
        with self._lock:
            return self._aborted_by

    def state(self, *, action_failed: bool = False) -> RunState:
        """Snapshot for condition evaluation."""
        return RunState(failed=self.has_failures or action_failed, cancelled=self.cancelled)

    # ---- events ----

    def emit(
        self,
        kind: str,
        message: str,
        *,
        job: Optional[str] = None,
        action: Optional[str] = None,
        **fields: Any,
    ) -> None:
        self.sink.emit(Event(kind=kind, message=message, job=job, action=action, fields=fields))
