"""Tests for run-scoped shared state."""

import threading
from pathlib import Path

import pytest

from relayci.context import WorkflowRun
from relayci.errors import ProviderFailure
from relayci.events import RecordingSink
from relayci.model import JobResult, JobStatus


@pytest.fixture
def run(tmp_path: Path) -> WorkflowRun:
    return WorkflowRun("run-1", "ci", tmp_path, ["a", "b", "c"], sink=RecordingSink())


def test_jobs_start_pending(run: WorkflowRun) -> None:
    assert {n: r.status for n, r in run.results().items()} == {
        "a": JobStatus.PENDING,
        "b": JobStatus.PENDING,
        "c": JobStatus.PENDING,
    }


def test_result_is_final(run: WorkflowRun) -> None:
    run.mark_running("a")
    run.record("a", JobResult(status=JobStatus.SUCCESS))

    with pytest.raises(RuntimeError):
        run.record("a", JobResult(status=JobStatus.FAILURE))
    assert run.result("a").status is JobStatus.SUCCESS
    assert run.failed_jobs == ()


def test_record_requires_terminal_status(run: WorkflowRun) -> None:
    with pytest.raises(ValueError):
        run.record("a", JobResult(status=JobStatus.RUNNING))


def test_cannot_start_twice(run: WorkflowRun) -> None:
    run.mark_running("a")
    with pytest.raises(RuntimeError):
        run.mark_running("a")


def test_failed_list_is_append_only(run: WorkflowRun) -> None:
    run.record("b", JobResult(status=JobStatus.FAILURE))
    run.record("a", JobResult(status=JobStatus.SKIPPED))
    run.record("c", JobResult(status=JobStatus.FAILURE))

    assert run.failed_jobs == ("b", "c")
    assert run.has_failures


def test_concurrent_records(tmp_path: Path) -> None:
    names = [f"job{i}" for i in range(50)]
    run = WorkflowRun("run-1", "ci", tmp_path, names)

    threads = [
        threading.Thread(target=run.record, args=(n, JobResult(status=JobStatus.FAILURE))) for n in names
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(run.failed_jobs) == sorted(names)


def test_state_snapshot(run: WorkflowRun) -> None:
    assert run.state().failed is False
    assert run.state(action_failed=True).failed is True

    run.cancel()
    assert run.cancelled
    assert run.state().cancelled is True


def test_first_abort_wins(run: WorkflowRun) -> None:
    first = ProviderFailure("vault", 1)
    run.abort(first)
    run.abort(ProviderFailure("other", 2))
    assert run.aborted_by is first


def test_emit_goes_to_sink(run: WorkflowRun) -> None:
    run.emit("job.started", "Job starting", job="a", executor="local")
    event = run.sink.events[0]
    assert (event.kind, event.job, event.fields) == ("job.started", "a", {"executor": "local"})
