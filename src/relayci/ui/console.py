"""Console output formatting utilities for relayci."""

from __future__ import annotations

import json
import sys
import threading
from datetime import datetime, timezone
from typing import Optional, TextIO

from ..events import Event
from ..model import JobStatus

EVENT_MARKERS = {
    "job.started": "▶",
    "job.succeeded": "✓",
    "job.failed": "✗",
    "job.skipped": "⊘",
    "action.started": "→",
    "action.succeeded": "✓",
    "action.failed": "✗",
    "action.skipped": "⊘",
    "action.retrying": "↻",
    "action.output": "│",
    "artifact.saved": "✓",
    "artifact.restored": "✓",
    "artifact.missing": "✗",
    "repo.copied": "✓",
    "provider.loaded": "✓",
    "provider.failed": "✗",
    "condition.invalid": "⊘",
    "level.failed": "⊘",
    "workflow.failed": "✗",
    "workflow.cancelled": "⊘",
    "workflow.completed": "✓",
}


class Console:
    """
    Centralized console output. Also the default event sink.

    Formats:
      simple     - message only (action lines prefixed with a marker)
      structured - [time] [workflow:x] [job:y] [action:z] message (k: v, ...)
      json       - one JSON object per event
    """

    def __init__(
        self,
        debug: bool = False,
        log_format: str = "structured",
        workflow: str = "",
        stream: Optional[TextIO] = None,
    ):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            log_format: One of simple / structured / json
            workflow: Workflow name shown in structured/json lines
            stream: Where events go (stderr by default)
        """
        self.debug = debug
        self.log_format = log_format
        self.workflow = workflow
        self.stream = stream
        self._lock = threading.Lock()

    def _out(self) -> TextIO:
        return self.stream or sys.stderr

    # ---- event sink ----

    def emit(self, event: Event) -> None:
        """Render one lifecycle event."""
        line = self.render(event)
        with self._lock:
            print(line, file=self._out(), flush=True)

    def render(self, event: Event) -> str:
        if self.log_format == "json":
            return self._render_json(event)
        if self.log_format == "simple":
            return self._render_simple(event)
        return self._render_structured(event)

    def _render_simple(self, event: Event) -> str:
        if event.action:
            return f"{EVENT_MARKERS.get(event.kind, '→')} {event.action} {event.message}"
        if event.job:
            return f"{EVENT_MARKERS.get(event.kind, '→')} [{event.job}] {event.message}"
        return event.message

    def _render_structured(self, event: Event) -> str:
        parts = [f"[{_timestamp(event.timestamp)}]", f"[workflow:{self.workflow}]"]
        if event.job:
            parts.append(f"[job:{event.job}]")
        if event.action:
            parts.append(f"[action:{event.action}]")
        parts.append(event.message)
        details = ", ".join(f"{k}: {_plain(v)}" for k, v in event.fields.items() if v not in (None, ""))
        if details and event.kind != "action.output":
            parts.append(f"({details})")
        return " ".join(parts)

    def _render_json(self, event: Event) -> str:
        payload = {
            "timestamp": _timestamp(event.timestamp),
            "workflow": self.workflow,
            "event": event.kind,
        }
        if event.job:
            payload["job"] = event.job
        if event.action:
            payload["action"] = event.action
        payload.update(event.fields)
        payload["message"] = event.message
        return json.dumps(payload, default=str, ensure_ascii=False)

    # ---- plain output ----

    def print_run_started(self, workflow: str, run_id: str, levels: int, job_count: int) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Workflow: {workflow}")
        print(f"Run ID: {run_id}")
        print(f"Levels: {levels}")
        print(f"Jobs: {job_count}")
        print()

    def print_summary(self, summary) -> None:
        """Print the final run summary: every job's status, then the failed jobs."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for job, result in summary.statuses.items():
            line = f"  {job}: {result.status.value.upper()}"
            if result.status is JobStatus.FAILURE and result.failed_actions:
                line += f" (failed actions: {', '.join(result.failed_actions)})"
            print(line)

        if summary.failed_jobs:
            print("\nFailed jobs:")
            for job in summary.failed_jobs:
                print(f"  - {job}")
        if summary.failed_level is not None:
            print(f"\nStopped after level {summary.failed_level}")
        if summary.aborted_by:
            print(f"\nAborted: {summary.aborted_by}")
        if summary.cancelled:
            print("\nCancelled")
        print(f"\nExit code: {summary.exit_code}")

    def print_warning(self, message: str) -> None:
        print(f"WARNING: {message}", file=sys.stderr)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)


def _timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _plain(value) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
