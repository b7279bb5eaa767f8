from .env_providers import dotenv_file, required, static
from .model import (
    ActionSpec,
    Backoff,
    ContainerSpec,
    EnvProvider,
    InputArtifact,
    JobResult,
    JobSpec,
    JobStatus,
    Level,
    LocalSpec,
    RetryPolicy,
    Workflow,
)
from .config import RuntimeConfig
from .runner import EXIT_CANCELLED, EXIT_FAILURE, EXIT_OK, RunSummary, WorkflowExecutor, load_workflow, run_workflow
from .dsl import job, sh, level, wf, workflow, retry, local, container

__all__ = [
    "job", "sh", "level", "wf", "workflow", "retry", "local", "container",
    "dotenv_file", "required", "static",
    "ActionSpec", "Backoff", "ContainerSpec", "EnvProvider", "InputArtifact", "JobResult",
    "JobSpec", "JobStatus", "Level", "LocalSpec", "RetryPolicy", "Workflow",
    "RuntimeConfig", "RunSummary", "WorkflowExecutor", "load_workflow", "run_workflow",
    "EXIT_OK", "EXIT_FAILURE", "EXIT_CANCELLED",
]
