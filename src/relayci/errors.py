# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class RelayError(Exception):
    """Base class for runtime errors raised by relayci."""


@dataclass
class ConditionError(RelayError):
    """The condition expression is not one of success()/failure()/always()/cancelled()."""
    expression: str

    def __str__(self) -> str:
        return f"Unrecognized condition: {self.expression!r}"


@dataclass
class ArtifactMissing(RelayError):
    """A declared input artifact or output path does not exist."""
    name: str
    job: str
    path: Optional[str] = None

    def __str__(self) -> str:
        if self.path is not None:
            return f"[{self.job}] artifact '{self.name}': path not found: {self.path}"
        return f"[{self.job}] artifact '{self.name}' not found"


@dataclass
class ActionFailure(RelayError):
    job: str
    action: str
    exit_code: int
    attempts: int = 1

    def __str__(self) -> str:
        return (
            f"[{self.job}] action '{self.action}' failed "
            f"(exit={self.exit_code}, attempts={self.attempts})"
        )


@dataclass
class ProviderFailure(RelayError):
    """An environment provider exited non-zero. Fatal for the whole run."""
    provider: str
    exit_code: int
    output: str = ""

    def __str__(self) -> str:
        lines = [f"environment provider '{self.provider}' failed (exit={self.exit_code})"]
        if self.output:
            lines.append(self.output.rstrip())
        return "\n".join(lines)


@dataclass
class LevelFailure(RelayError):
    level: int
    failed_jobs: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"level {self.level} failed: {', '.join(self.failed_jobs)}"


class WorkflowLoadError(RelayError):
    """The workflow file could not be loaded."""
