"""Test configuration and fixtures."""

from pathlib import Path
from typing import Callable, List

import pytest

from relayci.config import RuntimeConfig
from relayci.events import RecordingSink
from relayci.model import Workflow
from relayci.retry import RetryEngine
from relayci.runner import WorkflowExecutor


@pytest.fixture
def sink() -> RecordingSink:
    """Collect every emitted event."""
    return RecordingSink()


@pytest.fixture
def sleeps() -> List[float]:
    """Delays requested by the retry engine (nothing actually sleeps)."""
    return []


@pytest.fixture
def retry_engine(sleeps: List[float]) -> RetryEngine:
    return RetryEngine(sleep=sleeps.append)


@pytest.fixture
def config(tmp_path: Path) -> RuntimeConfig:
    """Provide a runtime configuration rooted in tmp_path."""
    return RuntimeConfig(
        run_id="test-run",
        artifacts_root=tmp_path / "artifacts",
        tmp_root=tmp_path / "tmp",
    )


@pytest.fixture
def make_executor(
    config: RuntimeConfig, sink: RecordingSink, retry_engine: RetryEngine
) -> Callable[..., WorkflowExecutor]:
    """Build a WorkflowExecutor wired to the recording sink and fake sleep."""

    def _make(workflow: Workflow, **kwargs) -> WorkflowExecutor:
        kwargs.setdefault("sink", sink)
        kwargs.setdefault("retry_engine", retry_engine)
        return WorkflowExecutor(workflow, config, **kwargs)

    return _make


FAKE_DOCKER = """#!/bin/sh
echo "$*" >> "{log}"
cmd="$1"; shift
case "$cmd" in
  run)
    name=""
    prev=""
    for arg in "$@"; do
      if [ "$prev" = "--name" ]; then name="$arg"; fi
      prev="$arg"
    done
    if [ -n "$name" ]; then
      if grep -qxF "$name" "{names}" 2>/dev/null; then
        echo "container name already in use: $name" >&2
        exit 125
      fi
      echo "$name" >> "{names}"
    fi
    echo fakecid
    ;;
  exec)
    workdir=""
    while [ $# -gt 0 ]; do
      case "$1" in
        -w) workdir="$2"; shift 2 ;;
        -e) shift 2 ;;
        *) break ;;
      esac
    done
    shift
    if [ -n "$workdir" ]; then cd "$workdir" || exit 126; fi
    exec "$@"
    ;;
  cp)
    src="${{1#fakecid:}}"
    dest="${{2#fakecid:}}"
    exec cp -r "$src" "$dest"
    ;;
  rm)
    exit 0
    ;;
  *)
    echo "unsupported: $cmd" >&2
    exit 2
    ;;
esac
"""


@pytest.fixture
def fake_docker(tmp_path: Path) -> Path:
    """
    A container CLI stand-in that runs everything on the host.

    `exec` honours -w and runs the command directly; `cp` strips the
    container prefix. Like the real CLI, `run` refuses a --name that is
    already taken. Every invocation is appended to docker.log next to it.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "docker"
    script.write_text(FAKE_DOCKER.format(log=bin_dir / "docker.log", names=bin_dir / "names.txt"))
    script.chmod(0o755)
    return script


@pytest.fixture
def fake_docker_calls(fake_docker: Path) -> Callable[[], List[str]]:
    """Return a reader for the fake CLI's invocation log."""

    def _calls() -> List[str]:
        log = fake_docker.parent / "docker.log"
        if not log.exists():
            return []
        return log.read_text().splitlines()

    return _calls
