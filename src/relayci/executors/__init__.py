from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from ..model import ContainerSpec, ExecutorSpec, LocalSpec
from ..retry import RetryEngine
from .base import Executor, stream_process
from .container import ContainerExecutor
from .local import LocalExecutor


class ExecutorPool:
    """
    One executor instance per spec key for the lifetime of a run.

    The backend is picked from the executor spec's type when a job is dispatched.
    """

    def __init__(
        self,
        run_id: str,
        *,
        tmp_root: str | Path,
        keep_workspace: bool = False,
        container_cli: str = "docker",
        retry_engine: Optional[RetryEngine] = None,
        runtime_env: Optional[Mapping[str, str]] = None,
    ):
        self.run_id = run_id
        self.tmp_root = Path(tmp_root)
        self.keep_workspace = keep_workspace
        self.container_cli = container_cli
        self.retry_engine = retry_engine or RetryEngine()
        self.runtime_env = runtime_env
        self._lock = threading.Lock()
        self._executors: Dict[Tuple[str, ...], Executor] = {}

    def _create(self, spec: ExecutorSpec) -> Executor:
        common = dict(
            keep_workspace=self.keep_workspace,
            retry_engine=self.retry_engine,
            runtime_env=self.runtime_env,
        )
        if isinstance(spec, ContainerSpec):
            return ContainerExecutor(self.run_id, spec, cli=self.container_cli, **common)
        if isinstance(spec, LocalSpec):
            return LocalExecutor(self.run_id, self.tmp_root, **common)
        raise TypeError(f"Unsupported executor spec: {spec!r}")

    def get(self, spec: ExecutorSpec) -> Executor:
        with self._lock:
            ex = self._executors.get(spec.key)
            if ex is None:
                ex = self._create(spec)
                self._executors[spec.key] = ex
            return ex

    def all(self) -> List[Executor]:
        with self._lock:
            return list(self._executors.values())


__all__ = [
    "Executor",
    "ExecutorPool",
    "LocalExecutor",
    "ContainerExecutor",
    "stream_process",
]
