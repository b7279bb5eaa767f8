# config.py
from __future__ import annotations

import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

LOG_FORMATS = ("structured", "simple", "json")
DEFAULT_LOG_FORMAT = "structured"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class RuntimeConfig:
    """Resolved runtime settings. Parsing happens once, in from_env()."""
    run_id: str
    artifacts_root: Path
    tmp_root: Path
    keep_workspace: bool = False
    log_format: str = DEFAULT_LOG_FORMAT
    container_cli: str = "docker"
    # copied into jobs whose executor sets copy_repo
    source_dir: Path = field(default_factory=Path.cwd)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        *,
        workflow_name: str = "workflow",
    ) -> RuntimeConfig:
        env = os.environ if environ is None else environ

        run_id = env.get("RELAYCI_RUN_ID") or f"{workflow_name}-{int(time.time())}-{os.getpid()}"

        artifacts = env.get("RELAYCI_ARTIFACTS_DIR")
        artifacts_root = (
            Path(artifacts).expanduser()
            if artifacts
            else Path("~/.cache/relayci").expanduser() / run_id / "artifacts"
        )

        tmp = env.get("RELAYCI_TMP_ROOT")
        tmp_root = Path(tmp).expanduser() if tmp else Path(tempfile.gettempdir()) / "relayci"

        source = env.get("RELAYCI_SOURCE_DIR")
        source_dir = Path(source).expanduser().resolve() if source else Path.cwd()

        log_format = (env.get("RELAYCI_LOG_FORMAT") or DEFAULT_LOG_FORMAT).lower()
        if log_format not in LOG_FORMATS:
            log_format = DEFAULT_LOG_FORMAT

        return cls(
            run_id=run_id,
            artifacts_root=artifacts_root,
            tmp_root=tmp_root,
            keep_workspace=env.get("RELAYCI_KEEP_WORKSPACE", "").strip().lower() in _TRUTHY,
            log_format=log_format,
            container_cli=env.get("RELAYCI_CONTAINER_CLI") or "docker",
            source_dir=source_dir,
        )
