"""Tests for runtime configuration."""

import tempfile
from pathlib import Path

import pytest

from relayci.config import DEFAULT_LOG_FORMAT, RuntimeConfig


def test_defaults() -> None:
    config = RuntimeConfig.from_env({}, workflow_name="ci")

    assert config.run_id.startswith("ci-")
    assert config.artifacts_root == Path("~/.cache/relayci").expanduser() / config.run_id / "artifacts"
    assert config.tmp_root == Path(tempfile.gettempdir()) / "relayci"
    assert config.keep_workspace is False
    assert config.log_format == DEFAULT_LOG_FORMAT
    assert config.container_cli == "docker"


def test_environment_overrides(tmp_path: Path) -> None:
    config = RuntimeConfig.from_env(
        {
            "RELAYCI_RUN_ID": "run-42",
            "RELAYCI_ARTIFACTS_DIR": str(tmp_path / "art"),
            "RELAYCI_TMP_ROOT": str(tmp_path / "tmp"),
            "RELAYCI_KEEP_WORKSPACE": "true",
            "RELAYCI_LOG_FORMAT": "JSON",
            "RELAYCI_CONTAINER_CLI": "podman",
        }
    )

    assert config.run_id == "run-42"
    assert config.artifacts_root == tmp_path / "art"
    assert config.tmp_root == tmp_path / "tmp"
    assert config.keep_workspace is True
    assert config.log_format == "json"
    assert config.container_cli == "podman"


def test_artifacts_default_follows_run_id() -> None:
    config = RuntimeConfig.from_env({"RELAYCI_RUN_ID": "abc"})
    assert config.artifacts_root.parent.name == "abc"


@pytest.mark.parametrize("value, expected", [("1", True), ("yes", True), ("On", True), ("0", False), ("", False), ("nope", False)])
def test_keep_workspace_values(value: str, expected: bool) -> None:
    assert RuntimeConfig.from_env({"RELAYCI_KEEP_WORKSPACE": value}).keep_workspace is expected


def test_unknown_log_format_falls_back() -> None:
    assert RuntimeConfig.from_env({"RELAYCI_LOG_FORMAT": "xml"}).log_format == DEFAULT_LOG_FORMAT


def test_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELAYCI_RUN_ID", "from-env")
    assert RuntimeConfig.from_env().run_id == "from-env"


def test_source_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    assert RuntimeConfig.from_env({}).source_dir == Path.cwd()
    assert RuntimeConfig.from_env({"RELAYCI_SOURCE_DIR": str(tmp_path / "repo")}).source_dir == (tmp_path / "repo").resolve()
