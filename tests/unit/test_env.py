"""Tests for environment layering, provider loading and built-in providers."""

from pathlib import Path

import pytest

from relayci.env import EnvironmentLayer, parse_assignments
from relayci.env_providers import dotenv_file, required, static
from relayci.errors import ProviderFailure
from relayci.model import EnvProvider


class TestParseAssignments:
    def test_plain_and_exported_lines(self) -> None:
        text = "A=1\nexport B=two\n  C=3  \n"
        assert parse_assignments(text) == {"A": "1", "B": "two", "C": "3"}

    def test_quotes_are_removed(self) -> None:
        text = "A='hello world'\nB=\"x y\"\n"
        assert parse_assignments(text) == {"A": "hello world", "B": "x y"}

    def test_noise_is_ignored(self) -> None:
        text = "# comment\n\nnot an assignment\n1BAD=x\nOK=yes\n"
        assert parse_assignments(text) == {"OK": "yes"}

    def test_later_assignment_wins(self) -> None:
        assert parse_assignments("A=1\nA=2\n") == {"A": "2"}

    def test_empty_value(self) -> None:
        assert parse_assignments("A=\n") == {"A": ""}

    def test_unbalanced_quote_is_kept_literally(self) -> None:
        assert parse_assignments("A='oops\n") == {"A": "'oops"}


class TestEnvironmentLayer:
    def test_precedence_lowest_to_highest(self) -> None:
        layer = EnvironmentLayer(runtime={})
        env = layer.build(
            defaults={"V": "defaults", "D": "d"},
            job={"V": "job", "J": "j"},
            providers={"V": "provider", "P": "p"},
            shared={"V": "shared", "S": "s"},
            action={"V": "action", "A": "a"},
        )
        assert env == {"V": "action", "D": "d", "J": "j", "P": "p", "S": "s", "A": "a"}

    def test_each_layer_overrides_the_one_below(self) -> None:
        layer = EnvironmentLayer(runtime={})
        assert layer.build(defaults={"V": "1"}, job={"V": "2"})["V"] == "2"
        assert layer.build(job={"V": "2"}, providers={"V": "3"})["V"] == "3"
        assert layer.build(providers={"V": "3"}, shared={"V": "4"})["V"] == "4"
        assert layer.build(shared={"V": "4"}, action={"V": "5"})["V"] == "5"

    def test_runtime_always_wins(self) -> None:
        layer = EnvironmentLayer(runtime={"CI": "runtime"})
        env = layer.build(defaults={"CI": "d"}, action={"CI": "a", "OTHER": "x"})
        assert "CI" not in env
        assert layer.merged(env)["CI"] == "runtime"
        assert layer.merged(env)["OTHER"] == "x"

    def test_runtime_is_snapshotted(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RELAYCI_TEST_SNAPSHOT", "before")
        layer = EnvironmentLayer()
        monkeypatch.setenv("RELAYCI_TEST_SNAPSHOT", "after")
        assert layer.runtime["RELAYCI_TEST_SNAPSHOT"] == "before"


class TestLoadProviders:
    def test_collects_assignments_in_order(self) -> None:
        layer = EnvironmentLayer(runtime={"PATH": "/usr/bin:/bin"})
        providers = [
            EnvProvider("first", "echo A=1; echo B=1"),
            EnvProvider("second", "echo B=2"),
        ]
        assert layer.load_providers(providers) == {"A": "1", "B": "2"}

    def test_later_provider_sees_earlier_values(self) -> None:
        layer = EnvironmentLayer(runtime={"PATH": "/usr/bin:/bin"})
        providers = [
            EnvProvider("first", "echo NAME=relay"),
            EnvProvider("second", 'echo GREETING="hello $NAME"'),
        ]
        assert layer.load_providers(providers)["GREETING"] == "hello relay"

    def test_provider_sees_base(self) -> None:
        layer = EnvironmentLayer(runtime={"PATH": "/usr/bin:/bin"})
        out = layer.load_providers([EnvProvider("p", 'echo OUT="$BASE-x"')], base={"BASE": "b"})
        assert out == {"OUT": "b-x"}

    def test_runtime_keys_are_not_overridden(self) -> None:
        layer = EnvironmentLayer(runtime={"PATH": "/usr/bin:/bin", "CI": "true"})
        loaded = []
        out = layer.load_providers(
            [EnvProvider("p", "echo CI=false; echo X=1")],
            on_loaded=lambda p, vars_set, skipped: loaded.append((p.name, vars_set, skipped)),
        )
        assert out == {"X": "1"}
        assert loaded == [("p", 1, 1)]

    def test_non_zero_exit_raises(self) -> None:
        layer = EnvironmentLayer(runtime={"PATH": "/usr/bin:/bin"})
        failures = []
        with pytest.raises(ProviderFailure) as exc_info:
            layer.load_providers(
                [EnvProvider("vault", "echo 'no token' >&2; exit 3")],
                on_failed=failures.append,
            )
        assert exc_info.value.provider == "vault"
        assert exc_info.value.exit_code == 3
        assert "no token" in exc_info.value.output
        assert failures == [exc_info.value]

    def test_failure_stops_later_providers(self, tmp_path: Path) -> None:
        marker = tmp_path / "ran"
        layer = EnvironmentLayer(runtime={"PATH": "/usr/bin:/bin"})
        with pytest.raises(ProviderFailure):
            layer.load_providers(
                [EnvProvider("bad", "exit 1"), EnvProvider("later", f"touch {marker}")]
            )
        assert not marker.exists()


class TestBuiltinProviders:
    @pytest.fixture
    def layer(self) -> EnvironmentLayer:
        return EnvironmentLayer(runtime={"PATH": "/usr/bin:/bin"})

    def test_static(self, layer: EnvironmentLayer) -> None:
        provider = static({"A": "1", "B": "with space", "C": "it's"})
        assert layer.load_providers([provider]) == {"A": "1", "B": "with space", "C": "it's"}

    def test_static_empty(self, layer: EnvironmentLayer) -> None:
        assert layer.load_providers([static({})]) == {}

    def test_static_rejects_bad_names(self) -> None:
        with pytest.raises(ValueError):
            static({"NOT-VALID": "x"})

    def test_dotenv_file(self, layer: EnvironmentLayer, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("# settings\nexport DB=postgres\nPORT=5432\n")
        assert layer.load_providers([dotenv_file(str(env_file))]) == {"DB": "postgres", "PORT": "5432"}

    def test_dotenv_file_missing_is_fine_by_default(self, layer: EnvironmentLayer, tmp_path: Path) -> None:
        assert layer.load_providers([dotenv_file(str(tmp_path / "nope.env"))]) == {}

    def test_dotenv_file_missing_required(self, layer: EnvironmentLayer, tmp_path: Path) -> None:
        with pytest.raises(ProviderFailure) as exc_info:
            layer.load_providers([dotenv_file(str(tmp_path / "nope.env"), required=True)])
        assert "Required env file not found" in exc_info.value.output

    def test_required_passes_when_set(self, layer: EnvironmentLayer) -> None:
        assert layer.load_providers([required(["TOKEN"])], base={"TOKEN": "t"}) == {}

    def test_required_lists_missing_names(self, layer: EnvironmentLayer) -> None:
        with pytest.raises(ProviderFailure) as exc_info:
            layer.load_providers([required(["TOKEN", "PATH", "REGION"])])
        assert "TOKEN" in exc_info.value.output
        assert "REGION" in exc_info.value.output
        assert "PATH" not in exc_info.value.output.split(":", 1)[1]
