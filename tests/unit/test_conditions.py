"""Tests for condition parsing and evaluation."""

import pytest

from relayci.conditions import ConditionKind, RunState, evaluate, parse_condition
from relayci.errors import ConditionError


class TestParseCondition:
    @pytest.mark.parametrize(
        "text, kind",
        [
            ("success()", ConditionKind.SUCCESS),
            ("failure()", ConditionKind.FAILURE),
            ("always()", ConditionKind.ALWAYS),
            ("cancelled()", ConditionKind.CANCELLED),
            ("  always()  ", ConditionKind.ALWAYS),
        ],
    )
    def test_known_conditions(self, text: str, kind: ConditionKind) -> None:
        assert parse_condition(text).kind is kind

    @pytest.mark.parametrize("text", ["", "succes()", "success() && failure()", "true", None])
    def test_anything_else_is_unrecognized(self, text) -> None:
        assert parse_condition(text).kind is ConditionKind.UNRECOGNIZED


class TestEvaluate:
    def test_success_is_true_only_without_failures(self) -> None:
        assert evaluate("success()", RunState(failed=False)) is True
        assert evaluate("success()", RunState(failed=True)) is False

    def test_failure_is_true_only_with_failures(self) -> None:
        assert evaluate("failure()", RunState(failed=True)) is True
        assert evaluate("failure()", RunState(failed=False)) is False

    def test_always(self) -> None:
        assert evaluate("always()", RunState()) is True
        assert evaluate("always()", RunState(failed=True, cancelled=True)) is True

    def test_cancelled_follows_the_flag(self) -> None:
        assert evaluate("cancelled()", RunState(cancelled=True)) is True
        assert evaluate("cancelled()", RunState(cancelled=False)) is False

    def test_success_ignores_cancellation(self) -> None:
        assert evaluate("success()", RunState(cancelled=True)) is True

    def test_unrecognized_raises(self) -> None:
        with pytest.raises(ConditionError) as exc_info:
            evaluate("github.ref == 'main'", RunState())
        assert "github.ref == 'main'" in str(exc_info.value)

    def test_accepts_parsed_condition(self) -> None:
        cond = parse_condition("failure()")
        assert evaluate(cond, RunState(failed=True)) is True
