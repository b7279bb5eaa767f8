# conditions.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from .errors import ConditionError


class ConditionKind(Enum):
    SUCCESS = "success()"
    FAILURE = "failure()"
    ALWAYS = "always()"
    CANCELLED = "cancelled()"
    UNRECOGNIZED = None


@dataclass(frozen=True)
class Condition:
    kind: ConditionKind
    text: str


@dataclass(frozen=True)
class RunState:
    """
    What a condition can observe at the instant it is evaluated.

    failed:    at least one job of the run has failed (for actions: or an
               earlier action of the same job failed)
    cancelled: the run-wide cancellation flag is set
    """
    failed: bool = False
    cancelled: bool = False


_KNOWN = {k.value: k for k in ConditionKind if k.value is not None}


def parse_condition(expr: str | None) -> Condition:
    """Map an expression string onto the closed set of conditions."""
    text = (expr or "").strip()
    return Condition(kind=_KNOWN.get(text, ConditionKind.UNRECOGNIZED), text=text)


def evaluate(expr: Union[str, Condition], state: RunState) -> bool:
    """
    Pure predicate over run state.

    Raises ConditionError for anything outside the known set; callers treat
    that as "skip the unit".
    """
    cond = expr if isinstance(expr, Condition) else parse_condition(expr)

    if cond.kind is ConditionKind.SUCCESS:
        return not state.failed
    if cond.kind is ConditionKind.FAILURE:
        return state.failed
    if cond.kind is ConditionKind.ALWAYS:
        return True
    if cond.kind is ConditionKind.CANCELLED:
        return state.cancelled
    raise ConditionError(cond.text)
