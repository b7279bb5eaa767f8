# retry.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .model import NO_RETRY, Backoff, RetryPolicy


@dataclass
class RetryOutcome:
    succeeded: bool
    attempts: int
    exit_code: int
    delays: List[float] = field(default_factory=list)


def backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """
    Delay to wait after failed `attempt` (1-based), capped at policy.max_delay.

      constant    -> min_delay
      linear      -> min_delay * attempt
      exponential -> min_delay * 2^(attempt-1)
    """
    if policy.backoff is Backoff.CONSTANT:
        raw = policy.min_delay
    elif policy.backoff is Backoff.LINEAR:
        raw = policy.min_delay * attempt
    else:
        raw = policy.min_delay * (2 ** (attempt - 1))
    return min(raw, policy.max_delay)


class RetryEngine:
    """
    Runs one action up to policy.max_attempts times.

    `attempt_fn(attempt)` performs a single attempt and returns its exit code.
    Sleeping only blocks the calling job's thread.
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def run(
        self,
        attempt_fn: Callable[[int], int],
        policy: Optional[RetryPolicy] = None,
        on_retry: Optional[Callable[[int, float, int], None]] = None,
    ) -> RetryOutcome:
        policy = policy or NO_RETRY
        outcome = RetryOutcome(succeeded=False, attempts=0, exit_code=0)

        for attempt in range(1, policy.max_attempts + 1):
            outcome.attempts = attempt
            outcome.exit_code = attempt_fn(attempt)
            if outcome.exit_code == 0:
                outcome.succeeded = True
                return outcome

            if attempt == policy.max_attempts:
                break

            delay = backoff_delay(policy, attempt)
            if on_retry is not None:
                on_retry(attempt, delay, outcome.exit_code)
            outcome.delays.append(delay)
            self._sleep(delay)

        return outcome
