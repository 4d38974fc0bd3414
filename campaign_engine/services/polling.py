from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class PollPolicy:
    max_attempts: int
    delay_seconds: float
    backoff: float = 1.0
    # Wait before the first fetch as well as between fetches.
    initial_delay: bool = True

    def delays(self):
        delay = self.delay_seconds
        for _ in range(self.max_attempts):
            yield delay
            delay *= self.backoff


@dataclass
class PollOutcome(Generic[T]):
    satisfied: bool
    attempts: int
    last: Optional[T]


def poll_until(
    fetch: Callable[[], T],
    is_ready: Callable[[T], bool],
    policy: PollPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> PollOutcome[T]:
    """Call ``fetch`` until ``is_ready`` accepts its result or the policy runs out of attempts.

    Exceptions raised by ``fetch`` or ``is_ready`` propagate; callers use that to abort early.
    """
    last: Optional[T] = None
    attempts = 0
    for index, delay in enumerate(policy.delays()):
        if delay > 0 and (index > 0 or policy.initial_delay):
            sleep(delay)
        attempts += 1
        last = fetch()
        if is_ready(last):
            return PollOutcome(satisfied=True, attempts=attempts, last=last)
    return PollOutcome(satisfied=False, attempts=attempts, last=last)
