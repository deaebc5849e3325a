"""Bounded-retry polling for asynchronous downstream convergence."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from simbridge.errors import ConvergenceTimeoutError

logger = logging.getLogger(__name__)


class PollOutcome(str, Enum):
    CONVERGED = "converged"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass
class PollResult:
    outcome: PollOutcome
    attempts: int
    last_value: Any = None
    error: Optional[BaseException] = None

    @property
    def converged(self) -> bool:
        return self.outcome == PollOutcome.CONVERGED

    def raise_for_outcome(self, what: str, last_state: Any = None) -> None:
        """
        Turn a non-converged result into an exception.

        TIMED_OUT raises ConvergenceTimeoutError; ERROR re-raises the
        predicate's own exception.
        """
        if self.outcome == PollOutcome.ERROR and self.error is not None:
            raise self.error
        if self.outcome == PollOutcome.TIMED_OUT:
            state = last_state if last_state is not None else self.last_value
            raise ConvergenceTimeoutError(what, self.attempts, state)


class ConvergencePoller:
    """
    Evaluate a predicate until it holds or the attempt budget runs out.

    The predicate is called at most max_attempts times with `delay` seconds
    between calls. The first truthy value returns CONVERGED at once. An
    exception from the predicate is not retried and comes back as ERROR.
    TIMED_OUT is only reported when every attempt returned a falsy value.
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep) -> None:
        self._sleep = sleep

    def wait(self, predicate: Callable[[], Any], max_attempts: int, delay: float) -> PollResult:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        value: Any = None
        for attempt in range(1, max_attempts + 1):
            try:
                value = predicate()
            except Exception as e:
                logger.warning(f"Convergence predicate failed on attempt {attempt}: {e}")
                return PollResult(PollOutcome.ERROR, attempt, value, e)
            if value:
                logger.debug(f"Converged after {attempt} attempt(s)")
                return PollResult(PollOutcome.CONVERGED, attempt, value)
            logger.debug(f"Not converged yet (attempt {attempt}/{max_attempts})")
            if attempt < max_attempts and delay > 0:
                self._sleep(delay)

        return PollResult(PollOutcome.TIMED_OUT, max_attempts, value)
