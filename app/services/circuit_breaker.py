"""
Circuit breaker for marketplace adapters.

After `failure_threshold` consecutive failures a source is skipped for
`recovery_seconds`. Then it goes half-open: `allow()` hands out a single trial
call, and other callers keep being skipped until that trial records a success
(closed) or a failure (open again). A trial that never reports back expires
after another `recovery_seconds`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional
import logging
import time

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 3
    recovery_seconds: float = 60.0


class CircuitBreaker:
    """
    Usage:
        if breaker.allow("amazon"):
            result = await adapter.search(query, filters)
            breaker.record_success("amazon")  # or record_failure("amazon", reason)
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self.states: Dict[str, CircuitState] = {}
        self.failure_counts: Dict[str, int] = {}
        self.opened_at: Dict[str, float] = {}
        self.trial_started_at: Dict[str, float] = {}
        self.last_error: Dict[str, str] = {}

    def get_state(self, component: str) -> CircuitState:
        state = self.states.get(component, CircuitState.CLOSED)
        if state == CircuitState.OPEN:
            opened = self.opened_at.get(component, 0.0)
            if self._clock() - opened >= self.config.recovery_seconds:
                state = CircuitState.HALF_OPEN
                self.states[component] = state
                logger.info(f"Circuit half-open for {component}")
        return state

    def allow(self, component: str) -> bool:
        state = self.get_state(component)
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.OPEN:
            return False

        now = self._clock()
        started = self.trial_started_at.get(component)
        if started is not None and now - started < self.config.recovery_seconds:
            return False
        self.trial_started_at[component] = now
        return True

    def record_success(self, component: str) -> None:
        if self.states.get(component) == CircuitState.HALF_OPEN:
            logger.info(f"Circuit closed for {component}")
        self.states[component] = CircuitState.CLOSED
        self.failure_counts[component] = 0
        self.trial_started_at.pop(component, None)

    def record_failure(self, component: str, error: str) -> None:
        self.last_error[component] = error
        self.trial_started_at.pop(component, None)
        count = self.failure_counts.get(component, 0) + 1
        self.failure_counts[component] = count

        state = self.states.get(component, CircuitState.CLOSED)
        if state == CircuitState.HALF_OPEN or count >= self.config.failure_threshold:
            self.states[component] = CircuitState.OPEN
            self.opened_at[component] = self._clock()
            logger.warning(f"Circuit opened for {component} after {count} failure(s): {error}")
