"""Circuit breaker protecting a named external dependency.

State is process-wide and in-memory: one breaker per dependency name, created
on first use through ``get_circuit_breaker`` and reset only through the
explicit ``reset()`` operation. All state mutation happens under a
``threading.Lock`` so a breaker can be shared by concurrent tasks and threads.
"""

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import StrEnum

from spend_monitor.core.errors import CircuitOpenError, ConfigurationError, SpendMonitorError

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerPolicy",
    "CircuitBreakerState",
    "CircuitState",
    "counts_as_dependency_failure",
    "get_circuit_breaker",
    "get_circuit_breaker_states",
    "reset_circuit_breakers",
]

logger = logging.getLogger(__name__)

type Clock = Callable[[], float]
type FailurePredicate = Callable[[BaseException], bool]


class CircuitState(StrEnum):
    """Circuit breaker state enumeration."""

    CLOSED = "CLOSED"  # Normal operation, calls allowed
    OPEN = "OPEN"  # Too many failures, calls rejected
    HALF_OPEN = "HALF_OPEN"  # Limited trial calls allowed


@dataclass(slots=True, frozen=True)
class CircuitBreakerPolicy:
    """Breaker thresholds. ``recovery_timeout`` is in seconds."""

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            msg = f"failure_threshold must be at least 1, got {self.failure_threshold}"
            raise ConfigurationError(msg)
        if self.recovery_timeout < 0:
            msg = f"recovery_timeout must not be negative, got {self.recovery_timeout}"
            raise ConfigurationError(msg)
        if self.half_open_max_calls < 1:
            msg = f"half_open_max_calls must be at least 1, got {self.half_open_max_calls}"
            raise ConfigurationError(msg)


@dataclass(slots=True)
class CircuitBreakerState:
    """Mutable protection state for one dependency.

    ``half_open_calls`` counts trial calls currently admitted in HALF_OPEN.
    ``last_failure_time`` is a monotonic clock reading.
    """

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float | None = None
    half_open_calls: int = 0


def counts_as_dependency_failure(exc: BaseException) -> bool:
    """Decide whether an error signals an unhealthy dependency.

    Retryable failures (throttling, server errors, timeouts) and foreign
    exceptions count. Non-retryable errors from the core taxonomy (bad input,
    unknown endpoint, rejected payload) mean the dependency answered, so they
    do not.
    """
    if isinstance(exc, SpendMonitorError):
        return exc.retryable
    return True


class CircuitBreaker:
    """Fail-fast wrapper around calls to one dependency.

    Example:
        >>> breaker = get_circuit_breaker("notification-provider")
        >>> message_id = await breaker.execute(lambda: publisher.publish(...))
    """

    def __init__(
        self,
        name: str,
        policy: CircuitBreakerPolicy | None = None,
        *,
        clock: Clock = time.monotonic,
        is_failure: FailurePredicate = counts_as_dependency_failure,
    ) -> None:
        self.name: str = name
        self.policy: CircuitBreakerPolicy = policy or CircuitBreakerPolicy()
        self._clock: Clock = clock
        self._is_failure: FailurePredicate = is_failure
        self._state: CircuitBreakerState = CircuitBreakerState()
        self._lock: threading.Lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state.state

    def get_status(self) -> CircuitBreakerState:
        """Return a snapshot copy of the current state."""
        with self._lock:
            return replace(self._state)

    def reset(self) -> None:
        """Administratively close the breaker and clear all counters."""
        with self._lock:
            previous = self._state.state
            self._state = CircuitBreakerState()
        logger.info(
            "Circuit breaker for %s reset (was %s)",
            self.name,
            previous,
            extra={"dependency": self.name, "previous_state": previous.value},
        )

    async def execute[T](self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` unless the breaker is open.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: If the call was rejected without running
            Exception: Whatever ``operation`` raised; ``SpendMonitorError``
                instances are tagged with the ``dependency`` name
        """
        trial = self._admit()
        try:
            result = await operation()
        except Exception as exc:
            if isinstance(exc, SpendMonitorError):
                exc.context.setdefault("dependency", self.name)
            if self._is_failure(exc):
                self._on_failure(trial)
            else:
                self._on_success(trial)
            raise
        except BaseException:
            # Cancelled trials give their slot back
            self._release(trial)
            raise
        self._on_success(trial)
        return result

    def _admit(self) -> bool:
        """Admit or reject a call; returns True when it is a half-open trial."""
        with self._lock:
            current = self._state
            if current.state is CircuitState.OPEN:
                elapsed = self._clock() - (current.last_failure_time or 0.0)
                if elapsed < self.policy.recovery_timeout:
                    raise CircuitOpenError(self.name, self.policy.recovery_timeout - elapsed)
                current.state = CircuitState.HALF_OPEN
                current.half_open_calls = 0
                logger.warning(
                    "Circuit breaker for %s transitioned to HALF_OPEN",
                    self.name,
                    extra={"dependency": self.name, "state": CircuitState.HALF_OPEN.value},
                )

            if current.state is CircuitState.HALF_OPEN:
                if current.half_open_calls >= self.policy.half_open_max_calls:
                    raise CircuitOpenError(self.name, 0.0)
                current.half_open_calls += 1
                return True
            return False

    def _release(self, trial: bool) -> None:
        if not trial:
            return
        with self._lock:
            if self._state.state is CircuitState.HALF_OPEN and self._state.half_open_calls > 0:
                self._state.half_open_calls -= 1

    def _on_success(self, trial: bool) -> None:
        with self._lock:
            current = self._state
            if current.state is CircuitState.HALF_OPEN:
                current.state = CircuitState.CLOSED
                current.failure_count = 0
                current.half_open_calls = 0
                logger.info(
                    "Circuit breaker for %s transitioned to CLOSED",
                    self.name,
                    extra={"dependency": self.name, "state": CircuitState.CLOSED.value, "trial": trial},
                )
            elif current.state is CircuitState.CLOSED:
                current.failure_count = 0

    def _on_failure(self, trial: bool) -> None:
        with self._lock:
            current = self._state
            current.failure_count += 1
            current.last_failure_time = self._clock()

            if current.state is CircuitState.HALF_OPEN:
                current.state = CircuitState.OPEN
                current.half_open_calls = 0
                logger.warning(
                    "Circuit breaker for %s transitioned to OPEN (trial call failed, failures=%d)",
                    self.name,
                    current.failure_count,
                    extra={"dependency": self.name, "state": CircuitState.OPEN.value, "trial": trial},
                )
            elif current.state is CircuitState.CLOSED and current.failure_count >= self.policy.failure_threshold:
                current.state = CircuitState.OPEN
                logger.error(
                    "Circuit breaker for %s transitioned to OPEN (failures=%d)",
                    self.name,
                    current.failure_count,
                    extra={"dependency": self.name, "state": CircuitState.OPEN.value},
                )


_registry: dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_circuit_breaker(
    name: str,
    policy: CircuitBreakerPolicy | None = None,
    *,
    clock: Clock = time.monotonic,
) -> CircuitBreaker:
    """Get the process-wide breaker for a dependency, creating it on first use.

    ``policy`` and ``clock`` only apply when the breaker is created.
    """
    with _registry_lock:
        breaker = _registry.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, policy, clock=clock)
            _registry[name] = breaker
        return breaker


def get_circuit_breaker_states() -> dict[str, str]:
    """Snapshot of every registered breaker's state keyed by dependency name."""
    with _registry_lock:
        breakers = list(_registry.values())
    return {breaker.name: breaker.state.value for breaker in breakers}


def reset_circuit_breakers() -> None:
    """Forget every registered breaker (test isolation and process teardown)."""
    with _registry_lock:
        _registry.clear()
