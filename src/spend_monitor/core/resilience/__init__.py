"""Resilience primitives: retry with backoff and circuit breaking."""

from spend_monitor.core.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerPolicy,
    CircuitBreakerState,
    CircuitState,
    counts_as_dependency_failure,
    get_circuit_breaker,
    get_circuit_breaker_states,
    reset_circuit_breakers,
)
from spend_monitor.core.resilience.guard import ResilientCaller
from spend_monitor.core.resilience.retry import (
    ErrorClassifier,
    RetryExecutor,
    RetryPolicy,
    compute_backoff_delay,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerPolicy",
    "CircuitBreakerState",
    "CircuitState",
    "ErrorClassifier",
    "ResilientCaller",
    "RetryExecutor",
    "RetryPolicy",
    "compute_backoff_delay",
    "counts_as_dependency_failure",
    "get_circuit_breaker",
    "get_circuit_breaker_states",
    "reset_circuit_breakers",
]
