"""Composition of retry and circuit breaker for provider calls."""

from collections.abc import Awaitable, Callable

from spend_monitor.core.resilience.circuit_breaker import CircuitBreaker
from spend_monitor.core.resilience.retry import RetryExecutor

__all__ = ["ResilientCaller"]


class ResilientCaller:
    """Runs provider calls as retry(breaker(operation)).

    Every attempt passes through the breaker, so an opening breaker stops the
    retry loop at once: ``CircuitOpenError`` is never retryable.
    """

    def __init__(self, executor: RetryExecutor, breaker: CircuitBreaker) -> None:
        self.executor: RetryExecutor = executor
        self.breaker: CircuitBreaker = breaker

    @property
    def dependency(self) -> str:
        return self.breaker.name

    async def call[T](self, operation: Callable[[], Awaitable[T]], operation_name: str) -> T:
        return await self.executor.execute(lambda: self.breaker.execute(operation), operation_name)
