"""Retry with exponential backoff and jitter.

The executor runs an async operation up to ``max_attempts`` times. After each
failure an injected classifier decides whether the error is retryable; fatal
errors and the final failed attempt propagate immediately with no further
delay.
"""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Final

from spend_monitor.core.errors import ConfigurationError, SpendMonitorError, is_retryable_error
from spend_monitor.types.protocols import MetricsSink

__all__ = [
    "JITTER_RATIO",
    "ErrorClassifier",
    "RetryExecutor",
    "RetryPolicy",
    "compute_backoff_delay",
]

logger = logging.getLogger(__name__)

JITTER_RATIO: Final[float] = 0.25

type ErrorClassifier = Callable[[BaseException], bool]
type SleepFunction = Callable[[float], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Immutable retry/backoff configuration.

    Delays are expressed in seconds.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {self.max_attempts}"
            raise ConfigurationError(msg)
        if self.base_delay < 0:
            msg = f"base_delay must not be negative, got {self.base_delay}"
            raise ConfigurationError(msg)
        if self.base_delay > self.max_delay:
            msg = f"base_delay ({self.base_delay}) must not exceed max_delay ({self.max_delay})"
            raise ConfigurationError(msg)
        if self.backoff_multiplier < 1:
            msg = f"backoff_multiplier must be at least 1, got {self.backoff_multiplier}"
            raise ConfigurationError(msg)


def compute_backoff_delay(
    attempt: int,
    policy: RetryPolicy,
    *,
    rng: Callable[[], float] = random.random,
) -> float:
    """Calculate the delay that follows a failed attempt.

    Uses ``min(base_delay * backoff_multiplier ** (attempt - 1), max_delay)``
    and, when jitter is enabled, perturbs it uniformly by up to ±25%, floored
    at zero.

    Args:
        attempt: 1-based number of the attempt that just failed
        policy: Retry policy
        rng: Source of uniform floats in [0, 1)

    Returns:
        Delay in seconds
    """
    delay = min(policy.base_delay * policy.backoff_multiplier ** (attempt - 1), policy.max_delay)
    if policy.jitter:
        delay += delay * JITTER_RATIO * (2.0 * rng() - 1.0)
    return max(0.0, delay)


class RetryExecutor:
    """Runs operations under a retry policy.

    One ``execute`` call is fully self-contained: the executor holds no
    per-call state, so a single instance may be shared by concurrent tasks.

    Example:
        >>> executor = RetryExecutor(RetryPolicy(max_attempts=5))
        >>> message_id = await executor.execute(lambda: publisher.publish(...), "PublishAlert")
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        classifier: ErrorClassifier = is_retryable_error,
        sleep: SleepFunction = asyncio.sleep,
        rng: Callable[[], float] = random.random,
        metrics: MetricsSink | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            policy: Default retry policy (library defaults when omitted)
            classifier: Predicate returning True for retryable errors
            sleep: Coroutine used to suspend between attempts
            rng: Random source used for jitter
            metrics: Optional sink receiving one observation per attempt
        """
        self.policy: RetryPolicy = policy or RetryPolicy()
        self._classifier: ErrorClassifier = classifier
        self._sleep: SleepFunction = sleep
        self._rng: Callable[[], float] = rng
        self._metrics: MetricsSink | None = metrics

    async def execute[T](
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        *,
        policy: RetryPolicy | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds or retrying stops.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            operation_name: Name used in logs, metrics and error context
            policy: Per-call override of the executor's policy

        Returns:
            The operation's result

        Raises:
            Exception: The last error raised by ``operation``, unchanged in
                type and message. ``SpendMonitorError`` instances gain
                ``operation`` and ``attempts`` context entries.
        """
        active = policy or self.policy
        attempt = 0

        while True:
            attempt += 1
            started = time.perf_counter()
            try:
                result = await operation()
            except Exception as exc:
                self._observe(operation_name, started, success=False, attempt=attempt)
                retryable = self._classifier(exc)

                if not retryable or attempt >= active.max_attempts:
                    if isinstance(exc, SpendMonitorError):
                        exc.context.setdefault("operation", operation_name)
                        exc.context["attempts"] = attempt
                    logger.warning(
                        "%s failed after %d attempt(s): %s",
                        operation_name,
                        attempt,
                        exc,
                        extra={
                            "operation": operation_name,
                            "attempt": attempt,
                            "retryable": retryable,
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise

                delay = compute_backoff_delay(attempt, active, rng=self._rng)
                logger.info(
                    "%s attempt %d/%d failed, retrying in %.2fs",
                    operation_name,
                    attempt,
                    active.max_attempts,
                    delay,
                    extra={
                        "operation": operation_name,
                        "attempt": attempt,
                        "delay_seconds": round(delay, 3),
                        "error_type": type(exc).__name__,
                    },
                )
                await self._sleep(delay)
            else:
                self._observe(operation_name, started, success=True, attempt=attempt)
                if attempt > 1:
                    logger.info(
                        "%s succeeded on attempt %d",
                        operation_name,
                        attempt,
                        extra={"operation": operation_name, "attempt": attempt},
                    )
                return result

    def _observe(self, operation_name: str, started: float, *, success: bool, attempt: int) -> None:
        if self._metrics is None:
            return
        self._metrics.record(
            operation_name,
            (time.perf_counter() - started) * 1000,
            success=success,
            dimensions={"attempt": str(attempt)},
        )
