"""Property-based tests for retry backoff bounds."""

from __future__ import annotations

import asyncio
import random
from dataclasses import replace

import pytest
from hypothesis import given, strategies as st

from spend_monitor.core.errors import NetworkError
from spend_monitor.core.resilience.retry import JITTER_RATIO, RetryExecutor, RetryPolicy, compute_backoff_delay
from tests.fixtures.provider_fakes import RecordingSleep


@st.composite
def retry_policies(draw: st.DrawFn, *, jitter: bool) -> RetryPolicy:
    """Generate valid retry policies."""
    base = draw(st.floats(min_value=0.0, max_value=10.0))
    maximum = draw(st.floats(min_value=base, max_value=120.0))
    multiplier = draw(st.floats(min_value=1.0, max_value=4.0))
    return RetryPolicy(
        max_attempts=10, base_delay=base, max_delay=maximum, backoff_multiplier=multiplier, jitter=jitter
    )


@pytest.mark.property
class TestBackoffInvariants:
    @given(retry_policies(jitter=False), st.integers(min_value=1, max_value=10))
    def test_delay_without_jitter_is_capped_exponential(self, policy: RetryPolicy, attempt: int) -> None:
        """Property: without jitter the delay is exactly the capped exponential."""
        expected = min(policy.base_delay * policy.backoff_multiplier ** (attempt - 1), policy.max_delay)

        assert compute_backoff_delay(attempt, policy) == expected

    @given(
        retry_policies(jitter=True),
        st.integers(min_value=1, max_value=10),
        st.floats(min_value=0.0, max_value=1.0, exclude_max=True),
    )
    def test_jitter_stays_within_ratio(self, policy: RetryPolicy, attempt: int, sample: float) -> None:
        """Property: jittered delays stay within ±25% of the nominal delay and never go negative."""
        nominal = min(policy.base_delay * policy.backoff_multiplier ** (attempt - 1), policy.max_delay)

        delay = compute_backoff_delay(attempt, policy, rng=lambda: sample)

        assert delay >= 0.0
        assert nominal * (1 - JITTER_RATIO) - 1e-9 <= delay <= nominal * (1 + JITTER_RATIO) + 1e-9

    @given(retry_policies(jitter=False), st.integers(min_value=1, max_value=9))
    def test_delays_never_decrease(self, policy: RetryPolicy, attempt: int) -> None:
        """Property: later attempts never wait less than earlier ones."""
        assert compute_backoff_delay(attempt + 1, policy) >= compute_backoff_delay(attempt, policy)

    @given(
        retry_policies(jitter=True),
        st.integers(min_value=1, max_value=6),
        st.randoms(use_true_random=False),
    )
    def test_jittered_retries_total_wait(self, policy: RetryPolicy, max_attempts: int, rnd: random.Random) -> None:
        """Property: an always-failing call runs max_attempts times and waits about the nominal total."""
        policy = replace(policy, max_attempts=max_attempts)
        sleep = RecordingSleep()
        executor = RetryExecutor(policy, sleep=sleep, rng=rnd.random)
        calls = 0

        async def always_down() -> None:
            nonlocal calls
            calls += 1
            raise NetworkError("svc", "down")

        with pytest.raises(NetworkError):
            asyncio.run(executor.execute(always_down, "Publish"))

        nominal = sum(
            min(policy.base_delay * policy.backoff_multiplier ** (k - 1), policy.max_delay)
            for k in range(1, max_attempts)
        )
        tolerance = 1e-9 * max(1.0, nominal)
        assert calls == max_attempts
        assert len(sleep.delays) == max_attempts - 1
        assert nominal * (1 - JITTER_RATIO) - tolerance <= sum(sleep.delays) <= nominal * (1 + JITTER_RATIO) + tolerance
