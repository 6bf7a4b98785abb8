"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime, timedelta

import pytest

from spend_monitor.core.config import ChannelConfig, MainConfig, PushConfig
from spend_monitor.core.resilience import (
    CircuitBreaker,
    CircuitBreakerPolicy,
    ResilientCaller,
    RetryExecutor,
    RetryPolicy,
    reset_circuit_breakers,
)
from spend_monitor.utils.logging import clear_correlation_id
from tests.fixtures.provider_fakes import (
    FIXED_NOW,
    FakeClock,
    FakePublisher,
    FakePushPlatform,
    RecordingMetricsSink,
    RecordingSleep,
)

TOPIC_ARN = "arn:aws:sns:us-east-1:123456789012:spend-alerts"
PLATFORM_ARN = "arn:aws:sns:us-east-1:123456789012:app/APNS/spend-monitor"


@pytest.fixture(autouse=True)
def isolate_process_state() -> Iterator[None]:
    """Forget registered circuit breakers and correlation IDs between tests."""
    reset_circuit_breakers()
    clear_correlation_id()
    yield
    reset_circuit_breakers()


@pytest.fixture
def push_config() -> PushConfig:
    return PushConfig(platform_application_arn=PLATFORM_ARN, bundle_id="com.example.spend")


@pytest.fixture
def channels(push_config: PushConfig) -> ChannelConfig:
    return ChannelConfig(topic_arn=TOPIC_ARN, push=push_config)


@pytest.fixture
def text_only_channels() -> ChannelConfig:
    return ChannelConfig(topic_arn=TOPIC_ARN)


@pytest.fixture
def main_config(channels: ChannelConfig) -> MainConfig:
    return MainConfig(channels=channels)


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def platform() -> FakePushPlatform:
    return FakePushPlatform()


@pytest.fixture
def metrics() -> RecordingMetricsSink:
    return RecordingMetricsSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(
        "notification-provider",
        CircuitBreakerPolicy(failure_threshold=3, recovery_timeout=30.0, half_open_max_calls=1),
        clock=clock,
    )


@pytest.fixture
def caller(breaker: CircuitBreaker, sleep: RecordingSleep) -> ResilientCaller:
    executor = RetryExecutor(
        RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0, jitter=False),
        sleep=sleep,
    )
    return ResilientCaller(executor, breaker)


@pytest.fixture
def utc_now() -> Callable[[], datetime]:
    """Callable returning a fixed aware timestamp, advanced by 1ms per call."""
    ticks = iter(range(1_000_000))
    return lambda: FIXED_NOW + timedelta(milliseconds=next(ticks))
