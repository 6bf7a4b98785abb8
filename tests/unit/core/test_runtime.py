"""Tests for component wiring."""

from __future__ import annotations

import pytest

from spend_monitor.core.alerts import build_alert_context
from spend_monitor.core.config import (
    ApplicationConfig,
    ChannelConfig,
    CircuitBreakerConfig,
    MainConfig,
    RetryConfig,
)
from spend_monitor.core.errors import ConfigurationError
from spend_monitor.core.resilience import get_circuit_breaker, get_circuit_breaker_states
from spend_monitor.core.runtime import build_runtime
from spend_monitor.types.models import DeliveryStatus
from tests.fixtures.provider_fakes import FakePublisher, FakePushPlatform


@pytest.mark.unit
class TestBuildRuntime:
    def test_with_push(self, main_config: MainConfig, publisher: FakePublisher, platform: FakePushPlatform) -> None:
        runtime = build_runtime(main_config, publisher, platform)

        assert runtime.require_devices() is runtime.devices
        assert runtime.require_health() is runtime.health
        assert runtime.caller.breaker is runtime.breaker

    def test_text_only(self, text_only_channels: ChannelConfig, publisher: FakePublisher) -> None:
        runtime = build_runtime(MainConfig(channels=text_only_channels), publisher, None)

        assert runtime.devices is None
        assert runtime.health is None
        with pytest.raises(ConfigurationError, match="Push channel is not configured"):
            _ = runtime.require_devices()
        with pytest.raises(ConfigurationError, match="Health checks need a push channel"):
            _ = runtime.require_health()

    def test_platform_without_push_config(
        self,
        text_only_channels: ChannelConfig,
        publisher: FakePublisher,
        platform: FakePushPlatform,
    ) -> None:
        runtime = build_runtime(MainConfig(channels=text_only_channels), publisher, platform)

        assert runtime.devices is None

    def test_policies_come_from_config(self, channels: ChannelConfig, publisher: FakePublisher) -> None:
        config = MainConfig(
            channels=channels,
            retry=RetryConfig(max_attempts=5),
            circuit_breaker=CircuitBreakerConfig(failure_threshold=2),
        )

        runtime = build_runtime(config, publisher, None)

        assert runtime.caller.executor.policy.max_attempts == 5
        assert runtime.breaker.policy.failure_threshold == 2

    def test_breaker_is_shared_per_process(self, main_config: MainConfig, publisher: FakePublisher) -> None:
        first = build_runtime(main_config, publisher, None)
        second = build_runtime(main_config, publisher, None)

        assert first.breaker is second.breaker
        assert first.breaker is get_circuit_breaker("notification-provider")
        assert get_circuit_breaker_states() == {"notification-provider": "closed"}

    @pytest.mark.asyncio
    async def test_dry_run_flows_to_dispatcher(self, channels: ChannelConfig, publisher: FakePublisher) -> None:
        config = MainConfig(channels=channels, application=ApplicationConfig(dry_run=True))
        runtime = build_runtime(config, publisher, None)

        result = await runtime.dispatcher.dispatch(build_alert_context(12.0, 10.0, {}), channels)

        assert result.status is DeliveryStatus.DRY_RUN
        assert publisher.published == []
