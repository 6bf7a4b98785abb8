"""Tests for configuration models and YAML loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from spend_monitor.core.config import (
    ChannelConfig,
    CircuitBreakerConfig,
    EnvironmentVariableError,
    HealthConfig,
    MainConfig,
    PushConfig,
    RetryConfig,
    load_main_config,
    resolve_env_var,
    resolve_env_vars_in_dict,
)
from spend_monitor.core.errors import DEFAULT_PUSH_REJECTION_CODES, ConfigurationError

MINIMAL_YAML = """
channels:
  topic_arn: arn:aws:sns:us-east-1:123456789012:spend-alerts
"""

FULL_YAML = """
channels:
  topic_arn: ${TEST_TOPIC_ARN}
  push:
    platform_application_arn: arn:aws:sns:us-east-1:123456789012:app/APNS_SANDBOX/spend
    bundle_id: com.example.spend
    sandbox: true
    payload_size_limit: 2048
  push_rejection_codes: [EndpointDisabled]
alerting:
  spend_threshold: 25.0
retry:
  max_attempts: 5
  base_delay_seconds: 0.5
circuit_breaker:
  failure_threshold: 2
application:
  log_level: DEBUG
  dry_run: true
"""


def write_config(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "spend-monitor.yaml"
    _ = path.write_text(content)
    return path


@pytest.mark.unit
class TestModels:
    """Pydantic model defaults and validation."""

    def test_only_channels_required(self) -> None:
        config = MainConfig.model_validate({"channels": {"topic_arn": "topic"}})

        assert config.alerting.spend_threshold == 10.0
        assert config.retry.max_attempts == 3
        assert config.circuit_breaker.failure_threshold == 5
        assert config.health.endpoint_warning_percentage == 20.0
        assert config.channels.push is None
        assert config.channels.push_rejection_codes == DEFAULT_PUSH_REJECTION_CODES
        assert not config.application.dry_run

    def test_missing_channels_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _ = MainConfig.model_validate({})

    def test_retry_delay_bounds(self) -> None:
        with pytest.raises(ValidationError, match="must not exceed"):
            _ = RetryConfig(base_delay_seconds=10.0, max_delay_seconds=1.0)

    def test_retry_to_policy(self) -> None:
        policy = RetryConfig(max_attempts=4, base_delay_seconds=0.5, jitter=False).to_policy()

        assert policy.max_attempts == 4
        assert policy.base_delay == 0.5
        assert not policy.jitter

    def test_circuit_breaker_to_policy(self) -> None:
        policy = CircuitBreakerConfig(failure_threshold=2, recovery_timeout_seconds=5.0).to_policy()

        assert policy.failure_threshold == 2
        assert policy.recovery_timeout == 5.0

    def test_push_defaults(self) -> None:
        push = PushConfig(platform_application_arn="app", bundle_id="com.example")

        assert not push.sandbox
        assert push.payload_size_limit == 4096
        assert (push.credential_warning_days, push.credential_error_days) == (30, 7)

    def test_push_credential_threshold_ordering(self) -> None:
        with pytest.raises(ValidationError):
            _ = PushConfig(
                platform_application_arn="app",
                bundle_id="com.example",
                credential_warning_days=5,
                credential_error_days=10,
            )

    def test_health_threshold_ordering(self) -> None:
        with pytest.raises(ValidationError):
            _ = HealthConfig(endpoint_warning_percentage=60.0, endpoint_critical_percentage=50.0)

    def test_threshold_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            _ = MainConfig.model_validate({"channels": {"topic_arn": "t"}, "alerting": {"spend_threshold": 0}})

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError):
            _ = MainConfig.model_validate({"channels": {"topic_arn": "t"}, "application": {"log_level": "LOUD"}})


@pytest.mark.unit
class TestEnvironmentResolution:
    def test_resolves_reference(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ALERT_TOPIC", "spend-alerts")

        assert resolve_env_var("arn:${ALERT_TOPIC}") == "arn:spend-alerts"

    def test_missing_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MISSING_TOPIC", raising=False)

        with pytest.raises(EnvironmentVariableError) as exc_info:
            _ = resolve_env_var("${MISSING_TOPIC}")
        assert exc_info.value.context == {"variable": "MISSING_TOPIC"}

    def test_nested_structures(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BUNDLE", "com.example")

        resolved = resolve_env_vars_in_dict({"push": {"bundle_id": "${BUNDLE}", "codes": ["${BUNDLE}", 3]}})

        assert resolved == {"push": {"bundle_id": "com.example", "codes": ["com.example", 3]}}


@pytest.mark.unit
class TestLoadMainConfig:
    def test_minimal_file(self, tmp_path: Path) -> None:
        config = load_main_config(write_config(tmp_path, MINIMAL_YAML))

        assert config.channels.topic_arn == "arn:aws:sns:us-east-1:123456789012:spend-alerts"

    def test_full_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_TOPIC_ARN", "arn:aws:sns:us-east-1:123456789012:from-env")

        config = load_main_config(write_config(tmp_path, FULL_YAML))

        assert config.channels.topic_arn.endswith(":from-env")
        assert config.channels.push is not None
        assert config.channels.push.sandbox
        assert config.channels.push.payload_size_limit == 2048
        assert config.channels.push_rejection_codes == frozenset({"EndpointDisabled"})
        assert config.alerting.spend_threshold == 25.0
        assert config.retry.max_attempts == 5
        assert config.application.dry_run

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Configuration file not found"):
            _ = load_main_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Failed to parse YAML"):
            _ = load_main_config(write_config(tmp_path, "channels: [unclosed"))

    def test_schema_violation(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            _ = load_main_config(write_config(tmp_path, "alerting:\n  spend_threshold: 5\n"))

    def test_unset_environment_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TEST_TOPIC_ARN", raising=False)

        with pytest.raises(ConfigurationError, match="TEST_TOPIC_ARN"):
            _ = load_main_config(write_config(tmp_path, FULL_YAML))

    def test_example_config_is_valid(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPEND_ALERT_TOPIC_ARN", "arn:aws:sns:us-east-1:123456789012:spend-alerts")
        monkeypatch.setenv("SPEND_ALERT_PLATFORM_ARN", "arn:aws:sns:us-east-1:123456789012:app/APNS/spend")
        example = Path(__file__).parents[3] / "config" / "spend-monitor.example.yaml"

        config = load_main_config(example)

        assert isinstance(config.channels, ChannelConfig)
        assert config.channels.push is not None
