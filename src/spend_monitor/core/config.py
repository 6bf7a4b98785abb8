"""Configuration system for spend-monitor.

This module implements the main configuration schema using Pydantic for
validation, with support for environment variable resolution and fail-fast
validation with actionable error messages.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final, Self

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from spend_monitor.core.errors import DEFAULT_PUSH_REJECTION_CODES, ConfigurationError
from spend_monitor.core.resilience import CircuitBreakerPolicy, RetryPolicy

__all__ = [
    "ENV_VAR_PATTERN",
    "AlertingConfig",
    "ApplicationConfig",
    "ChannelConfig",
    "CircuitBreakerConfig",
    "ConfigurationError",
    "EnvironmentVariableError",
    "HealthConfig",
    "MainConfig",
    "ProviderConfig",
    "PushConfig",
    "RetryConfig",
    "load_main_config",
    "resolve_env_var",
    "resolve_env_vars_in_dict",
]

# Matches ${VARIABLE_NAME} where VARIABLE_NAME can contain letters, digits, and underscores
ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")


class RetryConfig(BaseModel):
    """Retry/backoff settings for provider calls."""

    max_attempts: Annotated[int, Field(ge=1, description="Maximum attempts per operation")] = 3
    base_delay_seconds: Annotated[float, Field(ge=0, description="Delay after the first failure")] = 1.0
    max_delay_seconds: Annotated[float, Field(ge=0, description="Upper bound for any single delay")] = 30.0
    backoff_multiplier: Annotated[float, Field(ge=1, description="Exponential growth factor")] = 2.0
    jitter: Annotated[bool, Field(description="Apply ±25% random jitter to delays")] = True

    @model_validator(mode="after")
    def validate_delay_bounds(self) -> Self:
        """Ensure the base delay does not exceed the delay ceiling."""
        if self.base_delay_seconds > self.max_delay_seconds:
            msg = (
                f"base_delay_seconds ({self.base_delay_seconds}) must not exceed "
                f"max_delay_seconds ({self.max_delay_seconds})"
            )
            raise ValueError(msg)
        return self

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay_seconds,
            max_delay=self.max_delay_seconds,
            backoff_multiplier=self.backoff_multiplier,
            jitter=self.jitter,
        )


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker thresholds for the notification provider."""

    failure_threshold: Annotated[int, Field(ge=1, description="Failures before the breaker opens")] = 5
    recovery_timeout_seconds: Annotated[
        float,
        Field(ge=0, description="Time after the last failure before a trial call is allowed"),
    ] = 60.0
    half_open_max_calls: Annotated[int, Field(ge=1, description="Trial calls allowed while half-open")] = 3

    def to_policy(self) -> CircuitBreakerPolicy:
        return CircuitBreakerPolicy(
            failure_threshold=self.failure_threshold,
            recovery_timeout=self.recovery_timeout_seconds,
            half_open_max_calls=self.half_open_max_calls,
        )


class PushConfig(BaseModel):
    """Mobile push channel settings."""

    platform_application_arn: Annotated[
        str,
        Field(min_length=1, description="Identifier of the push platform application"),
    ]
    bundle_id: Annotated[str, Field(min_length=1, description="Mobile app bundle identifier")]
    sandbox: Annotated[bool, Field(description="Deliver through the sandbox push environment")] = False
    payload_size_limit: Annotated[
        int,
        Field(ge=256, description="Maximum serialized push payload size in bytes"),
    ] = 4096
    credential_lifetime_days: Annotated[
        int,
        Field(ge=1, description="Assumed credential lifetime when the provider reports no expiry"),
    ] = 365
    credential_warning_days: Annotated[int, Field(ge=0, description="Warn below this many days")] = 30
    credential_error_days: Annotated[int, Field(ge=0, description="Error below this many days")] = 7

    @model_validator(mode="after")
    def validate_credential_thresholds(self) -> Self:
        if self.credential_error_days > self.credential_warning_days:
            msg = (
                f"credential_error_days ({self.credential_error_days}) must not exceed "
                f"credential_warning_days ({self.credential_warning_days})"
            )
            raise ValueError(msg)
        return self


class ChannelConfig(BaseModel):
    """Delivery channels for spend alerts."""

    topic_arn: Annotated[
        str,
        Field(min_length=1, description="Topic fanning out to the email and SMS subscribers"),
    ]
    push: Annotated[PushConfig | None, Field(description="Mobile push settings; omit to disable push")] = None
    push_rejection_codes: Annotated[
        frozenset[str],
        Field(description="Provider error codes that trigger the push-free fallback"),
    ] = DEFAULT_PUSH_REJECTION_CODES


class AlertingConfig(BaseModel):
    """Spend threshold settings."""

    spend_threshold: Annotated[float, Field(gt=0, description="Spend above this amount raises an alert")] = 10.0


class HealthConfig(BaseModel):
    """Health aggregation and automated recovery thresholds (percentages)."""

    endpoint_warning_percentage: Annotated[float, Field(ge=0, le=100)] = 20.0
    endpoint_critical_percentage: Annotated[float, Field(ge=0, le=100)] = 50.0
    recovery_invalid_percentage: Annotated[
        float,
        Field(ge=0, le=100, description="Invalid-endpoint share above which recovery re-runs cleanup"),
    ] = 10.0

    @model_validator(mode="after")
    def validate_ordering(self) -> Self:
        if self.endpoint_warning_percentage > self.endpoint_critical_percentage:
            msg = "endpoint_warning_percentage must not exceed endpoint_critical_percentage"
            raise ValueError(msg)
        return self


class ProviderConfig(BaseModel):
    """Connection settings for the notification provider client."""

    region: Annotated[str, Field(min_length=1, description="Provider region")] = "us-east-1"
    endpoint_url: Annotated[str | None, Field(description="Override endpoint (local emulators)")] = None
    connect_timeout_seconds: Annotated[float, Field(gt=0)] = 5.0
    read_timeout_seconds: Annotated[float, Field(gt=0)] = 10.0


class ApplicationConfig(BaseModel):
    """Configuration for application-level settings."""

    log_level: Annotated[
        str,
        Field(
            description="Logging level",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ] = "INFO"
    dry_run: Annotated[bool, Field(description="Render alerts without publishing them")] = False
    syslog_enabled: Annotated[bool, Field(description="Enable syslog integration")] = False
    syslog_address: Annotated[str, Field(description="Syslog socket address")] = "/dev/log"


class MainConfig(BaseModel):
    """Main application configuration schema.

    Top-level container aggregating every configuration section. Only
    ``channels`` is required; every other section has working defaults.
    """

    channels: Annotated[ChannelConfig, Field(description="Alert delivery channels")]
    alerting: Annotated[AlertingConfig, Field(description="Spend threshold settings")] = AlertingConfig()
    retry: Annotated[RetryConfig, Field(description="Retry policy for provider calls")] = RetryConfig()
    circuit_breaker: Annotated[
        CircuitBreakerConfig,
        Field(description="Circuit breaker policy for the notification provider"),
    ] = CircuitBreakerConfig()
    health: Annotated[HealthConfig, Field(description="Health check thresholds")] = HealthConfig()
    provider: Annotated[ProviderConfig, Field(description="Provider client settings")] = ProviderConfig()
    application: Annotated[ApplicationConfig, Field(description="Application-level configuration")] = (
        ApplicationConfig()
    )


class EnvironmentVariableError(ConfigurationError):
    """Raised when a referenced environment variable is not set."""


def resolve_env_var(value: str) -> str:
    """Resolve ``${VARIABLE_NAME}`` references in a string value.

    Args:
        value: String potentially containing environment variable references

    Returns:
        String with environment variables resolved

    Raises:
        EnvironmentVariableError: If a referenced environment variable is missing

    Examples:
        >>> os.environ["TOPIC"] = "alerts"
        >>> resolve_env_var("arn:${TOPIC}")
        'arn:alerts'
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            msg = (
                f"Required environment variable '{var_name}' is not set. "
                f"Please set this variable before starting the application."
            )
            raise EnvironmentVariableError(msg, context={"variable": var_name})
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _resolve_item(value: object) -> object:
    if isinstance(value, str):
        return resolve_env_var(value)
    if isinstance(value, dict):
        # YAML data is untyped at load time; validated by Pydantic after resolution
        return resolve_env_vars_in_dict(value)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    if isinstance(value, list):
        return [_resolve_item(item) for item in value]  # pyright: ignore[reportUnknownVariableType]  # YAML list items
    return value


def resolve_env_vars_in_dict(data: Mapping[str, object]) -> dict[str, object]:
    """Recursively resolve environment variables in a dictionary.

    Traverses nested dictionaries and lists, resolving references in string
    values. Non-string values are preserved as-is.

    Raises:
        EnvironmentVariableError: If a referenced environment variable is missing

    Examples:
        >>> os.environ["SECRET"] = "my_secret"
        >>> resolve_env_vars_in_dict({"nested": {"key": "${SECRET}"}})
        {'nested': {'key': 'my_secret'}}
    """
    return {key: _resolve_item(value) for key, value in data.items()}


def load_main_config(config_path: Path) -> MainConfig:
    """Load and validate main application configuration from YAML file.

    Args:
        config_path: Path to main configuration YAML file

    Returns:
        Validated MainConfig instance

    Raises:
        ConfigurationError: If the file cannot be loaded, references an unset
            environment variable, or fails validation
    """
    if not config_path.exists():
        msg = (
            f"Configuration file not found: {config_path}\n"
            f"Please create a configuration file at this location.\n"
            f"See config/spend-monitor.example.yaml for the file format."
        )
        raise ConfigurationError(msg, context={"path": str(config_path)})

    try:
        with config_path.open("r") as f:
            raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = (
            f"Failed to parse YAML configuration file: {config_path}\n"
            f"YAML parsing error: {e}\n"
            f"Please check the file for syntax errors."
        )
        raise ConfigurationError(msg, context={"path": str(config_path)}) from e
    except OSError as e:
        msg = f"Failed to read configuration file: {config_path}\nError: {e}\nPlease check file permissions."
        raise ConfigurationError(msg, context={"path": str(config_path)}) from e

    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid configuration file format: {config_path}\n"
            f"Expected YAML dictionary at root level, got: {type(raw_data).__name__}\n"
            f"Configuration file must contain key-value pairs."
        )
        raise ConfigurationError(msg, context={"path": str(config_path)})

    try:
        resolved_data = resolve_env_vars_in_dict(raw_data)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    except EnvironmentVariableError as e:
        msg = (
            f"Environment variable resolution failed in: {config_path}\n"
            f"{e}\n"
            f"Set the required environment variable before starting the application."
        )
        raise ConfigurationError(msg, context={"path": str(config_path), **e.context}) from e

    try:
        config = MainConfig.model_validate(resolved_data)
    except ValidationError as e:
        error_lines = ["Configuration validation failed:", ""]
        for error in e.errors():
            field_path = " → ".join(str(loc) for loc in error["loc"])
            error_lines.append(f"  Field: {field_path}")
            error_lines.append(f"  Error: {error['msg']}")
            error_lines.append(f"  Type: {error['type']}")
            error_lines.append("")

        error_lines.append(f"Configuration file: {config_path}")
        error_lines.append("Please fix the above errors and try again.")
        raise ConfigurationError("\n".join(error_lines), context={"path": str(config_path)}) from e

    return config
