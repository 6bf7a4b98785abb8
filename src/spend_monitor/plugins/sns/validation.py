"""Identifier format checks for SNS channel configuration."""

import re
from typing import Final

from spend_monitor.core.config import ChannelConfig

__all__ = ["PLATFORM_APPLICATION_ARN_PATTERN", "TOPIC_ARN_PATTERN", "validate_channel_config"]

TOPIC_ARN_PATTERN: Final[re.Pattern[str]] = re.compile(r"^arn:aws:sns:[a-z0-9-]+:\d{12}:[a-zA-Z0-9_-]+$")
PLATFORM_APPLICATION_ARN_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^arn:aws:sns:[a-z0-9-]+:\d{12}:app/(?:APNS|APNS_SANDBOX)/[a-zA-Z0-9_.-]+$"
)


def validate_channel_config(channels: ChannelConfig) -> list[str]:
    """Check channel identifiers before any provider call.

    Returns:
        Human-readable problems; empty when the configuration is usable
    """
    problems: list[str] = []
    if not TOPIC_ARN_PATTERN.fullmatch(channels.topic_arn):
        problems.append(f"Invalid topic ARN: {channels.topic_arn}")

    push = channels.push
    if push is not None:
        if not PLATFORM_APPLICATION_ARN_PATTERN.fullmatch(push.platform_application_arn):
            problems.append(f"Invalid platform application ARN: {push.platform_application_arn}")
        elif push.sandbox != (":app/APNS_SANDBOX/" in push.platform_application_arn):
            environment = "sandbox" if push.sandbox else "production"
            problems.append(f"Platform application does not match the {environment} push environment")
    return problems
