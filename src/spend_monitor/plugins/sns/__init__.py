"""SNS provider plugin: topic publishing and push platform endpoints."""

import re
from typing import Final

from spend_monitor.core.config import MainConfig
from spend_monitor.plugins.sns.client import SERVICE_NAME, SNSProvider, translate_boto_error
from spend_monitor.plugins.sns.validation import validate_channel_config
from spend_monitor.utils.sanitization import REDACTED, register_sanitization_pattern

__all__ = [
    "SERVICE_NAME",
    "SNSProvider",
    "create_provider",
    "translate_boto_error",
    "validate_channel_config",
]

# Access key IDs sometimes appear in signature errors
_ACCESS_KEY_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b")

# Register at import time so sanitization works before any provider is built
register_sanitization_pattern(_ACCESS_KEY_ID_PATTERN, REDACTED)


def create_provider(config: MainConfig) -> SNSProvider:
    """Build the provider for a validated configuration."""
    push = config.channels.push
    return SNSProvider(
        config.provider,
        platform_application_arn=push.platform_application_arn if push is not None else None,
    )
