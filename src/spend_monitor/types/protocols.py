"""Protocol definitions for external collaborators.

This module defines structural subtyping protocols that establish
contracts for the notification provider and the observability sink
without requiring inheritance.
"""

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from spend_monitor.types.models import EndpointAttributes, PlatformAttributes


@runtime_checkable
class NotificationPublisher(Protocol):
    """Protocol for the pub/sub side of a notification provider.

    A single publish call fans out to every channel subscribed to the topic.
    """

    async def publish(
        self,
        topic: str,
        message: str,
        *,
        subject: str,
        structured: bool = True,
    ) -> str:
        """Publish a message to a topic.

        Args:
            topic: Topic identifier
            message: Message body; a JSON object keyed by channel when ``structured``
            subject: Short subject line for text channels
            structured: Whether ``message`` carries channel-keyed sub-payloads

        Returns:
            Provider-assigned message identifier

        Raises:
            ExternalServiceError: If the provider rejects the message
            NetworkError: If the provider cannot be reached
        """
        ...


@runtime_checkable
class PushPlatform(Protocol):
    """Protocol for platform-endpoint operations of a push provider."""

    async def create_endpoint(self, token: str, custom_user_data: str | None = None) -> str:
        """Create (or return the existing) endpoint for a device token.

        Returns:
            Opaque endpoint reference
        """
        ...

    async def get_endpoint_attributes(self, endpoint_ref: str) -> EndpointAttributes:
        """Fetch current attributes of an endpoint."""
        ...

    async def set_endpoint_attributes(self, endpoint_ref: str, *, token: str, enabled: bool = True) -> None:
        """Update an endpoint in place."""
        ...

    async def delete_endpoint(self, endpoint_ref: str) -> None:
        """Delete an endpoint."""
        ...

    async def list_endpoints(self) -> list[str]:
        """List every endpoint reference of the platform application.

        Implementations follow provider pagination until exhausted.
        """
        ...

    async def get_platform_attributes(self) -> PlatformAttributes:
        """Fetch attributes of the platform application."""
        ...


class MetricsSink(Protocol):
    """Protocol for the metrics/health observation sink."""

    def record(
        self,
        name: str,
        duration_ms: float,
        *,
        success: bool,
        dimensions: Mapping[str, str] | None = None,
    ) -> None:
        """Record one named duration and outcome observation."""
        ...
