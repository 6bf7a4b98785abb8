"""Type definitions and protocols for spend-monitor.

This package provides:
- Data models (immutable dataclasses and enums)
- Protocol definitions (structural subtyping interfaces)
"""

from spend_monitor.types.models import (
    AlertContext,
    ChannelKind,
    ChannelPayload,
    CleanupResult,
    ComponentHealth,
    CredentialHealth,
    DeliveryResult,
    DeliveryStatus,
    DeviceRegistration,
    EndpointAttributes,
    HealthReport,
    HealthStatus,
    PlatformAttributes,
    RecoveryResult,
    ServiceCost,
    Severity,
)
from spend_monitor.types.protocols import (
    MetricsSink,
    NotificationPublisher,
    PushPlatform,
)

__all__ = [
    # Data models
    "AlertContext",
    "ChannelKind",
    "ChannelPayload",
    "CleanupResult",
    "ComponentHealth",
    "CredentialHealth",
    "DeliveryResult",
    "DeliveryStatus",
    "DeviceRegistration",
    "EndpointAttributes",
    "HealthReport",
    "HealthStatus",
    "PlatformAttributes",
    "RecoveryResult",
    "ServiceCost",
    "Severity",
    # Protocols
    "MetricsSink",
    "NotificationPublisher",
    "PushPlatform",
]
