"""Data models for spend-monitor.

This module defines immutable dataclasses and enums used throughout the
application for type-safe data transfer between components.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class Severity(StrEnum):
    """Severity of a threshold breach."""

    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


@dataclass(slots=True, frozen=True)
class ServiceCost:
    """Cost attributed to one service within a spend period."""

    name: str
    cost: float
    percentage: float  # share of observed spend, 0-100


@dataclass(slots=True, frozen=True)
class AlertContext:
    """Immutable description of one threshold breach.

    Created once per breach detection and read-only thereafter. The
    invariants (exceed_amount > 0, severity derived from percentage_over)
    are enforced by the constructor helpers in ``core.alerts.context``.
    """

    threshold: float
    observed_value: float
    exceed_amount: float
    percentage_over: float
    top_services: tuple[ServiceCost, ...]
    severity: Severity


class ChannelKind(StrEnum):
    """Family a delivery channel belongs to."""

    BULK_TEXT = "bulk-text"
    PUSH = "push"


@dataclass(slots=True, frozen=True)
class ChannelPayload:
    """Per-channel rendering of an alert.

    ``key`` is the channel key inside the provider message and ``body`` is the
    channel-specific encoding (plain text for bulk-text channels, a JSON
    document for push channels).
    """

    key: str
    kind: ChannelKind
    body: str


class DeliveryStatus(StrEnum):
    """Outcome of a logical alert delivery."""

    DELIVERED = "delivered"
    DEGRADED = "degraded"
    DRY_RUN = "dry_run"


@dataclass(slots=True, frozen=True)
class DeliveryResult:
    """Result of dispatching one alert.

    ``channels_attempted`` lists every channel key of the first publish
    attempt; ``channels_delivered`` lists the keys of the message that was
    actually accepted by the provider.
    """

    alert_id: str
    status: DeliveryStatus
    channels_attempted: tuple[str, ...]
    channels_delivered: tuple[str, ...]
    message_id: str | None
    delivery_time_ms: float
    fallback_reason: str | None = None

    @property
    def degraded(self) -> bool:
        return self.status is DeliveryStatus.DEGRADED


@dataclass(slots=True, frozen=True)
class DeviceRegistration:
    """One push-notification endpoint registration."""

    device_token: str
    endpoint_ref: str
    user_id: str | None
    registered_at: datetime
    updated_at: datetime
    active: bool


@dataclass(slots=True, frozen=True)
class EndpointAttributes:
    """Current provider-side attributes of a platform endpoint."""

    enabled: bool
    token: str | None
    custom_user_data: str | None = None


@dataclass(slots=True, frozen=True)
class PlatformAttributes:
    """Attributes of the push platform application itself."""

    enabled: bool
    created_at: datetime | None = None
    credential_expires_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class CleanupResult:
    """Outcome of a batch cleanup over platform endpoints."""

    removed_refs: tuple[str, ...]
    scanned: int
    errors: tuple[str, ...] = ()

    @property
    def removed_count(self) -> int:
        return len(self.removed_refs)


@dataclass(slots=True, frozen=True)
class CredentialHealth:
    """Validity and expiry information for the push credential."""

    is_valid: bool
    days_until_expiration: int | None
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()


class HealthStatus(StrEnum):
    """Tri-state health, ordered by severity."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _HEALTH_RANK[self]


_HEALTH_RANK: Mapping[HealthStatus, int] = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.WARNING: 1,
    HealthStatus.CRITICAL: 2,
}


@dataclass(slots=True, frozen=True)
class ComponentHealth:
    """Health of one monitored component."""

    name: str
    status: HealthStatus
    details: tuple[str, ...] = ()
    data: Mapping[str, object] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class HealthReport:
    """Aggregated system health produced by one health-check invocation."""

    overall: HealthStatus
    components: Mapping[str, ComponentHealth]
    recommendations: tuple[str, ...]
    metrics: Mapping[str, float]
    invalid_endpoint_percentage: float
    checked_at: datetime
    circuit_breakers: Mapping[str, str] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class RecoveryResult:
    """Outcome of an automated recovery run."""

    actions_performed: tuple[str, ...]
    success: bool
    errors: tuple[str, ...] = ()
