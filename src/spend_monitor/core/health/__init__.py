"""Health probes, aggregation and automated recovery."""

from spend_monitor.core.health.credentials import CredentialProbe, assess_credential
from spend_monitor.core.health.monitor import HealthMonitor, aggregate_status, build_recommendations

__all__ = [
    "CredentialProbe",
    "HealthMonitor",
    "aggregate_status",
    "assess_credential",
    "build_recommendations",
]
