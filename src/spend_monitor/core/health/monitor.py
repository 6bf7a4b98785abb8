"""System health aggregation and automated recovery.

Three probes run concurrently and are joined all-settled: each probe's result
or error is captured in a ``ProbeOutcome`` so one failing probe never hides
the others. Aggregation and recommendations are pure functions of those
outcomes.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final

from spend_monitor.core.config import HealthConfig
from spend_monitor.core.devices import DeviceLifecycleManager
from spend_monitor.core.health.credentials import CredentialProbe
from spend_monitor.core.resilience import CircuitBreaker, CircuitState, get_circuit_breaker_states
from spend_monitor.types.models import (
    CleanupResult,
    ComponentHealth,
    CredentialHealth,
    HealthReport,
    HealthStatus,
    RecoveryResult,
)
from spend_monitor.types.protocols import MetricsSink
from spend_monitor.utils.logging import correlation_id_var, set_correlation_id
from spend_monitor.utils.metrics import timed_operation

__all__ = [
    "CREDENTIAL_COMPONENT",
    "ENDPOINTS_COMPONENT",
    "PLATFORM_COMPONENT",
    "HealthMonitor",
    "ProbeOutcome",
    "aggregate_status",
    "build_recommendations",
    "credential_component",
    "endpoints_component",
    "invalid_endpoint_percentage",
    "platform_component",
    "run_probe",
]

logger = logging.getLogger(__name__)

PLATFORM_COMPONENT: Final[str] = "platform"
CREDENTIAL_COMPONENT: Final[str] = "credential"
ENDPOINTS_COMPONENT: Final[str] = "endpoints"

RENEW_CREDENTIAL_NOW: Final[str] = "URGENT: Renew push credential immediately - push notifications are failing"
PLAN_CREDENTIAL_RENEWAL: Final[str] = "Plan push credential renewal - expiration approaching"
INVESTIGATE_DISTRIBUTION: Final[str] = (
    "CRITICAL: High number of invalid device tokens - investigate app distribution and user engagement"
)
MONITOR_TOKENS: Final[str] = "Monitor device token validity - moderate number of invalid tokens detected"
REVIEW_CLEANUP_ERRORS: Final[str] = "Review device cleanup errors - some cleanup operations may have failed"
FIX_PLATFORM: Final[str] = "URGENT: Fix platform application configuration - push notifications are not functional"


@dataclass(slots=True, frozen=True)
class ProbeOutcome[T]:
    """Settled result of one probe: exactly one of ``value``/``error`` is set."""

    name: str
    value: T | None
    error: Exception | None
    duration_ms: float

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_probe[T](name: str, probe: Callable[[], Awaitable[T]]) -> ProbeOutcome[T]:
    """Run a probe and capture its result or error instead of raising."""
    started = time.perf_counter()
    try:
        value = await probe()
    except Exception as exc:
        logger.error(
            "Health probe %s failed: %s",
            name,
            exc,
            extra={"probe": name, "error_type": type(exc).__name__},
        )
        return ProbeOutcome(name, None, exc, (time.perf_counter() - started) * 1000)
    return ProbeOutcome(name, value, None, (time.perf_counter() - started) * 1000)


def invalid_endpoint_percentage(cleanup: CleanupResult | None) -> float:
    """Share of scanned endpoints that were removed, 0-100."""
    if cleanup is None:
        return 0.0
    total = max(cleanup.scanned, cleanup.removed_count)
    if total == 0:
        return 0.0
    return cleanup.removed_count / total * 100


def platform_component(outcome: ProbeOutcome[bool]) -> ComponentHealth:
    if outcome.ok and outcome.value:
        return ComponentHealth(
            PLATFORM_COMPONENT,
            HealthStatus.HEALTHY,
            ("Platform application is accessible and functional",),
        )
    return ComponentHealth(
        PLATFORM_COMPONENT,
        HealthStatus.CRITICAL,
        ("Platform application validation failed - check configuration",),
    )


def credential_component(outcome: ProbeOutcome[CredentialHealth]) -> ComponentHealth:
    credential = outcome.value
    if credential is None:
        return ComponentHealth(
            CREDENTIAL_COMPONENT,
            HealthStatus.CRITICAL,
            (f"Credential health check failed: {outcome.error}",),
        )

    data: dict[str, object] = {"days_until_expiration": credential.days_until_expiration}
    if credential.errors:
        return ComponentHealth(CREDENTIAL_COMPONENT, HealthStatus.CRITICAL, credential.errors, data)
    if credential.warnings:
        return ComponentHealth(CREDENTIAL_COMPONENT, HealthStatus.WARNING, credential.warnings, data)
    return ComponentHealth(CREDENTIAL_COMPONENT, HealthStatus.HEALTHY, ("Credential appears healthy",), data)


def endpoints_component(outcome: ProbeOutcome[CleanupResult], settings: HealthConfig) -> ComponentHealth:
    cleanup = outcome.value
    if cleanup is None:
        # Endpoint state is unknown, not known-bad
        return ComponentHealth(
            ENDPOINTS_COMPONENT,
            HealthStatus.WARNING,
            (f"Endpoint cleanup failed: {outcome.error}",),
        )

    percentage = invalid_endpoint_percentage(cleanup)
    if percentage > settings.endpoint_critical_percentage:
        status = HealthStatus.CRITICAL
    elif percentage > settings.endpoint_warning_percentage:
        status = HealthStatus.WARNING
    else:
        status = HealthStatus.HEALTHY

    details = [f"Removed {cleanup.removed_count} of {cleanup.scanned} endpoints ({percentage:.1f}% invalid)"]
    details.extend(cleanup.errors)
    return ComponentHealth(
        ENDPOINTS_COMPONENT,
        status,
        tuple(details),
        {
            "removed": cleanup.removed_count,
            "scanned": cleanup.scanned,
            "active": cleanup.scanned - cleanup.removed_count,
            "invalid_percentage": percentage,
        },
    )


def aggregate_status(statuses: Iterable[HealthStatus]) -> HealthStatus:
    """Maximum severity (critical > warning > healthy); healthy when empty."""
    return max(statuses, key=lambda status: status.rank, default=HealthStatus.HEALTHY)


def build_recommendations(
    components: dict[str, ComponentHealth],
    *,
    invalid_percentage: float,
    cleanup_errors: bool,
    settings: HealthConfig,
) -> tuple[str, ...]:
    """Derive operator recommendations, always in the same order."""
    recommendations: list[str] = []

    credential = components.get(CREDENTIAL_COMPONENT)
    if credential is not None and credential.status is HealthStatus.CRITICAL:
        recommendations.append(RENEW_CREDENTIAL_NOW)
    elif credential is not None and credential.status is HealthStatus.WARNING:
        recommendations.append(PLAN_CREDENTIAL_RENEWAL)

    if invalid_percentage > settings.endpoint_critical_percentage:
        recommendations.append(INVESTIGATE_DISTRIBUTION)
    elif invalid_percentage > settings.endpoint_warning_percentage:
        recommendations.append(MONITOR_TOKENS)

    if cleanup_errors:
        recommendations.append(REVIEW_CLEANUP_ERRORS)

    platform = components.get(PLATFORM_COMPONENT)
    if platform is not None and platform.status is HealthStatus.CRITICAL:
        recommendations.append(FIX_PLATFORM)

    return tuple(recommendations)


class HealthMonitor:
    """Runs health probes, aggregates a report and performs recovery.

    Example:
        >>> monitor = HealthMonitor(devices, CredentialProbe(platform, caller, push_config))
        >>> report = await monitor.check()
        >>> if report.overall is not HealthStatus.HEALTHY:
        ...     await monitor.perform_automated_recovery(report)
    """

    def __init__(
        self,
        devices: DeviceLifecycleManager,
        credentials: CredentialProbe,
        *,
        settings: HealthConfig | None = None,
        breaker: CircuitBreaker | None = None,
        metrics: MetricsSink | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._devices: DeviceLifecycleManager = devices
        self._credentials: CredentialProbe = credentials
        self._settings: HealthConfig = settings or HealthConfig()
        self._breaker: CircuitBreaker | None = breaker
        self._metrics: MetricsSink | None = metrics
        self._clock: Callable[[], datetime] = clock

    async def check(self) -> HealthReport:
        """Run all probes concurrently and aggregate the results."""
        token = set_correlation_id(f"health-{uuid.uuid4().hex[:12]}")
        try:
            with timed_operation(self._metrics, "HealthCheck") as timer:
                report = await self._check()
                timer.dimensions["status"] = report.overall.value
            return report
        finally:
            correlation_id_var.reset(token)

    async def _check(self) -> HealthReport:
        started = time.perf_counter()
        logger.info("Starting health check")

        async with asyncio.TaskGroup() as group:
            platform_task = group.create_task(run_probe("platform_validation", self._devices.validate_config))
            credential_task = group.create_task(run_probe("credential_validation", self._credentials.check))
            cleanup_task = group.create_task(run_probe("feedback_processing", self._devices.process_feedback))

        platform_outcome = platform_task.result()
        credential_outcome = credential_task.result()
        cleanup_outcome = cleanup_task.result()

        components = {
            PLATFORM_COMPONENT: platform_component(platform_outcome),
            CREDENTIAL_COMPONENT: credential_component(credential_outcome),
            ENDPOINTS_COMPONENT: endpoints_component(cleanup_outcome, self._settings),
        }
        percentage = invalid_endpoint_percentage(cleanup_outcome.value)
        cleanup_errors = not cleanup_outcome.ok or bool(cleanup_outcome.value and cleanup_outcome.value.errors)
        overall = aggregate_status(component.status for component in components.values())

        metrics: dict[str, float] = {
            f"{outcome.name}_ms": outcome.duration_ms
            for outcome in (platform_outcome, credential_outcome, cleanup_outcome)
        }
        metrics["invalid_endpoint_percentage"] = percentage
        metrics["health_check_ms"] = (time.perf_counter() - started) * 1000

        report = HealthReport(
            overall=overall,
            components=components,
            recommendations=build_recommendations(
                components,
                invalid_percentage=percentage,
                cleanup_errors=cleanup_errors,
                settings=self._settings,
            ),
            metrics=metrics,
            invalid_endpoint_percentage=percentage,
            checked_at=self._clock(),
            circuit_breakers=get_circuit_breaker_states(),
        )

        log_level = logging.INFO if overall is HealthStatus.HEALTHY else logging.WARNING
        logger.log(
            log_level,
            "Health check completed: %s",
            overall.value,
            extra={
                "components": {name: component.status.value for name, component in components.items()},
                "recommendations": len(report.recommendations),
                "duration_ms": round(metrics["health_check_ms"], 1),
            },
        )
        return report

    async def perform_automated_recovery(self, report: HealthReport) -> RecoveryResult:
        """Run the recovery actions the report calls for.

        Each action re-reads live state rather than trusting ``report``, so
        recovery can be retried independently of the check that triggered it.
        """
        actions: list[str] = []
        errors: list[str] = []

        with timed_operation(self._metrics, "AutomatedRecovery") as timer:
            if report.invalid_endpoint_percentage > self._settings.recovery_invalid_percentage:
                try:
                    cleanup = await self._devices.process_feedback()
                except Exception as exc:
                    errors.append(f"Endpoint cleanup failed: {exc}")
                else:
                    actions.append(f"Cleaned up {cleanup.removed_count} additional invalid endpoints")
                    errors.extend(cleanup.errors)

            platform = report.components.get(PLATFORM_COMPONENT)
            if platform is not None and platform.status is not HealthStatus.HEALTHY:
                if self._breaker is not None and self._breaker.state is CircuitState.OPEN:
                    self._breaker.reset()
                    actions.append(f"Reset circuit breaker for {self._breaker.name}")
                if await self._devices.validate_config():
                    actions.append("Platform application validation refreshed successfully")
                else:
                    errors.append("Platform application validation refresh failed")

            if errors:
                timer.mark_failed()

        result = RecoveryResult(actions_performed=tuple(actions), success=not errors, errors=tuple(errors))
        logger.info(
            "Automated recovery completed: success=%s",
            result.success,
            extra={"actions": len(actions), "errors": len(errors)},
        )
        return result
