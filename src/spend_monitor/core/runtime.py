"""Component wiring from a validated configuration."""

from dataclasses import dataclass

from spend_monitor.core.alerts.dispatcher import NOTIFICATION_DEPENDENCY, AlertDispatcher
from spend_monitor.core.config import MainConfig
from spend_monitor.core.devices import DeviceLifecycleManager
from spend_monitor.core.errors import ConfigurationError
from spend_monitor.core.health.credentials import CredentialProbe
from spend_monitor.core.health.monitor import HealthMonitor
from spend_monitor.core.resilience import CircuitBreaker, ResilientCaller, RetryExecutor, get_circuit_breaker
from spend_monitor.types.protocols import MetricsSink, NotificationPublisher, PushPlatform

__all__ = ["Runtime", "build_runtime"]


@dataclass(slots=True)
class Runtime:
    """Long-lived components for one process."""

    config: MainConfig
    breaker: CircuitBreaker
    caller: ResilientCaller
    dispatcher: AlertDispatcher
    devices: DeviceLifecycleManager | None
    health: HealthMonitor | None

    def require_devices(self) -> DeviceLifecycleManager:
        if self.devices is None:
            raise ConfigurationError("Push channel is not configured (channels.push is missing)")
        return self.devices

    def require_health(self) -> HealthMonitor:
        if self.health is None:
            raise ConfigurationError("Health checks need a push channel (channels.push is missing)")
        return self.health


def build_runtime(
    config: MainConfig,
    publisher: NotificationPublisher,
    platform: PushPlatform | None,
    *,
    metrics: MetricsSink | None = None,
) -> Runtime:
    """Build the executor, breaker and managers for ``config``.

    The breaker comes from the process-wide registry, so every runtime built
    in one process shares it.
    """
    breaker = get_circuit_breaker(NOTIFICATION_DEPENDENCY, config.circuit_breaker.to_policy())
    executor = RetryExecutor(config.retry.to_policy(), metrics=metrics)
    caller = ResilientCaller(executor, breaker)

    dispatcher = AlertDispatcher(publisher, caller, metrics=metrics, dry_run=config.application.dry_run)

    devices: DeviceLifecycleManager | None = None
    health: HealthMonitor | None = None
    push = config.channels.push
    if push is not None and platform is not None:
        devices = DeviceLifecycleManager(platform, caller, metrics=metrics)
        health = HealthMonitor(
            devices,
            CredentialProbe(platform, caller, push),
            settings=config.health,
            breaker=breaker,
            metrics=metrics,
        )

    return Runtime(
        config=config,
        breaker=breaker,
        caller=caller,
        dispatcher=dispatcher,
        devices=devices,
        health=health,
    )
