"""Multi-channel alert dispatch with push-free fallback.

One logical alert is published once to the notification topic with
channel-keyed sub-payloads. When the provider rejects the message because of
its push content, the alert is re-published without push channels and the
result is reported as degraded. Any other failure propagates.
"""

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Final

from spend_monitor.core.alerts.context import build_alert_context
from spend_monitor.core.alerts.formatting import (
    build_channel_payloads,
    encode_provider_message,
    format_subject,
    render_push_payload,
)
from spend_monitor.core.config import ChannelConfig
from spend_monitor.core.errors import PushNotificationError, is_push_rejection
from spend_monitor.core.resilience import ResilientCaller
from spend_monitor.types.models import AlertContext, ChannelKind, ChannelPayload, DeliveryResult, DeliveryStatus
from spend_monitor.types.protocols import MetricsSink, NotificationPublisher
from spend_monitor.utils.logging import correlation_id_var, set_correlation_id
from spend_monitor.utils.metrics import timed_operation

__all__ = ["NOTIFICATION_DEPENDENCY", "AlertDispatcher", "new_alert_id"]

logger = logging.getLogger(__name__)

NOTIFICATION_DEPENDENCY: Final[str] = "notification-provider"

# Fixed sample breach used by test alerts
_TEST_SPEND: Final[float] = 15.50
_TEST_THRESHOLD: Final[float] = 10.00
_TEST_SERVICES: Final[dict[str, float]] = {
    "Compute": 8.50,
    "Storage": 4.00,
    "Functions": 2.00,
    "Networking": 1.00,
}


def new_alert_id() -> str:
    return f"spend-alert-{uuid.uuid4().hex[:12]}"


class AlertDispatcher:
    """Sends spend alerts to every configured channel.

    Example:
        >>> dispatcher = AlertDispatcher(publisher, caller)
        >>> result = await dispatcher.dispatch(context, config.channels)
        >>> result.status
        <DeliveryStatus.DELIVERED: 'delivered'>
    """

    def __init__(
        self,
        publisher: NotificationPublisher,
        caller: ResilientCaller,
        *,
        metrics: MetricsSink | None = None,
        dry_run: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        alert_id_factory: Callable[[], str] = new_alert_id,
    ) -> None:
        self._publisher: NotificationPublisher = publisher
        self._caller: ResilientCaller = caller
        self._metrics: MetricsSink | None = metrics
        self._dry_run: bool = dry_run
        self._clock: Callable[[], datetime] = clock
        self._alert_id_factory: Callable[[], str] = alert_id_factory

    async def dispatch(self, context: AlertContext, channels: ChannelConfig) -> DeliveryResult:
        """Deliver one alert.

        Args:
            context: Breach to report
            channels: Topic and optional push settings

        Returns:
            Delivered, degraded (push dropped) or dry-run result

        Raises:
            SpendMonitorError: If the provider is unavailable or rejects the
                message for reasons unrelated to push content. A failed
                fallback re-raises the original error.
        """
        alert_id = self._alert_id_factory()
        token = set_correlation_id(alert_id)
        try:
            with timed_operation(self._metrics, "DispatchAlert") as timer:
                result = await self._dispatch(alert_id, context, channels)
                timer.dimensions["status"] = result.status.value
            return result
        finally:
            correlation_id_var.reset(token)

    async def send_test_alert(self, channels: ChannelConfig) -> DeliveryResult:
        """Dispatch a fixed sample breach to verify delivery end to end."""
        context = build_alert_context(_TEST_SPEND, _TEST_THRESHOLD, _TEST_SERVICES)
        logger.info("Sending test alert", extra={"topic": channels.topic_arn, "push": channels.push is not None})
        return await self.dispatch(context, channels)

    async def _dispatch(self, alert_id: str, context: AlertContext, channels: ChannelConfig) -> DeliveryResult:
        started = self._clock()
        fallback_reason: str | None = None
        push_payload: str | None = None

        if channels.push is not None:
            try:
                push_payload = render_push_payload(
                    context,
                    alert_id,
                    size_limit=channels.push.payload_size_limit,
                )
            except PushNotificationError as exc:
                fallback_reason = str(exc)
                logger.warning(
                    "Push payload could not be rendered, sending without push: %s",
                    exc,
                    extra={"alert_id": alert_id},
                )

        payloads = build_channel_payloads(
            context,
            generated_at=started,
            push_payload=push_payload,
            sandbox=channels.push.sandbox if channels.push is not None else False,
        )
        attempted = tuple(payload.key for payload in payloads)
        subject = format_subject(context)

        if self._dry_run:
            logger.info(
                "Dry run: alert not published",
                extra={"alert_id": alert_id, "channels": list(attempted), "subject": subject},
            )
            return DeliveryResult(
                alert_id=alert_id,
                status=DeliveryStatus.DRY_RUN,
                channels_attempted=attempted,
                channels_delivered=(),
                message_id=None,
                delivery_time_ms=self._elapsed_ms(started),
                fallback_reason=fallback_reason,
            )

        delivered = payloads
        try:
            message_id = await self._publish(channels.topic_arn, payloads, subject)
        except Exception as exc:
            if push_payload is None or not is_push_rejection(exc, channels.push_rejection_codes):
                logger.error(
                    "Alert delivery failed: %s",
                    exc,
                    extra={"alert_id": alert_id, "channels": list(attempted), "error_type": type(exc).__name__},
                )
                raise

            fallback_reason = f"{type(exc).__name__}: {exc}"
            delivered = tuple(payload for payload in payloads if payload.kind is ChannelKind.BULK_TEXT)
            logger.warning(
                "Push channel rejected alert, retrying without push: %s",
                exc,
                extra={"alert_id": alert_id, "channels": [payload.key for payload in delivered]},
            )
            try:
                message_id = await self._publish(channels.topic_arn, delivered, subject)
            except Exception as fallback_exc:
                exc.add_note(f"Push-free fallback also failed: {type(fallback_exc).__name__}: {fallback_exc}")
                logger.error(
                    "Push-free fallback failed: %s",
                    fallback_exc,
                    extra={"alert_id": alert_id, "error_type": type(fallback_exc).__name__},
                )
                raise exc from None

        status = DeliveryStatus.DEGRADED if fallback_reason is not None else DeliveryStatus.DELIVERED
        result = DeliveryResult(
            alert_id=alert_id,
            status=status,
            channels_attempted=attempted,
            channels_delivered=tuple(payload.key for payload in delivered),
            message_id=message_id,
            delivery_time_ms=self._elapsed_ms(started),
            fallback_reason=fallback_reason,
        )
        logger.info(
            "Spend alert %s (%s)",
            status.value,
            context.severity,
            extra={
                "alert_id": alert_id,
                "message_id": message_id,
                "channels": list(result.channels_delivered),
                "exceed_amount": round(context.exceed_amount, 2),
            },
        )
        return result

    async def _publish(self, topic: str, payloads: Sequence[ChannelPayload], subject: str) -> str:
        message = encode_provider_message(payloads)
        return await self._caller.call(
            lambda: self._publisher.publish(topic, message, subject=subject, structured=True),
            "PublishAlert",
        )

    def _elapsed_ms(self, started: datetime) -> float:
        return (self._clock() - started).total_seconds() * 1000
