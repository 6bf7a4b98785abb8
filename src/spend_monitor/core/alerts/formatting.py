"""Per-channel rendering of spend alerts.

One alert becomes one provider message: a JSON object keyed by channel whose
values are the channel renderings. Text channels carry plain text; push
channels carry a JSON document (itself encoded as a string) bounded by the
push platform's payload size limit.
"""

import json
from collections.abc import Sequence
from datetime import datetime
from typing import Final

from spend_monitor.core.errors import PushNotificationError
from spend_monitor.types.models import AlertContext, ChannelKind, ChannelPayload, Severity

__all__ = [
    "DEFAULT_CHANNEL",
    "DEFAULT_PUSH_SIZE_LIMIT",
    "EMAIL_CHANNEL",
    "PUSH_CHANNEL",
    "PUSH_SANDBOX_CHANNEL",
    "SMS_CHANNEL",
    "build_channel_payloads",
    "encode_provider_message",
    "format_alert_message",
    "format_sms_message",
    "format_subject",
    "render_push_payload",
]

DEFAULT_CHANNEL: Final[str] = "default"
EMAIL_CHANNEL: Final[str] = "email"
SMS_CHANNEL: Final[str] = "sms"
PUSH_CHANNEL: Final[str] = "APNS"
PUSH_SANDBOX_CHANNEL: Final[str] = "APNS_SANDBOX"

DEFAULT_PUSH_SIZE_LIMIT: Final[int] = 4096
TRUNCATION_MARKER: Final[str] = "..."

CRITICAL_SOUND: Final[str] = "critical-alert.caf"
DEFAULT_SOUND: Final[str] = "default"


def format_subject(context: AlertContext) -> str:
    return f"Spend Alert: ${context.exceed_amount:.2f} over budget"


def format_alert_message(context: AlertContext, *, generated_at: datetime) -> str:
    """Long-form text used by the default and email channels."""
    lines = [
        f"Spend Alert - {context.severity}",
        "",
        "Your spending has exceeded the configured threshold.",
        "",
        f"Current Spending: ${context.observed_value:.2f}",
        f"Threshold: ${context.threshold:.2f}",
        f"Over Budget: ${context.exceed_amount:.2f} ({context.percentage_over:.1f}%)",
        "",
    ]

    if context.top_services:
        lines.append("Top Cost-Driving Services:")
        lines.extend(
            f"{index}. {service.name}: ${service.cost:.2f} ({service.percentage:.1f}%)"
            for index, service in enumerate(context.top_services, start=1)
        )
        lines.append("")

    lines.extend(
        [
            "Recommendations:",
            "- Review your resources and usage patterns",
            "- Consider scaling down or terminating unused resources",
            "- Check for any unexpected charges or services",
            "",
            f"Alert generated at: {generated_at:%Y-%m-%d %H:%M:%S} UTC",
        ]
    )
    return "\n".join(lines)


def format_sms_message(context: AlertContext) -> str:
    """Single-line text for the SMS channel."""
    top_service = context.top_services[0] if context.top_services else None
    top_text = f" Top service: {top_service.name} (${top_service.cost:.2f})" if top_service else ""
    return (
        f"Spend Alert: ${context.observed_value:.2f} spent "
        f"(over ${context.threshold:.2f} threshold by ${context.exceed_amount:.2f}).{top_text}"
    )


def _push_document(context: AlertContext, alert_id: str, body: str) -> dict[str, object]:
    critical = context.severity is Severity.CRITICAL
    top_service = context.top_services[0].name if context.top_services else "Unknown"
    return {
        "aps": {
            "alert": {
                "title": "Spend Alert",
                "body": body,
                "subtitle": "Critical Budget Exceeded" if critical else "Budget Threshold Exceeded",
            },
            "badge": 1,
            "sound": CRITICAL_SOUND if critical else DEFAULT_SOUND,
            "content-available": 1,
        },
        "customData": {
            "spendAmount": round(context.observed_value, 2),
            "threshold": round(context.threshold, 2),
            "exceedAmount": round(context.exceed_amount, 2),
            "topService": top_service,
            "alertId": alert_id,
        },
    }


def _serialize(document: dict[str, object]) -> bytes:
    return json.dumps(document, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def render_push_payload(
    context: AlertContext,
    alert_id: str,
    *,
    size_limit: int = DEFAULT_PUSH_SIZE_LIMIT,
) -> str:
    """Render the push document as a JSON string within ``size_limit`` bytes.

    When the document is too large the alert body is truncated (never the
    custom-data block) and serialization is retried once.

    Raises:
        PushNotificationError: If the document still does not fit
    """
    top_service = context.top_services[0].name if context.top_services else None
    body = f"${context.observed_value:.2f} spent - ${context.exceed_amount:.2f} over budget"
    if top_service:
        body = f"{body} (top: {top_service})"

    document = _push_document(context, alert_id, body)
    encoded = _serialize(document)
    overflow = len(encoded) - size_limit
    if overflow <= 0:
        return encoded.decode("utf-8")

    body_bytes = body.encode("utf-8")
    keep = len(body_bytes) - overflow - len(TRUNCATION_MARKER)
    if keep > 0:
        truncated = body_bytes[:keep].decode("utf-8", errors="ignore") + TRUNCATION_MARKER
        document = _push_document(context, alert_id, truncated)
        encoded = _serialize(document)
        if len(encoded) <= size_limit:
            return encoded.decode("utf-8")

    msg = f"Push payload exceeds {size_limit} bytes even with a truncated body"
    raise PushNotificationError(msg, context={"size_limit": size_limit, "size": len(encoded)})


def build_channel_payloads(
    context: AlertContext,
    *,
    generated_at: datetime,
    push_payload: str | None = None,
    sandbox: bool = False,
) -> tuple[ChannelPayload, ...]:
    """Render every channel for one provider message.

    The default entry is the fallback for any subscriber without a
    channel-specific entry. Without ``push_payload`` the result only covers
    the bulk-text channels.
    """
    text = format_alert_message(context, generated_at=generated_at)
    payloads = [
        ChannelPayload(DEFAULT_CHANNEL, ChannelKind.BULK_TEXT, text),
        ChannelPayload(EMAIL_CHANNEL, ChannelKind.BULK_TEXT, text),
        ChannelPayload(SMS_CHANNEL, ChannelKind.BULK_TEXT, format_sms_message(context)),
    ]
    if push_payload is not None:
        key = PUSH_SANDBOX_CHANNEL if sandbox else PUSH_CHANNEL
        payloads.append(ChannelPayload(key, ChannelKind.PUSH, push_payload))
    return tuple(payloads)


def encode_provider_message(payloads: Sequence[ChannelPayload]) -> str:
    """Encode channel payloads as a channel-keyed JSON object."""
    return json.dumps({payload.key: payload.body for payload in payloads}, ensure_ascii=False)
