"""Spend alert construction, rendering and dispatch."""

from spend_monitor.core.alerts.context import build_alert_context, detect_breach, rank_top_services
from spend_monitor.core.alerts.dispatcher import NOTIFICATION_DEPENDENCY, AlertDispatcher

__all__ = [
    "NOTIFICATION_DEPENDENCY",
    "AlertDispatcher",
    "build_alert_context",
    "detect_breach",
    "rank_top_services",
]
