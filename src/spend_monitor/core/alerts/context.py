"""Breach detection and alert context construction."""

from collections.abc import Mapping
from typing import Final

from spend_monitor.core.errors import ValidationError
from spend_monitor.types.models import AlertContext, ServiceCost, Severity

__all__ = [
    "CRITICAL_PERCENTAGE_OVER",
    "MAX_TOP_SERVICES",
    "build_alert_context",
    "classify_severity",
    "detect_breach",
    "rank_top_services",
]

MAX_TOP_SERVICES: Final[int] = 5
CRITICAL_PERCENTAGE_OVER: Final[float] = 50.0


def rank_top_services(
    service_costs: Mapping[str, float],
    *,
    total: float | None = None,
    limit: int = MAX_TOP_SERVICES,
) -> tuple[ServiceCost, ...]:
    """Rank services by cost, highest first.

    Ties are broken by name ascending so the order is deterministic.

    Args:
        service_costs: Cost per service name
        total: Denominator for percentages (defaults to the sum of costs)
        limit: Maximum number of services returned

    Returns:
        At most ``limit`` services

    Examples:
        >>> [s.name for s in rank_top_services({"A": 10, "B": 30, "C": 5, "D": 20, "E": 1, "F": 50})]
        ['F', 'B', 'D', 'A', 'C']
    """
    denominator = sum(service_costs.values()) if total is None else total
    ranked = sorted(service_costs.items(), key=lambda item: (-item[1], item[0]))[:limit]
    return tuple(
        ServiceCost(
            name=name,
            cost=cost,
            percentage=(cost / denominator * 100) if denominator > 0 else 0.0,
        )
        for name, cost in ranked
    )


def classify_severity(percentage_over: float) -> Severity:
    """CRITICAL strictly above 50% over threshold, WARNING otherwise."""
    return Severity.CRITICAL if percentage_over > CRITICAL_PERCENTAGE_OVER else Severity.WARNING


def build_alert_context(
    observed_value: float,
    threshold: float,
    service_costs: Mapping[str, float] | None = None,
) -> AlertContext:
    """Build the context of a breach.

    Raises:
        ValidationError: If the threshold is not positive or is not exceeded
    """
    if threshold <= 0:
        raise ValidationError("Threshold must be positive", context={"threshold": threshold})
    exceed_amount = observed_value - threshold
    if exceed_amount <= 0:
        msg = f"Observed value {observed_value:.2f} does not exceed threshold {threshold:.2f}"
        raise ValidationError(msg, context={"threshold": threshold, "observed_value": observed_value})

    percentage_over = exceed_amount / threshold * 100
    return AlertContext(
        threshold=threshold,
        observed_value=observed_value,
        exceed_amount=exceed_amount,
        percentage_over=percentage_over,
        top_services=rank_top_services(service_costs or {}, total=observed_value),
        severity=classify_severity(percentage_over),
    )


def detect_breach(
    observed_value: float,
    threshold: float,
    service_costs: Mapping[str, float] | None = None,
) -> AlertContext | None:
    """Return an alert context when spend exceeds the threshold, else None."""
    if observed_value <= threshold:
        return None
    return build_alert_context(observed_value, threshold, service_costs)
