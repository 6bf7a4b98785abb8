"""Property-based tests for breach context invariants."""

from __future__ import annotations

import pytest
from hypothesis import given, strategies as st

from spend_monitor.core.alerts.context import (
    CRITICAL_PERCENTAGE_OVER,
    MAX_TOP_SERVICES,
    build_alert_context,
    detect_breach,
    rank_top_services,
)
from spend_monitor.types.models import Severity

costs = st.floats(min_value=0.0, max_value=1e6, allow_nan=False)
service_costs = st.dictionaries(st.text(min_size=1, max_size=20), costs, max_size=12)


@pytest.mark.property
class TestTopServicesInvariants:
    @given(service_costs)
    def test_at_most_five_sorted_by_cost(self, services: dict[str, float]) -> None:
        """Property: at most five services, highest cost first, all from the input."""
        ranked = rank_top_services(services)

        assert len(ranked) == min(len(services), MAX_TOP_SERVICES)
        assert [s.cost for s in ranked] == sorted((s.cost for s in ranked), reverse=True)
        assert all(services[s.name] == s.cost for s in ranked)

    @given(service_costs)
    def test_no_omitted_service_costs_more(self, services: dict[str, float]) -> None:
        """Property: every omitted service costs no more than the cheapest ranked one."""
        ranked = rank_top_services(services)
        if not ranked:
            return
        kept = {s.name for s in ranked}

        assert all(cost <= ranked[-1].cost for name, cost in services.items() if name not in kept)


@pytest.mark.property
class TestBreachInvariants:
    @given(
        st.floats(min_value=0.01, max_value=1e6),
        st.floats(min_value=0.01, max_value=1e6),
        service_costs,
    )
    def test_context_is_consistent(self, threshold: float, over: float, services: dict[str, float]) -> None:
        """Property: a breach has a positive exceed amount and severity derived from the percentage."""
        observed = threshold + over
        context = build_alert_context(observed, threshold, services)

        assert context.exceed_amount > 0
        assert context.percentage_over == pytest.approx(context.exceed_amount / threshold * 100)
        expected = Severity.CRITICAL if context.percentage_over > CRITICAL_PERCENTAGE_OVER else Severity.WARNING
        assert context.severity is expected

    @given(st.floats(min_value=0.0, max_value=1e6), st.floats(min_value=0.01, max_value=1e6))
    def test_detect_breach_only_above_threshold(self, observed: float, threshold: float) -> None:
        """Property: a context is produced exactly when spend exceeds the threshold."""
        context = detect_breach(observed, threshold)

        assert (context is not None) == (observed > threshold)
