from __future__ import annotations

from dataclasses import dataclass, field

from prometheus_client import Counter, Gauge, Info


@dataclass(frozen=True)
class OperatorMetrics:
    """Prometheus metrics exported by the operator on ``/metrics``.

    Reconcile counters carry a ``kind`` label so operators can tell which
    resource family is churning, and driver counters carry a ``driver`` label
    so a stuck family is visible without reading logs.
    """

    reconcile_actions_total: Counter = field(
        default_factory=lambda: Counter(
            "ingress_operator_reconcile_actions_total",
            "Total state-changing reconcile actions applied to managed resources",
            ["kind", "action"],
        )
    )
    reconcile_errors_total: Counter = field(
        default_factory=lambda: Counter(
            "ingress_operator_reconcile_errors_total",
            "Total reconcile ticks that ended in an error",
            ["driver"],
        )
    )
    driver_ticks_total: Counter = field(
        default_factory=lambda: Counter(
            "ingress_operator_driver_ticks_total",
            "Total periodic driver ticks by outcome",
            ["driver", "result"],
        )
    )
    conflict_retries_total: Counter = field(
        default_factory=lambda: Counter(
            "ingress_operator_conflict_retries_total",
            "Total writes retried after an optimistic-concurrency conflict",
        )
    )
    log_level: Gauge = field(
        default_factory=lambda: Gauge(
            "ingress_operator_log_level",
            "Numeric logging threshold currently applied to the operator",
        )
    )
    default_placement_writes_total: Counter = field(
        default_factory=lambda: Counter(
            "ingress_operator_default_placement_writes_total",
            "Total default placement backfills written to the ingress config status",
            ["placement"],
        )
    )
    build_info: Info = field(
        default_factory=lambda: Info(
            "ingress_operator",
            "Build information for the operator",
        )
    )


METRICS = OperatorMetrics()
