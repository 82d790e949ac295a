"""Prometheus metrics for the Kube User Operator."""

from __future__ import annotations

from typing import Protocol

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "kube_user_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "kube_user_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)

error_total = Counter(
    "kube_user_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

resource_status_total = Counter(
    "kube_user_operator_resource_status_total",
    "Resource status transitions",
    ["kind", "status"],
)

# Generated object metrics
applied_objects_total = Counter(
    "kube_user_operator_applied_objects_total",
    "Total number of generated objects written by the apply engine",
    ["kind", "operation"],
)

# Mirror metrics
mirror_operations_total = Counter(
    "kube_user_operator_mirror_operations_total",
    "Total number of external secret mirror operations",
    ["operation", "result"],
)

# API call metrics
api_call_total = Counter(
    "kube_user_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "kube_user_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

rate_limit_hits_total = Counter(
    "kube_user_operator_rate_limit_hits_total",
    "Total number of rate limit hits",
    ["api_type"],
)


class ReconcileObserver(Protocol):
    """Sink for reconcile outcomes, injected into handlers and engines."""

    def reconcile(self, kind: str, result: str) -> None:
        ...

    def duration(self, kind: str, seconds: float) -> None:
        ...

    def error(self, kind: str, error_type: str) -> None:
        ...

    def resource_status(self, kind: str, ready: bool) -> None:
        ...

    def applied(self, kind: str, operation: str) -> None:
        ...

    def mirror(self, operation: str, result: str) -> None:
        ...


class PrometheusObserver:
    """ReconcileObserver backed by the module level Prometheus collectors."""

    def reconcile(self, kind: str, result: str) -> None:
        reconcile_total.labels(kind=kind, result=result).inc()

    def duration(self, kind: str, seconds: float) -> None:
        reconcile_duration_seconds.labels(kind=kind).observe(seconds)

    def error(self, kind: str, error_type: str) -> None:
        error_total.labels(kind=kind, error_type=error_type).inc()

    def resource_status(self, kind: str, ready: bool) -> None:
        resource_status_total.labels(kind=kind, status="ready" if ready else "not_ready").inc()

    def applied(self, kind: str, operation: str) -> None:
        applied_objects_total.labels(kind=kind, operation=operation).inc()

    def mirror(self, operation: str, result: str) -> None:
        mirror_operations_total.labels(operation=operation, result=result).inc()


class NullObserver:
    """ReconcileObserver that discards everything."""

    def reconcile(self, kind: str, result: str) -> None:
        pass

    def duration(self, kind: str, seconds: float) -> None:
        pass

    def error(self, kind: str, error_type: str) -> None:
        pass

    def resource_status(self, kind: str, ready: bool) -> None:
        pass

    def applied(self, kind: str, operation: str) -> None:
        pass

    def mirror(self, operation: str, result: str) -> None:
        pass
