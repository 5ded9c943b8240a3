"""Prometheus metrics for the HSP engine.

Metrics goals:
- low-cardinality labels (never agent ids, session ids or action types)
- visibility into classification outcomes, approvals, guard trips and
  ledger health

Metrics live in the default prometheus_client registry; a host process
exposes them however it likes (generate_latest(), an HTTP exporter, ...).
"""
from __future__ import annotations

from prometheus_client import Counter, Gauge, generate_latest

ACTIONS_PROCESSED_TOTAL = Counter(
    "hsp_actions_processed_total",
    "Total actions processed by the supervision engine",
    ["level", "status"],
)
APPROVAL_RESPONSES_TOTAL = Counter(
    "hsp_approval_responses_total",
    "Total approval responses handled",
    ["outcome"],
)
EXECUTIONS_TOTAL = Counter(
    "hsp_executions_total",
    "Total approved actions executed",
)
GUARD_TRIPS_TOTAL = Counter(
    "hsp_guard_trips_total",
    "Total short-circuits by the cascade analyzer or loop guard",
    ["guard"],
)
PENDING_APPROVALS = Gauge(
    "hsp_pending_approvals",
    "Actions currently awaiting human approval",
)
AUDIT_ENTRIES_TOTAL = Counter(
    "hsp_audit_entries_total",
    "Total audit ledger entries appended",
    ["event_type"],
)
AUDIT_INTEGRITY_FAILURES_TOTAL = Counter(
    "hsp_audit_integrity_failures_total",
    "Total audit integrity checks that failed",
)


def record_processed(level: str, status: str) -> None:
    ACTIONS_PROCESSED_TOTAL.labels(level=str(level), status=str(status)).inc()


def record_approval_response(outcome: str) -> None:
    APPROVAL_RESPONSES_TOTAL.labels(outcome=str(outcome)).inc()


def record_execution() -> None:
    EXECUTIONS_TOTAL.inc()


def record_guard_trip(guard: str) -> None:
    GUARD_TRIPS_TOTAL.labels(guard=str(guard)).inc()


def set_pending_approvals(count: int) -> None:
    PENDING_APPROVALS.set(float(count))


def record_audit_entry(event_type: str) -> None:
    AUDIT_ENTRIES_TOTAL.labels(event_type=str(event_type)).inc()


def record_integrity_failure() -> None:
    AUDIT_INTEGRITY_FAILURES_TOTAL.inc()


def render_latest() -> bytes:
    return generate_latest()
