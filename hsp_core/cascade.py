"""Cascade failure risk analysis.

A burst of ERROR entries in the audit ledger is read as a sign that
failures are compounding. The analyzer is a pure function of the entries it
is given; it keeps no state between calls.

    severity       = min(errors / 10, 1)
    risk_detected  = severity > 0.5
    recommendation = ABORT if severity > 0.8, PAUSE if > 0.5, else PROCEED
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List

from .config import CASCADE_WINDOW_SECONDS
from .types import AuditEntry, AuditEventType, CascadeAnalysis, Recommendation

SEVERITY_SATURATION = 10
PAUSE_THRESHOLD = 0.5
ABORT_THRESHOLD = 0.8


def recommend(severity: float) -> Recommendation:
    if severity > ABORT_THRESHOLD:
        return Recommendation.ABORT
    if severity > PAUSE_THRESHOLD:
        return Recommendation.PAUSE
    return Recommendation.PROCEED


def analyze(
    entries: Iterable[AuditEntry],
    now: datetime,
    window_seconds: float = CASCADE_WINDOW_SECONDS,
) -> CascadeAnalysis:
    window = timedelta(seconds=window_seconds)
    recent_failures = [
        e for e in entries
        if e.event_type is AuditEventType.ERROR and now - e.timestamp < window
    ]

    count = len(recent_failures)
    severity = min(count / SEVERITY_SATURATION, 1.0)

    affected: List[str] = []
    for e in recent_failures:
        if e.actor_id not in affected:
            affected.append(e.actor_id)

    minutes = window_seconds / 60.0
    return CascadeAnalysis(
        risk_detected=severity > PAUSE_THRESHOLD,
        severity=severity,
        affected_agents=tuple(affected),
        recommendation=recommend(severity),
        details=f"{count} failures in last {minutes:g} minutes",
        error_count=count,
        window_seconds=window_seconds,
    )
