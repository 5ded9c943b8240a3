"""
Human Supervision Protocol (HSP) - Engine

The engine gates agent actions:

    process(action)            -> screened, classified, auto-approved or parked
    process_approval(response) -> a parked action resolved by a signed human decision
    execute(result)            -> an APPROVED action recorded as executed

Pipeline order inside process(): cascade pre-check, loop guard, classifier.
A cascade ABORT or a tripped loop guard is not an error; the action is
parked as CRITICAL so a human decides.

Concurrency: one engine may be shared by many threads. The audit ledger
serializes its own appends; the pending set and interaction history are
guarded by the engine lock. Classification, risk analysis and approval
signature checks run outside it. Lock order is always engine lock, then
ledger lock.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from . import metrics
from .cascade import analyze
from .classifier import classify
from .clock import Clock, IdSource, SystemClock, UuidIdSource
from .config import CASCADE_WINDOW_SECONDS, ENGINE_ACTOR_ID, LOOP_WINDOW_SECONDS, HSPConfig
from .errors import (
    HSPError,
    hsp_error,
    HSP_E_INVALID_SIGNATURE,
    HSP_E_INVALID_STATE,
    HSP_E_SESSION_NOT_FOUND,
)
from .ledger import AuditLedger
from .loop_guard import check_loop, is_agent_target
from .signing import SignatureVerifier
from .types import (
    ActionStatus,
    AgentAction,
    AgentInteraction,
    ApprovalResponse,
    AuditEntry,
    AuditEventType,
    CascadeAnalysis,
    CriticalityLevel,
    ProcessingResult,
    Recommendation,
)

logger = logging.getLogger("hsp_core")


class HSPEngine:
    """Supervision engine. Owns the ledger, pending set and interaction history."""

    def __init__(
        self,
        config: Optional[HSPConfig] = None,
        *,
        signature_verifier: SignatureVerifier,
        clock: Optional[Clock] = None,
        ids: Optional[IdSource] = None,
        ledger: Optional[AuditLedger] = None,
    ):
        if signature_verifier is None:
            raise TypeError("signature_verifier is required")
        self.config = config or HSPConfig()
        self.signature_verifier = signature_verifier
        self.clock = clock or SystemClock()
        self.ids = ids or UuidIdSource()
        self.ledger = ledger or AuditLedger(clock=self.clock, ids=self.ids)

        self._lock = threading.Lock()
        self._pending: Dict[str, ProcessingResult] = {}
        self._interactions: List[AgentInteraction] = []

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def process(self, action: AgentAction) -> ProcessingResult:
        """Screen, classify and (if needed) park an agent action."""
        session_id = self.ids.new_id()

        self.ledger.append(
            session_id,
            AuditEventType.REQUEST,
            action.agent_id,
            {"action": action.to_dict()},
        )

        if self.config.cascade_detection:
            cascade = self.analyze_cascade_risk()
            if cascade.recommendation is Recommendation.ABORT:
                logger.warning(
                    "Cascade risk for action %s (session %s): %s, severity %.2f",
                    action.id, session_id, cascade.details, cascade.severity,
                )
                metrics.record_guard_trip("cascade")
                return self._park(
                    action,
                    session_id,
                    f"Cascade risk detected: {cascade.details}",
                    trigger="cascade",
                    extra={"severity": cascade.severity, "affected_agents": list(cascade.affected_agents)},
                )

        with self._lock:
            interactions = tuple(self._interactions)
        loop = check_loop(
            action,
            interactions,
            self.clock.now(),
            LOOP_WINDOW_SECONDS,
            self.config.max_agent_loops,
        )
        if loop.exceeded:
            logger.warning(
                "Agent loop limit exceeded for %s (session %s): %d interactions",
                action.agent_id, session_id, loop.depth,
            )
            metrics.record_guard_trip("loop")
            return self._park(
                action,
                session_id,
                f"Agent loop limit exceeded: {loop.depth} interactions",
                trigger="loop",
                extra={"depth": loop.depth},
            )

        classification = classify(action, self.config.escalation_rules, self.config.default_level)
        logger.debug(
            "Action %s classified %s: %s",
            action.id, classification.level.value, classification.reason,
        )
        self.ledger.append(
            session_id,
            AuditEventType.CLASSIFICATION,
            ENGINE_ACTOR_ID,
            {"level": classification.level.value, "reason": classification.reason},
        )

        if not classification.level.requires_approval:
            result = self._build_result(action, session_id, classification.level, ActionStatus.APPROVED, classification.reason)
            metrics.record_processed(result.criticality_level.value, result.status.value)
            return result

        result = self._build_result(
            action, session_id, classification.level, ActionStatus.AWAITING_APPROVAL, classification.reason
        )
        self._register_pending(result, {"level": classification.level.value})
        return result

    def process_approval(self, response: ApprovalResponse) -> ProcessingResult:
        """Resolve a parked action with a signed human decision.

        Raises SessionNotFoundError if nothing is pending for the session and
        InvalidSignatureError if the verifier rejects the response; in the
        latter case the action stays pending.

        The verifier runs outside the engine lock. If the session is resolved
        or expired while it runs, the response is treated as not found.
        """
        pending = self.get_pending(response.session_id)
        if pending is None:
            raise self._session_not_found(response.session_id)

        if not self.signature_verifier.verify(response):
            metrics.record_approval_response("invalid_signature")
            logger.warning(
                "Rejected approval signature from %s for session %s",
                response.approver_id, response.session_id,
            )
            raise hsp_error(
                HSP_E_INVALID_SIGNATURE,
                "Invalid approval signature",
                retryable=True,
                session_id=response.session_id,
                approver_id=response.approver_id,
            )

        with self._lock:
            if self._pending.get(response.session_id) is not pending:
                raise self._session_not_found(response.session_id)

            self.ledger.append(
                response.session_id,
                AuditEventType.APPROVAL_RESPONSE,
                response.approver_id,
                {"approved": response.approved, "comment": response.comment},
            )
            result = pending.with_status(ActionStatus.APPROVED if response.approved else ActionStatus.REJECTED)
            del self._pending[response.session_id]
            pending_count = len(self._pending)

        metrics.record_approval_response("approved" if response.approved else "rejected")
        metrics.set_pending_approvals(pending_count)
        logger.info(
            "Session %s %s by %s",
            response.session_id, result.status.value.lower(), response.approver_id,
        )
        return result

    def execute(self, result: ProcessingResult) -> None:
        """Record execution of an APPROVED action.

        Double-execution of the same result is not prevented here; callers
        that need it track consumption themselves.
        """
        if result.status is not ActionStatus.APPROVED:
            raise hsp_error(
                HSP_E_INVALID_STATE,
                f"Cannot execute action with status: {result.status.value}",
                session_id=result.session_id,
                status=result.status.value,
            )

        action = result.action
        with self._lock:
            self.ledger.append(
                result.session_id,
                AuditEventType.EXECUTION,
                action.agent_id,
                {"action": action.to_dict()},
            )
            if is_agent_target(action.target, self.config.agent_target_prefix):
                depth = sum(1 for i in self._interactions if i.session_id == result.session_id) + 1
                self._interactions.append(
                    AgentInteraction(
                        from_agent_id=action.agent_id,
                        to_agent_id=action.target,
                        timestamp=self.clock.now(),
                        session_id=result.session_id,
                        chain_depth=depth,
                    )
                )
        metrics.record_execution()

    # ------------------------------------------------------------------
    # Supplementary operations
    # ------------------------------------------------------------------

    def report_error(self, session_id: str, actor_id: str, error: str, **details: Any) -> AuditEntry:
        """Record a failure. ERROR entries feed the cascade analyzer."""
        payload: Dict[str, Any] = {"error": str(error)}
        payload.update(details)
        logger.info("Error reported by %s for session %s: %s", actor_id, session_id, error)
        return self.ledger.append(session_id, AuditEventType.ERROR, actor_id, payload)

    def analyze_cascade_risk(self) -> CascadeAnalysis:
        return analyze(self.ledger.entries(), self.clock.now(), CASCADE_WINDOW_SECONDS)

    def expire_pending(self, now: Optional[datetime] = None) -> List[ProcessingResult]:
        """Time out parked actions whose approval window has elapsed.

        Nothing schedules this; a host calls it from its own timer.
        """
        now = now or self.clock.now()
        timeout = self.config.approval_timeout
        expired: List[ProcessingResult] = []
        with self._lock:
            for session_id, pending in list(self._pending.items()):
                if pending.processed_at + timeout > now:
                    continue
                self.ledger.append(
                    session_id,
                    AuditEventType.APPROVAL_RESPONSE,
                    ENGINE_ACTOR_ID,
                    {"approved": False, "timeout": True, "comment": None},
                )
                del self._pending[session_id]
                expired.append(pending.with_status(ActionStatus.TIMEOUT))
            pending_count = len(self._pending)

        for result in expired:
            metrics.record_approval_response("timeout")
            logger.warning("Approval for session %s timed out", result.session_id)
        if expired:
            metrics.set_pending_approvals(pending_count)
        return expired

    def get_pending(self, session_id: str) -> Optional[ProcessingResult]:
        with self._lock:
            return self._pending.get(session_id)

    def pending_approvals(self) -> Tuple[ProcessingResult, ...]:
        with self._lock:
            return tuple(self._pending.values())

    def interactions(self) -> Tuple[AgentInteraction, ...]:
        with self._lock:
            return tuple(self._interactions)

    def audit_log(self) -> Tuple[AuditEntry, ...]:
        """Snapshot of the audit ledger; it does not update live."""
        return self.ledger.entries()

    def verify_audit_integrity(self) -> bool:
        return self.ledger.verify_integrity()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_result(
        self,
        action: AgentAction,
        session_id: str,
        level: CriticalityLevel,
        status: ActionStatus,
        reason: str,
    ) -> ProcessingResult:
        return ProcessingResult(
            action=action,
            criticality_level=level,
            status=status,
            classification_reason=reason,
            session_id=session_id,
            processed_at=self.clock.now(),
        )

    @staticmethod
    def _session_not_found(session_id: str) -> HSPError:
        return hsp_error(
            HSP_E_SESSION_NOT_FOUND,
            f"No pending approval found for session: {session_id}",
            session_id=session_id,
        )

    def _park(
        self,
        action: AgentAction,
        session_id: str,
        reason: str,
        *,
        trigger: str,
        extra: Dict[str, Any],
    ) -> ProcessingResult:
        result = self._build_result(action, session_id, CriticalityLevel.CRITICAL, ActionStatus.AWAITING_APPROVAL, reason)
        details = {"level": CriticalityLevel.CRITICAL.value, "trigger": trigger, "reason": reason}
        details.update(extra)
        self._register_pending(result, details)
        return result

    def _register_pending(self, result: ProcessingResult, details: Dict[str, Any]) -> None:
        request_details = dict(details)
        request_details["timeout"] = self.config.approval_timeout_seconds
        with self._lock:
            self.ledger.append(
                result.session_id,
                AuditEventType.APPROVAL_REQUEST,
                ENGINE_ACTOR_ID,
                request_details,
            )
            self._pending[result.session_id] = result
            pending_count = len(self._pending)

        metrics.record_processed(result.criticality_level.value, result.status.value)
        metrics.set_pending_approvals(pending_count)
        logger.info(
            "Action %s parked for approval (session %s, %s): %s",
            result.action.id, result.session_id, result.criticality_level.value, result.classification_reason,
        )
