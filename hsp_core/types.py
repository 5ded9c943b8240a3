"""
Human Supervision Protocol (HSP) - Core Types

Value objects shared by the classifier, the risk detectors, the audit ledger
and the approval engine. Everything here is immutable once built; state
changes produce new objects (see ProcessingResult.with_status).
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from .crypto import safe_hash_encode


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def _jsonable(value: Any) -> Any:
    """Render free-form metadata the way JSON.stringify would.

    Dates become ISO strings and enums their values. Anything else is left
    for canonical JSON to accept or refuse.
    """
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return _jsonable(value.value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def parse_iso_utc(ts: Any) -> datetime:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if isinstance(ts, datetime):
        dt = ts
    else:
        s = str(ts).strip()
        # Accept RFC 3339 'Z' suffix.
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class CriticalityLevel(Enum):
    """Risk tier of an action, ordered by increasing required oversight."""
    LOW = "LOW"            # routine, auto-approved with logging
    MEDIUM = "MEDIUM"      # standard, auto-approved
    HIGH = "HIGH"          # significant, human confirmation required
    CRITICAL = "CRITICAL"  # critical, human confirmation required

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    @property
    def requires_approval(self) -> bool:
        return self.rank >= _LEVEL_RANK[CriticalityLevel.HIGH]

    def __lt__(self, other: Any) -> bool:
        if not isinstance(other, CriticalityLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: Any) -> bool:
        if not isinstance(other, CriticalityLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: Any) -> bool:
        if not isinstance(other, CriticalityLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: Any) -> bool:
        if not isinstance(other, CriticalityLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_RANK = {
    CriticalityLevel.LOW: 0,
    CriticalityLevel.MEDIUM: 1,
    CriticalityLevel.HIGH: 2,
    CriticalityLevel.CRITICAL: 3,
}


class ActionStatus(Enum):
    PENDING = "PENDING"
    AWAITING_APPROVAL = "AWAITING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"


class AuditEventType(Enum):
    REQUEST = "REQUEST"
    CLASSIFICATION = "CLASSIFICATION"
    APPROVAL_REQUEST = "APPROVAL_REQUEST"
    APPROVAL_RESPONSE = "APPROVAL_RESPONSE"
    EXECUTION = "EXECUTION"
    ERROR = "ERROR"


class Recommendation(Enum):
    PROCEED = "PROCEED"
    PAUSE = "PAUSE"
    ABORT = "ABORT"


@dataclass(frozen=True)
class AgentAction:
    """An action proposed by an agent. Immutable once submitted."""
    id: str
    agent_id: str
    type: str
    description: str
    requested_at: datetime
    value: Optional[float] = None
    currency: Optional[str] = None
    target: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    deadline: Optional[datetime] = None

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise ValueError("ACTION_VALIDATION_FAILED: id cannot be empty")
        if not self.agent_id or not str(self.agent_id).strip():
            raise ValueError("ACTION_VALIDATION_FAILED: agent_id cannot be empty")
        if self.metadata is not None:
            # Detach from the caller's dict so later edits cannot reach us.
            object.__setattr__(self, "metadata", dict(self.metadata))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "type": self.type,
            "description": self.description,
            "value": self.value,
            "currency": self.currency,
            "target": self.target,
            "metadata": _jsonable(self.metadata) if self.metadata is not None else None,
            "requested_at": _iso(self.requested_at),
            "deadline": _iso(self.deadline),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentAction":
        if not data.get("requested_at"):
            raise ValueError("ACTION_VALIDATION_FAILED: requested_at is required")
        value = data.get("value")
        return cls(
            id=str(data.get("id", "")),
            agent_id=str(data.get("agent_id", "")),
            type=str(data.get("type", "")),
            description=str(data.get("description", "")),
            requested_at=parse_iso_utc(data["requested_at"]),
            value=float(value) if value is not None else None,
            currency=data.get("currency"),
            target=data.get("target"),
            metadata=data.get("metadata"),
            deadline=parse_iso_utc(data["deadline"]) if data.get("deadline") else None,
        )


@dataclass(frozen=True)
class EscalationRule:
    """Caller-supplied predicate plus the level/reason it assigns on match."""
    condition: Callable[[AgentAction], bool]
    level: CriticalityLevel
    reason: Optional[str] = None

    def matches(self, action: AgentAction) -> bool:
        return bool(self.condition(action))


@dataclass(frozen=True)
class Classification:
    level: CriticalityLevel
    reason: str


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of one process() call.

    Only the status ever changes, and only by building a new result.
    """
    action: AgentAction
    criticality_level: CriticalityLevel
    status: ActionStatus
    classification_reason: str
    session_id: str
    processed_at: datetime

    @property
    def requires_approval(self) -> bool:
        return self.criticality_level.requires_approval

    def with_status(self, status: ActionStatus) -> "ProcessingResult":
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.to_dict(),
            "criticality_level": self.criticality_level.value,
            "requires_approval": self.requires_approval,
            "status": self.status.value,
            "classification_reason": self.classification_reason,
            "session_id": self.session_id,
            "processed_at": _iso(self.processed_at),
        }


@dataclass(frozen=True)
class ApprovalResponse:
    """A human decision on a parked action.

    The signature is base64 of an Ed25519 signature by the approver's key over
    signature_payload(). The engine treats it as opaque and hands it to the
    configured SignatureVerifier.
    """
    session_id: str
    approved: bool
    approver_id: str
    signature: str
    approved_at: datetime
    comment: Optional[str] = None

    def signature_payload(self) -> bytes:
        return safe_hash_encode([
            "HSP_APPROVAL_V1",
            self.session_id,
            "approve" if self.approved else "reject",
            self.approver_id,
            self.comment or "",
            self.approved_at.isoformat(),
        ])

    @classmethod
    def create_signed(
        cls,
        *,
        session_id: str,
        approved: bool,
        approver_id: str,
        signer: Any,
        approved_at: Optional[datetime] = None,
        comment: Optional[str] = None,
    ) -> "ApprovalResponse":
        """
        Build and sign a response with the approver's signer.

        This runs on the approver's side, never inside the engine.
        """
        unsigned = cls(
            session_id=session_id,
            approved=approved,
            approver_id=approver_id,
            signature="",
            approved_at=approved_at or datetime.now(timezone.utc),
            comment=comment,
        )
        sig = signer.sign(unsigned.signature_payload())
        return replace(unsigned, signature=base64.b64encode(sig).decode("ascii"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "approved": self.approved,
            "approver_id": self.approver_id,
            "comment": self.comment,
            "signature": self.signature,
            "approved_at": _iso(self.approved_at),
        }


@dataclass(frozen=True)
class AuditEntry:
    """One link of the audit chain. Never mutated after creation."""
    id: str
    session_id: str
    event_type: AuditEventType
    timestamp: datetime
    actor_id: str
    details: Dict[str, Any]
    previous_hash: Optional[str]
    hash: str

    def hashable_content(self) -> Dict[str, Any]:
        """Every field except the entry's own hash, in JSON form."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "actor_id": self.actor_id,
            "details": self.details,
            "previous_hash": self.previous_hash,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.hashable_content()
        d["hash"] = self.hash
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        return cls(
            id=str(data["id"]),
            session_id=str(data["session_id"]),
            event_type=AuditEventType(data["event_type"]),
            timestamp=parse_iso_utc(data["timestamp"]),
            actor_id=str(data["actor_id"]),
            details=dict(data.get("details") or {}),
            previous_hash=data.get("previous_hash"),
            hash=str(data["hash"]),
        )


@dataclass(frozen=True)
class AgentInteraction:
    from_agent_id: str
    to_agent_id: str
    timestamp: datetime
    session_id: str
    chain_depth: int


@dataclass(frozen=True)
class LoopCheck:
    exceeded: bool
    depth: int


@dataclass(frozen=True)
class CascadeAnalysis:
    """Computed fresh on each call; never stored."""
    risk_detected: bool
    severity: float
    affected_agents: Tuple[str, ...]
    recommendation: Recommendation
    details: str
    error_count: int = 0
    window_seconds: float = field(default=300.0)
