"""Action criticality classification.

Precedence is fixed: escalation rules (first match wins), then the static
type table, then the configured default level. Exactly one level comes out,
and numeric value plays no part unless a rule looks at it.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence

from .types import AgentAction, Classification, CriticalityLevel, EscalationRule

CRITICAL_TYPES = frozenset({"transfer", "sign", "delete", "authorize"})
HIGH_TYPES = frozenset({"purchase", "modify", "share"})
LOW_TYPES = frozenset({"query", "read", "list"})

DEFAULT_RULE_REASON = "Matched escalation rule"
DEFAULT_LEVEL_REASON = "Default classification applied"

_TYPE_TABLE: Dict[str, Classification] = {}
for _t in CRITICAL_TYPES:
    _TYPE_TABLE[_t] = Classification(CriticalityLevel.CRITICAL, f"Critical action type: {_t}")
for _t in HIGH_TYPES:
    _TYPE_TABLE[_t] = Classification(CriticalityLevel.HIGH, f"High-risk action type: {_t}")
for _t in LOW_TYPES:
    _TYPE_TABLE[_t] = Classification(CriticalityLevel.LOW, f"Low-risk action type: {_t}")
del _t


def classify_by_type(action: AgentAction) -> Optional[Classification]:
    return _TYPE_TABLE.get(action.type)


def classify(
    action: AgentAction,
    rules: Sequence[EscalationRule],
    default_level: CriticalityLevel,
) -> Classification:
    for rule in rules:
        if rule.matches(action):
            return Classification(rule.level, rule.reason or DEFAULT_RULE_REASON)

    by_type = classify_by_type(action)
    if by_type is not None:
        return by_type

    return Classification(default_level, DEFAULT_LEVEL_REASON)


class ActionClassifier:
    """classify() bound to a rule list and default level."""

    def __init__(self, rules: Sequence[EscalationRule] = (), default_level: CriticalityLevel = CriticalityLevel.MEDIUM):
        self.rules = tuple(rules)
        self.default_level = default_level

    def classify(self, action: AgentAction) -> Classification:
        return classify(action, self.rules, self.default_level)
