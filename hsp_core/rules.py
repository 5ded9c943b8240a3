"""Escalation rule builders.

Rules are plain predicates over an AgentAction. Callers can pass any
callable; this module adds a few common builders and a small data-only form
so rules can live in JSON config files:

    {"when": {"field": "value", "op": "gt", "value": 1000},
     "level": "HIGH", "reason": "Value exceeds 1000"}

`when` may also be a list of clauses, all of which must hold. A clause whose
field is missing on the action never matches.
"""

from __future__ import annotations

import operator
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import hsp_error, HSP_E_CONFIG_INVALID
from .types import AgentAction, CriticalityLevel, EscalationRule

Predicate = Callable[[AgentAction], bool]

_MISSING = object()

_ACTION_FIELDS = ("type", "agent_id", "value", "currency", "target", "description")


def _startswith(a: Any, b: Any) -> bool:
    return isinstance(a, str) and a.startswith(str(b))


def _in(a: Any, b: Any) -> bool:
    return a in b


_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "eq": operator.eq,
    "ne": operator.ne,
    "in": _in,
    "startswith": _startswith,
}


def _field_value(action: AgentAction, name: str) -> Any:
    if name.startswith("metadata."):
        key = name[len("metadata."):]
        return (action.metadata or {}).get(key, _MISSING)
    v = getattr(action, name)
    return _MISSING if v is None else v


def value_above(threshold: float) -> Predicate:
    return lambda action: action.value is not None and action.value > threshold


def type_in(*types: str) -> Predicate:
    allowed = frozenset(types)
    return lambda action: action.type in allowed


def target_startswith(prefix: str) -> Predicate:
    return lambda action: bool(action.target) and action.target.startswith(prefix)


def metadata_equals(key: str, value: Any) -> Predicate:
    return lambda action: (action.metadata or {}).get(key, _MISSING) == value


def _clause_predicate(clause: Dict[str, Any]) -> Predicate:
    if not isinstance(clause, dict):
        raise hsp_error(HSP_E_CONFIG_INVALID, "rule clause must be an object", got=type(clause).__name__)
    name = clause.get("field")
    op_name = str(clause.get("op", "")).lower()
    if not isinstance(name, str) or not (name in _ACTION_FIELDS or name.startswith("metadata.")):
        raise hsp_error(HSP_E_CONFIG_INVALID, f"unknown rule field: {name!r}", allowed=list(_ACTION_FIELDS))
    if op_name not in _OPS:
        raise hsp_error(HSP_E_CONFIG_INVALID, f"unknown rule op: {op_name!r}", allowed=sorted(_OPS))
    if "value" not in clause:
        raise hsp_error(HSP_E_CONFIG_INVALID, "rule clause requires a value", field=name)
    op = _OPS[op_name]
    expected = clause["value"]
    if op_name == "in" and not isinstance(expected, (list, tuple)):
        raise hsp_error(HSP_E_CONFIG_INVALID, "'in' requires a list value", field=name)

    def predicate(action: AgentAction) -> bool:
        actual = _field_value(action, name)
        if actual is _MISSING:
            return False
        try:
            return bool(op(actual, expected))
        except TypeError:
            # e.g. comparing a string field with a number
            return False

    return predicate


def all_of(predicates: Iterable[Predicate]) -> Predicate:
    preds: List[Predicate] = list(predicates)
    return lambda action: all(p(action) for p in preds)


def parse_level(value: Any) -> CriticalityLevel:
    if isinstance(value, CriticalityLevel):
        return value
    try:
        return CriticalityLevel(str(value).strip().upper())
    except ValueError:
        raise hsp_error(
            HSP_E_CONFIG_INVALID,
            f"unknown criticality level: {value!r}",
            allowed=[lvl.value for lvl in CriticalityLevel],
        ) from None


def rule_from_dict(data: Dict[str, Any]) -> EscalationRule:
    """Build an EscalationRule from its data-only form."""
    if not isinstance(data, dict):
        raise hsp_error(HSP_E_CONFIG_INVALID, "rule must be an object", got=type(data).__name__)
    when = data.get("when")
    if isinstance(when, list):
        if not when:
            raise hsp_error(HSP_E_CONFIG_INVALID, "rule 'when' list cannot be empty")
        condition = all_of(_clause_predicate(c) for c in when)
    else:
        condition = _clause_predicate(when)
    reason: Optional[str] = data.get("reason")
    return EscalationRule(condition=condition, level=parse_level(data.get("level")), reason=reason)


def rules_from_list(items: Optional[Iterable[Dict[str, Any]]]) -> List[EscalationRule]:
    return [rule_from_dict(item) for item in (items or [])]
