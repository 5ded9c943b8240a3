from datetime import datetime, timezone

import pytest

from hsp_core.errors import HSPError, HSP_E_CONFIG_INVALID
from hsp_core.rules import (
    metadata_equals,
    parse_level,
    rule_from_dict,
    rules_from_list,
    target_startswith,
    type_in,
    value_above,
)
from hsp_core.types import AgentAction, CriticalityLevel

T0 = datetime(2026, 1, 12, 12, 0, 0, tzinfo=timezone.utc)


def _action(**kw):
    base = dict(id="a-1", agent_id="agent-001", type="read", description="d", requested_at=T0)
    base.update(kw)
    return AgentAction(**base)


def test_builders():
    assert value_above(1000)(_action(value=1000.01))
    assert not value_above(1000)(_action(value=1000))
    assert not value_above(1000)(_action())
    assert type_in("read", "list")(_action())
    assert target_startswith("agent-")(_action(target="agent-7"))
    assert not target_startswith("agent-")(_action())
    assert metadata_equals("env", "prod")(_action(metadata={"env": "prod"}))
    assert not metadata_equals("env", "prod")(_action())


def test_rule_from_dict_single_clause():
    rule = rule_from_dict(
        {"when": {"field": "value", "op": "gt", "value": 1000}, "level": "high", "reason": "Value exceeds 1000"}
    )
    assert rule.level is CriticalityLevel.HIGH
    assert rule.reason == "Value exceeds 1000"
    assert rule.matches(_action(value=5000))
    assert not rule.matches(_action(value=10))


def test_rule_from_dict_all_clauses_must_hold():
    rule = rule_from_dict(
        {
            "when": [
                {"field": "type", "op": "in", "value": ["share", "read"]},
                {"field": "metadata.scope", "op": "eq", "value": "external"},
            ],
            "level": "CRITICAL",
        }
    )
    assert rule.reason is None
    assert rule.matches(_action(metadata={"scope": "external"}))
    assert not rule.matches(_action(metadata={"scope": "internal"}))
    assert not rule.matches(_action(type="list", metadata={"scope": "external"}))


def test_missing_field_never_matches():
    rule = rule_from_dict({"when": {"field": "value", "op": "lt", "value": 10}, "level": "LOW"})
    assert not rule.matches(_action())

    ne = rule_from_dict({"when": {"field": "target", "op": "ne", "value": "x"}, "level": "LOW"})
    assert not ne.matches(_action())


def test_type_mismatch_does_not_match():
    rule = rule_from_dict({"when": {"field": "description", "op": "gt", "value": 5}, "level": "HIGH"})
    assert not rule.matches(_action(description="text"))


@pytest.mark.parametrize(
    "bad",
    [
        "not a dict",
        {"when": {"field": "nope", "op": "eq", "value": 1}, "level": "HIGH"},
        {"when": {"field": "value", "op": "between", "value": 1}, "level": "HIGH"},
        {"when": {"field": "value", "op": "gt"}, "level": "HIGH"},
        {"when": {"field": "type", "op": "in", "value": "read"}, "level": "HIGH"},
        {"when": [], "level": "HIGH"},
        {"when": {"field": "value", "op": "gt", "value": 1}, "level": "SEVERE"},
    ],
)
def test_invalid_rules_raise_config_error(bad):
    with pytest.raises(HSPError) as ei:
        rule_from_dict(bad)
    assert ei.value.code == HSP_E_CONFIG_INVALID


def test_parse_level_and_rules_from_list():
    assert parse_level(" critical ") is CriticalityLevel.CRITICAL
    assert parse_level(CriticalityLevel.LOW) is CriticalityLevel.LOW
    assert rules_from_list(None) == []
    assert len(rules_from_list([{"when": {"field": "value", "op": "gte", "value": 1}, "level": "LOW"}])) == 1
