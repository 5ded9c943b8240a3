import pytest

from hsp_core.config import CASCADE_WINDOW_SECONDS, LOOP_WINDOW_SECONDS, HSPConfig
from hsp_core.errors import HSPError, HSP_E_CONFIG_INVALID
from hsp_core.types import CriticalityLevel

_ENV_VARS = (
    "HSP_DEFAULT_LEVEL",
    "HSP_APPROVAL_TIMEOUT_SECONDS",
    "HSP_MAX_AGENT_LOOPS",
    "HSP_CASCADE_DETECTION",
    "HSP_AGENT_TARGET_PREFIX",
)


def _clear_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    c = HSPConfig()
    assert c.default_level is CriticalityLevel.MEDIUM
    assert c.escalation_rules == ()
    assert c.approval_timeout_seconds == 300.0
    assert c.approval_timeout.total_seconds() == 300.0
    assert c.max_agent_loops == 10
    assert c.cascade_detection is True
    assert c.agent_target_prefix == "agent-"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"approval_timeout_seconds": 0},
        {"max_agent_loops": -1},
        {"agent_target_prefix": ""},
    ],
)
def test_invalid_values_are_rejected(kwargs):
    with pytest.raises(ValueError):
        HSPConfig(**kwargs)


def test_from_env_defaults(monkeypatch):
    _clear_env(monkeypatch)
    assert HSPConfig.from_env() == HSPConfig()


def test_from_env_reads_values(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("HSP_DEFAULT_LEVEL", "high")
    monkeypatch.setenv("HSP_APPROVAL_TIMEOUT_SECONDS", "60")
    monkeypatch.setenv("HSP_MAX_AGENT_LOOPS", "3")
    monkeypatch.setenv("HSP_CASCADE_DETECTION", "false")
    monkeypatch.setenv("HSP_AGENT_TARGET_PREFIX", "bot:")

    c = HSPConfig.from_env()
    assert c.default_level is CriticalityLevel.HIGH
    assert c.approval_timeout_seconds == 60.0
    assert c.max_agent_loops == 3
    assert c.cascade_detection is False
    assert c.agent_target_prefix == "bot:"


def test_from_env_clamps_bad_values(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("HSP_DEFAULT_LEVEL", "SEVERE")
    monkeypatch.setenv("HSP_APPROVAL_TIMEOUT_SECONDS", "-5")
    monkeypatch.setenv("HSP_MAX_AGENT_LOOPS", "lots")

    c = HSPConfig.from_env()
    assert c.default_level is CriticalityLevel.MEDIUM
    assert c.approval_timeout_seconds == 300.0
    assert c.max_agent_loops == 10


def test_from_dict_with_rules():
    c = HSPConfig.from_dict(
        {
            "default_level": "LOW",
            "max_agent_loops": 5,
            "escalation_rules": [
                {"when": {"field": "value", "op": "gt", "value": 1000}, "level": "HIGH", "reason": "Value exceeds 1000"},
            ],
        }
    )
    assert c.default_level is CriticalityLevel.LOW
    assert c.max_agent_loops == 5
    assert len(c.escalation_rules) == 1
    assert c.escalation_rules[0].reason == "Value exceeds 1000"

    d = c.to_dict()
    assert d["escalation_rules"] == [{"level": "HIGH", "reason": "Value exceeds 1000"}]
    assert d["loop_window_seconds"] == LOOP_WINDOW_SECONDS
    assert d["cascade_window_seconds"] == CASCADE_WINDOW_SECONDS


def test_from_dict_rejects_bad_rules():
    with pytest.raises(HSPError) as ei:
        HSPConfig.from_dict({"escalation_rules": [{"when": {"field": "value", "op": "??", "value": 1}, "level": "HIGH"}]})
    assert ei.value.code == HSP_E_CONFIG_INVALID
