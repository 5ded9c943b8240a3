"""Engine configuration.

HSPConfig is built by the caller and handed to the engine; the engine never
reads files or the environment itself. from_dict/from_env exist for process
bootstrap code (the CLI, a host service).

Environment variables (from_env):
- HSP_DEFAULT_LEVEL: LOW|MEDIUM|HIGH|CRITICAL
- HSP_APPROVAL_TIMEOUT_SECONDS: approval timeout recorded on requests
- HSP_MAX_AGENT_LOOPS: interaction ceiling per loop window
- HSP_CASCADE_DETECTION: '0'/'false' disables the cascade pre-check
- HSP_AGENT_TARGET_PREFIX: target prefix that marks another agent
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Tuple

from .rules import parse_level, rules_from_list
from .types import CriticalityLevel, EscalationRule

# Fixed detector windows.
LOOP_WINDOW_SECONDS = 60.0
CASCADE_WINDOW_SECONDS = 300.0

ENGINE_ACTOR_ID = "hsp-engine"


@dataclass(frozen=True)
class HSPConfig:
    default_level: CriticalityLevel = CriticalityLevel.MEDIUM
    escalation_rules: Tuple[EscalationRule, ...] = field(default_factory=tuple)
    approval_timeout_seconds: float = 300.0
    max_agent_loops: int = 10
    cascade_detection: bool = True
    agent_target_prefix: str = "agent-"

    def __post_init__(self):
        object.__setattr__(self, "escalation_rules", tuple(self.escalation_rules))
        if self.approval_timeout_seconds <= 0:
            raise ValueError("approval_timeout_seconds must be positive")
        if self.max_agent_loops < 0:
            raise ValueError("max_agent_loops must be >= 0")
        if not self.agent_target_prefix:
            raise ValueError("agent_target_prefix cannot be empty")

    @property
    def approval_timeout(self) -> timedelta:
        return timedelta(seconds=self.approval_timeout_seconds)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HSPConfig":
        """Build from a JSON-like mapping; missing keys keep their defaults."""
        data = data or {}
        kwargs: Dict[str, Any] = {}
        if "default_level" in data:
            kwargs["default_level"] = parse_level(data["default_level"])
        if "escalation_rules" in data:
            kwargs["escalation_rules"] = tuple(rules_from_list(data["escalation_rules"]))
        if "approval_timeout_seconds" in data:
            kwargs["approval_timeout_seconds"] = float(data["approval_timeout_seconds"])
        if "max_agent_loops" in data:
            kwargs["max_agent_loops"] = int(data["max_agent_loops"])
        if "cascade_detection" in data:
            kwargs["cascade_detection"] = bool(data["cascade_detection"])
        if "agent_target_prefix" in data:
            kwargs["agent_target_prefix"] = str(data["agent_target_prefix"])
        return cls(**kwargs)

    @classmethod
    def from_env(cls) -> "HSPConfig":
        def _get_int(name: str, default: int) -> int:
            try:
                return int(os.getenv(name, str(default)).strip())
            except ValueError:
                return default

        def _get_float(name: str, default: float) -> float:
            try:
                return float(os.getenv(name, str(default)).strip())
            except ValueError:
                return default

        level_raw = (os.getenv("HSP_DEFAULT_LEVEL", "") or "").strip().upper()
        try:
            level = CriticalityLevel(level_raw) if level_raw else cls.default_level
        except ValueError:
            level = cls.default_level

        timeout = _get_float("HSP_APPROVAL_TIMEOUT_SECONDS", cls.approval_timeout_seconds)
        loops = _get_int("HSP_MAX_AGENT_LOOPS", cls.max_agent_loops)
        cascade = os.getenv("HSP_CASCADE_DETECTION", "1").strip().lower() not in ("0", "false", "no", "off")
        prefix = (os.getenv("HSP_AGENT_TARGET_PREFIX", "") or "").strip() or cls.agent_target_prefix

        # Clamp
        if timeout <= 0:
            timeout = cls.approval_timeout_seconds
        if loops < 0:
            loops = cls.max_agent_loops

        return cls(
            default_level=level,
            approval_timeout_seconds=timeout,
            max_agent_loops=loops,
            cascade_detection=cascade,
            agent_target_prefix=prefix,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "default_level": self.default_level.value,
            "escalation_rules": [
                {"level": r.level.value, "reason": r.reason} for r in self.escalation_rules
            ],
            "approval_timeout_seconds": self.approval_timeout_seconds,
            "max_agent_loops": self.max_agent_loops,
            "cascade_detection": self.cascade_detection,
            "agent_target_prefix": self.agent_target_prefix,
            "loop_window_seconds": LOOP_WINDOW_SECONDS,
            "cascade_window_seconds": CASCADE_WINDOW_SECONDS,
        }
