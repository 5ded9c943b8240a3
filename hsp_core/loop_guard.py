"""Runaway agent-to-agent interaction guard.

This is a sliding-window rate bound, not a cycle detector: it counts recent
interactions an agent took part in (as source or target) and trips once the
count reaches the ceiling.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional

from .config import LOOP_WINDOW_SECONDS
from .types import AgentAction, AgentInteraction, LoopCheck


def check_loop(
    action: AgentAction,
    interactions: Iterable[AgentInteraction],
    now: datetime,
    window_seconds: float = LOOP_WINDOW_SECONDS,
    max_loops: int = 10,
) -> LoopCheck:
    window = timedelta(seconds=window_seconds)
    depth = sum(
        1
        for i in interactions
        if now - i.timestamp < window
        and (i.from_agent_id == action.agent_id or i.to_agent_id == action.agent_id)
    )
    return LoopCheck(exceeded=depth >= max_loops, depth=depth)


def is_agent_target(target: Optional[str], prefix: str) -> bool:
    return bool(target) and target.startswith(prefix)


class LoopGuard:
    """check_loop() bound to a ceiling and window."""

    def __init__(self, max_loops: int, window_seconds: float = LOOP_WINDOW_SECONDS):
        if max_loops < 0:
            raise ValueError("max_loops must be >= 0")
        self.max_loops = int(max_loops)
        self.window_seconds = float(window_seconds)

    def check(self, action: AgentAction, interactions: Iterable[AgentInteraction], now: datetime) -> LoopCheck:
        return check_loop(action, interactions, now, self.window_seconds, self.max_loops)
