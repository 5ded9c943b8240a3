"""HSP core package.

Human Supervision Protocol decision engine:

- Action criticality classification (escalation rules, type table, default)
- Approval workflow gated by signed human decisions (Ed25519)
- Hash-chained, tamper-evident audit ledger
- Runaway agent-loop guard and cascade failure analysis

Convenience imports
------------------
The package avoids heavy import-time side effects. These are available as
top-level imports and are loaded lazily:

    from hsp_core import HSPEngine, HSPConfig, AuditLedger

"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Best-effort version discovery for dev/test environments.

    The project version is a simple `version = "..."` field in
    `pyproject.toml`, so a regex parse is enough.
    """

    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
        m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
        return m.group(1) if m else None
    except OSError:
        return None


__version__ = _read_version_from_pyproject() or "0.3.0"

__all__ = [
    "__version__",
    "HSPEngine",
    "HSPConfig",
    "AuditLedger",
    "AgentAction",
    "ApprovalResponse",
    "CriticalityLevel",
    "ActionStatus",
    "EscalationRule",
    "Ed25519ApprovalVerifier",
    "TrustedKeyStore",
    "HSPError",
]

# Lazy export map: name -> (module, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "HSPEngine": ("hsp_core.engine", "HSPEngine"),
    "HSPConfig": ("hsp_core.config", "HSPConfig"),
    "AuditLedger": ("hsp_core.ledger", "AuditLedger"),
    "AgentAction": ("hsp_core.types", "AgentAction"),
    "ApprovalResponse": ("hsp_core.types", "ApprovalResponse"),
    "CriticalityLevel": ("hsp_core.types", "CriticalityLevel"),
    "ActionStatus": ("hsp_core.types", "ActionStatus"),
    "EscalationRule": ("hsp_core.types", "EscalationRule"),
    "Ed25519ApprovalVerifier": ("hsp_core.signing", "Ed25519ApprovalVerifier"),
    "TrustedKeyStore": ("hsp_core.crypto", "TrustedKeyStore"),
    "HSPError": ("hsp_core.errors", "HSPError"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        # Cache the resolved attribute on the module for faster future access.
        globals()[name] = value
        return value
    raise AttributeError(f"module 'hsp_core' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))
