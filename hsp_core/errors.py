"""Stable error taxonomy for HSP.

This module defines machine-readable error codes and the exception types
raised by the supervision engine, the audit ledger and the config layer.

Design goals:
- Stable `code` string suitable for programmatic handling.
- Optional `retryable` flag for callers deciding whether to resubmit.
- Structured `details` for debugging without parsing messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Type


# Canonicalization / hashing
HSP_E_CANON_NON_JSON = "HSP_E_CANON_NON_JSON"
HSP_E_CANON_DEPTH = "HSP_E_CANON_DEPTH"
HSP_E_CANON_NONFINITE = "HSP_E_CANON_NONFINITE"
HSP_E_CANON_KEY_TYPE = "HSP_E_CANON_KEY_TYPE"
HSP_E_CANON_KEY_COLLISION = "HSP_E_CANON_KEY_COLLISION"
HSP_E_CANON_INT_TOO_LARGE = "HSP_E_CANON_INT_TOO_LARGE"

# Approval workflow
HSP_E_SESSION_NOT_FOUND = "HSP_E_SESSION_NOT_FOUND"
HSP_E_INVALID_SIGNATURE = "HSP_E_INVALID_SIGNATURE"
HSP_E_INVALID_STATE = "HSP_E_INVALID_STATE"

# Ledger import / config
HSP_E_LEDGER_RECORD_INVALID = "HSP_E_LEDGER_RECORD_INVALID"
HSP_E_CONFIG_INVALID = "HSP_E_CONFIG_INVALID"


@dataclass
class HSPError(Exception):
    """Base HSP exception with stable error code."""

    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": bool(self.retryable),
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class SessionNotFoundError(HSPError):
    """No pending approval exists for the referenced session."""


class InvalidSignatureError(HSPError):
    """The signature verifier rejected an approval response."""


class InvalidStateError(HSPError):
    """An operation was attempted on a result in the wrong status."""


_ERROR_CLASSES: Dict[str, Type[HSPError]] = {
    HSP_E_SESSION_NOT_FOUND: SessionNotFoundError,
    HSP_E_INVALID_SIGNATURE: InvalidSignatureError,
    HSP_E_INVALID_STATE: InvalidStateError,
}


def hsp_error(
    code: str,
    message: str,
    *,
    retryable: bool = False,
    **details: Any,
) -> HSPError:
    cls = _ERROR_CLASSES.get(code, HSPError)
    return cls(code=code, message=message, retryable=retryable, details=details)
