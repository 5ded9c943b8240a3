"""
hsp_core.signing: approval signing and verification seams.

Approver side:
- Signer protocol and FileEd25519Signer (in-process key, dev/testing).

Engine side:
- SignatureVerifier protocol, consumed by HSPEngine.process_approval.
- Ed25519ApprovalVerifier: checks the response signature against the
  approver's trusted public key.

All verifiers are fail-closed: a missing or malformed token, an unknown or
revoked approver key, or any verification error rejects the response.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .crypto import Ed25519KeyPair, TrustedKeyStore
from .types import ApprovalResponse

logger = logging.getLogger("hsp_core.signing")

_ED25519_SIGNATURE_LEN = 64


@runtime_checkable
class Signer(Protocol):
    """Protocol implemented by approver signing backends."""
    key_id: str

    def sign(self, message: bytes) -> bytes: ...


@dataclass
class FileEd25519Signer:
    """Signer that wraps an Ed25519KeyPair (in-process signing)."""
    keypair: Ed25519KeyPair

    @property
    def key_id(self) -> str:
        return self.keypair.key_id

    @property
    def public_key_hex(self) -> str:
        return self.keypair.public_key_hex

    def sign(self, message: bytes) -> bytes:
        return self.keypair.sign(message)


def coerce_signer(obj: Any) -> Signer:
    """Coerce a supported object into a Signer."""
    if obj is None:
        raise TypeError("signer is None")
    if isinstance(obj, Ed25519KeyPair):
        return FileEd25519Signer(obj)
    if isinstance(obj, Signer):
        return obj
    raise TypeError(f"Unsupported signer type: {type(obj)}")


@runtime_checkable
class SignatureVerifier(Protocol):
    """Decides whether an approval response is authentic."""

    def verify(self, response: ApprovalResponse) -> bool: ...


@dataclass
class Ed25519ApprovalVerifier:
    """Verifies approval signatures with approver public keys.

    The approver id on the response selects the key, so an approver can only
    sign as themselves.
    """
    trusted_keys: TrustedKeyStore

    def verify(self, response: ApprovalResponse) -> bool:
        token = (response.signature or "").strip()
        if not token:
            return False
        try:
            sig = base64.b64decode(token.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, ValueError):
            logger.debug("Approval signature for session %s is not base64", response.session_id)
            return False
        if len(sig) != _ED25519_SIGNATURE_LEN:
            return False
        return self.trusted_keys.verify_signature(
            response.approver_id,
            response.signature_payload(),
            sig,
        )


def sign_approval(signer: Any, **fields: Any) -> ApprovalResponse:
    """Convenience wrapper around ApprovalResponse.create_signed."""
    s = coerce_signer(signer)
    fields.setdefault("approver_id", s.key_id)
    return ApprovalResponse.create_signed(signer=s, **fields)
