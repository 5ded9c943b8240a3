"""
HSP Cryptography Module

Canonical JSON and SHA-256 helpers for the hash-chained audit ledger, plus
Ed25519 key handling for human approver signatures.

The engine holds only PUBLIC keys of approvers (it can verify, never sign).
Approvers keep their private keys on their own devices, so even a compromised
agent host cannot forge an approval.
"""

from __future__ import annotations

import hashlib
import json
import math
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .errors import (
    HSPError,
    hsp_error,
    HSP_E_CANON_NON_JSON,
    HSP_E_CANON_DEPTH,
    HSP_E_CANON_NONFINITE,
    HSP_E_CANON_KEY_TYPE,
    HSP_E_CANON_KEY_COLLISION,
    HSP_E_CANON_INT_TOO_LARGE,
)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def safe_hash_encode(components: List[str]) -> bytes:
    """
    Length-prefixed encoding for hash/signature inputs.
    Prevents delimiter collision attacks.
    """
    result = b""
    for component in components:
        encoded = component.encode("utf-8")
        length_bytes = len(encoded).to_bytes(8, byteorder="big")
        result += length_bytes + encoded
    return result


# Canonical JSON: adversarial hardening
# - Enforce max depth to avoid pathological recursion/DoS inputs
# - Enforce bounded integers to preserve cross-language determinism
# - Normalize unicode to NFC to prevent visually-identical but byte-distinct strings
_CANON_MAX_DEPTH = 64
_CANON_MAX_INT_DIGITS = 128
_CANON_UNICODE_NORM = "NFC"


def _canon_path_key(k: str) -> str:
    ks = k.replace("\\", "\\\\").replace("'", "\\'")
    return f"['{ks}']"


def _canonicalize(obj: Any, *, _path: str = "$", _depth: int = 0) -> Any:
    if _depth > _CANON_MAX_DEPTH:
        raise hsp_error(HSP_E_CANON_DEPTH, "max nesting depth exceeded", path=_path, max_depth=_CANON_MAX_DEPTH)

    if obj is None or isinstance(obj, bool):
        return obj
    if isinstance(obj, str):
        return unicodedata.normalize(_CANON_UNICODE_NORM, obj)
    if isinstance(obj, int):
        digits = len(str(abs(obj)))
        if digits > _CANON_MAX_INT_DIGITS:
            raise hsp_error(
                HSP_E_CANON_INT_TOO_LARGE,
                "integer has too many digits",
                path=_path,
                digits=digits,
                max_int_digits=_CANON_MAX_INT_DIGITS,
            )
        return obj
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise hsp_error(HSP_E_CANON_NONFINITE, "non-finite float", path=_path)
        return obj

    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            if not isinstance(k, str):
                raise hsp_error(HSP_E_CANON_KEY_TYPE, "dict key must be str", path=_path, got=type(k).__name__)
            nk = unicodedata.normalize(_CANON_UNICODE_NORM, k)
            if nk in out:
                # Normalization can collapse distinct keys into the same NFC form.
                raise hsp_error(HSP_E_CANON_KEY_COLLISION, "duplicate dict key after unicode normalization", path=_path)
            out[nk] = _canonicalize(v, _path=_path + _canon_path_key(nk), _depth=_depth + 1)
        return out

    if isinstance(obj, (list, tuple)):
        return [
            _canonicalize(v, _path=f"{_path}[{i}]", _depth=_depth + 1)
            for i, v in enumerate(obj)
        ]

    raise hsp_error(HSP_E_CANON_NON_JSON, "non-JSON-serializable type", path=_path, got=type(obj).__name__)


def canonical_json_dumps(obj: Any) -> str:
    """Canonical JSON (strict + hardened) used for every audit hash.

    Strict JSON: unknown types are NOT stringified. Callers convert datetimes
    and enums before hashing, so the same entry always hashes the same way in
    any language.
    """
    normalized = _canonicalize(obj)
    try:
        return json.dumps(
            normalized,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise hsp_error(HSP_E_CANON_NON_JSON, f"canonical encoding failed: {e}") from e


def is_canonicalizable(obj: Any) -> bool:
    try:
        _canonicalize(obj)
    except HSPError:
        return False
    return True


@dataclass
class Ed25519KeyPair:
    """
    Ed25519 key pair for approval signing and verification.

    SECURITY: Private keys should never be handed to the engine. Verification
    only needs the public half (see from_public_key).
    """
    key_id: str
    public_key_bytes: bytes
    private_key_bytes: Optional[bytes] = None

    @classmethod
    def generate(cls, key_id: str) -> "Ed25519KeyPair":
        private_key = Ed25519PrivateKey.generate()
        return cls._from_private_key(key_id, private_key)

    @classmethod
    def from_seed(cls, seed: bytes, key_id: str) -> "Ed25519KeyPair":
        """Deterministic key pair from a 32-byte seed."""
        if len(seed) != 32:
            raise ValueError(f"Seed must be 32 bytes, got {len(seed)}")
        return cls._from_private_key(key_id, Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def from_public_key(cls, key_id: str, public_key_hex: str) -> "Ed25519KeyPair":
        """Create key pair with public key only (for verification)."""
        return cls(key_id=key_id, public_key_bytes=bytes.fromhex(public_key_hex))

    @classmethod
    def _from_private_key(cls, key_id: str, private_key: Ed25519PrivateKey) -> "Ed25519KeyPair":
        private_bytes = private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return cls(key_id=key_id, public_key_bytes=public_bytes, private_key_bytes=private_bytes)

    @property
    def public_key_hex(self) -> str:
        return self.public_key_bytes.hex()

    def can_sign(self) -> bool:
        return self.private_key_bytes is not None

    def sign(self, message: bytes) -> bytes:
        if not self.can_sign():
            raise ValueError(f"Key {self.key_id} has no private key - cannot sign")
        private_key = Ed25519PrivateKey.from_private_bytes(self.private_key_bytes)
        return private_key.sign(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        try:
            public_key = Ed25519PublicKey.from_public_bytes(self.public_key_bytes)
            public_key.verify(signature, message)
            return True
        except (InvalidSignature, ValueError):
            return False


@dataclass
class TrustedKeyStore:
    """Trusted approver public keys, keyed by approver id.

    SECURITY: This store should ONLY contain public keys.
    """
    keys: Dict[str, Ed25519KeyPair] = field(default_factory=dict)
    revoked_key_ids: Set[str] = field(default_factory=set)

    def add_public_key(self, key_id: str, public_key_hex: str) -> None:
        self.keys[key_id] = Ed25519KeyPair.from_public_key(key_id, public_key_hex)

    def revoke_key(self, key_id: str) -> None:
        self.revoked_key_ids.add(str(key_id))

    def get_key(self, key_id: str) -> Optional[Ed25519KeyPair]:
        return self.keys.get(key_id)

    def list_key_ids(self) -> List[str]:
        return list(self.keys.keys())

    def verify_signature(self, key_id: str, message: bytes, signature: bytes) -> bool:
        """Verify a signature using a trusted, non-revoked key."""
        if key_id in self.revoked_key_ids:
            return False
        kp = self.get_key(key_id)
        if kp is None:
            return False
        return kp.verify(message, signature)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "TrustedKeyStore":
        """Create store from either:

        Flat format:
            {"approver_id": "<public_key_hex>", ...}

        Wrapped format:
            {"keys": {"approver_id": "<public_key_hex>"}, "revoked": ["approver_id"]}
        """
        store = cls()
        if not isinstance(config, dict):
            return store
        raw = config.get("keys") if isinstance(config.get("keys"), dict) else config
        for key_id, pub_hex in raw.items():
            if isinstance(pub_hex, str):
                store.add_public_key(str(key_id), pub_hex)
        revoked = config.get("revoked")
        if isinstance(revoked, list):
            for kid in revoked:
                store.revoke_key(str(kid))
        return store


def create_key_pair(key_id: str) -> Ed25519KeyPair:
    return Ed25519KeyPair.generate(key_id)
