import base64
import dataclasses
from datetime import datetime, timezone

import pytest

from hsp_core.crypto import Ed25519KeyPair, TrustedKeyStore, create_key_pair
from hsp_core.signing import (
    Ed25519ApprovalVerifier,
    FileEd25519Signer,
    Signer,
    SignatureVerifier,
    coerce_signer,
    sign_approval,
)
from hsp_core.types import ApprovalResponse

T0 = datetime(2026, 1, 12, 12, 0, 0, tzinfo=timezone.utc)


def _setup():
    alice = create_key_pair("alice")
    store = TrustedKeyStore()
    store.add_public_key("alice", alice.public_key_hex)
    return alice, store, Ed25519ApprovalVerifier(store)


def test_valid_signature_verifies():
    alice, _, verifier = _setup()
    response = sign_approval(alice, session_id="s-1", approved=True, approved_at=T0, comment="fine")
    assert response.approver_id == "alice"
    assert response.approved_at == T0
    assert len(base64.b64decode(response.signature)) == 64
    assert isinstance(verifier, SignatureVerifier)
    assert verifier.verify(response) is True


@pytest.mark.parametrize(
    "field, value",
    [
        ("session_id", "s-2"),
        ("approved", False),
        ("comment", "changed"),
        ("approver_id", "bob"),
    ],
)
def test_any_field_change_invalidates_signature(field, value):
    alice, _, verifier = _setup()
    response = sign_approval(alice, session_id="s-1", approved=True, approved_at=T0, comment="fine")
    assert verifier.verify(dataclasses.replace(response, **{field: value})) is False


@pytest.mark.parametrize("signature", ["", "   ", "not*base64!", base64.b64encode(b"short").decode()])
def test_malformed_signatures_fail_closed(signature):
    alice, _, verifier = _setup()
    response = sign_approval(alice, session_id="s-1", approved=True)
    assert verifier.verify(dataclasses.replace(response, signature=signature)) is False


def test_unknown_and_revoked_approvers_fail_closed():
    alice, store, verifier = _setup()
    bob = create_key_pair("bob")
    assert verifier.verify(sign_approval(bob, session_id="s-1", approved=True)) is False

    good = sign_approval(alice, session_id="s-1", approved=True)
    store.revoke_key("alice")
    assert verifier.verify(good) is False


def test_public_only_key_cannot_sign():
    alice = create_key_pair("alice")
    public_only = Ed25519KeyPair.from_public_key("alice", alice.public_key_hex)
    assert public_only.can_sign() is False
    with pytest.raises(ValueError):
        public_only.sign(b"x")


def test_seeded_keys_are_deterministic():
    seed = bytes(range(32))
    a = Ed25519KeyPair.from_seed(seed, "k")
    b = Ed25519KeyPair.from_seed(seed, "k")
    assert a.public_key_hex == b.public_key_hex


def test_coerce_signer():
    alice = create_key_pair("alice")
    signer = coerce_signer(alice)
    assert isinstance(signer, FileEd25519Signer)
    assert isinstance(signer, Signer)
    assert signer.key_id == "alice"
    assert coerce_signer(signer) is signer
    with pytest.raises(TypeError):
        coerce_signer(None)
    with pytest.raises(TypeError):
        coerce_signer("alice")


def test_trusted_key_store_from_config():
    alice = create_key_pair("alice")
    bob = create_key_pair("bob")

    flat = TrustedKeyStore.from_config({"alice": alice.public_key_hex})
    assert flat.list_key_ids() == ["alice"]

    wrapped = TrustedKeyStore.from_config(
        {"keys": {"alice": alice.public_key_hex, "bob": bob.public_key_hex}, "revoked": ["bob"]}
    )
    verifier = Ed25519ApprovalVerifier(wrapped)
    assert verifier.verify(sign_approval(alice, session_id="s", approved=True)) is True
    assert verifier.verify(sign_approval(bob, session_id="s", approved=True)) is False


def test_signature_payload_binds_decision():
    r = ApprovalResponse(session_id="s", approved=True, approver_id="a", signature="", approved_at=T0)
    assert r.signature_payload() != dataclasses.replace(r, approved=False).signature_payload()


def test_trusted_key_store_get_key_returns_public_only_key():
    alice, store, _ = _setup()
    kp = store.get_key("alice")
    assert kp is not None
    assert kp.public_key_hex == alice.public_key_hex
    assert kp.verify(b"message", alice.sign(b"message")) is True
    assert store.get_key("bob") is None
    assert store.verify_signature("bob", b"message", alice.sign(b"message")) is False
