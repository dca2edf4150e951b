"""
Tests for the Ed25519 signature verifier and its domain separation.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import base64
import hashlib

import base58
import pytest

from statechannel.crypto import (
    PREAMBLE,
    SIGNING_KEY_ENV,
    SignatureVerifier,
    generate_signing_key,
    identity_of,
    load_signer,
    sign_digest,
    sign_state,
    wrap_digest,
)
from statechannel.state import ChannelState, hash_state


@pytest.fixture
def verifier():
    return SignatureVerifier()


@pytest.fixture
def state():
    return ChannelState(balance_a=20, balance_b=10, nonce=1)


class TestDomainSeparation:

    def test_wrap_digest(self):
        digest = hash_state(ChannelState(1, 2, 3))
        expected = hashlib.sha256(PREAMBLE + b"32" + digest).digest()
        assert wrap_digest(digest) == expected

    def test_wrapped_differs_from_raw(self):
        digest = hash_state(ChannelState(1, 2, 3))
        assert wrap_digest(digest) != digest

    def test_raw_digest_signature_rejected(self, verifier, alice, state):
        """A signature over the bare digest (no preamble) must not verify"""
        digest = hash_state(state)
        raw_sig = alice.key.sign(digest).signature
        assert verifier.verify(digest, raw_sig, alice.identity) is False


class TestVerify:

    def test_valid_base64_signature(self, verifier, alice, state):
        assert verifier.verify(hash_state(state), alice.sign(state), alice.identity) is True

    def test_valid_raw_signature(self, verifier, alice, state):
        digest = hash_state(state)
        assert verifier.verify(digest, sign_digest(alice.key, digest), alice.identity) is True

    def test_wrong_signer(self, verifier, alice, carol, state):
        assert verifier.verify(hash_state(state), carol.sign(state), alice.identity) is False

    def test_wrong_digest(self, verifier, alice, state):
        other = hash_state(ChannelState(balance_a=21, balance_b=10, nonce=1))
        assert verifier.verify(other, alice.sign(state), alice.identity) is False

    def test_tampered_signature(self, verifier, alice, state):
        sig = bytearray(base64.b64decode(alice.sign(state)))
        sig[0] ^= 0x01
        assert verifier.verify(hash_state(state), bytes(sig), alice.identity) is False

    @pytest.mark.parametrize("signature", [
        "not base64!",
        "",
        b"",
        b"\x00" * 10,
        base64.b64encode(b"\x00" * 63).decode(),
        None,
        12345,
    ])
    def test_malformed_signature_is_false(self, verifier, alice, state, signature):
        assert verifier.verify(hash_state(state), signature, alice.identity) is False

    @pytest.mark.parametrize("identity", [
        "",
        None,
        12345,
        b"not-text",
        "0OIl",  # not base58
        base58.b58encode(b"\x01" * 31).decode(),  # wrong key length
    ])
    def test_malformed_identity_is_false(self, verifier, alice, state, identity):
        assert verifier.verify(hash_state(state), alice.sign(state), identity) is False

    def test_non_bytes_digest_is_false(self, verifier, alice, state):
        assert verifier.verify(hash_state(state).hex(), alice.sign(state), alice.identity) is False

    def test_wrong_length_digest_is_false(self, verifier, alice):
        """Only 32-byte state digests are accepted, even when correctly signed"""
        short = b"\x07" * 16
        signature = sign_digest(alice.key, short)
        assert verifier.verify(short, signature, alice.identity) is False


class TestKeys:

    def test_identity_is_base58_verify_key(self):
        sk = generate_signing_key()
        assert base58.b58decode(identity_of(sk)) == bytes(sk.verify_key)
        assert identity_of(sk) == identity_of(sk.verify_key)

    def test_signatures_deterministic(self, state):
        sk = generate_signing_key()
        assert sign_state(sk, state) == sign_state(sk, state)

    def test_load_signer_from_env(self, monkeypatch, state):
        sk = generate_signing_key()
        monkeypatch.setenv(SIGNING_KEY_ENV, base64.b64encode(sk.encode()).decode())
        loaded = load_signer()
        assert identity_of(loaded) == identity_of(sk)

    def test_load_signer_missing_env(self, monkeypatch):
        monkeypatch.delenv(SIGNING_KEY_ENV, raising=False)
        with pytest.raises(RuntimeError, match="Missing env var"):
            load_signer()
